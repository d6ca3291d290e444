from __future__ import annotations

from ..extensions import db


class Setting(db.Model):
    """
    Store-wide key/value setting.

    `key` is the primary key, so the database itself guarantees one row
    per key. Writes go through settings_service.upsert only.
    """
    __tablename__ = "settings"

    key = db.Column(db.String(128), primary_key=True)
    value = db.Column(db.Text, nullable=False)

    def to_dict(self) -> dict:
        return {"key": self.key, "value": self.value}
