from __future__ import annotations

from ..extensions import db


class User(db.Model):
    """
    Staff account. Login and user management live outside this service;
    the table is kept here because snapshots carry it.
    """
    __tablename__ = "users"

    id = db.Column(db.String(32), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    username = db.Column(db.String(64), nullable=False, unique=True)

    # Bcrypt hash (legacy backups may carry other credential formats verbatim)
    password = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "username": self.username,
            "role": self.role,
        }
