from __future__ import annotations

from typing import Any

from sqlalchemy import select

from ..errors import TransactionFailure, ValidationError
from ..extensions import db
from ..models import Setting
from .concurrency import run_with_retry, unit_of_work


DEFAULT_SETTINGS = {
    "storeName": "Home of Disposables",
    "storeEmail": "contact@store.com",
    "storePhone": "+233 XX XXX XXXX",
    "storeAddress": "Accra, Ghana",
    "currencySymbol": "GH₵",
    "taxRate": "5.0",
    "language": "English (US)",
    "timezone": "(GMT+00:00) Ghana Time",
    "dateFormat": "DD/MM/YYYY",
    "lowStockAlerts": "true",
    "dailySummary": "false",
    "staffLoginAlerts": "true",
    "systemUpdates": "true",
    "revenueGoal": "50000",
    "lowStockThreshold": "5",
}

MAX_KEY_LENGTH = Setting.__table__.c["key"].type.length


def _dialect_insert():
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise TransactionFailure(
            f"Settings upsert is not supported on {dialect}", details={"dialect": dialect}
        )
    return insert


def _coerce_setting_value(key: str, value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ValidationError(
        f"Setting '{key}' must be a string, number or boolean",
        details={"key": key},
    )


def _clean_entries(entries: Any) -> list[dict]:
    if not isinstance(entries, dict):
        raise ValidationError("Settings payload must be an object of key/value pairs")

    rows = []
    for key, value in entries.items():
        if not isinstance(key, str) or not key.strip():
            raise ValidationError("Setting keys must be non-empty strings")
        if len(key) > MAX_KEY_LENGTH:
            raise ValidationError(f"Setting key exceeds max length {MAX_KEY_LENGTH}", details={"key": key})
        rows.append({"key": key, "value": _coerce_setting_value(key, value)})
    return rows


def get_all() -> dict[str, str]:
    """Current key -> value map, as of the read."""
    rows = db.session.execute(select(Setting.key, Setting.value).order_by(Setting.key)).all()
    return {key: value for key, value in rows}


def upsert(entries: dict) -> None:
    """
    Write a batch of settings as one unit of work.

    Issued as a single INSERT ... ON CONFLICT (key) DO UPDATE against the
    primary key, so concurrent writers on one key can never produce a
    second row; the last committed write wins.
    """
    rows = _clean_entries(entries)
    if not rows:
        return

    def _op():
        with unit_of_work():
            insert = _dialect_insert()
            stmt = insert(Setting).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=[Setting.key],
                set_={"value": stmt.excluded["value"]},
            )
            db.session.execute(stmt)

    run_with_retry(_op)


def ensure_defaults_seeded() -> int:
    """Insert default settings that are missing; existing values are kept."""
    def _op():
        with unit_of_work():
            existing = set(db.session.execute(select(Setting.key)).scalars())
            missing = [
                {"key": key, "value": value}
                for key, value in DEFAULT_SETTINGS.items()
                if key not in existing
            ]
            if missing:
                insert = _dialect_insert()
                db.session.execute(
                    insert(Setting).values(missing).on_conflict_do_nothing(index_elements=[Setting.key])
                )
            return len(missing)

    return run_with_retry(_op)
