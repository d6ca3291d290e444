from __future__ import annotations

import math
from typing import Any

from sqlalchemy import BigInteger, Boolean, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError

PAYMENT_METHODS = ("Cash", "Card", "Transfer")
USER_ROLES = ("Admin", "Cashier")


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any, where: str):
    coltype = col.type

    if value is None:
        return None

    # Booleans (legacy backups store archived as 0/1)
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, (int, float)) and value in (0, 1):
            return bool(value)
        if isinstance(value, str) and value.strip().lower() in {"0", "1", "true", "false"}:
            return value.strip().lower() in {"1", "true"}
        raise ValidationError(f"{where}: {col.key} must be a boolean")

    # Integers - reject floats with a fractional part and bools
    if isinstance(coltype, (Integer, BigInteger)):
        if isinstance(value, bool):
            raise ValidationError(f"{where}: {col.key} must be an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            stripped = value.strip()
            if stripped.lstrip("-").isdigit():
                return int(stripped)
        raise ValidationError(f"{where}: {col.key} must be an integer")

    # Reals: stock and prices; numeric strings come back from PostgreSQL exports
    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValidationError(f"{where}: {col.key} must be a number")
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise ValidationError(f"{where}: {col.key} must be a number")
        if not math.isfinite(number):
            raise ValidationError(f"{where}: {col.key} must be finite")
        return number

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{where}: {col.key} must be a string")
        return str(value)

    return value


def coerce_row(
    *,
    model: DeclarativeMeta,
    raw: Any,
    fields: dict[str, tuple[str, ...]],
    where: str,
) -> dict:
    """
    Map one external row onto model columns and normalize it.

    fields maps column attribute -> accepted external names (first wins).
    Missing non-nullable columns without a default raise ValidationError,
    so malformed rows are rejected before any write happens.
    """
    if not isinstance(raw, dict):
        raise ValidationError(f"{where}: row must be an object")

    cols = _columns_by_key(model)
    row: dict = {}

    for attr, names in fields.items():
        col = cols[attr]
        present = [n for n in names if n in raw]
        value = raw[present[0]] if present else None

        if value is None:
            if col.primary_key and col.autoincrement is not False and isinstance(col.type, Integer):
                continue
            if col.default is not None and col.default.is_scalar:
                row[attr] = col.default.arg
                continue
            if not col.nullable or col.primary_key:
                raise ValidationError(
                    f"{where}: missing required field '{names[0]}'",
                    details={"field": names[0]},
                )
            row[attr] = None
            continue

        val = _coerce_value(col, value, where)

        if isinstance(col.type, String) and col.type.length and len(val) > col.type.length:
            raise ValidationError(f"{where}: {names[0]} exceeds max length {col.type.length}")

        row[attr] = val

    return row


def require_number(value: Any, field: str, *, positive: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{field} must be a number")
    number = float(value)
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be finite")
    if positive and number <= 0:
        raise ValidationError(f"{field} must be > 0")
    return number


def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    return value.strip()


def require_payment_method(value: Any) -> str:
    if value not in PAYMENT_METHODS:
        raise ValidationError(
            "paymentMethod must be one of: " + ", ".join(PAYMENT_METHODS),
            details={"allowed": list(PAYMENT_METHODS)},
        )
    return value
