# Overview: Whole-dataset backup and restore; one versioned JSON document in, one out.

"""
Snapshot invariants (authoritative)

- export_snapshot reads every row of every table inside one read-only unit
  of work, so the document is a single point in time.
- restore_snapshot is all-or-nothing. The document is validated and every
  row coerced before any write; the delete-all and re-insert then run as one
  unit of work. A failure leaves the previous dataset untouched.
- Delete order is children first (sale items, sales, products, users,
  settings); insert order is parents first (products, sales, sale items,
  users, settings) so foreign keys are satisfiable at every insert.
- Row field names follow the backup files written by earlier releases of
  the store server (camelCase). Lowercased aliases produced by PostgreSQL
  for unquoted columns are accepted on restore.
"""

from __future__ import annotations

from typing import Any

from flask import current_app
from sqlalchemy import delete, func, select, text
from sqlalchemy.exc import IntegrityError

from ..errors import TransactionFailure, ValidationError
from ..extensions import db, broadcaster
from ..models import Product, Sale, SaleLine, Setting, User
from ..time_utils import epoch_millis
from ..validation import PAYMENT_METHODS, USER_ROLES, coerce_row
from .concurrency import run_with_retry, unit_of_work
from .event_service import SNAPSHOT_RESTORED


# collection -> (model, {column attribute: accepted document names})
SNAPSHOT_LAYOUT: dict[str, tuple[Any, dict[str, tuple[str, ...]]]] = {
    "products": (Product, {
        "id": ("id",),
        "name": ("name",),
        "sku": ("sku",),
        "category": ("category",),
        "selling_price": ("sellingPrice", "sellingprice"),
        "half_price": ("halfPrice", "halfprice"),
        "quarter_price": ("quarterPrice", "quarterprice"),
        "cost_price": ("costPrice", "costprice"),
        "stock": ("stock",),
        "unit": ("unit",),
        "archived": ("archived",),
    }),
    "sales": (Sale, {
        "id": ("id",),
        "total": ("total",),
        "timestamp": ("timestamp",),
        "payment_method": ("paymentMethod", "paymentmethod"),
    }),
    "saleItems": (SaleLine, {
        "id": ("id",),
        "sale_id": ("saleId", "saleid"),
        "product_id": ("productId", "productid"),
        "name": ("name",),
        "quantity": ("quantity",),
        "price": ("price",),
        "cost_price": ("costPrice", "costprice"),
    }),
    "users": (User, {
        "id": ("id",),
        "name": ("name",),
        "username": ("username",),
        "password": ("password",),
        "role": ("role",),
    }),
    "settings": (Setting, {
        "key": ("key",),
        "value": ("value",),
    }),
}

INSERT_ORDER = ("products", "sales", "saleItems", "users", "settings")
DELETE_ORDER = ("saleItems", "sales", "products", "users", "settings")


def _export_row(obj, fields: dict[str, tuple[str, ...]]) -> dict:
    return {names[0]: getattr(obj, attr) for attr, names in fields.items()}


def export_snapshot() -> dict:
    """Every row of every table as one versioned document."""
    data: dict[str, list[dict]] = {}
    with unit_of_work(read_only=True):
        for collection in INSERT_ORDER:
            model, fields = SNAPSHOT_LAYOUT[collection]
            pk = model.__mapper__.primary_key[0]
            rows = db.session.execute(select(model).order_by(pk)).scalars().all()
            data[collection] = [_export_row(row, fields) for row in rows]

    return {
        "version": current_app.config.get("SNAPSHOT_VERSION", "1.0"),
        "exportedAt": epoch_millis(),
        "data": data,
    }


def _check_enums(collection: str, row: dict, where: str) -> None:
    if collection == "sales" and row["payment_method"] not in PAYMENT_METHODS:
        raise ValidationError(f"{where}: unknown paymentMethod {row['payment_method']!r}")
    if collection == "users" and row["role"] not in USER_ROLES:
        raise ValidationError(f"{where}: unknown role {row['role']!r}")


def validate_snapshot(doc: Any) -> dict[str, list[dict]]:
    """
    Check the document shape and coerce every row to column values.

    Raises ValidationError naming the first bad collection/row. Nothing is
    written here.
    """
    if not isinstance(doc, dict):
        raise ValidationError("Snapshot must be a JSON object")
    expected = current_app.config.get("SNAPSHOT_VERSION", "1.0")
    if doc.get("version") != expected:
        raise ValidationError(
            f"Unsupported snapshot version {doc.get('version')!r}",
            details={"expected": expected},
        )
    data = doc.get("data")
    if not isinstance(data, dict):
        raise ValidationError("No data provided")

    missing = [c for c in INSERT_ORDER if not isinstance(data.get(c), list)]
    if missing:
        raise ValidationError(
            "Snapshot is missing collections: " + ", ".join(missing),
            details={"missing": missing},
        )

    cleaned: dict[str, list[dict]] = {}
    for collection in INSERT_ORDER:
        model, fields = SNAPSHOT_LAYOUT[collection]
        rows = []
        for index, raw in enumerate(data[collection]):
            where = f"{collection}[{index}]"
            row = coerce_row(model=model, raw=raw, fields=fields, where=where)
            _check_enums(collection, row, where)
            rows.append(row)
        cleaned[collection] = rows
    return cleaned


def _realign_sequences() -> None:
    if db.session.get_bind().dialect.name != "postgresql":
        return
    # Explicit ids were inserted; move the serial past them
    max_id = db.session.execute(select(func.max(SaleLine.id))).scalar()
    db.session.execute(
        text("SELECT setval(pg_get_serial_sequence('sale_items', 'id'), :value, :called)"),
        {"value": max_id or 1, "called": max_id is not None},
    )


def restore_snapshot(doc: Any) -> dict[str, int]:
    """
    Replace the whole dataset with the snapshot contents.

    Returns row counts per collection. Raises ValidationError (nothing
    touched) or TransactionFailure (rolled back, nothing changed).
    """
    cleaned = validate_snapshot(doc)

    def _op():
        with unit_of_work() as uow:
            for collection in DELETE_ORDER:
                model, _ = SNAPSHOT_LAYOUT[collection]
                db.session.execute(delete(model).execution_options(synchronize_session=False))
            uow.checkpoint()

            for collection in INSERT_ORDER:
                model, _ = SNAPSHOT_LAYOUT[collection]
                try:
                    db.session.add_all(model(**row) for row in cleaned[collection])
                    db.session.flush()
                except IntegrityError as exc:
                    raise TransactionFailure(
                        "Restore failed",
                        details={"collection": collection, "reason": str(exc.orig)},
                    ) from exc
                uow.checkpoint()

            _realign_sequences()

    # Drop stale identities before the delete so add_all cannot collide with them
    db.session.expunge_all()
    run_with_retry(_op)
    db.session.expunge_all()

    counts = {collection: len(rows) for collection, rows in cleaned.items()}
    broadcaster.publish(SNAPSHOT_RESTORED, counts)
    current_app.logger.info("Restored snapshot: %s", counts)
    return counts
