"""
Sales service: record and void completed sales.

Both operations run as one unit of work. Recording inserts the sale, its
lines (with the name/price/cost charged at the till) and applies a relative
stock decrement per line. Voiding applies the exact inverse and removes the
sale. Nothing is visible between the two states, and a failure at any step
leaves the database as it was.

Events are published only after commit and can never undo or fail the sale.
"""

from __future__ import annotations

import secrets
import string
from collections import defaultdict

from flask import current_app
from sqlalchemy import delete, select

from ..errors import NotFoundError, ValidationError
from ..extensions import db, broadcaster
from ..models import Sale, SaleLine
from ..time_utils import epoch_millis
from ..validation import require_number, require_payment_method, require_text
from . import inventory_service
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .event_service import SALE_COMPLETED, SALE_VOIDED

_ALPHABET = string.ascii_uppercase + string.digits


def new_sale_id() -> str:
    return "SALE-" + "".join(secrets.choice(_ALPHABET) for _ in range(6))


def _field(item: dict, *names):
    # Tills send price/costPrice; unitPrice/unitCostPrice are accepted as aliases
    for name in names:
        if name in item:
            return item[name]
    return None


def _clean_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    cleaned = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{i}] must be an object")
        try:
            cost = _field(item, "costPrice", "unitCostPrice")
            cleaned.append({
                "product_id": require_text(item.get("productId"), "productId"),
                "name": require_text(item.get("name"), "name"),
                "quantity": require_number(item.get("quantity"), "quantity", positive=True),
                "price": require_number(_field(item, "price", "unitPrice"), "price"),
                "cost_price": require_number(cost, "costPrice") if cost is not None else 0.0,
            })
        except ValidationError as exc:
            raise ValidationError(f"items[{i}]: {exc.message}", details={"index": i}) from exc
    return cleaned


def _stock_floor() -> float | None:
    if current_app.config.get("ALLOW_NEGATIVE_STOCK", True):
        return None
    return 0.0


def _deltas_by_product(lines, sign: float) -> list[tuple[str, float]]:
    # One UPDATE per product, in id order, so concurrent sales lock rows in the same order
    totals: dict[str, float] = defaultdict(float)
    for line in lines:
        totals[line["product_id"]] += sign * line["quantity"]
    return sorted(totals.items())


def record_sale(items, total, payment_method) -> Sale:
    """
    Record a completed sale and decrement stock atomically.

    items: [{productId, name, quantity, price, costPrice}] as sent by the
    till. total is trusted as given.

    Raises ValidationError before touching the store, NotFoundError when a
    line references an unknown product, InsufficientStockError when the
    stock floor is enforced, TransactionFailure on any other store failure.
    """
    lines = _clean_items(items)
    total = require_number(total, "total")
    payment_method = require_payment_method(payment_method)

    sale_id = new_sale_id()
    timestamp = epoch_millis()
    floor = _stock_floor()

    def _op():
        with unit_of_work() as uow:
            inventory_service.require_products({line["product_id"] for line in lines})

            db.session.add(Sale(
                id=sale_id,
                total=total,
                timestamp=timestamp,
                payment_method=payment_method,
            ))
            db.session.flush()

            for line in lines:
                db.session.add(SaleLine(sale_id=sale_id, **line))
            db.session.flush()
            uow.checkpoint()

            for product_id, delta in _deltas_by_product(lines, -1.0):
                inventory_service.adjust_stock(product_id, delta, floor=floor)
                uow.checkpoint()

    run_with_retry(_op)

    sale = get_sale(sale_id)
    payload = sale.to_dict()
    broadcaster.publish(SALE_COMPLETED, payload)
    current_app.logger.info("Recorded sale %s (%d lines, total %.2f)", sale_id, len(lines), total)
    return sale


def void_sale(sale_id: str) -> dict:
    """
    Reverse a recorded sale: restore stock, then delete its lines and the sale.

    Returns the voided sale as it was. Raises NotFoundError (nothing changed)
    when the sale has no lines.
    """
    def _op():
        with unit_of_work() as uow:
            sale = lock_for_update(
                db.session.query(Sale).filter_by(id=sale_id)
            ).first()
            lines = db.session.execute(
                select(SaleLine).where(SaleLine.sale_id == sale_id).order_by(SaleLine.id)
            ).scalars().all()
            if not lines:
                raise NotFoundError("Sale not found", details={"sale_id": sale_id})

            voided = sale.to_dict() if sale is not None else {"id": sale_id, "items": []}

            restore = [{"product_id": line.product_id, "quantity": line.quantity} for line in lines]
            for product_id, delta in _deltas_by_product(restore, 1.0):
                inventory_service.adjust_stock(product_id, delta)
                uow.checkpoint()

            db.session.execute(
                delete(SaleLine)
                .where(SaleLine.sale_id == sale_id)
                .execution_options(synchronize_session=False)
            )
            db.session.execute(
                delete(Sale)
                .where(Sale.id == sale_id)
                .execution_options(synchronize_session=False)
            )
            return voided

    voided = run_with_retry(_op)
    db.session.expunge_all()
    broadcaster.publish(SALE_VOIDED, sale_id)
    current_app.logger.info("Voided sale %s", sale_id)
    return voided


def get_sale(sale_id: str) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def list_sales(start: int | None = None, end: int | None = None) -> list[Sale]:
    """Sales newest first, optionally within an inclusive epoch-millis window."""
    stmt = select(Sale).order_by(Sale.timestamp.desc(), Sale.id.asc())
    if start is not None:
        stmt = stmt.where(Sale.timestamp >= start)
    if end is not None:
        stmt = stmt.where(Sale.timestamp <= end)
    return list(db.session.execute(stmt).scalars())
