# Overview: Service-layer operations for inventory; stock reads and relative stock updates.

# backend/stockledger/services/inventory_service.py
"""
Inventory store invariants (authoritative)

- Product.stock is a stored quantity, changed only by relative updates:
      UPDATE products SET stock = stock + :delta WHERE id = :id
  The row lock taken by the UPDATE serializes concurrent writers on the same
  product, so no update is lost and no application lock is needed.
- Nothing here commits. Callers run these inside a unit of work.
- No caching: every read goes to the database.
"""

from __future__ import annotations

from sqlalchemy import select, update

from ..errors import InsufficientStockError, NotFoundError
from ..extensions import db
from ..models import Product, SaleLine


def get_product(product_id: str) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def list_products(include_archived: bool = False) -> list[Product]:
    stmt = select(Product).order_by(Product.name.asc(), Product.id.asc())
    if not include_archived:
        stmt = stmt.where(Product.archived.is_(False))
    return list(db.session.execute(stmt).scalars())


def get_stock(product_id: str) -> float:
    stock = db.session.execute(
        select(Product.stock).where(Product.id == product_id)
    ).scalar_one_or_none()
    if stock is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return stock


def adjust_stock(product_id: str, delta: float, *, floor: float | None = None) -> None:
    """
    Apply stock = stock + delta to one product as a single UPDATE.

    With floor set the UPDATE only matches while stock + delta >= floor,
    so the sufficiency check and the write are the same statement.

    Raises NotFoundError when the product does not exist and
    InsufficientStockError when the floor guard rejects the change.
    """
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + delta)
        .execution_options(synchronize_session=False)
    )
    if floor is not None:
        stmt = stmt.where(Product.stock + delta >= floor)

    result = db.session.execute(stmt)
    if result.rowcount == 1:
        return

    exists = db.session.execute(
        select(Product.id).where(Product.id == product_id)
    ).scalar_one_or_none()
    if exists is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    raise InsufficientStockError(
        "Insufficient stock",
        details={
            "product_id": product_id,
            "requested_quantity": -delta,
            "on_hand": get_stock(product_id),
        },
    )


def product_is_referenced(product_id: str) -> bool:
    return db.session.execute(
        select(SaleLine.id).where(SaleLine.product_id == product_id).limit(1)
    ).first() is not None


def require_products(product_ids) -> None:
    """Raise NotFoundError naming every id in product_ids with no product row."""
    wanted = set(product_ids)
    found = set(db.session.execute(
        select(Product.id).where(Product.id.in_(wanted))
    ).scalars())
    missing = sorted(wanted - found)
    if missing:
        raise NotFoundError("Product not found", details={"product_ids": missing})
