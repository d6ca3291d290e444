# backend/stockledger/services/products_service.py
"""
Catalog operations that touch stock or notify connected clients.

Plain listing and editing belong to the catalog screens; what lives here is
creation (SKU uniqueness), restocking (relative stock update) and deletion
(which must fall back to archiving while sale lines still reference the
product).
"""
from __future__ import annotations

import secrets
import string

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, TransactionFailure, ValidationError
from ..extensions import db, broadcaster
from ..models import Product
from ..validation import require_number, require_text
from . import inventory_service
from .concurrency import unit_of_work, run_with_retry
from .event_service import PRODUCT_DELETED, PRODUCT_UPDATED

_ALPHABET = string.ascii_uppercase + string.digits
# wire name -> column attribute
PRODUCT_OPTIONAL_NUMBERS = {"halfPrice": "half_price", "quarterPrice": "quarter_price"}


def _random_code(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def new_product_id() -> str:
    return _random_code(9).lower()


def new_sku() -> str:
    return f"PROD-{_random_code(5)}"


def _clean_product_payload(data: dict) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    cleaned = {
        "name": require_text(data.get("name"), "name"),
        "sku": (data.get("sku") or "").strip() or new_sku(),
        "category": (data.get("category") or "").strip() or "Uncategorized",
        "unit": (data.get("unit") or "").strip() or "Pack",
        "selling_price": require_number(data.get("sellingPrice", 0), "sellingPrice"),
        "cost_price": require_number(data.get("costPrice", 0), "costPrice"),
        "stock": require_number(data.get("stock", 0), "stock"),
    }
    for name, attr in PRODUCT_OPTIONAL_NUMBERS.items():
        value = data.get(name)
        cleaned[attr] = require_number(value, name) if value not in (None, "") else None

    for attr in ("selling_price", "cost_price", "half_price", "quarter_price"):
        if cleaned[attr] is not None and cleaned[attr] < 0:
            raise ValidationError(f"{attr} must be >= 0")
    return cleaned


def _sku_taken(sku: str) -> bool:
    return db.session.execute(select(Product.id).where(Product.sku == sku)).first() is not None


def create_product(data: dict) -> Product:
    """
    Create a product; a missing SKU gets a generated PROD-XXXXX code.

    Raises ConflictError only when the SKU is taken. Any other integrity
    failure (such as a generated id colliding) is a TransactionFailure.
    """
    cleaned = _clean_product_payload(data)
    sku = cleaned["sku"]

    def _op():
        product_id = new_product_id()
        try:
            with unit_of_work():
                if _sku_taken(sku):
                    raise ConflictError("SKU already exists", details={"sku": sku})
                db.session.add(Product(id=product_id, **cleaned))
                db.session.flush()
        except TransactionFailure as exc:
            # Another writer can take the SKU between the check and the insert
            if isinstance(exc.__cause__, IntegrityError) and _sku_taken(sku):
                raise ConflictError("SKU already exists", details={"sku": sku}) from exc
            raise
        return product_id

    product_id = run_with_retry(_op)
    product = inventory_service.get_product(product_id)
    broadcaster.publish(PRODUCT_UPDATED, product.to_dict())
    return product


def restock_product(product_id: str, quantity) -> Product:
    """Relative stock change (stock = stock + quantity); negative values adjust down."""
    delta = require_number(quantity, "quantity")

    def _op():
        with unit_of_work():
            inventory_service.adjust_stock(product_id, delta)

    run_with_retry(_op)
    product = inventory_service.get_product(product_id)
    broadcaster.publish(PRODUCT_UPDATED, product.to_dict())
    return product


def delete_product(product_id: str) -> str:
    """
    Delete a product, or archive it when sale lines still reference it.

    Returns "deleted" or "archived".
    """
    def _op():
        with unit_of_work():
            locked = db.session.execute(
                select(Product.id).where(Product.id == product_id).with_for_update()
            ).scalar_one_or_none()
            if locked is None:
                raise NotFoundError("Product not found", details={"product_id": product_id})
            if inventory_service.product_is_referenced(product_id):
                db.session.execute(
                    update(Product)
                    .where(Product.id == product_id)
                    .values(archived=True)
                    .execution_options(synchronize_session=False)
                )
                return "archived"
            db.session.execute(
                delete(Product)
                .where(Product.id == product_id)
                .execution_options(synchronize_session=False)
            )
            return "deleted"

    outcome = run_with_retry(_op)
    broadcaster.publish(PRODUCT_DELETED, {"id": product_id, "outcome": outcome})
    return outcome
