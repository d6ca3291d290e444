# backend/stockledger/routes/products.py
from flask import Blueprint, jsonify, request, current_app

from ..errors import LedgerError
from ..services import inventory_service, products_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products_route():
    include_archived = request.args.get("include_archived", "").lower() in {"1", "true"}
    products = inventory_service.list_products(include_archived=include_archived)
    return jsonify([p.to_dict() for p in products])


@products_bp.post("")
def create_product_route():
    try:
        product = products_service.create_product(request.get_json(silent=True))
        return jsonify(product.to_dict()), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Failed to create product"}), 500


@products_bp.patch("/<product_id>/stock")
def restock_route(product_id: str):
    """Body: {"quantity": number}; applied as stock = stock + quantity."""
    try:
        data = request.get_json(silent=True) or {}
        product = products_service.restock_product(product_id, data.get("quantity"))
        return jsonify(product.to_dict())
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update stock")
        return jsonify({"error": "Failed to update stock"}), 500


@products_bp.delete("/<product_id>")
def delete_product_route(product_id: str):
    try:
        outcome = products_service.delete_product(product_id)
        message = "Product archived" if outcome == "archived" else "Product deleted permanently"
        return jsonify({"success": True, "outcome": outcome, "message": message})
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Failed to delete product"}), 500
