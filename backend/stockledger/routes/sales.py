# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/stockledger/routes/sales.py
"""Sales API routes: checkout and void."""

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError, TransactionFailure
from ..services import sales_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _int_arg(name: str):
    value = request.args.get(name)
    if value in (None, ""):
        return None
    return int(value)


@sales_bp.post("")
def record_sale_route():
    """
    Record a completed sale and decrement stock.

    Body: {"items": [{productId, name, quantity, price, costPrice}],
           "total": number, "paymentMethod": "Cash" | "Card" | "Transfer"}
    Returns the sale with its items.
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.record_sale(
            data.get("items"),
            data.get("total"),
            data.get("paymentMethod"),
        )
        return jsonify(sale.to_dict()), 201

    except TransactionFailure as e:
        current_app.logger.warning("Failed to record sale: %s", e.details)
        return jsonify({"error": "Failed to record sale", "details": e.details}), e.status_code
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Failed to record sale"}), 500


@sales_bp.get("")
def list_sales_route():
    """List sales newest first. Optional ?startDate=&endDate= epoch-millis bounds (inclusive)."""
    try:
        start = _int_arg("startDate")
        end = _int_arg("endDate")
    except ValueError:
        return jsonify({"error": "startDate and endDate must be epoch milliseconds"}), 400

    try:
        sales = sales_service.list_sales(start=start, end=end)
        return jsonify([s.to_dict() for s in sales]), 200
    except Exception:
        current_app.logger.exception("Failed to fetch sales")
        return jsonify({"error": "Failed to fetch sales"}), 500


@sales_bp.get("/<sale_id>")
def get_sale_route(sale_id: str):
    """Get one sale with its line items."""
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify(sale.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code


@sales_bp.delete("/<sale_id>")
def void_sale_route(sale_id: str):
    """Void a sale: restore its stock and remove it."""
    try:
        sales_service.void_sale(sale_id)
        return jsonify({"success": True}), 200

    except TransactionFailure as e:
        current_app.logger.warning("Failed to void sale %s: %s", sale_id, e.details)
        return jsonify({"error": "Failed to void sale", "details": e.details}), e.status_code
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Failed to void sale"}), 500
