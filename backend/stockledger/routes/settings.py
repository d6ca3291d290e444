from __future__ import annotations

from flask import Blueprint, jsonify, request, current_app

from ..errors import LedgerError, TransactionFailure
from ..services import settings_service


settings_bp = Blueprint("settings", __name__, url_prefix="/api")


@settings_bp.get("/settings")
def get_settings():
    try:
        return jsonify(settings_service.get_all())
    except Exception:
        current_app.logger.exception("Failed to fetch settings")
        return jsonify({"error": "Failed to fetch settings"}), 500


@settings_bp.post("/settings")
def save_settings():
    """Upsert every key in the body as one batch; all of it applies or none does."""
    try:
        settings_service.upsert(request.get_json(silent=True))
        return jsonify({"success": True})
    except TransactionFailure as e:
        current_app.logger.warning("Failed to save settings: %s", e.details)
        return jsonify({"error": "Failed to save settings", "details": e.details}), e.status_code
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save settings")
        return jsonify({"error": "Failed to save settings"}), 500
