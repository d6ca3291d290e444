# Overview: Flask API routes for snapshot backup and restore.

import json

from flask import Blueprint, Response, jsonify, request, current_app

from ..errors import LedgerError, TransactionFailure, ValidationError
from ..services import snapshot_service
from ..time_utils import backup_date_stamp


backup_bp = Blueprint("backup", __name__, url_prefix="/api")


def _read_restore_document():
    upload = request.files.get("database")
    if upload is not None:
        try:
            return json.loads(upload.read().decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            raise ValidationError("Backup file is not valid JSON")
    return request.get_json(silent=True)


@backup_bp.get("/backup")
def backup_route():
    """Download the whole dataset as one JSON document."""
    try:
        doc = snapshot_service.export_snapshot()
    except Exception:
        current_app.logger.exception("Backup failed")
        return jsonify({"error": "Backup failed"}), 500

    filename = f"sms-backup-{backup_date_stamp(doc['exportedAt'])}.json"
    return Response(
        json.dumps(doc),
        mimetype="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@backup_bp.post("/restore")
def restore_route():
    """
    Replace the whole dataset from a backup document.

    Accepts the document as the JSON body or as an uploaded file field named
    "database". Either everything is restored or nothing changes.
    """
    try:
        doc = _read_restore_document()
        counts = snapshot_service.restore_snapshot(doc)
        return jsonify({"success": True, "message": "Database restored successfully", "counts": counts})

    except TransactionFailure as e:
        current_app.logger.warning("Restore failed: %s", e.details)
        return jsonify({"error": "Restore failed", "details": e.details}), e.status_code
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Restore failed")
        return jsonify({"error": "Restore failed"}), 500
