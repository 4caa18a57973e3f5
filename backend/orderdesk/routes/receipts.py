# backend/orderdesk/routes/receipts.py
"""Serves rendered receipt files."""

from flask import Blueprint, current_app, send_from_directory

from ..decorators import require_auth
from ..services.receipt_service import receipts_dir

receipts_bp = Blueprint("receipts", __name__)


@receipts_bp.get("/receipts/<path:filename>")
@require_auth
def receipt_file_route(filename: str):
    current_app.logger.debug("Serving receipt %s", filename)
    return send_from_directory(receipts_dir(), filename, mimetype="text/html")
