# backend/orderdesk/routes/settings.py
"""Business settings routes."""

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import OrderDeskError
from ..services import settings_service
from . import error_response, internal_error

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@require_auth
def get_settings_route():
    return jsonify({"settings": settings_service.get_business_settings().to_dict()}), 200


@settings_bp.put("")
@require_auth
@require_role("admin")
def update_settings_route():
    try:
        settings = settings_service.update_business_settings(request.get_json(silent=True))
        return jsonify({"settings": settings.to_dict()}), 200
    except OrderDeskError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update settings")
