# Overview: Shared helpers for API route modules.

from flask import current_app, jsonify

from ..errors import OrderDeskError


def error_response(exc: OrderDeskError):
    return jsonify(exc.to_dict()), exc.status_code


def internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


def parse_int_arg(args, name: str, default: int | None = None) -> int | None:
    raw = args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def parse_bool_arg(args, name: str, default: bool = False) -> bool:
    raw = args.get(name)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes", "on")
