# Overview: Flask API routes for the in-app notification inbox.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_principal
from ..errors import MarketplaceError, NotFoundError, error_response, server_error
from ..services import notification_service
from ..validation import parse_int


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_principal
def list_notifications_route():
    """
    Query params:
    - unread: true to return unread only
    - limit: max rows (default 50, capped at 200)
    """
    try:
        unread_only = request.args.get("unread", "false").lower() == "true"
        limit = min(parse_int(request.args.get("limit", "50"), "limit"), 200)
        notes = notification_service.list_notifications(
            g.principal.user_id,
            role=g.principal.role,
            unread_only=unread_only,
            limit=limit,
        )
        return jsonify({"notifications": [n.to_dict() for n in notes]}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to load notifications")


@notifications_bp.post("/<int:notification_id>/read")
@require_principal
def mark_read_route(notification_id: int):
    try:
        if not notification_service.mark_read(notification_id, g.principal.user_id):
            raise NotFoundError(f"Notification {notification_id} not found")
        return jsonify({"ok": True}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to update notification")
