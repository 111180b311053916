# Overview: Flask API routes for conversations and mass messages; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_principal, require_role
from ..errors import MarketplaceError, ValidationError, error_response, server_error
from ..principal import ROLE_BRAND
from ..services import messaging_service
from ..services.notification_service import dispatch
from ..validation import parse_int


messaging_bp = Blueprint("messaging", __name__, url_prefix="/api/messages")


@messaging_bp.get("/conversations")
@require_principal
def list_conversations_route():
    try:
        conversations = messaging_service.list_conversations(g.principal)
        return jsonify({"conversations": [c.to_dict() for c in conversations]}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to list conversations")


@messaging_bp.post("/conversations")
@require_principal
@require_role(ROLE_BRAND)
def start_conversation_route():
    """
    Message a creator. A first contact uses one monthly creator-message slot.

    Request body: {"creator_id": 7, "body": "Hi!"}

    Returns:
        201: Message sent
        403: Plan does not allow contacting creators
        429: Monthly creator-message limit reached
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("creator_id") is None:
            raise ValidationError("creator_id is required")
        result = messaging_service.start_conversation(
            g.principal,
            parse_int(data["creator_id"], "creator_id"),
            data.get("body"),
        )
        dispatch(result.notifications)
        return jsonify({"message": result.entity.to_dict()}), 201
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to start conversation")


@messaging_bp.get("/conversations/<int:conversation_id>")
@require_principal
def list_messages_route(conversation_id: int):
    try:
        messages = messaging_service.list_messages(g.principal, conversation_id)
        return jsonify({"messages": [m.to_dict() for m in messages]}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to load messages")


@messaging_bp.post("/conversations/<int:conversation_id>")
@require_principal
def send_message_route(conversation_id: int):
    """Request body: {"body": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        result = messaging_service.send_message(g.principal, conversation_id, data.get("body"))
        dispatch(result.notifications)
        return jsonify({"message": result.entity.to_dict()}), 201
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to send message")


@messaging_bp.post("/mass")
@require_principal
@require_role(ROLE_BRAND)
def send_mass_message_route():
    """
    Request body: {"creator_ids": [1, 2, 3], "body": "..."}

    Returns:
        201: Messages sent, one per creator
        403: Plan has no mass messaging
        429: Daily mass-message limit would be exceeded
    """
    try:
        data = request.get_json(silent=True) or {}
        creator_ids = data.get("creator_ids")
        if not isinstance(creator_ids, list):
            raise ValidationError("creator_ids must be a list")
        result = messaging_service.send_mass_message(g.principal, creator_ids, data.get("body"))
        dispatch(result.notifications)
        return jsonify({
            "sent": len(result.entity),
            "messages": [m.to_dict() for m in result.entity],
        }), 201
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to send mass message")
