# Overview: Flask API routes for booking disputes; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_principal, require_role
from ..errors import MarketplaceError, NotFoundError, ValidationError, error_response, server_error
from ..principal import ROLE_ADMIN, ROLE_BRAND, ROLE_CREATOR
from ..services import dispute_service
from ..services.notification_service import dispatch
from ..time_utils import utcnow
from ..validation import parse_expected_version, parse_int


disputes_bp = Blueprint("disputes", __name__, url_prefix="/api/disputes")


def _dispute_payload(dispute) -> dict:
    payload = dispute.to_dict()
    payload["is_overdue"] = dispute_service.is_overdue(dispute, utcnow())
    return payload


@disputes_bp.post("")
@require_principal
@require_role(ROLE_BRAND, ROLE_CREATOR)
def open_dispute_route():
    """
    Open a dispute on an accepted booking.

    Request body:
    {
        "booking_id": 12,
        "reason": "at least 50 characters ...",
        "evidence": "links, descriptions"   (optional)
    }

    Returns:
        201: Dispute opened; booking escrow/payment now "disputed"
        400: Reason too short
        409: Booking not accepted, or already disputed
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("booking_id") is None:
            raise ValidationError("booking_id is required")

        result = dispute_service.open_dispute(
            g.principal,
            parse_int(data["booking_id"], "booking_id"),
            reason=data.get("reason"),
            evidence=data.get("evidence"),
        )
        dispatch(result.notifications)
        return jsonify({"dispute": _dispute_payload(result.entity)}), 201

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to open dispute")


@disputes_bp.get("")
@require_principal
def list_disputes_route():
    """Query params: status (pending_response | pending_admin_review | resolved)"""
    try:
        disputes = dispute_service.list_disputes(g.principal, status=request.args.get("status") or None)
        return jsonify({"disputes": [_dispute_payload(d) for d in disputes]}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to list disputes")


@disputes_bp.get("/<int:dispute_id>")
@require_principal
def get_dispute_route(dispute_id: int):
    try:
        dispute = dispute_service.get_dispute(dispute_id)
        if not dispute_service.can_view(g.principal, dispute):
            raise NotFoundError(f"Dispute {dispute_id} not found")
        return jsonify({"dispute": _dispute_payload(dispute)}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to load dispute")


@disputes_bp.post("/<int:dispute_id>/respond")
@require_principal
@require_role(ROLE_BRAND, ROLE_CREATOR)
def respond_to_dispute_route(dispute_id: int):
    """Request body: {"response_text": "at least 50 characters ...", "expected_version": n}"""
    try:
        data = request.get_json(silent=True) or {}
        result = dispute_service.respond_to_dispute(
            g.principal,
            dispute_id,
            response_text=data.get("response_text"),
            expected_version=parse_expected_version(data),
        )
        dispatch(result.notifications)
        return jsonify({"dispute": _dispute_payload(result.entity)}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to respond to dispute")


# =============================================================================
# ADMIN
# =============================================================================

@disputes_bp.post("/<int:dispute_id>/escalate")
@require_principal
@require_role(ROLE_ADMIN)
def escalate_dispute_route(dispute_id: int):
    try:
        data = request.get_json(silent=True) or {}
        result = dispute_service.escalate_dispute(
            g.principal,
            dispute_id,
            expected_version=parse_expected_version(data),
        )
        dispatch(result.notifications)
        return jsonify({"dispute": _dispute_payload(result.entity)}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to escalate dispute")


@disputes_bp.post("/<int:dispute_id>/resolve")
@require_principal
@require_role(ROLE_ADMIN)
def resolve_dispute_route(dispute_id: int):
    """
    Resolve a dispute in admin review.

    Request body:
    {
        "resolution": "release" | "refund",
        "refund_percentage": 100,   (refund only, default 100)
        "admin_notes": "...",       (optional)
        "expected_version": n       (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        refund_percentage = data.get("refund_percentage")
        result = dispute_service.resolve_dispute(
            g.principal,
            dispute_id,
            resolution=data.get("resolution"),
            refund_percentage=100 if refund_percentage is None else parse_int(refund_percentage, "refund_percentage"),
            admin_notes=data.get("admin_notes"),
            expected_version=parse_expected_version(data),
        )
        dispatch(result.notifications)
        return jsonify({"dispute": _dispute_payload(result.entity)}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to resolve dispute")


@disputes_bp.post("/<int:dispute_id>/notes")
@require_principal
@require_role(ROLE_ADMIN)
def add_admin_notes_route(dispute_id: int):
    try:
        data = request.get_json(silent=True) or {}
        dispute = dispute_service.add_admin_notes(g.principal, dispute_id, data.get("notes"))
        return jsonify({"dispute": _dispute_payload(dispute)}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to save dispute notes")


@disputes_bp.post("/check-deadlines")
@require_principal
@require_role(ROLE_ADMIN)
def check_deadlines_route():
    """Advisory reminder pass; never changes dispute status."""
    try:
        result = dispute_service.check_dispute_deadlines()
        return jsonify(result.to_dict()), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to check dispute deadlines")
