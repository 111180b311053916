# Overview: Flask API routes for booking operations; parses input and returns JSON responses.

"""
Booking API Routes

WHY: Drive the booking lifecycle over REST.

DESIGN:
- Every transition is a POST on /api/bookings/<id>/<action>
- Clients may send {"expected_version": n} to detect lost updates (409)
- Escrow status is read-only here; it changes only as a side effect of
  transitions

SECURITY:
- Caller identity comes from the gateway headers (require_principal)
- Party checks (which brand, which creator) live in booking_service
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_principal, require_role
from ..errors import MarketplaceError, NotFoundError, error_response, server_error
from ..models import Booking
from ..principal import ROLE_BRAND
from ..services import booking_service, escrow_ledger
from ..services.notification_service import dispatch
from ..validation import (
    BOOKING_CREATE_POLICY,
    enforce_rules_booking,
    parse_expected_version,
    validate_payload,
)


bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")


def _load_visible(booking_id: int) -> Booking:
    booking = booking_service.get_booking(booking_id)
    if not booking_service.can_view(g.principal, booking):
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


# =============================================================================
# CREATION & QUERIES
# =============================================================================

@bookings_bp.post("")
@require_principal
@require_role(ROLE_BRAND)
def create_booking_route():
    """
    Request a booking with a creator.

    Request body:
    {
        "creator_id": 7,
        "package_type": "unbox_review",
        "total_price_cents": 10000,
        "deposit_amount_cents": 5000,     (optional, default 50%)
        "event_date": "2026-11-01T18:00:00Z",  (optional)
        "message": "..."                  (optional)
    }

    Returns:
        201: Booking created (escrow pending_deposit)
        400: Invalid input
        403: Plan does not allow booking creators
    """
    try:
        patch = validate_payload(
            model=Booking,
            payload=request.get_json(silent=True),
            policy=BOOKING_CREATE_POLICY,
        )
        enforce_rules_booking(patch)

        result = booking_service.create_booking(g.principal, **patch)
        dispatch(result.notifications)

        booking = result.entity
        return jsonify({
            "booking": booking.to_dict(),
            "escrow": escrow_ledger.get_summary(booking.id),
        }), 201

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to create booking")


@bookings_bp.get("")
@require_principal
def list_bookings_route():
    """
    List bookings visible to the caller.

    Query params:
    - status: pending | accepted | declined | cancelled | completed
    """
    try:
        status = request.args.get("status") or None
        bookings = booking_service.list_bookings_for(g.principal, status=status)
        return jsonify({"bookings": [b.to_dict() for b in bookings]}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to list bookings")


@bookings_bp.get("/<int:booking_id>")
@require_principal
def get_booking_route(booking_id: int):
    try:
        booking = _load_visible(booking_id)
        open_dispute = booking_service.get_open_dispute(booking.id)
        return jsonify({
            "booking": booking.to_dict(),
            "escrow": escrow_ledger.get_summary(booking.id),
            "open_dispute_id": open_dispute.id if open_dispute else None,
        }), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to load booking")


@bookings_bp.get("/<int:booking_id>/escrow")
@require_principal
def get_escrow_route(booking_id: int):
    """Escrow summary plus the full ledger for one booking."""
    try:
        booking = _load_visible(booking_id)
        transactions = escrow_ledger.get_transactions(booking.id)
        return jsonify({
            "summary": escrow_ledger.get_summary(booking.id),
            "transactions": [t.to_dict() for t in transactions],
        }), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to load escrow ledger")


# =============================================================================
# TRANSITIONS
# =============================================================================

def _transition(action, booking_id: int, **kwargs):
    try:
        data = request.get_json(silent=True) or {}
        result = action(
            g.principal,
            booking_id,
            expected_version=parse_expected_version(data),
            **{key: extract(data) for key, extract in kwargs.items()},
        )
        dispatch(result.notifications)
        return jsonify({"booking": result.entity.to_dict()}), 200

    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error(f"Failed to {action.__name__.replace('_', ' ')}")


@bookings_bp.post("/<int:booking_id>/pay-deposit")
@require_principal
def pay_deposit_route(booking_id: int):
    return _transition(booking_service.pay_deposit, booking_id)


@bookings_bp.post("/<int:booking_id>/accept")
@require_principal
def accept_booking_route(booking_id: int):
    return _transition(booking_service.accept_booking, booking_id)


@bookings_bp.post("/<int:booking_id>/decline")
@require_principal
def decline_booking_route(booking_id: int):
    return _transition(booking_service.decline_booking, booking_id)


@bookings_bp.post("/<int:booking_id>/start")
@require_principal
def start_work_route(booking_id: int):
    return _transition(booking_service.start_work, booking_id)


@bookings_bp.post("/<int:booking_id>/deliver")
@require_principal
def submit_delivery_route(booking_id: int):
    return _transition(booking_service.submit_delivery, booking_id)


@bookings_bp.post("/<int:booking_id>/revision")
@require_principal
def request_revision_route(booking_id: int):
    """Request body: {"notes": "...", "expected_version": n}"""
    return _transition(
        booking_service.request_revision,
        booking_id,
        notes=lambda data: data.get("notes"),
    )


@bookings_bp.post("/<int:booking_id>/confirm")
@require_principal
def confirm_delivery_route(booking_id: int):
    return _transition(booking_service.confirm_delivery, booking_id)


@bookings_bp.post("/<int:booking_id>/cancel")
@require_principal
def cancel_booking_route(booking_id: int):
    """Request body: {"reason": "...", "expected_version": n}"""
    return _transition(
        booking_service.cancel_booking,
        booking_id,
        reason=lambda data: data.get("reason"),
    )
