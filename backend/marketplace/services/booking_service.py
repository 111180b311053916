# Overview: Service-layer operations for the booking lifecycle; encapsulates business logic and database work.

"""
Booking State Machine

================================================================================
PURPOSE: Move a brand <-> creator booking from request to payout or refund
================================================================================

STATE MACHINE (status):
    pending  -> accepted | declined | cancelled
    accepted -> completed | cancelled
    declined, cancelled, completed are terminal

STATE MACHINE (delivery_status):
    pending -> in_progress -> delivered -> confirmed
                              delivered -> revision_requested -> delivered
    confirmed is terminal

RULES (NON-NEGOTIABLE):
1. Every transition is one transaction: row lock on the booking, optional
   expected_version check, state change, ledger append, commit.
2. Money moves only through escrow_ledger. escrow_status / payment_status are
   never assigned here.
3. An unresolved dispute freezes the booking (DisputeActive).
4. Only the named party may act: brands create, pay, review and confirm;
   creators accept, decline, work and deliver; either party may cancel.
5. Notifications are returned as intents and sent after commit.

================================================================================
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import DisputeActive, InvalidTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import Booking, CreatorProfile, Dispute
from ..principal import Principal, ROLE_BRAND, ROLE_CREATOR
from ..time_utils import utcnow
from . import escrow_ledger
from .concurrency import check_version, lock_for_update, run_with_retry
from .effects import ActionResult, NotificationIntent
from .entitlements import require_entitlement
from .subscription_service import get_current_plan_type


STATUS_PENDING = "pending"
STATUS_ACCEPTED = "accepted"
STATUS_DECLINED = "declined"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
TERMINAL_STATUSES = {STATUS_DECLINED, STATUS_CANCELLED, STATUS_COMPLETED}
CANCELLABLE_STATUSES = {STATUS_PENDING, STATUS_ACCEPTED}

DELIVERY_PENDING = "pending"
DELIVERY_IN_PROGRESS = "in_progress"
DELIVERY_DELIVERED = "delivered"
DELIVERY_REVISION_REQUESTED = "revision_requested"
DELIVERY_CONFIRMED = "confirmed"
DELIVERABLE_FROM = {DELIVERY_PENDING, DELIVERY_IN_PROGRESS, DELIVERY_REVISION_REQUESTED}

PACKAGE_TYPES = {
    "unbox_review",
    "social_boost",
    "meet_greet",
    "workshop",
    "competition",
    "live_event",
    "custom",
}


# =============================================================================
# LOOKUPS & GUARDS
# =============================================================================

def get_booking(booking_id: int) -> Booking:
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


def is_party(principal: Principal, booking: Booking) -> bool:
    if principal.is_brand:
        return principal.profile_id == booking.brand_id
    if principal.is_creator:
        return principal.profile_id == booking.creator_id
    return False


def can_view(principal: Principal, booking: Booking) -> bool:
    return principal.is_admin or is_party(principal, booking)


def list_bookings_for(principal: Principal, *, status: str | None = None) -> list[Booking]:
    query = db.session.query(Booking)
    if principal.is_brand:
        query = query.filter(Booking.brand_id == principal.profile_id)
    elif principal.is_creator:
        query = query.filter(Booking.creator_id == principal.profile_id)
    elif not principal.is_admin:
        return []
    if status:
        query = query.filter(Booking.status == status)
    return query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()


def get_open_dispute(booking_id: int) -> Dispute | None:
    return (
        db.session.query(Dispute)
        .filter(Dispute.booking_id == booking_id, Dispute.status != "resolved")
        .order_by(Dispute.id.desc())
        .first()
    )


def _lock_booking(booking_id: int, expected_version: int | None) -> Booking:
    booking = lock_for_update(db.session.query(Booking).filter_by(id=booking_id)).first()
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    check_version(booking, expected_version)
    return booking


def _require_party(principal: Principal, booking: Booking, role: str | None, action: str) -> None:
    """role=None accepts either party."""
    if role is not None and principal.role != role:
        raise InvalidTransition(f"Only the {role} can {action} this booking")
    if not is_party(principal, booking):
        raise InvalidTransition(f"You are not a party to booking {booking.id}")


def _require_no_dispute(booking: Booking) -> None:
    dispute = get_open_dispute(booking.id)
    if dispute is not None:
        raise DisputeActive(booking_id=booking.id, dispute_id=dispute.id)


def _require_status(booking: Booking, allowed: set[str], action: str) -> None:
    if booking.status not in allowed:
        raise InvalidTransition(
            f"Cannot {action} a booking with status '{booking.status}'",
            status=booking.status,
        )


def _require_delivery(booking: Booking, allowed: set[str], action: str) -> None:
    if booking.delivery_status not in allowed:
        raise InvalidTransition(
            f"Cannot {action} while delivery is '{booking.delivery_status}'",
            delivery_status=booking.delivery_status,
        )


def _load(principal: Principal, booking_id: int, expected_version: int | None, role: str | None, action: str) -> Booking:
    booking = _lock_booking(booking_id, expected_version)
    _require_party(principal, booking, role, action)
    _require_no_dispute(booking)
    return booking


def _intent(booking: Booking, recipient_user_id: int, notification_type: str, title: str, message: str) -> NotificationIntent:
    return NotificationIntent(
        notification_type=notification_type,
        title=title,
        message=message,
        recipient_user_id=recipient_user_id,
        link=f"/bookings/{booking.id}",
        data={"booking_id": booking.id, "status": booking.status, "delivery_status": booking.delivery_status},
    )


def _brand_user(booking: Booking) -> int:
    return booking.brand.user_id


def _creator_user(booking: Booking) -> int:
    return booking.creator.user_id


# =============================================================================
# CREATION & DEPOSIT
# =============================================================================

def create_booking(
    principal: Principal,
    *,
    creator_id: int,
    package_type: str,
    total_price_cents: int,
    deposit_amount_cents: int | None = None,
    event_date: datetime | None = None,
    message: str | None = None,
) -> ActionResult:
    """
    Brand requests a booking.

    Gated on can_book_creators for the brand's current plan. Appends the
    pending deposit row; the booking starts pending_deposit / unpaid.
    """
    if not principal.is_brand or principal.profile_id is None:
        raise InvalidTransition("Only brands can create bookings")
    if package_type not in PACKAGE_TYPES:
        raise ValidationError(f"package_type must be one of: {', '.join(sorted(PACKAGE_TYPES))}")
    if isinstance(total_price_cents, bool) or not isinstance(total_price_cents, int) or total_price_cents <= 0:
        raise ValidationError("total_price_cents must be a positive integer")
    if deposit_amount_cents is None:
        deposit_amount_cents = escrow_ledger.calculate_deposit(total_price_cents)
    if isinstance(deposit_amount_cents, bool) or not isinstance(deposit_amount_cents, int) or deposit_amount_cents <= 0:
        raise ValidationError("deposit_amount_cents must be a positive integer")
    if deposit_amount_cents > total_price_cents:
        raise ValidationError("deposit_amount_cents cannot exceed total_price_cents")

    plan_type = get_current_plan_type(principal.profile_id)
    require_entitlement(plan_type, "can_book_creators")

    def _op():
        creator = db.session.get(CreatorProfile, creator_id)
        if creator is None:
            raise NotFoundError(f"Creator profile {creator_id} not found")

        booking = Booking(
            brand_id=principal.profile_id,
            creator_id=creator.id,
            package_type=package_type,
            message=message,
            event_date=event_date,
            total_price_cents=total_price_cents,
            deposit_amount_cents=deposit_amount_cents,
            platform_fee_cents=escrow_ledger.calculate_platform_fee(total_price_cents),
            status=STATUS_PENDING,
            delivery_status=DELIVERY_PENDING,
        )
        db.session.add(booking)
        db.session.flush()
        escrow_ledger.record_deposit(booking, deposit_amount_cents)
        db.session.commit()

        intent = _intent(
            booking,
            creator.user_id,
            "booking_requested",
            "New booking request",
            f"{booking.brand.company_name} requested a {package_type.replace('_', ' ')} booking.",
        )
        return ActionResult(entity=booking, notifications=[intent])

    return run_with_retry(_op)


def pay_deposit(principal: Principal, booking_id: int, *, expected_version: int | None = None) -> ActionResult:
    """Settle the pending deposit row (escrow deposit_paid / payment partial)."""
    def _op():
        booking = _load(principal, booking_id, expected_version, ROLE_BRAND, "pay the deposit for")
        _require_status(booking, CANCELLABLE_STATUSES, "pay the deposit for")
        if not _has_pending_deposit(booking.id):
            raise InvalidTransition(f"Booking {booking.id} has no pending deposit")
        escrow_ledger.process_deposit(booking)
        db.session.commit()

        intent = _intent(
            booking,
            _creator_user(booking),
            "deposit_paid",
            "Deposit received",
            f"The deposit for booking #{booking.id} has been paid into escrow.",
        )
        return ActionResult(entity=booking, notifications=[intent])

    return run_with_retry(_op)


def _has_pending_deposit(booking_id: int) -> bool:
    return any(
        tx.transaction_type == escrow_ledger.TX_DEPOSIT and tx.status == escrow_ledger.TX_PENDING
        for tx in escrow_ledger.get_transactions(booking_id)
    )


# =============================================================================
# CREATOR RESPONSE
# =============================================================================

def accept_booking(principal: Principal, booking_id: int, *, expected_version: int | None = None) -> ActionResult:
    def _op():
        booking = _load(principal, booking_id, expected_version, ROLE_CREATOR, "accept")
        _require_status(booking, {STATUS_PENDING}, "accept")
        booking.status = STATUS_ACCEPTED
        db.session.commit()

        intent = _intent(
            booking,
            _brand_user(booking),
            "booking_accepted",
            "Booking accepted",
            f"{booking.creator.display_name} accepted booking #{booking.id}.",
        )
        return ActionResult(entity=booking, notifications=[intent])

    return run_with_retry(_op)


def decline_booking(principal: Principal, booking_id: int, *, expected_version: int | None = None) -> ActionResult:
    """Creator declines. The pending deposit row is failed; a paid deposit is refunded."""
    def _op():
        booking = _load(principal, booking_id, expected_version, ROLE_CREATOR, "decline")
        _require_status(booking, {STATUS_PENDING}, "decline")
        booking.status = STATUS_DECLINED
        escrow_ledger.fail_pending_deposits(booking, note="booking declined")
        totals = escrow_ledger.get_totals(booking.id)
        if totals.deposit > totals.refund:
            escrow_ledger.record_refund(booking, totals.deposit - totals.refund, note="booking declined")
        db.session.commit()

        intent = _intent(
            booking,
            _brand_user(booking),
            "booking_declined",
            "Booking declined",
            f"{booking.creator.display_name} declined booking #{booking.id}.",
        )
        return ActionResult(entity=booking, notifications=[intent])

    return run_with_retry(_op)


# =============================================================================
# DELIVERY
# =============================================================================

def start_work(principal: Principal, booking_id: int, *, expected_version: int | None = None) -> ActionResult:
    def _op():
        booking = _load(principal, booking_id, expected_version, ROLE_CREATOR, "start work on")
        _require_status(booking, {STATUS_ACCEPTED}, "start work on")
        _require_delivery(booking, {DELIVERY_PENDING}, "start work")
        booking.delivery_status = DELIVERY_IN_PROGRESS
        db.session.commit()
        return ActionResult(entity=booking)

    return run_with_retry(_op)


def submit_delivery(principal: Principal, booking_id: int, *, expected_version: int | None = None) -> ActionResult:
    def _op():
        booking = _load(principal, booking_id, expected_version, ROLE_CREATOR, "deliver")
        _require_status(booking, {STATUS_ACCEPTED}, "deliver")
        _require_delivery(booking, DELIVERABLE_FROM, "submit a delivery")
        booking.delivery_status = DELIVERY_DELIVERED
        booking.delivered_at = utcnow()
        db.session.commit()

        intent = _intent(
            booking,
            _brand_user(booking),
            "delivery_submitted",
            "Delivery ready for review",
            f"{booking.creator.display_name} submitted the deliverables for booking #{booking.id}.",
        )
        return ActionResult(entity=booking, notifications=[intent])

    return run_with_retry(_op)


def request_revision(
    principal: Principal,
    booking_id: int,
    notes: str,
    *,
    expected_version: int | None = None,
) -> ActionResult:
    """Brand sends the delivery back. Capped at MAX_REVISIONS per booking."""
    if not notes or not notes.strip():
        raise ValidationError("Revision notes are required")
    max_revisions = current_app.config["MAX_REVISIONS"]

    def _op():
        booking = _load(principal, booking_id, expected_version, ROLE_BRAND, "request a revision on")
        _require_status(booking, {STATUS_ACCEPTED}, "request a revision on")
        _require_delivery(booking, {DELIVERY_DELIVERED}, "request a revision")
        if booking.revision_count >= max_revisions:
            raise InvalidTransition(
                f"Revision limit reached ({booking.revision_count}/{max_revisions})",
                revision_count=booking.revision_count,
                max_revisions=max_revisions,
            )
        booking.revision_count += 1
        booking.revision_notes = notes.strip()
        booking.delivery_status = DELIVERY_REVISION_REQUESTED
        db.session.commit()

        intent = _intent(
            booking,
            _creator_user(booking),
            "revision_requested",
            "Revision requested",
            f"The brand requested changes on booking #{booking.id} "
            f"(revision {booking.revision_count} of {max_revisions}).",
        )
        return ActionResult(entity=booking, notifications=[intent])

    return run_with_retry(_op)


def confirm_delivery(principal: Principal, booking_id: int, *, expected_version: int | None = None) -> ActionResult:
    """
    Brand approves the delivery.

    Completes the booking and releases the balance (total - deposit) to the
    creator in the same transaction. A deposit still pending at this point
    is failed; a terminal booking never keeps a pending ledger row.
    """
    def _op():
        booking = _load(principal, booking_id, expected_version, ROLE_BRAND, "confirm delivery of")
        _require_status(booking, {STATUS_ACCEPTED}, "confirm delivery of")
        _require_delivery(booking, {DELIVERY_DELIVERED}, "confirm delivery")

        booking.delivery_status = DELIVERY_CONFIRMED
        booking.status = STATUS_COMPLETED
        booking.confirmed_at = utcnow()
        escrow_ledger.fail_pending_deposits(booking, note="delivery confirmed before deposit was paid")
        escrow_ledger.record_release(
            booking,
            booking.total_price_cents - booking.deposit_amount_cents,
            note="delivery confirmed",
        )
        db.session.commit()

        intent = _intent(
            booking,
            _creator_user(booking),
            "delivery_confirmed",
            "Delivery approved",
            f"Booking #{booking.id} is complete and your payment has been released.",
        )
        return ActionResult(entity=booking, notifications=[intent])

    return run_with_retry(_op)


# =============================================================================
# CANCELLATION
# =============================================================================

def cancel_booking(
    principal: Principal,
    booking_id: int,
    *,
    reason: str | None = None,
    expected_version: int | None = None,
) -> ActionResult:
    """
    Either party cancels a pending or accepted booking.

    The pending deposit row is failed and whatever deposit was actually
    processed is refunded (a zero refund is still recorded).
    """
    def _op():
        booking = _load(principal, booking_id, expected_version, None, "cancel")
        _require_status(booking, CANCELLABLE_STATUSES, "cancel")

        escrow_ledger.fail_pending_deposits(booking, note="booking cancelled")
        totals = escrow_ledger.get_totals(booking.id)
        escrow_ledger.record_refund(booking, totals.deposit - totals.refund, note="booking cancelled")

        booking.status = STATUS_CANCELLED
        booking.cancelled_by_role = principal.role
        booking.cancel_reason = (reason or "").strip()[:255] or None
        db.session.commit()

        other_user = _creator_user(booking) if principal.is_brand else _brand_user(booking)
        intent = _intent(
            booking,
            other_user,
            "booking_cancelled",
            "Booking cancelled",
            f"Booking #{booking.id} was cancelled by the {principal.role}."
            + (f" Reason: {booking.cancel_reason}" if booking.cancel_reason else ""),
        )
        return ActionResult(entity=booking, notifications=[intent])

    return run_with_retry(_op)
