# Overview: Service-layer operations for booking disputes; freezes the booking until an administrator resolves it.

"""
Dispute Sub-process

STATE MACHINE:
    pending_response -> pending_admin_review -> resolved

    pending_response:      waiting for the other party to answer
    pending_admin_review:  answered (or manually escalated); admin decides
    resolved:              terminal; exactly one ledger operation was applied

RULES:
1. Only a party to an accepted booking may open a dispute, and only one
   unresolved dispute may exist per booking.
2. Opening a dispute flips the booking projection to disputed/disputed and
   blocks every booking transition (DisputeActive) until resolution.
3. Deadlines are fixed when the dispute is opened. They drive reminders and
   admin notices only; a passed deadline never changes status.
4. Resolution is admin-only and atomic: dispute resolved + release or refund
   + booking status, in one transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import DisputeActive, InvalidTransition, MarketplaceError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Booking, Dispute
from ..principal import Principal, ROLE_ADMIN, ROLE_BRAND, ROLE_CREATOR
from ..time_utils import utcnow
from . import escrow_ledger
from .booking_service import (
    STATUS_ACCEPTED,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    get_open_dispute,
    is_party,
)
from .concurrency import check_version, lock_for_update, run_with_retry
from .effects import ActionResult, NotificationIntent
from .notification_service import dispatch


DISPUTE_PENDING_RESPONSE = "pending_response"
DISPUTE_PENDING_ADMIN_REVIEW = "pending_admin_review"
DISPUTE_RESOLVED = "resolved"
VALID_DISPUTE_STATUSES = {DISPUTE_PENDING_RESPONSE, DISPUTE_PENDING_ADMIN_REVIEW, DISPUTE_RESOLVED}

RESOLUTION_RELEASE = "release"
RESOLUTION_REFUND = "refund"
VALID_RESOLUTIONS = {RESOLUTION_RELEASE, RESOLUTION_REFUND}

ADMIN_DISPUTES_LINK = "/admin?tab=disputes"


def _validate_text(value: str | None, field_name: str) -> str:
    min_length = current_app.config["DISPUTE_MIN_TEXT_LENGTH"]
    text = (value or "").strip()
    if len(text) < min_length:
        raise ValidationError(
            f"{field_name} must be at least {min_length} characters",
            field=field_name,
            min_length=min_length,
        )
    return text


def _dashboard_link(role: str) -> str:
    if role == ROLE_BRAND:
        return "/brand-dashboard?tab=bookings"
    return "/creator-dashboard?tab=bookings"


def _party_user_id(booking: Booking, role: str) -> int:
    return booking.brand.user_id if role == ROLE_BRAND else booking.creator.user_id


def _other_role(role: str) -> str:
    return ROLE_CREATOR if role == ROLE_BRAND else ROLE_BRAND


def _intent_for_party(dispute: Dispute, booking: Booking, role: str, notification_type: str, title: str, message: str) -> NotificationIntent:
    return NotificationIntent(
        notification_type=notification_type,
        title=title,
        message=message,
        recipient_user_id=_party_user_id(booking, role),
        link=_dashboard_link(role),
        data={"dispute_id": dispute.id, "booking_id": booking.id},
    )


def _intent_for_admins(dispute: Dispute, notification_type: str, title: str, message: str) -> NotificationIntent:
    return NotificationIntent(
        notification_type=notification_type,
        title=title,
        message=message,
        recipient_role=ROLE_ADMIN,
        link=ADMIN_DISPUTES_LINK,
        data={"dispute_id": dispute.id, "booking_id": dispute.booking_id},
    )


# =============================================================================
# QUERIES
# =============================================================================

def get_dispute(dispute_id: int) -> Dispute:
    dispute = db.session.get(Dispute, dispute_id)
    if dispute is None:
        raise NotFoundError(f"Dispute {dispute_id} not found")
    return dispute


def list_disputes(principal: Principal, *, status: str | None = None) -> list[Dispute]:
    """Admins see every dispute; parties see disputes on their own bookings."""
    if status is not None and status not in VALID_DISPUTE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(VALID_DISPUTE_STATUSES))}")

    query = db.session.query(Dispute).join(Booking, Booking.id == Dispute.booking_id)
    if principal.is_brand:
        query = query.filter(Booking.brand_id == principal.profile_id)
    elif principal.is_creator:
        query = query.filter(Booking.creator_id == principal.profile_id)
    elif not principal.is_admin:
        return []
    if status:
        query = query.filter(Dispute.status == status)
    return query.order_by(Dispute.created_at.desc(), Dispute.id.desc()).all()


def can_view(principal: Principal, dispute: Dispute) -> bool:
    return principal.is_admin or is_party(principal, dispute.booking)


def is_overdue(dispute: Dispute, now: datetime | None = None) -> bool:
    """Still awaiting a response after the response deadline."""
    return dispute.status == DISPUTE_PENDING_RESPONSE and (now or utcnow()) > dispute.response_deadline


def _lock_dispute(dispute_id: int, expected_version: int | None) -> Dispute:
    dispute = lock_for_update(db.session.query(Dispute).filter_by(id=dispute_id)).first()
    if dispute is None:
        raise NotFoundError(f"Dispute {dispute_id} not found")
    check_version(dispute, expected_version)
    return dispute


def _lock_booking(booking_id: int) -> Booking:
    booking = lock_for_update(db.session.query(Booking).filter_by(id=booking_id)).first()
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking


# =============================================================================
# OPEN / RESPOND / ESCALATE
# =============================================================================

def open_dispute(
    principal: Principal,
    booking_id: int,
    *,
    reason: str,
    evidence: str | None = None,
    now: datetime | None = None,
) -> ActionResult:
    """
    A party raises a dispute on an accepted booking.

    Response and resolution deadlines are fixed here and never recomputed.
    """
    reason = _validate_text(reason, "reason")

    def _op():
        ts = now or utcnow()
        booking = _lock_booking(booking_id)
        if not (principal.is_brand or principal.is_creator) or not is_party(principal, booking):
            raise InvalidTransition(f"Only a party to booking {booking.id} can open a dispute")
        if booking.status != STATUS_ACCEPTED:
            raise InvalidTransition(
                f"Disputes can only be opened on accepted bookings (status is '{booking.status}')",
                status=booking.status,
            )
        existing = get_open_dispute(booking.id)
        if existing is not None:
            raise DisputeActive(booking_id=booking.id, dispute_id=existing.id)

        dispute = Dispute(
            booking_id=booking.id,
            opened_by_user_id=principal.user_id,
            opened_by_role=principal.role,
            reason=reason,
            evidence=(evidence or "").strip() or None,
            status=DISPUTE_PENDING_RESPONSE,
            response_deadline=ts + timedelta(days=current_app.config["DISPUTE_RESPONSE_DAYS"]),
            resolution_deadline=ts + timedelta(days=current_app.config["DISPUTE_RESOLUTION_DAYS"]),
            created_at=ts,
        )
        db.session.add(dispute)
        db.session.flush()
        escrow_ledger.sync_projection(booking)
        db.session.commit()

        responder = _other_role(principal.role)
        intents = [
            _intent_for_party(
                dispute,
                booking,
                responder,
                "dispute_opened",
                "A dispute was opened",
                f"A dispute was opened on booking #{booking.id}. Please respond by "
                f"{dispute.response_deadline.date().isoformat()}.",
            ),
            _intent_for_admins(
                dispute,
                "dispute_opened",
                "New dispute",
                f"The {principal.role} opened a dispute on booking #{booking.id}.",
            ),
        ]
        return ActionResult(entity=dispute, notifications=intents)

    return run_with_retry(_op)


def respond_to_dispute(
    principal: Principal,
    dispute_id: int,
    *,
    response_text: str,
    expected_version: int | None = None,
    now: datetime | None = None,
) -> ActionResult:
    """The other party answers; the dispute moves to admin review."""
    response_text = _validate_text(response_text, "response_text")

    def _op():
        ts = now or utcnow()
        dispute = _lock_dispute(dispute_id, expected_version)
        booking = dispute.booking
        if not is_party(principal, booking) or principal.role == dispute.opened_by_role:
            raise InvalidTransition("Only the other party can respond to this dispute")
        if dispute.status != DISPUTE_PENDING_RESPONSE:
            raise InvalidTransition(
                f"Cannot respond to a dispute with status '{dispute.status}'",
                status=dispute.status,
            )

        dispute.response_text = response_text
        dispute.response_submitted_at = ts
        dispute.status = DISPUTE_PENDING_ADMIN_REVIEW
        db.session.commit()

        intents = [
            _intent_for_party(
                dispute,
                booking,
                dispute.opened_by_role,
                "dispute_response",
                "Dispute response received",
                f"The {principal.role} responded to your dispute on booking #{booking.id}. "
                "An administrator will review it.",
            ),
            _intent_for_admins(
                dispute,
                "dispute_ready_for_review",
                "Dispute ready for review",
                f"Both parties have submitted their side of the dispute on booking #{booking.id}.",
            ),
        ]
        return ActionResult(entity=dispute, notifications=intents)

    return run_with_retry(_op)


def escalate_dispute(
    principal: Principal,
    dispute_id: int,
    *,
    expected_version: int | None = None,
    now: datetime | None = None,
) -> ActionResult:
    """Admin moves an unanswered dispute to review without waiting for a response."""
    if not principal.is_admin:
        raise InvalidTransition("Only administrators can escalate disputes")

    def _op():
        ts = now or utcnow()
        dispute = _lock_dispute(dispute_id, expected_version)
        if dispute.status != DISPUTE_PENDING_RESPONSE:
            raise InvalidTransition(
                f"Cannot escalate a dispute with status '{dispute.status}'",
                status=dispute.status,
            )
        dispute.status = DISPUTE_PENDING_ADMIN_REVIEW
        dispute.escalated_to_admin = True
        dispute.escalated_at = ts
        db.session.commit()

        booking = dispute.booking
        intents = [
            _intent_for_party(
                dispute,
                booking,
                role,
                "dispute_escalated",
                "Dispute escalated",
                f"The dispute on booking #{booking.id} is now under administrator review.",
            )
            for role in (ROLE_BRAND, ROLE_CREATOR)
        ]
        return ActionResult(entity=dispute, notifications=intents)

    return run_with_retry(_op)


# =============================================================================
# RESOLUTION
# =============================================================================

def resolve_dispute(
    principal: Principal,
    dispute_id: int,
    *,
    resolution: str,
    refund_percentage: int = 100,
    admin_notes: str | None = None,
    expected_version: int | None = None,
    now: datetime | None = None,
) -> ActionResult:
    """
    Admin decides the dispute.

    release: the contracted balance is paid to the creator and the booking
             completes.
    refund:  refund_percentage of the processed deposit goes back to the
             brand and the booking is cancelled.

    Exactly one ledger operation is appended. A second resolve is rejected.
    """
    if not principal.is_admin:
        raise InvalidTransition("Only administrators can resolve disputes")
    if resolution not in VALID_RESOLUTIONS:
        raise ValidationError(f"resolution must be one of: {', '.join(sorted(VALID_RESOLUTIONS))}")
    if isinstance(refund_percentage, bool) or not isinstance(refund_percentage, int) or not 0 <= refund_percentage <= 100:
        raise ValidationError("refund_percentage must be an integer between 0 and 100")

    def _op():
        ts = now or utcnow()
        dispute = _lock_dispute(dispute_id, expected_version)
        if dispute.status == DISPUTE_RESOLVED:
            raise InvalidTransition(f"Dispute {dispute.id} is already resolved", status=dispute.status)
        if dispute.status != DISPUTE_PENDING_ADMIN_REVIEW:
            raise InvalidTransition(
                f"Dispute {dispute.id} must be in admin review before it can be resolved",
                status=dispute.status,
            )
        booking = _lock_booking(dispute.booking_id)

        dispute.status = DISPUTE_RESOLVED
        dispute.resolution = resolution
        dispute.resolved_by_user_id = principal.user_id
        dispute.resolved_at = ts
        if admin_notes and admin_notes.strip():
            dispute.admin_notes = admin_notes.strip()
        db.session.flush()

        if resolution == RESOLUTION_RELEASE:
            escrow_ledger.fail_pending_deposits(booking, note=f"dispute {dispute.id} resolved: release")
            escrow_ledger.record_release(
                booking,
                booking.total_price_cents - booking.deposit_amount_cents,
                note=f"dispute {dispute.id} resolved: release",
            )
            booking.status = STATUS_COMPLETED
            booking.confirmed_at = ts
            outcome = "the payment was released to the creator"
        else:
            dispute.refund_percentage = refund_percentage
            escrow_ledger.fail_pending_deposits(booking, note=f"dispute {dispute.id} resolved: refund")
            totals = escrow_ledger.get_totals(booking.id)
            escrow_ledger.record_refund(
                booking,
                round(totals.deposit * refund_percentage / 100),
                note=f"dispute {dispute.id} resolved: refund {refund_percentage}%",
            )
            booking.status = STATUS_CANCELLED
            booking.cancelled_by_role = ROLE_ADMIN
            booking.cancel_reason = f"Dispute {dispute.id} resolved with refund"
            outcome = f"{refund_percentage}% of the deposit was refunded to the brand"

        escrow_ledger.sync_projection(booking)
        db.session.commit()

        intents = [
            _intent_for_party(
                dispute,
                booking,
                role,
                "dispute_resolved",
                "Dispute resolved",
                f"The dispute on booking #{booking.id} was resolved: {outcome}.",
            )
            for role in (ROLE_BRAND, ROLE_CREATOR)
        ]
        return ActionResult(entity=dispute, notifications=intents)

    return run_with_retry(_op)


def add_admin_notes(principal: Principal, dispute_id: int, notes: str) -> Dispute:
    if not principal.is_admin:
        raise InvalidTransition("Only administrators can add dispute notes")
    if not notes or not notes.strip():
        raise ValidationError("notes are required")

    def _op():
        dispute = _lock_dispute(dispute_id, None)
        if dispute.admin_notes:
            dispute.admin_notes = f"{dispute.admin_notes}\n\n{notes.strip()}"
        else:
            dispute.admin_notes = notes.strip()
        db.session.commit()
        return dispute

    return run_with_retry(_op)


# =============================================================================
# DEADLINE CHECK (advisory)
# =============================================================================

@dataclass
class DeadlineCheckResult:
    processed: int = 0
    day2_reminders: int = 0
    day3_reminders: int = 0
    overdue_notices: int = 0
    resolution_warnings: int = 0
    failures: int = 0

    def to_dict(self) -> dict:
        return dict(self.__dict__)


_DEADLINE_COUNTERS = {
    "dispute_reminder": "day2_reminders",
    "dispute_final_reminder": "day3_reminders",
    "dispute_overdue": "overdue_notices",
    "dispute_resolution_due": "resolution_warnings",
}


def _hours_until(deadline: datetime, now: datetime) -> float:
    return (deadline - now).total_seconds() / 3600


def _check_one(dispute_id: int, now: datetime) -> list[NotificationIntent]:
    dispute = _lock_dispute(dispute_id, None)
    booking = dispute.booking
    intents: list[NotificationIntent] = []

    if dispute.status == DISPUTE_PENDING_RESPONSE:
        responder = _other_role(dispute.opened_by_role)
        hours_left = _hours_until(dispute.response_deadline, now)

        if 24 < hours_left <= 48 and not dispute.reminder_sent_day2:
            dispute.reminder_sent_day2 = True
            intents.append(_intent_for_party(
                dispute, booking, responder,
                "dispute_reminder",
                "Dispute response reminder",
                "You have 2 days left to respond to the dispute.",
            ))
        if 0 < hours_left <= 24 and not dispute.reminder_sent_day3:
            dispute.reminder_sent_day3 = True
            intents.append(_intent_for_party(
                dispute, booking, responder,
                "dispute_final_reminder",
                "Final reminder: dispute response due",
                "Less than 24 hours left to respond to the dispute.",
            ))
        if hours_left <= 0 and dispute.overdue_notified_at is None:
            dispute.overdue_notified_at = now
            intents.append(_intent_for_admins(
                dispute,
                "dispute_overdue",
                "Dispute response overdue",
                f"The response deadline for the dispute on booking #{booking.id} has passed. "
                "Review and escalate if appropriate.",
            ))

    elif dispute.status == DISPUTE_PENDING_ADMIN_REVIEW:
        hours_left = _hours_until(dispute.resolution_deadline, now)
        if 0 < hours_left <= 24 and not dispute.resolution_reminder_sent:
            dispute.resolution_reminder_sent = True
            intents.append(_intent_for_admins(
                dispute,
                "dispute_resolution_due",
                "Dispute resolution due soon",
                f"Dispute between {booking.brand.company_name} and {booking.creator.display_name} "
                "needs resolution within 24 hours.",
            ))

    db.session.commit()
    return intents


def check_dispute_deadlines(*, now: datetime | None = None) -> DeadlineCheckResult:
    """
    Send deadline reminders and admin notices for unresolved disputes.

    Each dispute is handled in its own transaction; one failure is logged
    and does not stop the rest. Statuses are never changed here.
    """
    now = now or utcnow()
    result = DeadlineCheckResult()

    dispute_ids = [
        row.id
        for row in db.session.query(Dispute.id)
        .filter(Dispute.status.in_([DISPUTE_PENDING_RESPONSE, DISPUTE_PENDING_ADMIN_REVIEW]))
        .order_by(Dispute.id.asc())
        .all()
    ]

    for dispute_id in dispute_ids:
        try:
            intents = run_with_retry(lambda: _check_one(dispute_id, now))
        except (SQLAlchemyError, MarketplaceError):
            result.failures += 1
            current_app.logger.exception("Dispute deadline check failed for dispute %s", dispute_id)
            continue
        result.processed += 1
        for intent in intents:
            counter = _DEADLINE_COUNTERS[intent.notification_type]
            setattr(result, counter, getattr(result, counter) + 1)
        dispatch(intents)

    current_app.logger.info("Dispute deadline check complete: %s", result.to_dict())
    return result
