"""
Dispute sub-process tests.

Verifies:
- An open dispute freezes the booking (DisputeActive)
- Admin resolution applies exactly one ledger operation
- Resolving twice is rejected (no double payout)
- Deadlines are advisory: reminders fire, status never changes
"""

from datetime import timedelta

import pytest

from conftest import brand_principal, create_booking, creator_principal, delivered_booking
from marketplace.errors import DisputeActive, InvalidTransition, ValidationError
from marketplace.models import Booking, Dispute, EscrowTransaction, Notification
from marketplace.services import booking_service, dispute_service
from marketplace.time_utils import utcnow


REASON = "The delivered video does not show the product at all, which was the whole brief."
RESPONSE = "The product appears at 0:42 and 1:15 as agreed in our messages before filming began."


def _ledger(db_session, booking_id, transaction_type):
    return (
        db_session.query(EscrowTransaction)
        .filter_by(booking_id=booking_id, transaction_type=transaction_type)
        .all()
    )


@pytest.fixture(scope='function')
def disputed(db_session, basic_brand, creator):
    """Delivered booking (deposit 3000 paid) with a dispute opened by the brand."""
    booking_id = delivered_booking(basic_brand, creator, total=10000, deposit=3000)
    result = dispute_service.open_dispute(brand_principal(basic_brand), booking_id, reason=REASON)
    return booking_id, result.entity.id


class TestOpenDispute:

    def test_open_flips_projection(self, db_session, disputed):
        booking_id, dispute_id = disputed
        booking = db_session.get(Booking, booking_id)
        dispute = db_session.get(Dispute, dispute_id)

        assert booking.escrow_status == "disputed"
        assert booking.payment_status == "disputed"
        assert dispute.status == "pending_response"
        assert dispute.response_deadline - dispute.created_at == timedelta(days=3)
        assert dispute.resolution_deadline - dispute.created_at == timedelta(days=7)

    def test_notifies_other_party_and_admins(self, db_session, basic_brand, creator):
        booking_id = delivered_booking(basic_brand, creator)
        result = dispute_service.open_dispute(brand_principal(basic_brand), booking_id, reason=REASON)
        recipients = {(n.recipient_user_id, n.recipient_role) for n in result.notifications}
        assert recipients == {(creator.user_id, None), (None, "admin")}

    def test_reason_too_short(self, db_session, basic_brand, creator):
        booking_id = delivered_booking(basic_brand, creator)
        with pytest.raises(ValidationError):
            dispute_service.open_dispute(brand_principal(basic_brand), booking_id, reason="Bad video")

    def test_only_on_accepted_bookings(self, db_session, basic_brand, creator):
        booking_id = create_booking(basic_brand, creator)
        with pytest.raises(InvalidTransition):
            dispute_service.open_dispute(brand_principal(basic_brand), booking_id, reason=REASON)

    def test_one_open_dispute_per_booking(self, db_session, disputed, creator):
        booking_id, _ = disputed
        with pytest.raises(DisputeActive):
            dispute_service.open_dispute(creator_principal(creator), booking_id, reason=REASON)

    def test_outsider_cannot_open(self, db_session, basic_brand, creator, make_brand, admin):
        booking_id = delivered_booking(basic_brand, creator)
        with pytest.raises(InvalidTransition):
            dispute_service.open_dispute(brand_principal(make_brand("basic")), booking_id, reason=REASON)
        with pytest.raises(InvalidTransition):
            dispute_service.open_dispute(admin, booking_id, reason=REASON)


class TestBookingFreeze:

    def test_confirm_blocked(self, db_session, disputed, basic_brand):
        booking_id, dispute_id = disputed
        with pytest.raises(DisputeActive) as exc:
            booking_service.confirm_delivery(brand_principal(basic_brand), booking_id)
        assert exc.value.dispute_id == dispute_id
        assert _ledger(db_session, booking_id, "release") == []

    def test_cancel_blocked(self, db_session, disputed, creator):
        booking_id, _ = disputed
        with pytest.raises(DisputeActive):
            booking_service.cancel_booking(creator_principal(creator), booking_id)
        assert _ledger(db_session, booking_id, "refund") == []

    def test_revision_blocked(self, db_session, disputed, basic_brand):
        booking_id, _ = disputed
        with pytest.raises(DisputeActive):
            booking_service.request_revision(brand_principal(basic_brand), booking_id, "Try again")


class TestRespondAndEscalate:

    def test_other_party_responds(self, db_session, disputed, creator):
        _, dispute_id = disputed
        result = dispute_service.respond_to_dispute(creator_principal(creator), dispute_id, response_text=RESPONSE)
        assert result.entity.status == "pending_admin_review"
        assert result.entity.response_submitted_at is not None

    def test_opener_cannot_respond(self, db_session, disputed, basic_brand):
        _, dispute_id = disputed
        with pytest.raises(InvalidTransition):
            dispute_service.respond_to_dispute(brand_principal(basic_brand), dispute_id, response_text=RESPONSE)

    def test_admin_escalates_unanswered(self, db_session, disputed, admin, creator):
        _, dispute_id = disputed
        result = dispute_service.escalate_dispute(admin, dispute_id)
        assert result.entity.status == "pending_admin_review"
        assert result.entity.escalated_to_admin is True
        with pytest.raises(InvalidTransition):
            dispute_service.respond_to_dispute(creator_principal(creator), dispute_id, response_text=RESPONSE)

    def test_party_cannot_escalate(self, db_session, disputed, creator):
        _, dispute_id = disputed
        with pytest.raises(InvalidTransition):
            dispute_service.escalate_dispute(creator_principal(creator), dispute_id)


class TestResolution:

    def test_refund_resolution(self, db_session, disputed, creator, admin, basic_brand):
        """Refund returns the 3000 deposit, records no release, and unfreezes nothing further."""
        booking_id, dispute_id = disputed
        dispute_service.respond_to_dispute(creator_principal(creator), dispute_id, response_text=RESPONSE)

        result = dispute_service.resolve_dispute(admin, dispute_id, resolution="refund", admin_notes="Brief not met")
        assert result.entity.status == "resolved"
        assert result.entity.resolution == "refund"
        assert result.entity.resolved_by_user_id == admin.user_id

        refunds = _ledger(db_session, booking_id, "refund")
        assert [r.amount_cents for r in refunds] == [3000]
        assert _ledger(db_session, booking_id, "release") == []

        booking = db_session.get(Booking, booking_id)
        assert booking.status == "cancelled"
        assert booking.cancelled_by_role == "admin"
        assert booking.escrow_status == "refunded"
        assert booking.payment_status == "refunded"

        with pytest.raises(InvalidTransition):
            booking_service.confirm_delivery(brand_principal(basic_brand), booking_id)

    def test_partial_refund(self, db_session, disputed, admin):
        booking_id, dispute_id = disputed
        dispute_service.escalate_dispute(admin, dispute_id)
        dispute_service.resolve_dispute(admin, dispute_id, resolution="refund", refund_percentage=50)
        assert [r.amount_cents for r in _ledger(db_session, booking_id, "refund")] == [1500]

    def test_release_resolution(self, db_session, disputed, admin):
        booking_id, dispute_id = disputed
        dispute_service.escalate_dispute(admin, dispute_id)
        result = dispute_service.resolve_dispute(admin, dispute_id, resolution="release")

        assert [r.amount_cents for r in _ledger(db_session, booking_id, "release")] == [7000]
        assert _ledger(db_session, booking_id, "refund") == []
        booking = db_session.get(Booking, booking_id)
        assert booking.status == "completed"
        assert booking.escrow_status == "completed"
        assert {n.notification_type for n in result.notifications} == {"dispute_resolved"}

    def test_release_on_unpaid_booking_fails_pending_deposit(self, db_session, basic_brand, creator, admin):
        booking_id = delivered_booking(basic_brand, creator, pay=False)
        dispute_id = dispute_service.open_dispute(brand_principal(basic_brand), booking_id, reason=REASON).entity.id
        dispute_service.escalate_dispute(admin, dispute_id)
        dispute_service.resolve_dispute(admin, dispute_id, resolution="release")

        assert [d.status for d in _ledger(db_session, booking_id, "deposit")] == ["failed"]
        assert [r.amount_cents for r in _ledger(db_session, booking_id, "release")] == [7000]
        assert db_session.get(Booking, booking_id).status == "completed"

    def test_resolve_twice_rejected(self, db_session, disputed, admin):
        booking_id, dispute_id = disputed
        dispute_service.escalate_dispute(admin, dispute_id)
        dispute_service.resolve_dispute(admin, dispute_id, resolution="release")

        with pytest.raises(InvalidTransition):
            dispute_service.resolve_dispute(admin, dispute_id, resolution="refund")
        assert len(_ledger(db_session, booking_id, "release")) == 1
        assert _ledger(db_session, booking_id, "refund") == []

    def test_cannot_resolve_before_review(self, db_session, disputed, admin):
        _, dispute_id = disputed
        with pytest.raises(InvalidTransition):
            dispute_service.resolve_dispute(admin, dispute_id, resolution="refund")

    def test_only_admin_resolves(self, db_session, disputed, basic_brand):
        _, dispute_id = disputed
        with pytest.raises(InvalidTransition):
            dispute_service.resolve_dispute(brand_principal(basic_brand), dispute_id, resolution="refund")

    def test_invalid_resolution(self, db_session, disputed, admin):
        _, dispute_id = disputed
        with pytest.raises(ValidationError):
            dispute_service.resolve_dispute(admin, dispute_id, resolution="split")
        with pytest.raises(ValidationError):
            dispute_service.resolve_dispute(admin, dispute_id, resolution="refund", refund_percentage=120)

    def test_admin_notes_append(self, db_session, disputed, admin):
        _, dispute_id = disputed
        dispute_service.add_admin_notes(admin, dispute_id, "Asked creator for raw footage.")
        dispute = dispute_service.add_admin_notes(admin, dispute_id, "Footage received.")
        assert dispute.admin_notes == "Asked creator for raw footage.\n\nFootage received."


class TestDeadlines:

    def _open(self, brand, creator, opened_at):
        booking_id = delivered_booking(brand, creator)
        return dispute_service.open_dispute(
            brand_principal(brand), booking_id, reason=REASON, now=opened_at
        ).entity.id

    def test_reminders_are_advisory(self, db_session, basic_brand, creator):
        opened_at = utcnow() - timedelta(days=10)
        dispute_id = self._open(basic_brand, creator, opened_at)

        day2 = dispute_service.check_dispute_deadlines(now=opened_at + timedelta(hours=36))
        assert day2.day2_reminders == 1
        assert day2.day3_reminders == 0

        again = dispute_service.check_dispute_deadlines(now=opened_at + timedelta(hours=37))
        assert again.day2_reminders == 0

        day3 = dispute_service.check_dispute_deadlines(now=opened_at + timedelta(hours=60))
        assert day3.day3_reminders == 1

        overdue = dispute_service.check_dispute_deadlines(now=opened_at + timedelta(hours=73))
        assert overdue.overdue_notices == 1
        assert overdue.failures == 0

        dispute = db_session.get(Dispute, dispute_id)
        db_session.refresh(dispute)
        assert dispute.status == "pending_response"
        assert dispute.overdue_notified_at is not None
        assert dispute_service.is_overdue(dispute, now=opened_at + timedelta(hours=73))

        admin_notes = db_session.query(Notification).filter_by(
            recipient_role="admin", notification_type="dispute_overdue"
        ).count()
        assert admin_notes == 1
        creator_reminders = db_session.query(Notification).filter_by(recipient_user_id=creator.user_id).filter(
            Notification.notification_type.in_(["dispute_reminder", "dispute_final_reminder"])
        ).count()
        assert creator_reminders == 2

    def test_resolution_due_warning(self, db_session, basic_brand, creator, admin):
        opened_at = utcnow() - timedelta(days=10)
        dispute_id = self._open(basic_brand, creator, opened_at)
        dispute_service.escalate_dispute(admin, dispute_id, now=opened_at + timedelta(days=1))

        result = dispute_service.check_dispute_deadlines(now=opened_at + timedelta(days=6, hours=12))
        assert result.resolution_warnings == 1
        assert db_session.get(Dispute, dispute_id).status == "pending_admin_review"

    def test_resolved_disputes_are_skipped(self, db_session, disputed, admin):
        _, dispute_id = disputed
        dispute_service.escalate_dispute(admin, dispute_id)
        dispute_service.resolve_dispute(admin, dispute_id, resolution="release")
        result = dispute_service.check_dispute_deadlines(now=utcnow() + timedelta(days=30))
        assert result.processed == 0
