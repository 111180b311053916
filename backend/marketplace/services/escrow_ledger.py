# Overview: Service-layer operations for the escrow ledger; the only write path for booking money status.

"""
Escrow Ledger Invariants (authoritative)

- Append-only: rows are never deleted, amounts never edited. The only
  permitted change is status pending -> processed / pending -> failed.
- Ledger writes happen inside the caller's transaction, under the caller's
  booking row lock. Nothing here commits.
- Booking.escrow_status / payment_status are a projection of the ledger
  (plus open-dispute state) and are recomputed by sync_projection() after
  every write. No other code assigns them.
- Payout limits are checked before the row is written:
    refunds  <= processed deposits
    releases <= contracted balance (total_price - deposit_amount), once
    deposit + release - refund (total paid) never negative
  Violations raise LedgerInvariantViolation and are logged; amounts are
  never clamped.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import LedgerInvariantViolation, NotFoundError
from ..extensions import db
from ..models import Booking, Dispute, EscrowTransaction
from ..time_utils import utcnow


TX_DEPOSIT = "deposit"
TX_RELEASE = "release"
TX_REFUND = "refund"
VALID_TRANSACTION_TYPES = {TX_DEPOSIT, TX_RELEASE, TX_REFUND}

TX_PENDING = "pending"
TX_PROCESSED = "processed"
TX_FAILED = "failed"

ESCROW_PENDING_DEPOSIT = "pending_deposit"
ESCROW_DEPOSIT_PAID = "deposit_paid"
ESCROW_COMPLETED = "completed"
ESCROW_REFUNDED = "refunded"
ESCROW_DISPUTED = "disputed"

PAYMENT_UNPAID = "unpaid"
PAYMENT_PARTIAL = "partial"
PAYMENT_PAID = "paid"
PAYMENT_DISPUTED = "disputed"
PAYMENT_REFUNDED = "refunded"


# =============================================================================
# FEE SCHEDULE
# =============================================================================

def calculate_platform_fee(total_cents: int) -> int:
    return round(total_cents * current_app.config["PLATFORM_FEE_PERCENT"] / 100)


def calculate_creator_earnings(total_cents: int) -> int:
    return total_cents - calculate_platform_fee(total_cents)


def calculate_deposit(total_cents: int) -> int:
    return round(total_cents * current_app.config["DEPOSIT_PERCENT"] / 100)


# =============================================================================
# LEDGER TOTALS
# =============================================================================

@dataclass(frozen=True)
class LedgerTotals:
    deposit: int
    release: int
    refund: int
    pending_deposit: int

    @property
    def total_paid(self) -> int:
        return self.deposit + self.release - self.refund


def get_transactions(booking_id: int) -> list[EscrowTransaction]:
    return (
        db.session.query(EscrowTransaction)
        .filter_by(booking_id=booking_id)
        .order_by(EscrowTransaction.created_at.asc(), EscrowTransaction.id.asc())
        .all()
    )


def get_totals(booking_id: int) -> LedgerTotals:
    sums = {TX_DEPOSIT: 0, TX_RELEASE: 0, TX_REFUND: 0}
    pending_deposit = 0
    for tx in get_transactions(booking_id):
        if tx.status == TX_PROCESSED:
            sums[tx.transaction_type] += tx.amount_cents
        elif tx.status == TX_PENDING and tx.transaction_type == TX_DEPOSIT:
            pending_deposit += tx.amount_cents
    return LedgerTotals(
        deposit=sums[TX_DEPOSIT],
        release=sums[TX_RELEASE],
        refund=sums[TX_REFUND],
        pending_deposit=pending_deposit,
    )


def _has_processed(booking_id: int, transaction_type: str) -> bool:
    return (
        db.session.query(EscrowTransaction.id)
        .filter_by(booking_id=booking_id, transaction_type=transaction_type, status=TX_PROCESSED)
        .first()
        is not None
    )


def _has_open_dispute(booking_id: int) -> bool:
    return (
        db.session.query(Dispute.id)
        .filter(Dispute.booking_id == booking_id, Dispute.status != "resolved")
        .first()
        is not None
    )


# =============================================================================
# PROJECTION
# =============================================================================

def project_status(booking_id: int) -> tuple[str, str]:
    """(escrow_status, payment_status) implied by the ledger and dispute state."""
    if _has_open_dispute(booking_id):
        return ESCROW_DISPUTED, PAYMENT_DISPUTED
    if _has_processed(booking_id, TX_RELEASE):
        return ESCROW_COMPLETED, PAYMENT_PAID
    if _has_processed(booking_id, TX_REFUND):
        return ESCROW_REFUNDED, PAYMENT_REFUNDED
    if _has_processed(booking_id, TX_DEPOSIT):
        return ESCROW_DEPOSIT_PAID, PAYMENT_PARTIAL
    return ESCROW_PENDING_DEPOSIT, PAYMENT_UNPAID


def sync_projection(booking: Booking) -> Booking:
    """Recompute the cached escrow/payment status on the booking."""
    db.session.flush()
    booking.escrow_status, booking.payment_status = project_status(booking.id)
    return booking


# =============================================================================
# WRITES
# =============================================================================

def _violation(booking: Booking, message: str, **details) -> LedgerInvariantViolation:
    current_app.logger.error(
        "Escrow ledger invariant violation on booking %s: %s %s",
        booking.id,
        message,
        details,
    )
    return LedgerInvariantViolation(message, booking_id=booking.id, **details)


def _validate_amount(booking: Booking, amount_cents) -> int:
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise _violation(booking, "Ledger amounts must be integer cents", amount_cents=repr(amount_cents))
    if amount_cents < 0:
        raise _violation(booking, "Ledger amounts must be non-negative", amount_cents=amount_cents)
    return amount_cents


def _append(booking: Booking, transaction_type: str, amount_cents: int, *, status: str, note: str | None) -> EscrowTransaction:
    now = utcnow()
    tx = EscrowTransaction(
        booking_id=booking.id,
        amount_cents=amount_cents,
        transaction_type=transaction_type,
        status=status,
        note=note,
        processed_at=now if status == TX_PROCESSED else None,
        created_at=now,
    )
    db.session.add(tx)
    db.session.flush()
    sync_projection(booking)
    return tx


def record_deposit(booking: Booking, amount_cents: int, *, note: str | None = None) -> EscrowTransaction:
    """Append a pending deposit; it counts once process_deposit settles it."""
    amount_cents = _validate_amount(booking, amount_cents)
    if amount_cents > booking.total_price_cents:
        raise _violation(
            booking,
            "Deposit cannot exceed the booking total",
            amount_cents=amount_cents,
            total_price_cents=booking.total_price_cents,
        )
    return _append(booking, TX_DEPOSIT, amount_cents, status=TX_PENDING, note=note)


def process_deposit(booking: Booking) -> EscrowTransaction:
    """Settle the booking's pending deposit (pending -> processed)."""
    tx = (
        db.session.query(EscrowTransaction)
        .filter_by(booking_id=booking.id, transaction_type=TX_DEPOSIT, status=TX_PENDING)
        .order_by(EscrowTransaction.id.asc())
        .first()
    )
    if tx is None:
        raise NotFoundError(f"Booking {booking.id} has no pending deposit")
    tx.status = TX_PROCESSED
    tx.processed_at = utcnow()
    sync_projection(booking)
    return tx


def fail_pending_deposits(booking: Booking, *, note: str | None = None) -> int:
    """Mark every pending deposit failed (pending -> failed). Returns the count."""
    pending = (
        db.session.query(EscrowTransaction)
        .filter_by(booking_id=booking.id, transaction_type=TX_DEPOSIT, status=TX_PENDING)
        .all()
    )
    for tx in pending:
        tx.status = TX_FAILED
        if note:
            tx.note = note
    sync_projection(booking)
    return len(pending)


def record_release(booking: Booking, amount_cents: int, *, note: str | None = None) -> EscrowTransaction:
    """Pay the remaining balance out to the creator."""
    amount_cents = _validate_amount(booking, amount_cents)
    totals = get_totals(booking.id)
    balance = booking.total_price_cents - booking.deposit_amount_cents

    if totals.release > 0 or _has_processed(booking.id, TX_RELEASE):
        raise _violation(booking, "Booking already has a processed release")
    if totals.refund > 0:
        raise _violation(booking, "Cannot release funds on a refunded booking", refund_cents=totals.refund)
    if totals.release + amount_cents > balance:
        raise _violation(
            booking,
            "Release would exceed the contracted balance",
            amount_cents=amount_cents,
            balance_cents=balance,
        )
    return _append(booking, TX_RELEASE, amount_cents, status=TX_PROCESSED, note=note)


def record_refund(booking: Booking, amount_cents: int, *, note: str | None = None) -> EscrowTransaction:
    """Return money to the brand. Never more than was actually deposited."""
    amount_cents = _validate_amount(booking, amount_cents)
    totals = get_totals(booking.id)

    if totals.refund + amount_cents > totals.deposit:
        raise _violation(
            booking,
            "Refund would exceed processed deposits",
            amount_cents=amount_cents,
            deposit_cents=totals.deposit,
            refunded_cents=totals.refund,
        )
    if totals.total_paid - amount_cents < 0:
        raise _violation(
            booking,
            "Refund would make total paid negative",
            amount_cents=amount_cents,
            total_paid_cents=totals.total_paid,
        )
    return _append(booking, TX_REFUND, amount_cents, status=TX_PROCESSED, note=note)


# =============================================================================
# QUERIES
# =============================================================================

def get_summary(booking_id: int) -> dict:
    """Fold the ledger into totals for display."""
    booking = db.session.get(Booking, booking_id)
    if booking is None:
        raise NotFoundError(f"Booking {booking_id} not found")

    totals = get_totals(booking_id)
    return {
        "booking_id": booking_id,
        "deposit_amount": totals.deposit,
        "release_amount": totals.release,
        "refund_amount": totals.refund,
        "pending_deposit_amount": totals.pending_deposit,
        "total_paid": totals.total_paid,
        "platform_fee": calculate_platform_fee(booking.total_price_cents),
        "creator_earnings": calculate_creator_earnings(booking.total_price_cents),
        "status": booking.escrow_status,
        "payment_status": booking.payment_status,
    }
