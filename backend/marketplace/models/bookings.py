from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Booking(db.Model):
    """
    One brand <-> creator engagement.

    WHY: A booking carries three independent status axes:
    - status: pending -> accepted -> completed, or declined / cancelled
    - delivery_status: pending -> in_progress -> delivered -> confirmed
      (with delivered <-> revision_requested loops)
    - escrow_status / payment_status: a cached projection of the
      escrow_transactions ledger. Only escrow_ledger writes these two.

    Bookings are never deleted; terminal statuses are kept for audit.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.CheckConstraint("deposit_amount_cents <= total_price_cents", name="ck_bookings_deposit_le_total"),
        db.CheckConstraint("total_price_cents > 0", name="ck_bookings_total_positive"),
        db.Index("ix_bookings_brand_status", "brand_id", "status"),
        db.Index("ix_bookings_creator_status", "creator_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brand_profiles.id"), nullable=False, index=True)
    creator_id = db.Column(db.Integer, db.ForeignKey("creator_profiles.id"), nullable=False, index=True)

    package_type = db.Column(db.String(32), nullable=False)
    message = db.Column(db.Text, nullable=True)
    event_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Money (all amounts in cents)
    total_price_cents = db.Column(db.Integer, nullable=False)
    deposit_amount_cents = db.Column(db.Integer, nullable=False)
    platform_fee_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    delivery_status = db.Column(db.String(24), nullable=False, default="pending", index=True)
    escrow_status = db.Column(db.String(24), nullable=False, default="pending_deposit", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid", index=True)

    # Delivery review
    revision_count = db.Column(db.Integer, nullable=False, default=0)
    revision_notes = db.Column(db.Text, nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Cancellation audit trail
    cancelled_by_role = db.Column(db.String(16), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    brand = db.relationship("BrandProfile", backref=db.backref("bookings", lazy=True))
    creator = db.relationship("CreatorProfile", backref=db.backref("bookings", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "brand_id": self.brand_id,
            "creator_id": self.creator_id,
            "package_type": self.package_type,
            "message": self.message,
            "event_date": to_utc_z(self.event_date),
            "total_price_cents": self.total_price_cents,
            "deposit_amount_cents": self.deposit_amount_cents,
            "platform_fee_cents": self.platform_fee_cents,
            "status": self.status,
            "delivery_status": self.delivery_status,
            "escrow_status": self.escrow_status,
            "payment_status": self.payment_status,
            "revision_count": self.revision_count,
            "revision_notes": self.revision_notes,
            "delivered_at": to_utc_z(self.delivered_at),
            "cancelled_by_role": self.cancelled_by_role,
            "cancel_reason": self.cancel_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "version_id": self.version_id,
        }


class EscrowTransaction(db.Model):
    """
    Append-only escrow ledger.

    WHY: Source of truth for money movement on a booking.

    TRANSACTION TYPES:
    - deposit: up-front portion collected from the brand
    - release: remaining balance paid out to the creator
    - refund: money returned to the brand

    IMMUTABLE: Rows are never deleted. The only permitted change is
    status pending -> processed or pending -> failed.
    """
    __tablename__ = "escrow_transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_escrow_transactions_amount_nonneg"),
        db.Index("ix_escrow_txns_booking_type", "booking_id", "transaction_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    transaction_type = db.Column(db.String(16), nullable=False, index=True)  # deposit, release, refund
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, processed, failed
    note = db.Column(db.String(255), nullable=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    booking = db.relationship("Booking", backref=db.backref("escrow_transactions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "amount_cents": self.amount_cents,
            "transaction_type": self.transaction_type,
            "status": self.status,
            "note": self.note,
            "processed_at": to_utc_z(self.processed_at),
            "created_at": to_utc_z(self.created_at),
        }
