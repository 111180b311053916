from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Dispute(db.Model):
    """
    Dispute attached to a booking.

    STATE MACHINE:
        pending_response -> pending_admin_review -> resolved

    response_deadline and resolution_deadline are fixed at creation and
    only drive reminders; passing them never changes status.
    Disputes are permanent audit records.
    """
    __tablename__ = "booking_disputes"
    __table_args__ = (
        db.Index("ix_booking_disputes_booking_status", "booking_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)

    opened_by_user_id = db.Column(db.Integer, nullable=False)
    opened_by_role = db.Column(db.String(16), nullable=False)  # brand, creator
    reason = db.Column(db.Text, nullable=False)
    evidence = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(24), nullable=False, default="pending_response", index=True)

    response_text = db.Column(db.Text, nullable=True)
    response_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    response_deadline = db.Column(db.DateTime(timezone=True), nullable=False)
    resolution_deadline = db.Column(db.DateTime(timezone=True), nullable=False)

    # Manual escalation by an administrator
    escalated_to_admin = db.Column(db.Boolean, nullable=False, default=False)
    escalated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Resolution
    resolution = db.Column(db.String(16), nullable=True)  # release, refund
    refund_percentage = db.Column(db.Integer, nullable=True)
    resolved_by_user_id = db.Column(db.Integer, nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    admin_notes = db.Column(db.Text, nullable=True)

    # Reminder bookkeeping for the deadline check
    reminder_sent_day2 = db.Column(db.Boolean, nullable=False, default=False)
    reminder_sent_day3 = db.Column(db.Boolean, nullable=False, default=False)
    overdue_notified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolution_reminder_sent = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    booking = db.relationship("Booking", backref=db.backref("disputes", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "opened_by_user_id": self.opened_by_user_id,
            "opened_by_role": self.opened_by_role,
            "reason": self.reason,
            "evidence": self.evidence,
            "status": self.status,
            "response_text": self.response_text,
            "response_submitted_at": to_utc_z(self.response_submitted_at),
            "response_deadline": to_utc_z(self.response_deadline),
            "resolution_deadline": to_utc_z(self.resolution_deadline),
            "escalated_to_admin": self.escalated_to_admin,
            "escalated_at": to_utc_z(self.escalated_at),
            "resolution": self.resolution,
            "refund_percentage": self.refund_percentage,
            "resolved_by_user_id": self.resolved_by_user_id,
            "resolved_at": to_utc_z(self.resolved_at),
            "admin_notes": self.admin_notes,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
