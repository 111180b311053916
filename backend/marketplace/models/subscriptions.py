from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Subscription(db.Model):
    """
    Brand subscription row.

    WHY: Rows are never rewritten to a different plan. Upgrades and expiry
    downgrades insert a new row so the history of plans stays queryable.

    STATUS: active, expired, cancelled
    PLAN: none, basic, pro, premium
    """
    __tablename__ = "brand_subscriptions"
    __table_args__ = (
        # At most one active subscription per brand
        db.Index(
            "uq_brand_subscriptions_one_active",
            "brand_profile_id",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.Index("ix_brand_subscriptions_status_end", "status", "current_period_end"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    brand_profile_id = db.Column(db.Integer, db.ForeignKey("brand_profiles.id"), nullable=False, index=True)
    plan_type = db.Column(db.String(16), nullable=False, default="none", index=True)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=False)
    cancel_at_period_end = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    brand_profile = db.relationship("BrandProfile", backref=db.backref("subscriptions", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "brand_profile_id": self.brand_profile_id,
            "plan_type": self.plan_type,
            "status": self.status,
            "current_period_end": to_utc_z(self.current_period_end),
            "cancel_at_period_end": self.cancel_at_period_end,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
