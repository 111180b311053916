from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class BrandProfile(db.Model):
    """
    Brand account operated by one user.

    Usage counters live here. Each counter carries the period marker it was
    last written in; readers compare the marker against the current period
    themselves, so no cron job is needed to reset them.
    """
    __tablename__ = "brand_profiles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, unique=True, index=True)
    company_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)

    # Distinct creators contacted this calendar month
    creators_messaged_this_month = db.Column(db.Integer, nullable=False, default=0)
    creators_messaged_period = db.Column(db.String(7), nullable=True)  # YYYY-MM
    creators_messaged_reset_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Mass-message recipients today
    mass_messages_sent_today = db.Column(db.Integer, nullable=False, default=0)
    mass_messages_period = db.Column(db.String(10), nullable=True)  # YYYY-MM-DD
    mass_messages_reset_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "company_name": self.company_name,
            "email": self.email,
            "creators_messaged_this_month": self.creators_messaged_this_month,
            "creators_messaged_period": self.creators_messaged_period,
            "mass_messages_sent_today": self.mass_messages_sent_today,
            "mass_messages_period": self.mass_messages_period,
            "created_at": to_utc_z(self.created_at),
        }


class CreatorProfile(db.Model):
    """Creator account that receives bookings."""
    __tablename__ = "creator_profiles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=False, unique=True, index=True)
    display_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "display_name": self.display_name,
            "email": self.email,
            "created_at": to_utc_z(self.created_at),
        }
