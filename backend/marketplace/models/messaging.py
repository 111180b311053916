from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Conversation(db.Model):
    """
    Message thread between one brand and one creator.

    Opening a conversation with a creator the brand has never contacted is
    the action the monthly creator-message quota gates.
    """
    __tablename__ = "conversations"
    __table_args__ = (
        db.UniqueConstraint("brand_id", "creator_id", name="uq_conversations_brand_creator"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    brand_id = db.Column(db.Integer, db.ForeignKey("brand_profiles.id"), nullable=False, index=True)
    creator_id = db.Column(db.Integer, db.ForeignKey("creator_profiles.id"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_message_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "brand_id": self.brand_id,
            "creator_id": self.creator_id,
            "created_at": to_utc_z(self.created_at),
            "last_message_at": to_utc_z(self.last_message_at),
        }


class Message(db.Model):
    __tablename__ = "messages"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.Integer, db.ForeignKey("conversations.id"), nullable=False, index=True)
    sender_user_id = db.Column(db.Integer, nullable=False)
    sender_role = db.Column(db.String(16), nullable=False)
    body = db.Column(db.Text, nullable=False)
    is_mass_message = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    conversation = db.relationship("Conversation", backref=db.backref("messages", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_user_id": self.sender_user_id,
            "sender_role": self.sender_role,
            "body": self.body,
            "is_mass_message": self.is_mass_message,
            "created_at": to_utc_z(self.created_at),
        }
