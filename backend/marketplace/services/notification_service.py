# Overview: Service-layer operations for notifications; delivers intents produced by state transitions.

"""
Notification Dispatcher

WHY: State transitions must never be rolled back or blocked because a
notification could not be delivered. Transitions return NotificationIntent
objects; this module persists them as in-app notifications after the
transition has committed, each in its own transaction.

Email/push transports are out of scope. In-app rows are the delivery.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Notification
from .effects import NotificationIntent


def dispatch(intents: list[NotificationIntent]) -> int:
    """
    Deliver intents. Returns how many were delivered.

    Failures are logged and skipped; they are never raised to the caller.
    """
    delivered = 0
    for intent in intents:
        try:
            _deliver(intent)
            delivered += 1
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception(
                "Failed to deliver notification %s to user=%s role=%s",
                intent.notification_type,
                intent.recipient_user_id,
                intent.recipient_role,
            )
    return delivered


def _deliver(intent: NotificationIntent) -> Notification:
    note = Notification(
        recipient_user_id=intent.recipient_user_id,
        recipient_role=intent.recipient_role,
        notification_type=intent.notification_type,
        title=intent.title,
        message=intent.message,
        link=intent.link,
        data=dict(intent.data) if intent.data else None,
    )
    db.session.add(note)
    db.session.commit()
    return note


def list_notifications(
    user_id: int,
    *,
    role: str | None = None,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    """Notifications addressed to the user directly or to their role."""
    q = db.session.query(Notification)
    if role:
        q = q.filter(
            or_(
                Notification.recipient_user_id == user_id,
                Notification.recipient_role == role,
            )
        )
    else:
        q = q.filter(Notification.recipient_user_id == user_id)
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    return q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def mark_read(notification_id: int, user_id: int) -> bool:
    note = (
        db.session.query(Notification)
        .filter_by(id=notification_id, recipient_user_id=user_id)
        .first()
    )
    if note is None:
        return False
    note.is_read = True
    db.session.commit()
    return True
