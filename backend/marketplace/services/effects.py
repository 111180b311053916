# Overview: Result types that carry notification intents out of state transitions.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class NotificationIntent:
    """
    Request to notify someone, produced by a state transition.

    Exactly one of recipient_user_id / recipient_role is set.
    """
    notification_type: str
    title: str
    message: str
    recipient_user_id: int | None = None
    recipient_role: str | None = None
    link: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class ActionResult:
    """
    Outcome of a committed state transition.

    The transition itself is already durable; notifications are delivered
    afterwards by notification_service.dispatch and may fail independently.
    """
    entity: Any
    notifications: list[NotificationIntent] = field(default_factory=list)
