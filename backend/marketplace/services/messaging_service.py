# Overview: Service-layer operations for brand <-> creator messaging; the actions the usage quotas gate.

"""
Messaging Service

GATES:
- Starting a conversation with a creator the brand has not contacted before
  requires can_contact_creators and consumes one monthly creator-message slot.
  Messages in an existing conversation are never gated.
- A mass message requires a plan with a non-zero daily mass-message limit and
  consumes one daily slot per recipient. Mass messages do not count against
  the monthly creator-message quota.

The quota increment happens in the same transaction as the conversation /
message insert, so a failed send never burns quota.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrencyConflict, EntitlementDenied, InvalidTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import BrandProfile, Conversation, CreatorProfile, Message
from ..principal import Principal, ROLE_BRAND
from ..time_utils import utcnow
from .concurrency import run_with_retry
from .effects import ActionResult, NotificationIntent
from .entitlements import get_mass_message_limit, require_entitlement
from .subscription_service import get_current_plan_type
from .usage_service import require_mass_message_quota, require_message_quota


CAPABILITY_MASS_MESSAGING = "mass_messaging"


def _clean_body(body: str | None) -> str:
    text = (body or "").strip()
    if not text:
        raise ValidationError("Message body is required")
    return text


def _require_brand(principal: Principal) -> None:
    if not principal.is_brand or principal.profile_id is None:
        raise InvalidTransition("Only brands can start conversations")


def _find_conversation(brand_id: int, creator_id: int) -> Conversation | None:
    return db.session.query(Conversation).filter_by(brand_id=brand_id, creator_id=creator_id).first()


def _append_message(conversation: Conversation, principal: Principal, body: str, *, is_mass: bool, ts: datetime) -> Message:
    msg = Message(
        conversation_id=conversation.id,
        sender_user_id=principal.user_id,
        sender_role=principal.role,
        body=body,
        is_mass_message=is_mass,
        created_at=ts,
    )
    db.session.add(msg)
    conversation.last_message_at = ts
    return msg


def _new_conversation(brand_id: int, creator_id: int, ts: datetime) -> Conversation:
    conversation = Conversation(brand_id=brand_id, creator_id=creator_id, created_at=ts)
    db.session.add(conversation)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConcurrencyConflict(
            f"Conversation between brand {brand_id} and creator {creator_id} was created concurrently; retry"
        ) from exc
    return conversation


def _message_intent(recipient_user_id: int, conversation: Conversation, title: str, message: str) -> NotificationIntent:
    return NotificationIntent(
        notification_type="new_message",
        title=title,
        message=message,
        recipient_user_id=recipient_user_id,
        link=f"/messages/{conversation.id}",
        data={"conversation_id": conversation.id},
    )


def get_conversation(conversation_id: int) -> Conversation:
    conversation = db.session.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    return conversation


def is_participant(principal: Principal, conversation: Conversation) -> bool:
    if principal.is_brand:
        return principal.profile_id == conversation.brand_id
    if principal.is_creator:
        return principal.profile_id == conversation.creator_id
    return False


def list_conversations(principal: Principal) -> list[Conversation]:
    query = db.session.query(Conversation)
    if principal.is_brand:
        query = query.filter(Conversation.brand_id == principal.profile_id)
    elif principal.is_creator:
        query = query.filter(Conversation.creator_id == principal.profile_id)
    elif not principal.is_admin:
        return []
    return query.order_by(Conversation.last_message_at.desc(), Conversation.id.desc()).all()


def list_messages(principal: Principal, conversation_id: int) -> list[Message]:
    conversation = get_conversation(conversation_id)
    if not (principal.is_admin or is_participant(principal, conversation)):
        raise NotFoundError(f"Conversation {conversation_id} not found")
    return (
        db.session.query(Message)
        .filter_by(conversation_id=conversation.id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )


# =============================================================================
# GATED ACTIONS
# =============================================================================

def start_conversation(
    principal: Principal,
    creator_id: int,
    body: str,
    *,
    now: datetime | None = None,
) -> ActionResult:
    """
    Brand messages a creator.

    Reuses the existing conversation when there is one; otherwise the new
    conversation consumes one monthly creator-message slot.
    """
    _require_brand(principal)
    body = _clean_body(body)
    plan_type = get_current_plan_type(principal.profile_id)
    require_entitlement(plan_type, "can_contact_creators")

    def _op():
        ts = now or utcnow()
        creator = db.session.get(CreatorProfile, creator_id)
        if creator is None:
            raise NotFoundError(f"Creator profile {creator_id} not found")
        brand = db.session.get(BrandProfile, principal.profile_id)
        if brand is None:
            raise NotFoundError(f"Brand profile {principal.profile_id} not found")

        conversation = _find_conversation(brand.id, creator.id)
        if conversation is None:
            require_message_quota(brand.id, plan_type, now=ts)
            conversation = _new_conversation(brand.id, creator.id, ts)

        msg = _append_message(conversation, principal, body, is_mass=False, ts=ts)
        db.session.commit()

        intent = _message_intent(
            creator.user_id,
            conversation,
            f"New message from {brand.company_name}",
            body[:140],
        )
        return ActionResult(entity=msg, notifications=[intent])

    return run_with_retry(_op)


def send_message(
    principal: Principal,
    conversation_id: int,
    body: str,
    *,
    now: datetime | None = None,
) -> ActionResult:
    """Reply in an existing conversation. Not quota-gated."""
    body = _clean_body(body)

    def _op():
        ts = now or utcnow()
        conversation = get_conversation(conversation_id)
        if not is_participant(principal, conversation):
            raise InvalidTransition(f"You are not a participant in conversation {conversation_id}")

        msg = _append_message(conversation, principal, body, is_mass=False, ts=ts)
        db.session.commit()

        if principal.role == ROLE_BRAND:
            recipient = db.session.get(CreatorProfile, conversation.creator_id).user_id
        else:
            recipient = db.session.get(BrandProfile, conversation.brand_id).user_id
        intent = _message_intent(recipient, conversation, "New message", body[:140])
        return ActionResult(entity=msg, notifications=[intent])

    return run_with_retry(_op)


def send_mass_message(
    principal: Principal,
    creator_ids: list[int],
    body: str,
    *,
    now: datetime | None = None,
) -> ActionResult:
    """
    Send the same message to several creators at once.

    Consumes one daily mass-message slot per distinct recipient, all or
    nothing.
    """
    _require_brand(principal)
    body = _clean_body(body)

    try:
        recipients = list(dict.fromkeys(int(cid) for cid in creator_ids or []))
    except (TypeError, ValueError) as exc:
        raise ValidationError("creator_ids must be a list of integers") from exc
    if not recipients:
        raise ValidationError("At least one creator is required")
    max_batch = current_app.config["MASS_MESSAGE_MAX_BATCH"]
    if len(recipients) > max_batch:
        raise ValidationError(f"Maximum {max_batch} creators per mass message", max_batch=max_batch)

    plan_type = get_current_plan_type(principal.profile_id)
    require_entitlement(plan_type, "can_contact_creators")
    if get_mass_message_limit(plan_type) <= 0:
        raise EntitlementDenied(
            capability=CAPABILITY_MASS_MESSAGING,
            plan_type=plan_type,
            message="Mass messaging requires a Pro or Premium subscription",
        )

    def _op():
        ts = now or utcnow()
        creators = (
            db.session.query(CreatorProfile)
            .filter(CreatorProfile.id.in_(recipients))
            .all()
        )
        missing = sorted(set(recipients) - {c.id for c in creators})
        if missing:
            raise NotFoundError(f"Creator profiles not found: {missing}", creator_ids=missing)

        require_mass_message_quota(principal.profile_id, plan_type, count=len(creators), now=ts)

        messages = []
        intents = []
        brand = db.session.get(BrandProfile, principal.profile_id)
        for creator in creators:
            conversation = _find_conversation(brand.id, creator.id) or _new_conversation(brand.id, creator.id, ts)
            messages.append(_append_message(conversation, principal, body, is_mass=True, ts=ts))
            intents.append(_message_intent(
                creator.user_id,
                conversation,
                f"New message from {brand.company_name}",
                body[:140],
            ))
        db.session.commit()
        return ActionResult(entity=messages, notifications=intents)

    return run_with_retry(_op)
