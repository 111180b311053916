# Overview: Service-layer operations for brand subscriptions; resolves the plan that gates every brand action.

"""
Subscription Service

DESIGN PRINCIPLES:
- One active row per brand (service-enforced, backed by a partial unique index)
- Plan changes insert a new row; old rows are kept with status cancelled/expired
- Only the renewal sweep moves a row out of 'active' without a user action
- The effective plan of an active row whose period has already ended is 'none'
  until the sweep downgrades it (gates fail closed, rows are not touched here)
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrencyConflict, InvalidTransition, NotFoundError, ValidationError
from ..extensions import db
from ..models import BrandProfile, Subscription
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .effects import ActionResult, NotificationIntent
from .entitlements import (
    PAID_PLAN_TYPES,
    PLAN_NONE,
    PLAN_TIER_ORDER,
    Entitlements,
    entitlements_for,
    get_plan,
    normalize_plan_type,
)


STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_CANCELLED = "cancelled"

DEFAULT_PERIOD_DAYS = 30


def get_active_subscription(brand_profile_id: int) -> Subscription | None:
    """Highest-tier active row (there should only ever be one)."""
    subs = (
        db.session.query(Subscription)
        .filter_by(brand_profile_id=brand_profile_id, status=STATUS_ACTIVE)
        .all()
    )
    if not subs:
        return None
    return max(subs, key=lambda s: PLAN_TIER_ORDER[normalize_plan_type(s.plan_type)])


def get_current_plan_type(brand_profile_id: int, *, now: datetime | None = None) -> str:
    """
    Plan that gates the brand's actions right now.

    Missing rows, unknown plan types and paid rows past their period end all
    resolve to 'none'.
    """
    sub = get_active_subscription(brand_profile_id)
    if sub is None:
        return PLAN_NONE
    plan_type = normalize_plan_type(sub.plan_type)
    if plan_type != PLAN_NONE and sub.current_period_end <= (now or utcnow()):
        return PLAN_NONE
    return plan_type


def get_brand_entitlements(brand_profile_id: int) -> tuple[str, Entitlements]:
    plan_type = get_current_plan_type(brand_profile_id)
    return plan_type, entitlements_for(plan_type)


def ensure_free_tier(brand_profile_id: int, *, now: datetime | None = None) -> Subscription | None:
    """
    Insert an active 'none' row when the brand has no active subscription.

    Does not commit; runs inside the caller's transaction. Returns the new
    row, or None when an active row already exists.
    """
    if get_active_subscription(brand_profile_id) is not None:
        return None
    now = now or utcnow()
    sub = Subscription(
        brand_profile_id=brand_profile_id,
        plan_type=PLAN_NONE,
        status=STATUS_ACTIVE,
        current_period_end=now + timedelta(days=current_app.config["FREE_TIER_PERIOD_DAYS"]),
        created_at=now,
    )
    db.session.add(sub)
    db.session.flush()
    return sub


def _lock_brand(brand_profile_id: int) -> BrandProfile:
    brand = lock_for_update(db.session.query(BrandProfile).filter_by(id=brand_profile_id)).first()
    if brand is None:
        raise NotFoundError(f"Brand profile {brand_profile_id} not found")
    return brand


def start_subscription(
    brand_profile_id: int,
    plan_type: str,
    *,
    period_days: int = DEFAULT_PERIOD_DAYS,
    now: datetime | None = None,
) -> ActionResult:
    """
    Upgrade (or change) to a paid plan.

    Cancels every active row for the brand and inserts the new active row in
    one transaction.
    """
    if plan_type not in PAID_PLAN_TYPES:
        raise ValidationError(f"plan_type must be one of: {', '.join(sorted(PAID_PLAN_TYPES))}")
    if period_days <= 0:
        raise ValidationError("period_days must be positive")

    def _op():
        ts = now or utcnow()
        brand = _lock_brand(brand_profile_id)

        active = (
            db.session.query(Subscription)
            .filter_by(brand_profile_id=brand.id, status=STATUS_ACTIVE)
            .all()
        )
        previous_plan = PLAN_NONE
        for sub in active:
            if PLAN_TIER_ORDER[normalize_plan_type(sub.plan_type)] > PLAN_TIER_ORDER[previous_plan]:
                previous_plan = normalize_plan_type(sub.plan_type)
            sub.status = STATUS_CANCELLED
        db.session.flush()

        new_sub = Subscription(
            brand_profile_id=brand.id,
            plan_type=plan_type,
            status=STATUS_ACTIVE,
            current_period_end=ts + timedelta(days=period_days),
            created_at=ts,
        )
        db.session.add(new_sub)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflict(
                f"Brand {brand.id} subscription changed concurrently; reload and retry"
            ) from exc
        db.session.commit()

        plan = get_plan(plan_type)
        intent = NotificationIntent(
            notification_type="subscription_started",
            title=f"Welcome to {plan.name}",
            message=f"Your {plan.name} plan is active until {new_sub.current_period_end.date().isoformat()}.",
            recipient_user_id=brand.user_id,
            link="/brand-dashboard?tab=subscription",
            data={"plan_type": plan_type, "previous_plan_type": previous_plan},
        )
        return ActionResult(entity=new_sub, notifications=[intent])

    return run_with_retry(_op)


def renew_subscription(
    brand_profile_id: int,
    *,
    period_days: int = DEFAULT_PERIOD_DAYS,
    now: datetime | None = None,
) -> Subscription:
    """Extend the active paid row by one billing period."""
    if period_days <= 0:
        raise ValidationError("period_days must be positive")

    def _op():
        ts = now or utcnow()
        _lock_brand(brand_profile_id)
        sub = get_active_subscription(brand_profile_id)
        if sub is None or sub.plan_type == PLAN_NONE:
            raise InvalidTransition(f"Brand {brand_profile_id} has no active paid subscription to renew")
        base = max(sub.current_period_end, ts)
        sub.current_period_end = base + timedelta(days=period_days)
        sub.cancel_at_period_end = False
        db.session.commit()
        return sub

    return run_with_retry(_op)


def cancel_subscription(
    brand_profile_id: int,
    *,
    at_period_end: bool = True,
    now: datetime | None = None,
) -> Subscription:
    """
    User-initiated cancel.

    at_period_end=True keeps the plan until current_period_end and lets the
    renewal sweep expire it. Otherwise the row is cancelled immediately and
    the brand drops to the free tier.
    """
    def _op():
        ts = now or utcnow()
        _lock_brand(brand_profile_id)
        sub = get_active_subscription(brand_profile_id)
        if sub is None or sub.plan_type == PLAN_NONE:
            raise InvalidTransition(f"Brand {brand_profile_id} has no active paid subscription to cancel")

        if at_period_end:
            sub.cancel_at_period_end = True
            db.session.commit()
            return sub

        sub.status = STATUS_CANCELLED
        db.session.flush()
        ensure_free_tier(brand_profile_id, now=ts)
        db.session.commit()
        return sub

    return run_with_retry(_op)


def list_subscription_history(brand_profile_id: int) -> list[Subscription]:
    return (
        db.session.query(Subscription)
        .filter_by(brand_profile_id=brand_profile_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .all()
    )
