# Overview: Scheduled subscription renewal sweep; reminders, expiry downgrade and win-back notices.

"""
Subscription Renewal Sweep

Runs once a day (flask subscriptions sweep, or POST /api/subscriptions/sweep).

For every active paid subscription:
    days = ceil((current_period_end - now) / 1 day)
    days == 7  -> 7-day reminder
    days == 3  -> 3-day reminder
    days <= 0  -> status expired, active 'none' row inserted (if missing),
                  expiry notice

Then a win-back notice for paid subscriptions whose period ended in
[now - 7d, now - 6d) and whose brand has not re-subscribed.

Each subscription is handled in its own transaction. One failure is logged,
counted and skipped; it never aborts the batch. Notifications go out after
each commit.

Reminders use exact day equality, so running the sweep twice on the same
day sends the same reminder twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import MarketplaceError
from ..extensions import db
from ..models import Subscription
from ..time_utils import days_until, utcnow
from .concurrency import lock_for_update, run_with_retry
from .effects import NotificationIntent
from .entitlements import PLAN_NONE, get_plan
from .notification_service import dispatch
from .subscription_service import STATUS_ACTIVE, STATUS_EXPIRED, ensure_free_tier


SUBSCRIPTION_LINK = "/brand-dashboard?tab=subscription"


@dataclass
class SweepResult:
    seven_day_reminders: int = 0
    three_day_reminders: int = 0
    expired: int = 0
    winback: int = 0
    failures: int = 0

    def to_dict(self) -> dict:
        return dict(self.__dict__)


def _intent(sub: Subscription, notification_type: str, title: str, message: str) -> NotificationIntent:
    return NotificationIntent(
        notification_type=notification_type,
        title=title,
        message=message,
        recipient_user_id=sub.brand_profile.user_id,
        link=SUBSCRIPTION_LINK,
        data={"subscription_id": sub.id, "plan_type": sub.plan_type},
    )


def _process_subscription(subscription_id: int, now: datetime) -> tuple[str | None, list[NotificationIntent]]:
    """Returns (outcome, intents); outcome is None when nothing was due."""
    sub = lock_for_update(db.session.query(Subscription).filter_by(id=subscription_id)).first()
    if sub is None or sub.status != STATUS_ACTIVE or sub.plan_type == PLAN_NONE:
        db.session.commit()
        return None, []

    plan_name = get_plan(sub.plan_type).name
    days = days_until(sub.current_period_end, now)
    outcome = None
    intents: list[NotificationIntent] = []

    if days == 7:
        outcome = "seven_day_reminders"
        intents.append(_intent(
            sub,
            "subscription_expiring_7_days",
            "Subscription expiring soon",
            f"Your {plan_name} subscription expires in 7 days. Renew to keep your features!",
        ))
    elif days == 3:
        outcome = "three_day_reminders"
        intents.append(_intent(
            sub,
            "subscription_expiring_3_days",
            "3 days left on your subscription",
            f"Your {plan_name} subscription expires in 3 days. Don't lose access!",
        ))
    elif days <= 0:
        outcome = "expired"
        intents.append(_intent(
            sub,
            "subscription_expired",
            "Subscription expired",
            f"Your {plan_name} subscription has expired. Upgrade to restore your features.",
        ))
        sub.status = STATUS_EXPIRED
        db.session.flush()
        ensure_free_tier(sub.brand_profile_id, now=now)

    db.session.commit()
    return outcome, intents


def _winback_candidates(now: datetime) -> list[Subscription]:
    window_start = now - timedelta(days=7)
    window_end = window_start + timedelta(days=1)
    expired = (
        db.session.query(Subscription)
        .filter(
            Subscription.status == STATUS_EXPIRED,
            Subscription.plan_type != PLAN_NONE,
            Subscription.current_period_end >= window_start,
            Subscription.current_period_end < window_end,
        )
        .order_by(Subscription.id.asc())
        .all()
    )
    candidates = []
    for sub in expired:
        resubscribed = (
            db.session.query(Subscription.id)
            .filter(
                Subscription.brand_profile_id == sub.brand_profile_id,
                Subscription.status == STATUS_ACTIVE,
                Subscription.plan_type != PLAN_NONE,
            )
            .first()
        )
        if resubscribed is None:
            candidates.append(sub)
    return candidates


def run_renewal_sweep(*, now: datetime | None = None) -> SweepResult:
    now = now or utcnow()
    result = SweepResult()

    subscription_ids = [
        row.id
        for row in db.session.query(Subscription.id)
        .filter(Subscription.status == STATUS_ACTIVE, Subscription.plan_type != PLAN_NONE)
        .order_by(Subscription.id.asc())
        .all()
    ]

    for subscription_id in subscription_ids:
        try:
            outcome, intents = run_with_retry(lambda: _process_subscription(subscription_id, now))
        except (SQLAlchemyError, MarketplaceError):
            result.failures += 1
            current_app.logger.exception("Renewal sweep failed for subscription %s", subscription_id)
            continue
        if outcome is not None:
            setattr(result, outcome, getattr(result, outcome) + 1)
        dispatch(intents)

    try:
        winback = _winback_candidates(now)
    except SQLAlchemyError:
        db.session.rollback()
        result.failures += 1
        current_app.logger.exception("Renewal sweep could not load win-back candidates")
        winback = []

    for sub in winback:
        plan_name = get_plan(sub.plan_type).name
        delivered = dispatch([_intent(
            sub,
            "subscription_winback",
            "We miss you",
            f"Your {plan_name} plan ended a week ago. Come back and pick up where you left off.",
        )])
        if delivered:
            result.winback += 1
        else:
            result.failures += 1

    current_app.logger.info("Subscription renewal sweep complete: %s", result.to_dict())
    return result
