# Overview: Service-layer operations for usage counters; period-aware, atomic check-and-consume.

"""
Usage Counter Service

Two counters live on brand_profiles, each next to the period marker it was
last written in:

    creators_messaged_this_month / creators_messaged_period   (YYYY-MM)
    mass_messages_sent_today     / mass_messages_period       (YYYY-MM-DD)

RULES:
1. Every read compares the stored marker with the current period itself.
   A stale marker means effective usage is 0. Nothing resets counters on a
   schedule.
2. Reads never write. The counter is written only when the gated action is
   performed, by check_and_consume_* inside the caller's transaction, so a
   failed action rolls the increment back with it.
3. check_and_consume_* is a single conditional UPDATE (check + increment in
   one statement) so concurrent requests cannot both pass at limit - 1.
4. Uncapped limits short-circuit without touching the counter.
5. Storage failures raise QuotaCheckFailed (fail closed, retryable), never
   QuotaExceeded.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import and_, case, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundError, QuotaCheckFailed, QuotaExceeded
from ..extensions import db
from ..models import BrandProfile
from ..time_utils import day_key, month_key, utcnow
from .entitlements import get_mass_message_limit, get_message_limit, is_unlimited


QUOTA_CREATOR_MESSAGES = "monthly_creator_messages"
QUOTA_MASS_MESSAGES = "daily_mass_messages"


@dataclass(frozen=True)
class QuotaCheck:
    allowed: bool
    used: int
    limit: float

    @property
    def remaining(self) -> float:
        return max(self.limit - self.used, 0)

    def to_dict(self) -> dict:
        unlimited = is_unlimited(self.limit)
        return {
            "allowed": self.allowed,
            "used": self.used,
            "limit": None if unlimited else int(self.limit),
            "remaining": None if unlimited else int(self.remaining),
            "unlimited": unlimited,
        }


@dataclass(frozen=True)
class _Counter:
    name: str
    count_col: object
    period_col: object
    reset_col: object
    period_of: object


_CREATOR_MESSAGES = _Counter(
    name=QUOTA_CREATOR_MESSAGES,
    count_col=BrandProfile.creators_messaged_this_month,
    period_col=BrandProfile.creators_messaged_period,
    reset_col=BrandProfile.creators_messaged_reset_at,
    period_of=month_key,
)

_MASS_MESSAGES = _Counter(
    name=QUOTA_MASS_MESSAGES,
    count_col=BrandProfile.mass_messages_sent_today,
    period_col=BrandProfile.mass_messages_period,
    reset_col=BrandProfile.mass_messages_reset_at,
    period_of=day_key,
)


def _read_used(counter: _Counter, brand_profile_id: int, now: datetime) -> int:
    try:
        row = db.session.execute(
            select(counter.count_col, counter.period_col).where(BrandProfile.id == brand_profile_id)
        ).first()
    except SQLAlchemyError as exc:
        raise QuotaCheckFailed(f"Could not read {counter.name} usage") from exc
    if row is None:
        raise NotFoundError(f"Brand profile {brand_profile_id} not found")
    count, period = row
    if period != counter.period_of(now):
        return 0
    return int(count or 0)


def _check(counter: _Counter, brand_profile_id: int, limit: float, amount: int, now: datetime) -> QuotaCheck:
    if is_unlimited(limit):
        return QuotaCheck(allowed=True, used=0, limit=limit)
    used = _read_used(counter, brand_profile_id, now)
    return QuotaCheck(allowed=used + amount <= limit, used=used, limit=limit)


def _consume(counter: _Counter, brand_profile_id: int, limit: float, amount: int, now: datetime) -> QuotaCheck:
    if is_unlimited(limit):
        return QuotaCheck(allowed=True, used=0, limit=limit)
    if amount > limit:
        return QuotaCheck(allowed=False, used=_read_used(counter, brand_profile_id, now), limit=limit)

    period = counter.period_of(now)
    same_period = counter.period_col == period
    rolled_over = or_(counter.period_col.is_(None), counter.period_col != period)

    stmt = (
        update(BrandProfile)
        .where(BrandProfile.id == brand_profile_id)
        .where(or_(rolled_over, and_(same_period, counter.count_col + amount <= int(limit))))
        .values({
            counter.count_col: case((same_period, counter.count_col + amount), else_=amount),
            counter.reset_col: case((same_period, counter.reset_col), else_=now),
            counter.period_col: period,
        })
        .execution_options(synchronize_session=False)
    )
    try:
        result = db.session.execute(stmt)
    except SQLAlchemyError as exc:
        raise QuotaCheckFailed(f"Could not update {counter.name} usage") from exc

    _expire_cached_profile(brand_profile_id)
    used = _read_used(counter, brand_profile_id, now)
    if result.rowcount != 1:
        return QuotaCheck(allowed=False, used=used, limit=limit)
    return QuotaCheck(allowed=True, used=used, limit=limit)


def _expire_cached_profile(brand_profile_id: int) -> None:
    for obj in list(db.session.identity_map.values()):
        if isinstance(obj, BrandProfile) and obj.id == brand_profile_id:
            db.session.expire(obj)


# =============================================================================
# MONTHLY CREATOR MESSAGES
# =============================================================================

def check_message_quota(brand_profile_id: int, plan_type: str, *, now: datetime | None = None) -> QuotaCheck:
    """Read-only quota view for starting a conversation with a new creator."""
    return _check(_CREATOR_MESSAGES, brand_profile_id, get_message_limit(plan_type), 1, now or utcnow())


def check_and_consume_message_quota(
    brand_profile_id: int,
    plan_type: str,
    *,
    now: datetime | None = None,
) -> QuotaCheck:
    """
    Atomically check and consume one creator-message slot.

    Runs in the caller's transaction and does not commit; the caller commits
    together with the gated action or rolls both back.
    """
    return _consume(_CREATOR_MESSAGES, brand_profile_id, get_message_limit(plan_type), 1, now or utcnow())


def require_message_quota(brand_profile_id: int, plan_type: str, *, now: datetime | None = None) -> QuotaCheck:
    result = check_and_consume_message_quota(brand_profile_id, plan_type, now=now)
    if not result.allowed:
        raise QuotaExceeded(QUOTA_CREATOR_MESSAGES, used=result.used, limit=int(result.limit))
    return result


# =============================================================================
# DAILY MASS MESSAGES
# =============================================================================

def check_mass_message_quota(
    brand_profile_id: int,
    plan_type: str,
    *,
    count: int = 1,
    now: datetime | None = None,
) -> QuotaCheck:
    return _check(_MASS_MESSAGES, brand_profile_id, get_mass_message_limit(plan_type), count, now or utcnow())


def check_and_consume_mass_message_quota(
    brand_profile_id: int,
    plan_type: str,
    *,
    count: int,
    now: datetime | None = None,
) -> QuotaCheck:
    """Atomically reserve `count` mass-message recipients for today."""
    if count <= 0:
        raise ValueError("count must be positive")
    return _consume(_MASS_MESSAGES, brand_profile_id, get_mass_message_limit(plan_type), count, now or utcnow())


def require_mass_message_quota(
    brand_profile_id: int,
    plan_type: str,
    *,
    count: int,
    now: datetime | None = None,
) -> QuotaCheck:
    result = check_and_consume_mass_message_quota(brand_profile_id, plan_type, count=count, now=now)
    if not result.allowed:
        raise QuotaExceeded(QUOTA_MASS_MESSAGES, used=result.used, limit=int(result.limit))
    return result


def get_usage_summary(brand_profile_id: int, plan_type: str, *, now: datetime | None = None) -> dict:
    now = now or utcnow()
    return {
        "plan_type": plan_type,
        QUOTA_CREATOR_MESSAGES: check_message_quota(brand_profile_id, plan_type, now=now).to_dict(),
        QUOTA_MASS_MESSAGES: check_mass_message_quota(brand_profile_id, plan_type, now=now).to_dict(),
    }
