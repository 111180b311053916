# Overview: Pure plan-tier to capability lookup; no I/O.

"""
Entitlement Engine

WHY: Every gate in the system (booking creation, messaging, campaigns,
content library, pricing visibility) asks the same question: "what may a
brand on plan X do?". Answering it from one frozen table keeps every
check consistent.

PLAN ORDER:
    none < basic < pro < premium

RULES:
1. Lookup only, never computed ad hoc at call sites.
2. Unknown or missing plan types fail closed to "none".
3. math.inf marks an uncapped limit.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass

from ..errors import EntitlementDenied


PLAN_NONE = "none"
PLAN_BASIC = "basic"
PLAN_PRO = "pro"
PLAN_PREMIUM = "premium"

PLAN_TIER_ORDER = {
    PLAN_NONE: 0,
    PLAN_BASIC: 1,
    PLAN_PRO: 2,
    PLAN_PREMIUM: 3,
}
VALID_PLAN_TYPES = set(PLAN_TIER_ORDER)
PAID_PLAN_TYPES = {PLAN_BASIC, PLAN_PRO, PLAN_PREMIUM}

GB = 1024 * 1024 * 1024
UNLIMITED = math.inf


@dataclass(frozen=True)
class Entitlements:
    can_contact_creators: bool
    can_book_creators: bool
    can_message_after_delivery: bool
    has_advanced_filters: bool
    has_crm: bool
    has_content_library: bool
    can_request_verified_badge: bool
    can_view_creator_pricing: bool
    campaign_limit: float
    storage_limit_bytes: int
    mass_message_limit: float
    monthly_creator_message_limit: float

    def to_dict(self) -> dict:
        # JSON has no infinity; uncapped limits serialize as None
        return {
            key: (None if isinstance(value, float) and math.isinf(value) else value)
            for key, value in asdict(self).items()
        }


@dataclass(frozen=True)
class Plan:
    name: str
    price_cents: int
    entitlements: Entitlements


PLANS: dict[str, Plan] = {
    PLAN_NONE: Plan(
        name="No Package",
        price_cents=0,
        entitlements=Entitlements(
            can_contact_creators=False,
            can_book_creators=False,
            can_message_after_delivery=False,
            has_advanced_filters=False,
            has_crm=False,
            has_content_library=False,
            can_request_verified_badge=False,
            can_view_creator_pricing=False,
            campaign_limit=0,
            storage_limit_bytes=0,
            mass_message_limit=0,
            monthly_creator_message_limit=0,
        ),
    ),
    PLAN_BASIC: Plan(
        name="Basic",
        price_cents=3900,
        entitlements=Entitlements(
            can_contact_creators=True,
            can_book_creators=True,
            can_message_after_delivery=True,
            has_advanced_filters=False,
            has_crm=False,
            has_content_library=True,
            can_request_verified_badge=False,
            can_view_creator_pricing=True,
            campaign_limit=0,
            storage_limit_bytes=10 * GB,
            mass_message_limit=0,
            monthly_creator_message_limit=10,
        ),
    ),
    PLAN_PRO: Plan(
        name="Pro",
        price_cents=9900,
        entitlements=Entitlements(
            can_contact_creators=True,
            can_book_creators=True,
            can_message_after_delivery=True,
            has_advanced_filters=True,
            has_crm=True,
            has_content_library=True,
            can_request_verified_badge=True,
            can_view_creator_pricing=True,
            campaign_limit=1,
            storage_limit_bytes=10 * GB,
            mass_message_limit=50,
            monthly_creator_message_limit=50,
        ),
    ),
    PLAN_PREMIUM: Plan(
        name="Premium",
        price_cents=29900,
        entitlements=Entitlements(
            can_contact_creators=True,
            can_book_creators=True,
            can_message_after_delivery=True,
            has_advanced_filters=True,
            has_crm=True,
            has_content_library=True,
            can_request_verified_badge=True,
            can_view_creator_pricing=True,
            campaign_limit=UNLIMITED,
            storage_limit_bytes=50 * GB,
            mass_message_limit=100,
            monthly_creator_message_limit=UNLIMITED,
        ),
    ),
}


def normalize_plan_type(plan_type: str | None) -> str:
    """Fail closed: anything that is not a known plan is treated as 'none'."""
    if isinstance(plan_type, str) and plan_type.strip().lower() in VALID_PLAN_TYPES:
        return plan_type.strip().lower()
    return PLAN_NONE


def get_plan(plan_type: str | None) -> Plan:
    return PLANS[normalize_plan_type(plan_type)]


def entitlements_for(plan_type: str | None) -> Entitlements:
    return get_plan(plan_type).entitlements


def get_message_limit(plan_type: str | None) -> float:
    """Distinct creators a brand may start conversations with per month."""
    return entitlements_for(plan_type).monthly_creator_message_limit


def get_mass_message_limit(plan_type: str | None) -> float:
    """Mass-message recipients per day."""
    return entitlements_for(plan_type).mass_message_limit


def is_plan_at_least(current_plan: str | None, required_plan: str | None) -> bool:
    return PLAN_TIER_ORDER[normalize_plan_type(current_plan)] >= PLAN_TIER_ORDER[normalize_plan_type(required_plan)]


def is_plan_higher_than(plan_a: str | None, plan_b: str | None) -> bool:
    return PLAN_TIER_ORDER[normalize_plan_type(plan_a)] > PLAN_TIER_ORDER[normalize_plan_type(plan_b)]


def is_unlimited(limit: float) -> bool:
    return math.isinf(limit)


def require_entitlement(plan_type: str | None, capability: str) -> Entitlements:
    """
    Raise EntitlementDenied unless the plan grants a boolean capability.

    capability is an Entitlements field name, e.g. "can_book_creators".
    """
    ents = entitlements_for(plan_type)
    if not hasattr(ents, capability):
        raise ValueError(f"Unknown capability '{capability}'")
    if not getattr(ents, capability):
        raise EntitlementDenied(capability=capability, plan_type=normalize_plan_type(plan_type))
    return ents
