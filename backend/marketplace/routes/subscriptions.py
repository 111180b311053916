# Overview: Flask API routes for plans, subscriptions and usage; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_principal, require_role
from ..errors import MarketplaceError, ValidationError, error_response, server_error
from ..principal import ROLE_ADMIN, ROLE_BRAND
from ..services import renewal_service, subscription_service, usage_service
from ..services.entitlements import PLAN_TIER_ORDER, PLANS
from ..services.notification_service import dispatch
from ..time_utils import parse_iso_datetime
from ..validation import parse_int


subscriptions_bp = Blueprint("subscriptions", __name__, url_prefix="/api/subscriptions")


@subscriptions_bp.get("/plans")
def list_plans_route():
    """Plan catalogue, cheapest first."""
    plans = [
        {
            "plan_type": plan_type,
            "name": plan.name,
            "price_cents": plan.price_cents,
            "entitlements": plan.entitlements.to_dict(),
        }
        for plan_type, plan in sorted(PLANS.items(), key=lambda item: PLAN_TIER_ORDER[item[0]])
    ]
    return jsonify({"plans": plans}), 200


@subscriptions_bp.get("/current")
@require_principal
@require_role(ROLE_BRAND)
def current_subscription_route():
    try:
        brand_id = g.principal.profile_id
        sub = subscription_service.get_active_subscription(brand_id)
        plan_type, ents = subscription_service.get_brand_entitlements(brand_id)
        return jsonify({
            "subscription": sub.to_dict() if sub else None,
            "plan_type": plan_type,
            "entitlements": ents.to_dict(),
        }), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to load subscription")


@subscriptions_bp.get("/usage")
@require_principal
@require_role(ROLE_BRAND)
def usage_route():
    try:
        brand_id = g.principal.profile_id
        plan_type = subscription_service.get_current_plan_type(brand_id)
        return jsonify(usage_service.get_usage_summary(brand_id, plan_type)), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to load usage")


@subscriptions_bp.get("/history")
@require_principal
@require_role(ROLE_BRAND)
def history_route():
    try:
        subs = subscription_service.list_subscription_history(g.principal.profile_id)
        return jsonify({"subscriptions": [s.to_dict() for s in subs]}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to load subscription history")


@subscriptions_bp.post("/upgrade")
@require_principal
@require_role(ROLE_BRAND)
def upgrade_route():
    """Request body: {"plan_type": "basic" | "pro" | "premium", "period_days": 30}"""
    try:
        data = request.get_json(silent=True) or {}
        period_days = data.get("period_days")
        result = subscription_service.start_subscription(
            g.principal.profile_id,
            data.get("plan_type"),
            period_days=(
                subscription_service.DEFAULT_PERIOD_DAYS
                if period_days is None
                else parse_int(period_days, "period_days")
            ),
        )
        dispatch(result.notifications)
        return jsonify({"subscription": result.entity.to_dict()}), 201
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to start subscription")


@subscriptions_bp.post("/renew")
@require_principal
@require_role(ROLE_BRAND)
def renew_route():
    try:
        sub = subscription_service.renew_subscription(g.principal.profile_id)
        return jsonify({"subscription": sub.to_dict()}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to renew subscription")


@subscriptions_bp.post("/cancel")
@require_principal
@require_role(ROLE_BRAND)
def cancel_route():
    """Request body: {"at_period_end": true}"""
    try:
        data = request.get_json(silent=True) or {}
        at_period_end = data.get("at_period_end", True)
        if not isinstance(at_period_end, bool):
            raise ValidationError("at_period_end must be true or false")
        sub = subscription_service.cancel_subscription(g.principal.profile_id, at_period_end=at_period_end)
        return jsonify({"subscription": sub.to_dict()}), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to cancel subscription")


@subscriptions_bp.post("/sweep")
@require_principal
@require_role(ROLE_ADMIN)
def sweep_route():
    """
    Run the renewal sweep now (normally triggered by the scheduler).

    Request body (optional): {"now": "2026-10-17T00:00:00Z"}
    """
    try:
        data = request.get_json(silent=True) or {}
        try:
            now = parse_iso_datetime(data.get("now"))
        except ValueError:
            raise ValidationError("now must be an ISO-8601 datetime")
        result = renewal_service.run_renewal_sweep(now=now)
        return jsonify(result.to_dict()), 200
    except MarketplaceError as e:
        return error_response(e)
    except Exception:
        return server_error("Failed to run renewal sweep")
