"""
HTTP API tests.

Verifies:
- Requests without identity headers return 401
- Role gates return 403
- Domain errors surface as typed JSON (code, retryable)
- The booking and dispute flows work end to end over REST
- Notification failures never undo a transition
- Ledger invariant violations reach clients only as a generic 500
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import ADMIN, brand_principal, creator_principal, delivered_booking, principal_headers
from marketplace.errors import LedgerInvariantViolation
from marketplace.models import Booking, EscrowTransaction, Notification
from marketplace.services import booking_service, escrow_ledger, notification_service


REASON = "The delivered video does not show the product at all, which was the whole brief."
RESPONSE = "The product appears at 0:42 and 1:15 as agreed in our messages before filming began."


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/bookings"),
            ("POST", "/api/bookings"),
            ("POST", "/api/bookings/1/confirm"),
            ("GET", "/api/disputes"),
            ("POST", "/api/disputes"),
            ("GET", "/api/subscriptions/current"),
            ("POST", "/api/subscriptions/sweep"),
            ("GET", "/api/messages/conversations"),
            ("GET", "/api/notifications"),
        ],
    )
    def test_requires_identity(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_brand_without_profile_id(self, client, db_session):
        resp = client.get("/api/bookings", headers={"X-User-Id": "5", "X-User-Role": "brand"})
        assert resp.status_code == 401

    def test_unknown_role(self, client, db_session):
        resp = client.get("/api/bookings", headers={"X-User-Id": "5", "X-User-Role": "root"})
        assert resp.status_code == 401


# =============================================================================
# PUBLIC & SYSTEM
# =============================================================================


class TestPublicEndpoints:

    def test_plans_catalogue(self, client, db_session):
        resp = client.get("/api/subscriptions/plans")
        assert resp.status_code == 200
        plans = resp.get_json()["plans"]
        assert [p["plan_type"] for p in plans] == ["none", "basic", "pro", "premium"]
        assert plans[3]["entitlements"]["monthly_creator_message_limit"] is None

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert set(body["checks"]) == {"database", "scheduled_jobs"}

    def test_version(self, client, db_session):
        resp = client.get("/version")
        assert resp.status_code == 200
        assert resp.get_json()["api_version"]


# =============================================================================
# ROLE GATES (403)
# =============================================================================


class TestRoleGates:

    def test_creator_cannot_create_booking(self, client, creator):
        resp = client.post(
            "/api/bookings",
            json={"creator_id": creator.id, "package_type": "custom", "total_price_cents": 1000},
            headers=principal_headers(creator_principal(creator)),
        )
        assert resp.status_code == 403
        assert resp.get_json()["required_roles"] == ["brand"]

    def test_brand_cannot_run_sweep(self, client, basic_brand):
        resp = client.post("/api/subscriptions/sweep", headers=principal_headers(brand_principal(basic_brand)))
        assert resp.status_code == 403

    def test_admin_runs_sweep(self, client, db_session):
        resp = client.post("/api/subscriptions/sweep", json={}, headers=principal_headers(ADMIN))
        assert resp.status_code == 200
        assert resp.get_json()["failures"] == 0


# =============================================================================
# BOOKINGS
# =============================================================================


class TestBookingApi:

    def test_free_plan_gets_entitlement_error(self, client, free_brand, creator):
        resp = client.post(
            "/api/bookings",
            json={"creator_id": creator.id, "package_type": "unbox_review", "total_price_cents": 10000},
            headers=principal_headers(brand_principal(free_brand)),
        )
        assert resp.status_code == 403
        body = resp.get_json()
        assert body["code"] == "ENTITLEMENT_DENIED"
        assert body["capability"] == "can_book_creators"
        assert body["retryable"] is False

    def test_validation_errors(self, client, basic_brand, creator):
        headers = principal_headers(brand_principal(basic_brand))
        resp = client.post(
            "/api/bookings",
            json={"creator_id": creator.id, "package_type": "custom", "total_price_cents": 10.5},
            headers=headers,
        )
        assert resp.status_code == 400

        resp = client.post(
            "/api/bookings",
            json={"creator_id": creator.id, "package_type": "custom", "total_price_cents": 100, "status": "completed"},
            headers=headers,
        )
        assert resp.status_code == 400
        assert "status" in resp.get_json()["error"]

    def test_end_to_end(self, client, basic_brand, creator):
        brand_h = principal_headers(brand_principal(basic_brand))
        creator_h = principal_headers(creator_principal(creator))

        resp = client.post(
            "/api/bookings",
            json={
                "creator_id": creator.id,
                "package_type": "unbox_review",
                "total_price_cents": 10000,
                "deposit_amount_cents": 3000,
                "event_date": "2026-11-01T18:00:00Z",
            },
            headers=brand_h,
        )
        assert resp.status_code == 201
        booking_id = resp.get_json()["booking"]["id"]
        assert resp.get_json()["escrow"]["pending_deposit_amount"] == 3000
        assert resp.get_json()["booking"]["event_date"] == "2026-11-01T18:00:00Z"

        assert client.post(f"/api/bookings/{booking_id}/pay-deposit", headers=brand_h).status_code == 200
        assert client.post(f"/api/bookings/{booking_id}/accept", headers=creator_h).status_code == 200
        assert client.post(f"/api/bookings/{booking_id}/start", headers=creator_h).status_code == 200
        assert client.post(f"/api/bookings/{booking_id}/deliver", headers=creator_h).status_code == 200

        resp = client.post(f"/api/bookings/{booking_id}/confirm", json={}, headers=brand_h)
        assert resp.status_code == 200
        assert resp.get_json()["booking"]["status"] == "completed"

        resp = client.get(f"/api/bookings/{booking_id}/escrow", headers=creator_h)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["summary"]["release_amount"] == 7000
        assert sorted(t["transaction_type"] for t in body["transactions"]) == ["deposit", "release"]

        # The creator was told about the request
        resp = client.get("/api/notifications", headers=creator_h)
        types = [n["notification_type"] for n in resp.get_json()["notifications"]]
        assert "booking_requested" in types
        assert "delivery_confirmed" in types

    def test_stale_version_returns_409(self, client, basic_brand, creator):
        brand_h = principal_headers(brand_principal(basic_brand))
        creator_h = principal_headers(creator_principal(creator))
        resp = client.post(
            "/api/bookings",
            json={"creator_id": creator.id, "package_type": "custom", "total_price_cents": 5000},
            headers=brand_h,
        )
        booking = resp.get_json()["booking"]

        assert client.post(f"/api/bookings/{booking['id']}/accept", headers=creator_h).status_code == 200
        resp = client.post(
            f"/api/bookings/{booking['id']}/cancel",
            json={"expected_version": booking["version_id"]},
            headers=brand_h,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "CONCURRENCY_CONFLICT"
        assert resp.get_json()["retryable"] is True

    def test_other_brand_cannot_see_booking(self, client, basic_brand, make_brand, creator):
        resp = client.post(
            "/api/bookings",
            json={"creator_id": creator.id, "package_type": "custom", "total_price_cents": 5000},
            headers=principal_headers(brand_principal(basic_brand)),
        )
        booking_id = resp.get_json()["booking"]["id"]
        other = make_brand("basic")
        resp = client.get(f"/api/bookings/{booking_id}", headers=principal_headers(brand_principal(other)))
        assert resp.status_code == 404


# =============================================================================
# DISPUTES
# =============================================================================


class TestDisputeApi:

    def _delivered(self, client, brand, creator):
        brand_h = principal_headers(brand_principal(brand))
        creator_h = principal_headers(creator_principal(creator))
        resp = client.post(
            "/api/bookings",
            json={
                "creator_id": creator.id,
                "package_type": "social_boost",
                "total_price_cents": 10000,
                "deposit_amount_cents": 3000,
            },
            headers=brand_h,
        )
        booking_id = resp.get_json()["booking"]["id"]
        client.post(f"/api/bookings/{booking_id}/pay-deposit", headers=brand_h)
        client.post(f"/api/bookings/{booking_id}/accept", headers=creator_h)
        client.post(f"/api/bookings/{booking_id}/deliver", headers=creator_h)
        return booking_id, brand_h, creator_h

    def test_dispute_refund_flow(self, client, basic_brand, creator):
        booking_id, brand_h, creator_h = self._delivered(client, basic_brand, creator)
        admin_h = principal_headers(ADMIN)

        resp = client.post("/api/disputes", json={"booking_id": booking_id, "reason": REASON}, headers=brand_h)
        assert resp.status_code == 201
        dispute_id = resp.get_json()["dispute"]["id"]

        resp = client.post(f"/api/bookings/{booking_id}/confirm", headers=brand_h)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "DISPUTE_ACTIVE"

        resp = client.post(f"/api/disputes/{dispute_id}/respond", json={"response_text": RESPONSE}, headers=creator_h)
        assert resp.status_code == 200
        assert resp.get_json()["dispute"]["status"] == "pending_admin_review"

        resp = client.post(
            f"/api/disputes/{dispute_id}/resolve",
            json={"resolution": "refund", "admin_notes": "Brief not met"},
            headers=admin_h,
        )
        assert resp.status_code == 200
        assert resp.get_json()["dispute"]["status"] == "resolved"

        resp = client.post(f"/api/disputes/{dispute_id}/resolve", json={"resolution": "release"}, headers=admin_h)
        assert resp.status_code == 409

        resp = client.get(f"/api/bookings/{booking_id}/escrow", headers=brand_h)
        summary = resp.get_json()["summary"]
        assert summary["refund_amount"] == 3000
        assert summary["release_amount"] == 0
        assert summary["status"] == "refunded"

        resp = client.get("/api/notifications", headers=admin_h)
        assert any(n["notification_type"] == "dispute_opened" for n in resp.get_json()["notifications"])

    def test_party_cannot_resolve(self, client, basic_brand, creator):
        booking_id, brand_h, _ = self._delivered(client, basic_brand, creator)
        resp = client.post("/api/disputes", json={"booking_id": booking_id, "reason": REASON}, headers=brand_h)
        dispute_id = resp.get_json()["dispute"]["id"]
        resp = client.post(f"/api/disputes/{dispute_id}/resolve", json={"resolution": "refund"}, headers=brand_h)
        assert resp.status_code == 403


# =============================================================================
# SUBSCRIPTIONS & MESSAGING
# =============================================================================


class TestSubscriptionApi:

    def test_upgrade_then_usage(self, client, free_brand):
        headers = principal_headers(brand_principal(free_brand))

        resp = client.get("/api/subscriptions/current", headers=headers)
        assert resp.get_json()["plan_type"] == "none"

        resp = client.post("/api/subscriptions/upgrade", json={"plan_type": "pro"}, headers=headers)
        assert resp.status_code == 201

        resp = client.get("/api/subscriptions/current", headers=headers)
        body = resp.get_json()
        assert body["plan_type"] == "pro"
        assert body["entitlements"]["has_crm"] is True

        resp = client.get("/api/subscriptions/usage", headers=headers)
        assert resp.get_json()["daily_mass_messages"]["limit"] == 50

        resp = client.get("/api/subscriptions/history", headers=headers)
        assert [s["plan_type"] for s in resp.get_json()["subscriptions"]] == ["pro", "none"]

    def test_upgrade_to_unknown_plan(self, client, free_brand):
        resp = client.post(
            "/api/subscriptions/upgrade",
            json={"plan_type": "platinum"},
            headers=principal_headers(brand_principal(free_brand)),
        )
        assert resp.status_code == 400


class TestMessagingApi:

    def test_quota_exceeded_is_429(self, client, basic_brand, make_creator):
        headers = principal_headers(brand_principal(basic_brand))
        creators = [make_creator() for _ in range(11)]
        for c in creators[:10]:
            resp = client.post("/api/messages/conversations", json={"creator_id": c.id, "body": "Hi"}, headers=headers)
            assert resp.status_code == 201

        resp = client.post(
            "/api/messages/conversations",
            json={"creator_id": creators[10].id, "body": "Hi"},
            headers=headers,
        )
        assert resp.status_code == 429
        body = resp.get_json()
        assert body["code"] == "QUOTA_EXCEEDED"
        assert body["used"] == 10
        assert body["limit"] == 10


# =============================================================================
# FAILURE DOMAINS
# =============================================================================


def _failing_deliver(intent):
    raise SQLAlchemyError("notifications table unavailable")


class TestNotificationFailures:

    def test_dispatch_failure_keeps_confirmed_booking(self, db_session, basic_brand, creator, monkeypatch):
        booking_id = delivered_booking(basic_brand, creator)
        monkeypatch.setattr(notification_service, "_deliver", _failing_deliver)

        result = booking_service.confirm_delivery(brand_principal(basic_brand), booking_id)
        assert notification_service.dispatch(result.notifications) == 0

        booking = db_session.get(Booking, booking_id)
        assert booking.status == "completed"
        releases = db_session.query(EscrowTransaction).filter_by(booking_id=booking_id, transaction_type="release").all()
        assert [r.amount_cents for r in releases] == [7000]
        assert db_session.query(Notification).filter_by(notification_type="delivery_confirmed").count() == 0

    def test_confirm_route_succeeds_without_notifications(self, client, basic_brand, creator, monkeypatch):
        booking_id = delivered_booking(basic_brand, creator)
        monkeypatch.setattr(notification_service, "_deliver", _failing_deliver)

        resp = client.post(
            f"/api/bookings/{booking_id}/confirm",
            headers=principal_headers(brand_principal(basic_brand)),
        )
        assert resp.status_code == 200
        assert resp.get_json()["booking"]["status"] == "completed"


class TestLedgerViolationResponse:

    def test_violation_is_opaque_to_client(self, client, db_session, basic_brand, creator, monkeypatch):
        booking_id = delivered_booking(basic_brand, creator)

        def rejecting_release(booking, amount_cents, *, note=None):
            raise LedgerInvariantViolation(
                "Release would exceed the contracted balance",
                booking_id=booking.id,
                amount_cents=amount_cents,
            )

        monkeypatch.setattr(escrow_ledger, "record_release", rejecting_release)
        resp = client.post(
            f"/api/bookings/{booking_id}/confirm",
            headers=principal_headers(brand_principal(basic_brand)),
        )

        assert resp.status_code == 500
        body = resp.get_json()
        assert body["error"] == "Internal server error"
        assert set(body) == {"error", "reference"}
        assert db_session.get(Booking, booking_id).status == "accepted"
