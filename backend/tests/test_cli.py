"""
CLI command tests (flask brands / creators / subscriptions / disputes).
"""

from datetime import timedelta

from marketplace.models import BrandProfile, CreatorProfile, Subscription
from marketplace.services import subscription_service
from marketplace.time_utils import to_utc_z, utcnow


class TestProfileCommands:

    def test_create_brand(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["brands", "create", "--user-id", "10", "--company", "Acme Drinks"])

        assert result.exit_code == 0
        assert "PASS Created brand 'Acme Drinks'" in result.output
        brand = db_session.query(BrandProfile).filter_by(user_id=10).one()
        assert subscription_service.get_current_plan_type(brand.id) == "none"

    def test_duplicate_brand_reports_failure(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=["brands", "create", "--user-id", "10", "--company", "Acme Drinks"])
        result = runner.invoke(args=["brands", "create", "--user-id", "10", "--company", "Acme Again"])

        assert "FAIL" in result.output
        assert db_session.query(BrandProfile).count() == 1

    def test_create_creator(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["creators", "create", "--user-id", "20", "--name", "Jamie Creates"])

        assert result.exit_code == 0
        assert db_session.query(CreatorProfile).filter_by(user_id=20).one().display_name == "Jamie Creates"

    def test_list_brands(self, app, basic_brand):
        result = app.test_cli_runner().invoke(args=["brands", "list"])
        assert "plan=basic" in result.output
        assert "Acme Drinks" in result.output


class TestSubscriptionCommands:

    def test_upgrade(self, app, db_session, free_brand):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["subscriptions", "upgrade", "--brand-id", str(free_brand.id), "--plan", "pro"])

        assert result.exit_code == 0
        assert subscription_service.get_current_plan_type(free_brand.id) == "pro"

    def test_upgrade_rejects_free_plan(self, app, db_session, free_brand):
        result = app.test_cli_runner().invoke(
            args=["subscriptions", "upgrade", "--brand-id", str(free_brand.id), "--plan", "none"]
        )
        assert result.exit_code != 0

    def test_sweep_expires_lapsed_plan(self, app, db_session, free_brand):
        now = utcnow()
        subscription_service.start_subscription(free_brand.id, "basic", period_days=30, now=now - timedelta(days=31))

        result = app.test_cli_runner().invoke(args=["subscriptions", "sweep", "--now", to_utc_z(now)])

        assert result.exit_code == 0
        assert "expired=1" in result.output
        active = db_session.query(Subscription).filter_by(brand_profile_id=free_brand.id, status="active").all()
        assert [s.plan_type for s in active] == ["none"]

    def test_sweep_bad_now(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["subscriptions", "sweep", "--now", "yesterday"])
        assert result.exit_code != 0


class TestDisputeCommands:

    def test_check_deadlines_with_nothing_open(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["disputes", "check-deadlines"])
        assert result.exit_code == 0
        assert "Checked 0 disputes" in result.output
