"""
Usage counter tests.

Verifies:
- check-and-consume never lets used exceed a finite limit
- Period rollover is evaluated on read (no reset job)
- Reads never write
- Uncapped plans never touch the counter
- A counter that cannot be written fails closed (QuotaCheckFailed)
"""

from datetime import datetime

import pytest
from sqlalchemy import Select, Update
from sqlalchemy.exc import OperationalError

from conftest import brand_principal
from marketplace.errors import NotFoundError, QuotaCheckFailed, QuotaExceeded
from marketplace.extensions import db
from marketplace.models import BrandProfile, Conversation
from marketplace.services import messaging_service, usage_service


OCT_17 = datetime(2026, 10, 17, 12, 0, 0)
OCT_31 = datetime(2026, 10, 31, 23, 59, 0)
NOV_01 = datetime(2026, 11, 1, 0, 1, 0)


class TestMonthlyCreatorMessages:

    def test_limit_minus_one_then_limit_then_rollover(self, db_session, pro_brand):
        """Pro allows 50 per month: the 50th passes, the 51st fails, a new month starts at 0."""
        for _ in range(49):
            assert usage_service.check_and_consume_message_quota(pro_brand.id, "pro", now=OCT_17).allowed
        db_session.commit()

        before = usage_service.check_message_quota(pro_brand.id, "pro", now=OCT_17)
        assert before.used == 49
        assert before.allowed is True

        fiftieth = usage_service.check_and_consume_message_quota(pro_brand.id, "pro", now=OCT_31)
        assert fiftieth.allowed is True
        assert fiftieth.used == 50

        with pytest.raises(QuotaExceeded) as exc:
            usage_service.require_message_quota(pro_brand.id, "pro", now=OCT_31)
        assert exc.value.used == 50
        assert exc.value.limit == 50
        assert usage_service.check_message_quota(pro_brand.id, "pro", now=OCT_31).used == 50

        rolled = usage_service.check_message_quota(pro_brand.id, "pro", now=NOV_01)
        assert rolled.used == 0
        assert rolled.allowed is True

        first_of_month = usage_service.check_and_consume_message_quota(pro_brand.id, "pro", now=NOV_01)
        assert first_of_month.allowed is True
        assert first_of_month.used == 1

    def test_used_never_exceeds_limit(self, db_session, basic_brand):
        results = [
            usage_service.check_and_consume_message_quota(basic_brand.id, "basic", now=OCT_17)
            for _ in range(15)
        ]
        assert sum(1 for r in results if r.allowed) == 10
        assert max(r.used for r in results) == 10

    def test_read_does_not_write(self, db_session, basic_brand):
        usage_service.check_and_consume_message_quota(basic_brand.id, "basic", now=OCT_17)
        db_session.commit()

        usage_service.check_message_quota(basic_brand.id, "basic", now=NOV_01)
        db_session.commit()

        brand = db_session.get(BrandProfile, basic_brand.id)
        db_session.refresh(brand)
        assert brand.creators_messaged_period == "2026-10"
        assert brand.creators_messaged_this_month == 1

    def test_rollover_write_records_reset(self, db_session, basic_brand):
        usage_service.check_and_consume_message_quota(basic_brand.id, "basic", now=OCT_17)
        usage_service.check_and_consume_message_quota(basic_brand.id, "basic", now=NOV_01)
        db_session.commit()

        brand = db_session.get(BrandProfile, basic_brand.id)
        db_session.refresh(brand)
        assert brand.creators_messaged_period == "2026-11"
        assert brand.creators_messaged_this_month == 1
        assert brand.creators_messaged_reset_at == NOV_01

    def test_free_plan_has_zero_quota(self, db_session, free_brand):
        check = usage_service.check_and_consume_message_quota(free_brand.id, "none", now=OCT_17)
        assert check.allowed is False
        assert check.used == 0

    def test_unlimited_plan_short_circuits(self, db_session, make_brand):
        brand = make_brand("premium")
        for _ in range(5):
            check = usage_service.check_and_consume_message_quota(brand.id, "premium", now=OCT_17)
            assert check.allowed is True
        db_session.commit()

        refreshed = db_session.get(BrandProfile, brand.id)
        db_session.refresh(refreshed)
        assert refreshed.creators_messaged_this_month == 0
        assert check.to_dict()["unlimited"] is True

    def test_unknown_brand(self, db_session):
        with pytest.raises(NotFoundError):
            usage_service.check_message_quota(999999, "basic", now=OCT_17)


class TestDailyMassMessages:

    def test_batch_is_all_or_nothing(self, db_session, pro_brand):
        assert usage_service.check_and_consume_mass_message_quota(pro_brand.id, "pro", count=45, now=OCT_17).allowed

        too_many = usage_service.check_and_consume_mass_message_quota(pro_brand.id, "pro", count=10, now=OCT_17)
        assert too_many.allowed is False
        assert too_many.used == 45

        assert usage_service.check_and_consume_mass_message_quota(pro_brand.id, "pro", count=5, now=OCT_17).allowed
        with pytest.raises(QuotaExceeded):
            usage_service.require_mass_message_quota(pro_brand.id, "pro", count=1, now=OCT_17)

    def test_next_day_starts_at_zero(self, db_session, pro_brand):
        usage_service.check_and_consume_mass_message_quota(pro_brand.id, "pro", count=50, now=OCT_17)
        next_day = datetime(2026, 10, 18, 0, 0, 1)
        assert usage_service.check_mass_message_quota(pro_brand.id, "pro", now=next_day).used == 0
        assert usage_service.check_and_consume_mass_message_quota(pro_brand.id, "pro", count=50, now=next_day).allowed

    def test_mass_usage_does_not_touch_monthly_counter(self, db_session, pro_brand):
        usage_service.check_and_consume_mass_message_quota(pro_brand.id, "pro", count=3, now=OCT_17)
        assert usage_service.check_message_quota(pro_brand.id, "pro", now=OCT_17).used == 0

    def test_count_must_be_positive(self, db_session, pro_brand):
        with pytest.raises(ValueError):
            usage_service.check_and_consume_mass_message_quota(pro_brand.id, "pro", count=0, now=OCT_17)


class TestUsageSummary:

    def test_summary_shape(self, db_session, basic_brand):
        usage_service.check_and_consume_message_quota(basic_brand.id, "basic", now=OCT_17)
        summary = usage_service.get_usage_summary(basic_brand.id, "basic", now=OCT_17)
        assert summary["plan_type"] == "basic"
        assert summary["monthly_creator_messages"] == {
            "allowed": True,
            "used": 1,
            "limit": 10,
            "remaining": 9,
            "unlimited": False,
        }
        assert summary["daily_mass_messages"]["limit"] == 0
        assert summary["daily_mass_messages"]["allowed"] is False


class TestCounterStoreFailure:

    def _fail_on(self, monkeypatch, statement_type):
        real_execute = db.session.execute

        def failing_execute(statement, *args, **kwargs):
            if isinstance(statement, statement_type):
                raise OperationalError(str(statement), {}, Exception("database is locked"))
            return real_execute(statement, *args, **kwargs)

        monkeypatch.setattr(db.session, "execute", failing_execute)

    def test_failed_counter_update_blocks_new_conversation(self, db_session, basic_brand, creator, monkeypatch):
        self._fail_on(monkeypatch, Update)

        with pytest.raises(QuotaCheckFailed) as exc:
            messaging_service.start_conversation(brand_principal(basic_brand), creator.id, "Hello")
        monkeypatch.undo()

        assert exc.value.retryable is True
        assert not isinstance(exc.value, QuotaExceeded)
        assert db_session.query(Conversation).count() == 0
        assert db_session.get(BrandProfile, basic_brand.id).creators_messaged_this_month == 0

    def test_failed_counter_read(self, db_session, basic_brand, monkeypatch):
        self._fail_on(monkeypatch, Select)

        with pytest.raises(QuotaCheckFailed) as exc:
            usage_service.check_message_quota(basic_brand.id, "basic", now=OCT_17)
        assert exc.value.retryable is True
