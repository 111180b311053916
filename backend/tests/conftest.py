"""
Pytest fixtures for marketplace backend tests.

Provides test database setup, brand/creator/admin principals, and test client.
"""

import pytest

from marketplace import create_app
from marketplace.extensions import db
from marketplace.principal import Principal, ROLE_ADMIN, ROLE_BRAND, ROLE_CREATOR
from marketplace.services import booking_service, profile_service, subscription_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# PROFILES
# =============================================================================


@pytest.fixture(scope='function')
def make_brand(db_session):
    """Factory: brand profile on the given plan ('none' = free tier only)."""
    counter = {"n": 0}

    def _make(plan_type="none", company_name=None):
        counter["n"] += 1
        brand = profile_service.create_brand_profile(
            user_id=1000 + counter["n"],
            company_name=company_name or f"Brand {counter['n']}",
            email=f"brand{counter['n']}@example.test",
        )
        if plan_type != "none":
            subscription_service.start_subscription(brand.id, plan_type)
        return brand

    return _make


@pytest.fixture(scope='function')
def make_creator(db_session):
    """Factory: creator profile."""
    counter = {"n": 0}

    def _make(display_name=None):
        counter["n"] += 1
        return profile_service.create_creator_profile(
            user_id=2000 + counter["n"],
            display_name=display_name or f"Creator {counter['n']}",
        )

    return _make


@pytest.fixture(scope='function')
def free_brand(make_brand):
    return make_brand("none", company_name="Free Brand Co")


@pytest.fixture(scope='function')
def basic_brand(make_brand):
    return make_brand("basic", company_name="Acme Drinks")


@pytest.fixture(scope='function')
def pro_brand(make_brand):
    return make_brand("pro", company_name="Pro Outfitters")


@pytest.fixture(scope='function')
def creator(make_creator):
    return make_creator("Jamie Creates")


# =============================================================================
# PRINCIPALS
# =============================================================================


def brand_principal(brand) -> Principal:
    return Principal(user_id=brand.user_id, role=ROLE_BRAND, profile_id=brand.id)


def creator_principal(creator) -> Principal:
    return Principal(user_id=creator.user_id, role=ROLE_CREATOR, profile_id=creator.id)


ADMIN = Principal(user_id=9000, role=ROLE_ADMIN)


@pytest.fixture(scope='function')
def admin():
    return ADMIN


def principal_headers(principal: Principal) -> dict:
    """Helper to create identity gateway headers."""
    headers = {
        'X-User-Id': str(principal.user_id),
        'X-User-Role': principal.role,
    }
    if principal.profile_id is not None:
        headers['X-Profile-Id'] = str(principal.profile_id)
    return headers


# =============================================================================
# BOOKINGS
# =============================================================================


def create_booking(brand, creator, *, total=10000, deposit=3000, package_type="unbox_review"):
    """Helper: brand requests a booking; returns the booking id."""
    result = booking_service.create_booking(
        brand_principal(brand),
        creator_id=creator.id,
        package_type=package_type,
        total_price_cents=total,
        deposit_amount_cents=deposit,
    )
    return result.entity.id


def delivered_booking(brand, creator, *, total=10000, deposit=3000, pay=True):
    """Helper: booking accepted and delivered (deposit paid unless pay=False)."""
    booking_id = create_booking(brand, creator, total=total, deposit=deposit)
    if pay:
        booking_service.pay_deposit(brand_principal(brand), booking_id)
    booking_service.accept_booking(creator_principal(creator), booking_id)
    booking_service.start_work(creator_principal(creator), booking_id)
    booking_service.submit_delivery(creator_principal(creator), booking_id)
    return booking_id
