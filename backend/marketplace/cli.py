# Overview: Flask CLI command groups for bootstrap, seeding, and the scheduled jobs.

# backend/marketplace/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (development; production uses flask db upgrade).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Profiles:
# - python -m flask brands create --user-id 10 --company "Acme Drinks" --email hello@acme.test
#   Create a brand profile (starts on the free 'none' tier).
# - python -m flask brands list
# - python -m flask creators create --user-id 20 --name "Jamie Creates" --email jamie@example.test
#   Create a creator profile.
#
# Subscriptions:
# - python -m flask subscriptions upgrade --brand-id 1 --plan pro [--days 30]
#   Start a paid plan (no payment processor; for seeding and support).
# - python -m flask subscriptions sweep [--now 2026-10-17T00:00:00Z]
#   Daily renewal sweep: 7/3-day reminders, expiry downgrade, win-back notices.
#
# Disputes:
# - python -m flask disputes check-deadlines [--now 2026-10-17T00:00:00Z]
#   Advisory reminders for disputes nearing or past their deadlines.

import click
from flask.cli import with_appcontext

from .errors import MarketplaceError
from .extensions import db
from .models import BrandProfile
from .services import dispute_service, profile_service, renewal_service, subscription_service
from .services.entitlements import PAID_PLAN_TYPES
from .services.notification_service import dispatch
from .time_utils import parse_iso_datetime


def _parse_now(value):
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise click.BadParameter("must be an ISO-8601 datetime", param_hint="--now")


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database ready")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete")


@click.group('brands')
def brands_group():
    """Brand profile commands."""


@brands_group.command('create')
@click.option('--user-id', type=int, required=True, help='Identity provider user ID')
@click.option('--company', 'company_name', prompt=True, help='Company name')
@click.option('--email', default=None, help='Contact email')
@with_appcontext
def create_brand_cli(user_id, company_name, email):
    try:
        brand = profile_service.create_brand_profile(user_id=user_id, company_name=company_name, email=email)
    except MarketplaceError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created brand '{brand.company_name}' (ID: {brand.id}) on plan 'none'")


@brands_group.command('list')
@with_appcontext
def list_brands_cli():
    brands = db.session.query(BrandProfile).order_by(BrandProfile.id.asc()).all()
    if not brands:
        click.echo("No brands found")
        return
    for brand in brands:
        plan_type = subscription_service.get_current_plan_type(brand.id)
        click.echo(f"{brand.id:>5}  user={brand.user_id:<8} plan={plan_type:<8} {brand.company_name}")


@click.group('creators')
def creators_group():
    """Creator profile commands."""


@creators_group.command('create')
@click.option('--user-id', type=int, required=True, help='Identity provider user ID')
@click.option('--name', 'display_name', prompt=True, help='Display name')
@click.option('--email', default=None, help='Contact email')
@with_appcontext
def create_creator_cli(user_id, display_name, email):
    try:
        creator = profile_service.create_creator_profile(user_id=user_id, display_name=display_name, email=email)
    except MarketplaceError as e:
        click.echo(f"FAIL {e.message}")
        return
    click.echo(f"PASS Created creator '{creator.display_name}' (ID: {creator.id})")


@click.group('subscriptions')
def subscriptions_group():
    """Subscription commands, including the daily renewal sweep."""


@subscriptions_group.command('upgrade')
@click.option('--brand-id', type=int, required=True, help='Brand profile ID')
@click.option('--plan', 'plan_type', type=click.Choice(sorted(PAID_PLAN_TYPES)), required=True)
@click.option('--days', 'period_days', type=int, default=subscription_service.DEFAULT_PERIOD_DAYS, show_default=True)
@with_appcontext
def upgrade_cli(brand_id, plan_type, period_days):
    try:
        result = subscription_service.start_subscription(brand_id, plan_type, period_days=period_days)
    except MarketplaceError as e:
        click.echo(f"FAIL {e.message}")
        return
    dispatch(result.notifications)
    sub = result.entity
    click.echo(f"PASS Brand {brand_id} is on '{sub.plan_type}' until {sub.current_period_end.isoformat()}")


@subscriptions_group.command('sweep')
@click.option('--now', 'now_value', default=None, help='Override the current time (ISO-8601, UTC)')
@with_appcontext
def sweep_cli(now_value):
    """Run the renewal sweep once."""
    result = renewal_service.run_renewal_sweep(now=_parse_now(now_value))
    click.echo(
        "PASS Sweep complete: "
        f"7-day={result.seven_day_reminders} 3-day={result.three_day_reminders} "
        f"expired={result.expired} winback={result.winback} failures={result.failures}"
    )


@click.group('disputes')
def disputes_group():
    """Dispute maintenance commands."""


@disputes_group.command('check-deadlines')
@click.option('--now', 'now_value', default=None, help='Override the current time (ISO-8601, UTC)')
@with_appcontext
def check_deadlines_cli(now_value):
    result = dispute_service.check_dispute_deadlines(now=_parse_now(now_value))
    click.echo(
        "PASS Checked "
        f"{result.processed} disputes: day2={result.day2_reminders} day3={result.day3_reminders} "
        f"overdue={result.overdue_notices} resolution_due={result.resolution_warnings} "
        f"failures={result.failures}"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(brands_group)
    app.cli.add_command(creators_group)
    app.cli.add_command(subscriptions_group)
    app.cli.add_command(disputes_group)
