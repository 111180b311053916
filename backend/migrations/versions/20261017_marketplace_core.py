"""Marketplace core: profiles, subscriptions, bookings, escrow, disputes, messaging

Revision ID: 20261017_marketplace_core
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_marketplace_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "brand_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("creators_messaged_this_month", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("creators_messaged_period", sa.String(7), nullable=True),
        sa.Column("creators_messaged_reset_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("mass_messages_sent_today", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("mass_messages_period", sa.String(10), nullable=True),
        sa.Column("mass_messages_reset_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("brand_profiles", schema=None) as batch_op:
        batch_op.create_index("ix_brand_profiles_user_id", ["user_id"], unique=True)

    op.create_table(
        "creator_profiles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("creator_profiles", schema=None) as batch_op:
        batch_op.create_index("ix_creator_profiles_user_id", ["user_id"], unique=True)

    op.create_table(
        "brand_subscriptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("brand_profile_id", sa.Integer(), nullable=False),
        sa.Column("plan_type", sa.String(16), nullable=False, server_default="none"),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("current_period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancel_at_period_end", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["brand_profile_id"], ["brand_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("brand_subscriptions", schema=None) as batch_op:
        batch_op.create_index("ix_brand_subscriptions_brand_profile_id", ["brand_profile_id"], unique=False)
        batch_op.create_index("ix_brand_subscriptions_plan_type", ["plan_type"], unique=False)
        batch_op.create_index("ix_brand_subscriptions_status", ["status"], unique=False)
        batch_op.create_index("ix_brand_subscriptions_status_end", ["status", "current_period_end"], unique=False)
        batch_op.create_index(
            "uq_brand_subscriptions_one_active",
            ["brand_profile_id"],
            unique=True,
            sqlite_where=sa.text("status = 'active'"),
            postgresql_where=sa.text("status = 'active'"),
        )

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("brand_id", sa.Integer(), nullable=False),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        sa.Column("package_type", sa.String(32), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("total_price_cents", sa.Integer(), nullable=False),
        sa.Column("deposit_amount_cents", sa.Integer(), nullable=False),
        sa.Column("platform_fee_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("delivery_status", sa.String(24), nullable=False, server_default="pending"),
        sa.Column("escrow_status", sa.String(24), nullable=False, server_default="pending_deposit"),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="unpaid"),
        sa.Column("revision_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("revision_notes", sa.Text(), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_role", sa.String(16), nullable=True),
        sa.Column("cancel_reason", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint("deposit_amount_cents <= total_price_cents", name="ck_bookings_deposit_le_total"),
        sa.CheckConstraint("total_price_cents > 0", name="ck_bookings_total_positive"),
        sa.ForeignKeyConstraint(["brand_id"], ["brand_profiles.id"]),
        sa.ForeignKeyConstraint(["creator_id"], ["creator_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("bookings", schema=None) as batch_op:
        batch_op.create_index("ix_bookings_brand_id", ["brand_id"], unique=False)
        batch_op.create_index("ix_bookings_creator_id", ["creator_id"], unique=False)
        batch_op.create_index("ix_bookings_status", ["status"], unique=False)
        batch_op.create_index("ix_bookings_delivery_status", ["delivery_status"], unique=False)
        batch_op.create_index("ix_bookings_escrow_status", ["escrow_status"], unique=False)
        batch_op.create_index("ix_bookings_payment_status", ["payment_status"], unique=False)
        batch_op.create_index("ix_bookings_brand_status", ["brand_id", "status"], unique=False)
        batch_op.create_index("ix_bookings_creator_status", ["creator_id", "status"], unique=False)

    op.create_table(
        "escrow_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("amount_cents >= 0", name="ck_escrow_transactions_amount_nonneg"),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("escrow_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_escrow_transactions_booking_id", ["booking_id"], unique=False)
        batch_op.create_index("ix_escrow_transactions_transaction_type", ["transaction_type"], unique=False)
        batch_op.create_index("ix_escrow_transactions_status", ["status"], unique=False)
        batch_op.create_index("ix_escrow_transactions_created_at", ["created_at"], unique=False)
        batch_op.create_index("ix_escrow_txns_booking_type", ["booking_id", "transaction_type"], unique=False)

    op.create_table(
        "booking_disputes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("booking_id", sa.Integer(), nullable=False),
        sa.Column("opened_by_user_id", sa.Integer(), nullable=False),
        sa.Column("opened_by_role", sa.String(16), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("evidence", sa.Text(), nullable=True),
        sa.Column("status", sa.String(24), nullable=False, server_default="pending_response"),
        sa.Column("response_text", sa.Text(), nullable=True),
        sa.Column("response_submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("response_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolution_deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("escalated_to_admin", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("escalated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution", sa.String(16), nullable=True),
        sa.Column("refund_percentage", sa.Integer(), nullable=True),
        sa.Column("resolved_by_user_id", sa.Integer(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("reminder_sent_day2", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("reminder_sent_day3", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("overdue_notified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_reminder_sent", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["booking_id"], ["bookings.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("booking_disputes", schema=None) as batch_op:
        batch_op.create_index("ix_booking_disputes_booking_id", ["booking_id"], unique=False)
        batch_op.create_index("ix_booking_disputes_status", ["status"], unique=False)
        batch_op.create_index("ix_booking_disputes_booking_status", ["booking_id", "status"], unique=False)

    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("brand_id", sa.Integer(), nullable=False),
        sa.Column("creator_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["brand_id"], ["brand_profiles.id"]),
        sa.ForeignKeyConstraint(["creator_id"], ["creator_profiles.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("brand_id", "creator_id", name="uq_conversations_brand_creator"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("conversations", schema=None) as batch_op:
        batch_op.create_index("ix_conversations_brand_id", ["brand_id"], unique=False)
        batch_op.create_index("ix_conversations_creator_id", ["creator_id"], unique=False)

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("conversation_id", sa.Integer(), nullable=False),
        sa.Column("sender_user_id", sa.Integer(), nullable=False),
        sa.Column("sender_role", sa.String(16), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("is_mass_message", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["conversation_id"], ["conversations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("messages", schema=None) as batch_op:
        batch_op.create_index("ix_messages_conversation_id", ["conversation_id"], unique=False)
        batch_op.create_index("ix_messages_created_at", ["created_at"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recipient_user_id", sa.Integer(), nullable=True),
        sa.Column("recipient_role", sa.String(16), nullable=True),
        sa.Column("notification_type", sa.String(64), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(255), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.create_index("ix_notifications_recipient_user_id", ["recipient_user_id"], unique=False)
        batch_op.create_index("ix_notifications_recipient_role", ["recipient_role"], unique=False)
        batch_op.create_index("ix_notifications_notification_type", ["notification_type"], unique=False)
        batch_op.create_index("ix_notifications_recipient_read", ["recipient_user_id", "is_read"], unique=False)


def downgrade():
    op.drop_table("notifications")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("booking_disputes")
    op.drop_table("escrow_transactions")
    op.drop_table("bookings")
    op.drop_table("brand_subscriptions")
    op.drop_table("creator_profiles")
    op.drop_table("brand_profiles")
