"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column("id", sa.String(length=36), primary_key=True)


def _created_at():
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _money(name, nullable=False):
    return sa.Column(name, sa.Numeric(12, 2), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("role", sa.String(length=30), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_guest", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])

    op.create_table(
        "agents",
        _id(),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("business_name", sa.String(length=200), nullable=False),
        sa.Column("business_email", sa.String(length=320), nullable=False, server_default=""),
        sa.Column("business_phone", sa.String(length=40), nullable=False, server_default=""),
        sa.Column("commission_rate", sa.Numeric(5, 2), nullable=False, server_default="15"),
        _created_at(),
    )
    op.create_index("ix_agents_user_id", "agents", ["user_id"], unique=True)

    op.create_table(
        "tours",
        _id(),
        sa.Column("agent_id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("slug", sa.String(length=220), nullable=False),
        sa.Column("destination", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("country", sa.String(length=80), nullable=False, server_default="Kenya"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
        sa.Column("duration_days", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("duration_nights", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_group_size", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        _money("base_price"),
        _money("child_price", nullable=True),
        sa.Column("free_cancellation_days", sa.Integer(), nullable=True),
        sa.Column("deposit_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deposit_percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("group_discount_threshold", sa.Integer(), nullable=True),
        sa.Column("group_discount_percent", sa.Numeric(5, 2), nullable=True),
        _created_at(),
    )
    op.create_index("ix_tours_agent_id", "tours", ["agent_id"])
    op.create_index("ix_tours_slug", "tours", ["slug"], unique=True)

    op.create_table(
        "accommodation_options",
        _id(),
        sa.Column("tour_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("tier", sa.String(length=20), nullable=False, server_default="MID_RANGE"),
        _money("price_per_night"),
        _created_at(),
    )
    op.create_index("ix_accommodation_options_tour_id", "accommodation_options", ["tour_id"])

    op.create_table(
        "activity_addons",
        _id(),
        sa.Column("tour_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        _money("price"),
        sa.Column("price_type", sa.String(length=20), nullable=False, server_default="PER_PERSON"),
        sa.Column("max_capacity", sa.Integer(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_activity_addons_tour_id", "activity_addons", ["tour_id"])

    op.create_table(
        "tour_availability",
        _id(),
        sa.Column("tour_id", sa.String(length=36), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("type", sa.String(length=12), nullable=False, server_default="AVAILABLE"),
        sa.Column("spots_available", sa.Integer(), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=False, server_default=""),
        _created_at(),
        sa.UniqueConstraint("tour_id", "date", name="uq_tour_availability_tour_date"),
    )
    op.create_index("ix_tour_availability_tour_id", "tour_availability", ["tour_id"])
    op.create_index("ix_tour_availability_date", "tour_availability", ["date"])

    op.create_table(
        "bookings",
        _id(),
        sa.Column("booking_reference", sa.String(length=24), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("tour_id", sa.String(length=36), nullable=False),
        sa.Column("agent_id", sa.String(length=36), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("adults", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("children", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("infants", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        _money("base_amount"),
        _money("accommodation_amount"),
        _money("activities_amount"),
        _money("tax_amount"),
        _money("discount_amount"),
        _money("total_amount"),
        _money("platform_commission"),
        _money("agent_earnings"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("payment_status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("payment_type", sa.String(length=10), nullable=False, server_default="FULL"),
        _money("deposit_amount", nullable=True),
        _money("balance_amount", nullable=True),
        sa.Column("balance_due_date", sa.Date(), nullable=True),
        sa.Column("contact_name", sa.String(length=200), nullable=False),
        sa.Column("contact_email", sa.String(length=320), nullable=False),
        sa.Column("contact_phone", sa.String(length=40), nullable=False),
        sa.Column("special_requests", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_bookings_booking_reference", "bookings", ["booking_reference"], unique=True)
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_tour_id", "bookings", ["tour_id"])
    op.create_index("ix_bookings_agent_id", "bookings", ["agent_id"])
    op.create_index("ix_bookings_start_date", "bookings", ["start_date"])
    op.create_index("ix_bookings_end_date", "bookings", ["end_date"])
    op.create_index("ix_bookings_status", "bookings", ["status"])

    op.create_table(
        "booking_accommodations",
        _id(),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("accommodation_option_id", sa.String(length=36), nullable=False),
        sa.Column("day_number", sa.Integer(), nullable=False),
        _money("price"),
        _created_at(),
    )
    op.create_index("ix_booking_accommodations_booking_id", "booking_accommodations", ["booking_id"])
    op.create_index("ix_booking_accommodations_accommodation_option_id", "booking_accommodations", ["accommodation_option_id"])

    op.create_table(
        "booking_activities",
        _id(),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("activity_addon_id", sa.String(length=36), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        _money("price"),
        _created_at(),
    )
    op.create_index("ix_booking_activities_booking_id", "booking_activities", ["booking_id"])
    op.create_index("ix_booking_activities_activity_addon_id", "booking_activities", ["activity_addon_id"])

    op.create_table(
        "payments",
        _id(),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        sa.Column("gateway", sa.String(length=20), nullable=False),
        sa.Column("method", sa.String(length=20), nullable=False, server_default="CARD"),
        _money("amount"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
        sa.Column("status_message", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(length=80), nullable=False),
        sa.Column("pesapal_merchant_ref", sa.String(length=80), nullable=True),
        sa.Column("pesapal_order_id", sa.String(length=80), nullable=True),
        sa.Column("pesapal_tracking_id", sa.String(length=80), nullable=True),
        sa.Column("flutterwave_ref", sa.String(length=80), nullable=True),
        sa.Column("flutterwave_tx_id", sa.String(length=40), nullable=True),
        sa.Column("card_last_four", sa.String(length=4), nullable=True),
        sa.Column("card_type", sa.String(length=30), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("ix_payments_booking_id", "payments", ["booking_id"])
    op.create_index("ix_payments_status", "payments", ["status"])
    op.create_index("ix_payments_idempotency_key", "payments", ["idempotency_key"], unique=True)
    op.create_index("ix_payments_pesapal_merchant_ref", "payments", ["pesapal_merchant_ref"])
    op.create_index("ix_payments_pesapal_order_id", "payments", ["pesapal_order_id"])
    op.create_index("ix_payments_flutterwave_ref", "payments", ["flutterwave_ref"])

    op.create_table(
        "agent_earnings",
        _id(),
        sa.Column("agent_id", sa.String(length=36), nullable=False),
        sa.Column("booking_id", sa.String(length=36), nullable=False),
        _money("amount"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("description", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("type", sa.String(length=20), nullable=False, server_default="booking"),
        _created_at(),
    )
    op.create_index("ix_agent_earnings_agent_id", "agent_earnings", ["agent_id"])
    op.create_index("ix_agent_earnings_booking_id", "agent_earnings", ["booking_id"], unique=True)

    op.create_table(
        "audit_logs",
        _id(),
        sa.Column("actor_user_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        _created_at(),
    )
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])

    op.create_table(
        "email_logs",
        _id(),
        sa.Column("to_email", sa.String(length=320), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="queued"),
        sa.Column("related_booking_ref", sa.String(length=24), nullable=False, server_default=""),
        _created_at(),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_email_logs_to_email", "email_logs", ["to_email"])


def downgrade() -> None:
    for table in (
        "email_logs",
        "audit_logs",
        "agent_earnings",
        "payments",
        "booking_activities",
        "booking_accommodations",
        "bookings",
        "tour_availability",
        "activity_addons",
        "accommodation_options",
        "tours",
        "agents",
        "users",
    ):
        op.drop_table(table)
