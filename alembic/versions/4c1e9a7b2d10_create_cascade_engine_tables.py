"""create cascade engine tables

Revision ID: 4c1e9a7b2d10
Revises:
Create Date: 2026-10-05 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "4c1e9a7b2d10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk(name: str) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "services",
        _uuid_pk("service_id"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text()),
        sa.Column("service_category", sa.String(50)),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("markup_percentage", sa.Numeric(5, 2), server_default=sa.text("0")),
        sa.Column("annual_revenue_target", sa.Numeric(12, 2)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("base_price >= 0", name="ck_service_base_price"),
    )

    op.create_table(
        "customers",
        _uuid_pk("customer_id"),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(255)),
        sa.Column(
            "customer_type", sa.String(20), nullable=False, server_default="individual"
        ),
        sa.Column("business_name", sa.String(255)),
        sa.Column("credit_score", sa.Integer()),
        sa.Column("vehicle_value", sa.Numeric(12, 2)),
        sa.Column("annual_income", sa.Numeric(12, 2)),
        sa.Column(
            "journey_stage", sa.String(50), nullable=False, server_default="discovery"
        ),
        sa.Column("lifetime_value", sa.Numeric(12, 2), server_default=sa.text("0")),
        sa.Column("total_spent", sa.Numeric(12, 2), server_default=sa.text("0")),
        sa.Column("services_count", sa.Integer(), server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint(
            "credit_score IS NULL OR credit_score BETWEEN 300 AND 850",
            name="ck_customer_credit_score",
        ),
        sa.CheckConstraint(
            "customer_type IN ('individual', 'business', 'dealer')",
            name="ck_customer_type",
        ),
        sa.CheckConstraint(
            "journey_stage IN ('discovery', 'consideration', 'purchase', 'post_purchase')",
            name="ck_customer_journey_stage",
        ),
    )

    op.create_table(
        "vehicles",
        _uuid_pk("vehicle_id"),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.customer_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("make", sa.String(50), nullable=False),
        sa.Column("model", sa.String(50), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("condition", sa.String(20)),
        sa.Column("estimated_value", sa.Numeric(10, 2)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "condition IS NULL OR condition IN ('excellent', 'good', 'fair', 'poor')",
            name="ck_vehicle_condition",
        ),
    )

    op.create_table(
        "service_orders",
        _uuid_pk("order_id"),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.customer_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "service_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("services.service_id"),
            nullable=False,
        ),
        sa.Column("order_number", sa.String(30), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("base_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("final_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(10, 2), server_default=sa.text("0")),
        sa.Column("priority", sa.Integer(), server_default=sa.text("1")),
        sa.Column("cascade_depth", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("service_data", postgresql.JSONB()),
        sa.Column("notes", sa.Text()),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'completed', 'cancelled')",
            name="ck_service_order_status",
        ),
        sa.CheckConstraint("cascade_depth >= 0", name="ck_service_order_cascade_depth"),
    )
    op.create_index(
        "idx_service_orders_customer_service",
        "service_orders",
        ["customer_id", "service_id"],
    )

    op.create_table(
        "service_cascades",
        _uuid_pk("rule_id"),
        sa.Column(
            "entry_service_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("services.service_id"),
            nullable=False,
        ),
        sa.Column(
            "triggered_service_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("services.service_id"),
            nullable=False,
        ),
        sa.Column("conversion_rate", sa.Numeric(5, 4), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("conditions", postgresql.JSONB()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint(
            "conversion_rate BETWEEN 0 AND 1", name="ck_cascade_conversion_rate"
        ),
        sa.CheckConstraint("priority > 0", name="ck_cascade_priority"),
        sa.CheckConstraint(
            "entry_service_id <> triggered_service_id",
            name="ck_cascade_distinct_services",
        ),
    )

    op.create_table(
        "cascade_triggers",
        _uuid_pk("trigger_id"),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.customer_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "entry_order_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("service_orders.order_id"),
            nullable=False,
        ),
        sa.Column(
            "triggered_order_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("service_orders.order_id"),
            nullable=True,
        ),
        sa.Column(
            "cascade_rule_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("service_cascades.rule_id"),
            nullable=False,
        ),
        sa.Column(
            "triggered_service_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("services.service_id"),
            nullable=False,
        ),
        sa.Column("depth", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("converted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("triggered_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("converted_at", sa.DateTime(timezone=True)),
        sa.Column("abandoned_at", sa.DateTime(timezone=True)),
        sa.Column("failure_reason", sa.Text()),
        sa.Column("revenue_generated", sa.Numeric(10, 2), server_default=sa.text("0")),
        sa.CheckConstraint(
            "status IN ('pending', 'converted', 'abandoned')",
            name="ck_cascade_trigger_status",
        ),
        sa.CheckConstraint(
            "converted = (status = 'converted')", name="ck_cascade_trigger_converted"
        ),
    )

    op.create_table(
        "customer_journey",
        _uuid_pk("journey_id"),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.customer_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("stage", sa.String(50), nullable=False),
        sa.Column("touchpoints", postgresql.JSONB()),
        sa.Column("conversion_probability", sa.Numeric(5, 4)),
        sa.Column("next_recommended_action", sa.String(200)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("customer_journey")
    op.drop_table("cascade_triggers")
    op.drop_table("service_cascades")
    op.drop_index("idx_service_orders_customer_service", table_name="service_orders")
    op.drop_table("service_orders")
    op.drop_table("vehicles")
    op.drop_table("customers")
    op.drop_table("services")
