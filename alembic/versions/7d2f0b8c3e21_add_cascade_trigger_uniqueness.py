"""add cascade trigger uniqueness and rule performance index

Revision ID: 7d2f0b8c3e21
Revises: 4c1e9a7b2d10
Create Date: 2026-10-06 14:30:00.000000

"""

from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

# revision identifiers, used by Alembic.
revision: str = "7d2f0b8c3e21"
down_revision: Union[str, None] = "4c1e9a7b2d10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ---------------------------------------------------------------
    # At most one live (pending or converted) trigger per customer and
    # triggered service.  Two concurrent completions can both pass the
    # in-process duplicate check; the second insert fails here.
    # ---------------------------------------------------------------
    op.create_index(
        "uq_cascade_trigger_customer_service",
        "cascade_triggers",
        ["customer_id", "triggered_service_id"],
        unique=True,
        postgresql_where=text("status IN ('pending', 'converted')"),
    )

    # Rule performance over a trailing window (outcome tracking)
    op.create_index(
        "idx_cascade_triggers_rule_triggered_at",
        "cascade_triggers",
        ["cascade_rule_id", "triggered_at"],
    )


def downgrade() -> None:
    op.drop_index(
        "idx_cascade_triggers_rule_triggered_at", table_name="cascade_triggers"
    )
    op.drop_index("uq_cascade_trigger_customer_service", table_name="cascade_triggers")
