"""add revenue_recorded_at to service_orders

Revision ID: 9e4b6a1c5f33
Revises: 7d2f0b8c3e21
Create Date: 2026-10-18 10:15:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "9e4b6a1c5f33"
down_revision: Union[str, None] = "7d2f0b8c3e21"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Set once when a completed order's revenue is booked; a repeated
    # completion event finds it set and books nothing.
    op.add_column(
        "service_orders",
        sa.Column("revenue_recorded_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("service_orders", "revenue_recorded_at")
