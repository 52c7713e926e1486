"""Store seller context on sales and widen the commission rate column

Revision ID: 002_sale_context_rate
Revises: 001_rule_validity_recalc
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002_sale_context_rate"
down_revision: Union[str, None] = "001_rule_validity_recalc"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add network_size/growth_rate to sales and widen commission_rate."""
    op.add_column(
        "sales",
        sa.Column("network_size", sa.Integer(), nullable=True)
    )
    op.add_column(
        "sales",
        sa.Column("growth_rate", sa.Numeric(10, 2), nullable=True)
    )
    op.alter_column(
        "sales",
        "commission_rate",
        type_=sa.Numeric(14, 2),
        existing_type=sa.Numeric(7, 2),
        existing_nullable=True,
    )


def downgrade() -> None:
    """Drop the stored seller context and restore the narrow rate column."""
    op.alter_column(
        "sales",
        "commission_rate",
        type_=sa.Numeric(7, 2),
        existing_type=sa.Numeric(14, 2),
        existing_nullable=True,
    )
    op.drop_column("sales", "growth_rate")
    op.drop_column("sales", "network_size")
