"""Add rule validity window and sale recalculation timestamp

Revision ID: 001_rule_validity_recalc
Revises: 000_initial_schema
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_rule_validity_recalc"
down_revision: Union[str, None] = "000_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Add valid_from/valid_until to rules and commission_recalculated_at to sales."""
    op.add_column(
        "commission_rules",
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True)
    )
    op.add_column(
        "commission_rules",
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True)
    )
    op.add_column(
        "sales",
        sa.Column("commission_recalculated_at", sa.DateTime(timezone=True), nullable=True)
    )


def downgrade() -> None:
    """Remove the rule validity window and the recalculation timestamp."""
    op.drop_column("sales", "commission_recalculated_at")
    op.drop_column("commission_rules", "valid_until")
    op.drop_column("commission_rules", "valid_from")
