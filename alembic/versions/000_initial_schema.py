"""Initial database schema

Revision ID: 000_initial_schema
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "000_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all initial tables."""

    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(100), unique=True, nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("role", sa.Enum("admin", "manager", "customer", name="userrole"), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column(
            "loyalty_tier",
            sa.Enum("lead", "silver", "gold", "platinum", name="tier"),
            server_default="lead",
            nullable=False,
        ),
        sa.Column("is_active", sa.Boolean(), default=True, nullable=False),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    # Commission settings table (versioned)
    op.create_table(
        "commission_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("base_commission_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("cashback_rate", sa.Numeric(10, 4), nullable=False),
        sa.Column("tier_multipliers", sa.JSON(), nullable=False),
        sa.Column("commission_cap", sa.Numeric(12, 2), nullable=True),
        sa.Column("minimum_active_users", sa.Integer(), nullable=False, server_default="10"),
        sa.Column("payout_threshold", sa.Numeric(12, 2), nullable=False, server_default="50.00"),
        sa.Column("payout_frequency", sa.String(20), nullable=False, server_default="monthly"),
        sa.Column("is_active", sa.Boolean(), default=True, nullable=False),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
    )
    op.create_index("ix_commission_settings_is_active", "commission_settings", ["is_active"])

    # Commission rules table
    op.create_table(
        "commission_rules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("type", sa.Enum("percentage", "fixed", name="ruletype"), nullable=False),
        sa.Column("priority", sa.Integer(), default=0, nullable=False),
        sa.Column("conditions", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), default=True, nullable=False),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("updated_by_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
    )
    op.create_index("ix_commission_rules_name", "commission_rules", ["name"])
    op.create_index("ix_commission_rules_priority", "commission_rules", ["priority"])
    op.create_index("ix_commission_rules_is_active", "commission_rules", ["is_active"])

    # Sales table
    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("sale_number", sa.String(50), unique=True, nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("liters_sold", sa.Numeric(12, 2), nullable=True),
        sa.Column("commission_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("commission_rate", sa.Numeric(7, 2), nullable=True),
        sa.Column("commission_calculated", sa.Boolean(), default=False, nullable=False),
        sa.Column("commission_tier", sa.String(20), nullable=True),
        sa.Column("commission_rule_used", sa.String(50), nullable=True),
        sa.Column(
            "commission_settings_id",
            sa.Integer(),
            sa.ForeignKey("commission_settings.id"),
            nullable=True,
        ),
        sa.Column("commission_settings_snapshot", sa.JSON(), nullable=True),
        sa.Column("cashback_earned", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), onupdate=sa.func.now()),
    )
    op.create_index("ix_sales_sale_number", "sales", ["sale_number"], unique=True)
    op.create_index("ix_sales_user_id", "sales", ["user_id"])

    # Audit logs table
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "action",
            sa.Enum(
                "login", "logout",
                "create_rule", "update_rule", "delete_rule", "toggle_rule",
                "update_settings",
                "create_sale", "create_customer", "update_customer",
                "recalculate_commissions",
                name="auditaction",
            ),
            nullable=False,
        ),
        sa.Column("target_type", sa.String(50), nullable=True),
        sa.Column("target_id", sa.Integer(), nullable=True),
        sa.Column("action_metadata", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_logs_user_id", "audit_logs", ["user_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    """Drop all tables in reverse order."""
    op.drop_table("audit_logs")
    op.drop_table("sales")
    op.drop_table("commission_rules")
    op.drop_table("commission_settings")
    op.drop_table("users")

    # Drop enums
    op.execute("DROP TYPE IF EXISTS auditaction")
    op.execute("DROP TYPE IF EXISTS ruletype")
    op.execute("DROP TYPE IF EXISTS tier")
    op.execute("DROP TYPE IF EXISTS userrole")
