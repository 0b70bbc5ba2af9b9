"""holidays, user leaves and admin logs

Revision ID: 0001_initial
Revises: 
Create Date: 2025-01-06
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "public_holidays",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_manual", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_public_holidays_date", "public_holidays", ["date"], unique=True)

    op.create_table(
        "user_leaves",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("initials", sa.String(length=3), nullable=False),
        sa.Column("local_ip", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("start_date <= end_date", name="ck_user_leaves_date_range"),
    )
    op.create_index("ix_user_leaves_start_date", "user_leaves", ["start_date"], unique=False)
    op.create_index("ix_user_leaves_end_date", "user_leaves", ["end_date"], unique=False)
    op.create_index("ix_user_leaves_initials", "user_leaves", ["initials"], unique=False)

    op.create_table(
        "admin_logs",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("local_ip", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_admin_logs_action", "admin_logs", ["action"], unique=False)
    op.create_index("ix_admin_logs_created_at", "admin_logs", ["created_at"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_admin_logs_created_at", table_name="admin_logs")
    op.drop_index("ix_admin_logs_action", table_name="admin_logs")
    op.drop_table("admin_logs")

    op.drop_index("ix_user_leaves_initials", table_name="user_leaves")
    op.drop_index("ix_user_leaves_end_date", table_name="user_leaves")
    op.drop_index("ix_user_leaves_start_date", table_name="user_leaves")
    op.drop_table("user_leaves")

    op.drop_index("ix_public_holidays_date", table_name="public_holidays")
    op.drop_table("public_holidays")
