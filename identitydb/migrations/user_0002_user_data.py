"""add user_data table

Migration table: user_schema
"""
from alembic.operations import Operations
import sqlalchemy as sa


def upgrade(op: Operations) -> None:
    op.create_table(
        "user_data",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=255), nullable=False),
        sa.Column("value", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=7), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("type IN ('string', 'number', 'boolean')", name="ck_user_data_type"),
    )
    op.create_index("ix_user_data_user_id", "user_data", ["user_id"], unique=False)


def downgrade(op: Operations) -> None:
    op.drop_index("ix_user_data_user_id", table_name="user_data")
    op.drop_table("user_data")
