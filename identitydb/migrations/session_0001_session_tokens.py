"""add session_tokens table

Migration table: session_schema
Depends on user_schema (user_accounts) being built first.
"""
from alembic.operations import Operations
import sqlalchemy as sa


def upgrade(op: Operations) -> None:
    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_token", sa.String(length=64), nullable=False),
        # Deleting a user logs its sessions out, it never deletes them
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("expires", sa.DateTime(), nullable=True),
        sa.Column("renewal_token", sa.String(length=64), nullable=True),
        sa.Column("renewable_until", sa.DateTime(), nullable=True),
        sa.Column("created", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user_accounts.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_token", name="uq_session_tokens_session_token"),
    )
    op.create_index("session_tokens_session_token_index", "session_tokens", ["session_token"], unique=False)
    op.create_index("ix_session_tokens_renewable_until", "session_tokens", ["renewable_until"], unique=False)


def downgrade(op: Operations) -> None:
    op.drop_index("ix_session_tokens_renewable_until", table_name="session_tokens")
    op.drop_index("session_tokens_session_token_index", table_name="session_tokens")
    op.drop_table("session_tokens")
