"""add user_accounts table

Migration table: user_schema
"""
from alembic.operations import Operations
import sqlalchemy as sa


def upgrade(op: Operations) -> None:
    op.create_table(
        "user_accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("username", sa.String(length=255), nullable=False),
        sa.Column("password", sa.String(length=255), nullable=True),
        sa.Column("created", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("username", name="uq_user_accounts_username"),
    )
    op.create_index("user_accounts_username_index", "user_accounts", ["username"], unique=False)


def downgrade(op: Operations) -> None:
    op.drop_index("user_accounts_username_index", table_name="user_accounts")
    op.drop_table("user_accounts")
