"""add group_names table

Migration table: group_schema
"""
from alembic.operations import Operations
import sqlalchemy as sa


def upgrade(op: Operations) -> None:
    op.create_table(
        "group_names",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_group_names_name"),
    )
    op.create_index("group_names_name_index", "group_names", ["name"], unique=False)


def downgrade(op: Operations) -> None:
    op.drop_index("group_names_name_index", table_name="group_names")
    op.drop_table("group_names")
