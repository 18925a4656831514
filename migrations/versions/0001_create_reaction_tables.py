"""create reaction tables

Revision ID: 0001
Revises:
Create Date: 2026-10-17 12:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TARGET_TYPES = ("POST", "COMMENT")
REACTION_KINDS = ("LIKE", "LOVE", "LAUGH", "SAD", "FIRE")

target_type_enum = sa.Enum(*TARGET_TYPES, name="target_type")
reaction_kind_enum = sa.Enum(*REACTION_KINDS, name="reaction_kind")

# both tables share target_type, so the types are created once up front
target_type = target_type_enum.with_variant(
    postgresql.ENUM(*TARGET_TYPES, name="target_type", create_type=False),
    "postgresql",
)
reaction_kind = reaction_kind_enum.with_variant(
    postgresql.ENUM(*REACTION_KINDS, name="reaction_kind", create_type=False),
    "postgresql",
)


def upgrade() -> None:
    bind = op.get_bind()
    target_type_enum.create(bind, checkfirst=True)
    reaction_kind_enum.create(bind, checkfirst=True)

    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("date_created", sa.DateTime(timezone=True), nullable=False),
        sa.Column("username", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("avatar_url", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_user_id"), "user", ["id"], unique=False)

    op.create_table(
        "reaction",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("date_created", sa.DateTime(timezone=True), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("target_type", target_type, nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=False),
        sa.Column("kind", reaction_kind, nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "user_id", "target_type", "target_id", name="uq_reaction_user_target"
        ),
    )
    op.create_index(op.f("ix_reaction_id"), "reaction", ["id"], unique=False)
    op.create_index(
        "ix_reaction_target_date_created",
        "reaction",
        ["target_type", "target_id", "date_created"],
        unique=False,
    )

    op.create_table(
        "reaction_count",
        sa.Column("target_type", target_type, nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=False),
        sa.Column(
            "counts",
            sa.JSON().with_variant(postgresql.JSONB(), "postgresql"),
            nullable=False,
        ),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("target_type", "target_id"),
    )


def downgrade() -> None:
    op.drop_table("reaction_count")
    op.drop_index("ix_reaction_target_date_created", table_name="reaction")
    op.drop_index(op.f("ix_reaction_id"), table_name="reaction")
    op.drop_table("reaction")
    op.drop_index(op.f("ix_user_id"), table_name="user")
    op.drop_table("user")
    reaction_kind_enum.drop(op.get_bind(), checkfirst=True)
    target_type_enum.drop(op.get_bind(), checkfirst=True)
