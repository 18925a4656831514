from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB

from reaction_engine.db import Base
from reaction_engine.types import ReactionKind, TargetType


def utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "user"
    id = Column(Integer, primary_key=True, index=True)
    date_created = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    username = Column(String, nullable=False)
    name = Column(String)
    avatar_url = Column(String)


class Reaction(Base):
    __tablename__ = "reaction"
    id = Column(Integer, primary_key=True, index=True)
    # set on insert only, a kind change keeps it
    date_created = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    user_id = Column(Integer, nullable=False)
    target_type = Column(Enum(TargetType, name="target_type"), nullable=False)
    target_id = Column(Integer, nullable=False)
    kind = Column(Enum(ReactionKind, name="reaction_kind"), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "user_id", "target_type", "target_id", name="uq_reaction_user_target"
        ),
        Index(
            "ix_reaction_target_date_created",
            "target_type",
            "target_id",
            "date_created",
        ),
    )


class ReactionCount(Base):
    __tablename__ = "reaction_count"
    target_type = Column(Enum(TargetType, name="target_type"), primary_key=True)
    target_id = Column(Integer, primary_key=True)
    counts = Column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict
    )
    last_updated = Column(DateTime(timezone=True), default=utcnow, nullable=False)
