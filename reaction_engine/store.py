from datetime import datetime

import structlog
from sqlalchemy import Select, desc, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from reaction_engine.errors import ConflictError, NotFoundError
from reaction_engine.models import Reaction, utcnow
from reaction_engine.types import ReactionKind, TargetType

logger = structlog.get_logger(__name__)


class ReactionStore:
    """Durable (user, target, kind) facts, at most one per user and target.

    All methods work inside the caller's transaction; nothing here commits.
    """

    def __init__(self, db: Session):
        self.db = db

    def _select(self, user_id: int, target_type: TargetType, target_id: int):
        return Select(Reaction).where(
            Reaction.user_id == user_id,
            Reaction.target_type == target_type,
            Reaction.target_id == target_id,
        )

    def get(self, user_id: int, target_type: TargetType, target_id: int):
        stmt = self._select(user_id, target_type, target_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def insert(
        self,
        user_id: int,
        target_type: TargetType,
        target_id: int,
        kind: ReactionKind,
        now: datetime | None = None,
    ) -> Reaction:
        new_reaction = Reaction(
            user_id=user_id,
            target_type=target_type,
            target_id=target_id,
            kind=kind,
            date_created=now or utcnow(),
        )
        try:
            # savepoint so a unique violation leaves the outer transaction usable
            with self.db.begin_nested():
                self.db.add(new_reaction)
        except IntegrityError as e:
            logger.info(
                "reaction_insert_conflict",
                user_id=user_id,
                target_type=target_type.value,
                target_id=target_id,
            )
            raise ConflictError() from e
        return new_reaction

    def update_kind(
        self,
        user_id: int,
        target_type: TargetType,
        target_id: int,
        new_kind: ReactionKind,
    ) -> Reaction:
        db_reaction = self.get(user_id, target_type, target_id)
        if not db_reaction:
            raise NotFoundError()

        db_reaction.kind = new_kind
        self.db.flush()
        return db_reaction

    def delete(self, user_id: int, target_type: TargetType, target_id: int):
        db_reaction = self.get(user_id, target_type, target_id)
        if not db_reaction:
            raise NotFoundError()

        self.db.delete(db_reaction)
        self.db.flush()
        return db_reaction

    def list_by_target(
        self,
        target_type: TargetType,
        target_id: int,
        kind: ReactionKind | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> list[Reaction]:
        """Reactions on a target, newest first by creation time."""
        stmt = Select(Reaction).where(
            Reaction.target_type == target_type,
            Reaction.target_id == target_id,
        )
        if kind is not None:
            stmt = stmt.where(Reaction.kind == kind)

        stmt = stmt.order_by(desc(Reaction.date_created), desc(Reaction.id))
        stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.db.execute(stmt).scalars())

    def count_by_target(self, target_type: TargetType, target_id: int):
        stmt = (
            Select(Reaction.kind, func.count(Reaction.id))
            .where(
                Reaction.target_type == target_type,
                Reaction.target_id == target_id,
            )
            .group_by(Reaction.kind)
        )
        return {kind: count for kind, count in self.db.execute(stmt)}

    def kinds_for_user(
        self, user_id: int, target_type: TargetType, target_ids: list[int]
    ):
        if not target_ids:
            return {}

        stmt = Select(Reaction.target_id, Reaction.kind).where(
            Reaction.user_id == user_id,
            Reaction.target_type == target_type,
            Reaction.target_id.in_(target_ids),
        )
        return {target_id: kind for target_id, kind in self.db.execute(stmt)}

    def latest_by_targets(self, target_type: TargetType, target_ids: list[int]):
        """Newest reaction of each target, in one query."""
        if not target_ids:
            return {}

        position = (
            func.row_number()
            .over(
                partition_by=Reaction.target_id,
                order_by=(desc(Reaction.date_created), desc(Reaction.id)),
            )
            .label("position")
        )
        ranked = (
            Select(Reaction.id, position)
            .where(
                Reaction.target_type == target_type,
                Reaction.target_id.in_(target_ids),
            )
            .subquery()
        )
        stmt = Select(Reaction).join(ranked, ranked.c.id == Reaction.id).where(
            ranked.c.position == 1
        )
        return {reaction.target_id: reaction for reaction in self.db.execute(stmt).scalars()}
