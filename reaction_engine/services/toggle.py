from typing import Callable

import structlog
from sqlalchemy.orm import Session

from reaction_engine.counters import CounterMaintainer
from reaction_engine.errors import (
    ConflictError,
    InvalidKindError,
    InvalidTargetError,
    NotFoundError,
    UnauthenticatedError,
    store_errors,
)
from reaction_engine.store import ReactionStore
from reaction_engine.types import ReactionKind, TargetRef, TargetType

logger = structlog.get_logger(__name__)


def parse_kind(kind) -> ReactionKind:
    if isinstance(kind, ReactionKind):
        return kind
    try:
        return ReactionKind(kind)
    except (ValueError, TypeError):
        raise InvalidKindError(f"Invalid reaction kind: {kind!r}") from None


def parse_target_type(target_type) -> TargetType:
    try:
        return TargetType(target_type)
    except ValueError:
        raise InvalidTargetError(f"Invalid target type: {target_type!r}") from None


def target_ref(target_type, target_id) -> TargetRef:
    try:
        target_id = int(target_id)
    except (ValueError, TypeError):
        raise InvalidTargetError(f"Invalid target id: {target_id!r}") from None
    return TargetRef(parse_target_type(target_type), target_id)


class ToggleService:
    """Decides and applies a user's reaction change on one target.

    Record and counter mutations run in one transaction while the target's
    counter lock is held, so readers never see one without the other.
    """

    def __init__(
        self,
        db: Session,
        store: ReactionStore | None = None,
        counters: CounterMaintainer | None = None,
    ):
        self.db = db
        self.store = store or ReactionStore(db)
        self.counters = counters or CounterMaintainer(db)

    def toggle(self, user_id, target_type, target_id, kind):
        """Click on `kind`: add it, switch to it, or remove it when already set.

        Returns the user's reaction kind afterwards, None when removed.
        """
        if user_id is None:
            raise UnauthenticatedError()
        requested = parse_kind(kind)
        target = target_ref(target_type, target_id)

        def decide(current):
            return None if current == requested else requested

        return self._transition(user_id, target, decide)

    def set_reaction(self, user_id, target_type, target_id, kind):
        """Move to an explicit end state; repeating the call changes nothing."""
        if user_id is None:
            raise UnauthenticatedError()
        desired = None if kind is None else parse_kind(kind)
        target = target_ref(target_type, target_id)
        return self._transition(user_id, target, lambda current: desired)

    def get_my_reaction(self, user_id, target_type, target_id):
        if user_id is None:
            return None
        target = target_ref(target_type, target_id)
        with store_errors(self.db):
            db_reaction = self.store.get(user_id, target.type, target.id)
        return db_reaction.kind if db_reaction else None

    def recount(self, target_type, target_id):
        target = target_ref(target_type, target_id)
        with store_errors(self.db):
            try:
                with self.counters.locked(target):
                    counts = self.counters.recount(target, self.store)
                    self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        return counts

    def _transition(
        self,
        user_id: int,
        target: TargetRef,
        decide: Callable[[ReactionKind | None], ReactionKind | None],
    ):
        with store_errors(self.db):
            try:
                with self.counters.locked(target):
                    db_reaction = self.store.get(user_id, target.type, target.id)
                    current = db_reaction.kind if db_reaction else None
                    desired = decide(current)
                    result = self._apply(user_id, target, current, desired)
                    self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(
            "reaction_updated",
            user_id=user_id,
            target_type=target.type.value,
            target_id=target.id,
            previous=current.value if current else None,
            kind=result.value if result else None,
        )
        return result

    def _apply(self, user_id, target, current, desired):
        if desired == current:
            return current

        if desired is None:
            try:
                self.store.delete(user_id, target.type, target.id)
            except NotFoundError:
                logger.info(
                    "reaction_already_removed",
                    user_id=user_id,
                    target_type=target.type.value,
                    target_id=target.id,
                )
                return None
            self.counters.apply_delete(target, current)
            return None

        if current is None:
            return self._insert(user_id, target, desired)
        return self._change(user_id, target, current, desired)

    def _insert(self, user_id, target, kind, retry=True):
        try:
            self.store.insert(user_id, target.type, target.id, kind)
        except ConflictError:
            db_reaction = self.store.get(user_id, target.type, target.id)
            if not retry or not db_reaction:
                raise
            return self._change(user_id, target, db_reaction.kind, kind, retry=False)

        self.counters.apply_insert(target, kind)
        return kind

    def _change(self, user_id, target, current, kind, retry=True):
        if current == kind:
            return kind

        try:
            self.store.update_kind(user_id, target.type, target.id, kind)
        except NotFoundError:
            if not retry:
                raise
            logger.info(
                "reaction_vanished_before_update",
                user_id=user_id,
                target_type=target.type.value,
                target_id=target.id,
            )
            return self._insert(user_id, target, kind, retry=False)

        self.counters.apply_change(target, current, kind)
        return kind
