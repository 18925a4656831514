import threading
from contextlib import contextmanager

import structlog
from sqlalchemy import Select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from reaction_engine.config import settings
from reaction_engine.db import begin_write
from reaction_engine.errors import StoreUnavailableError
from reaction_engine.models import ReactionCount, utcnow
from reaction_engine.types import ReactionKind, TargetRef, TargetType

logger = structlog.get_logger(__name__)


def zero_filled(counts: dict | None) -> dict[ReactionKind, int]:
    counts = counts or {}
    return {kind: int(counts.get(kind.value, 0)) for kind in ReactionKind}


class _LockEntry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class TargetLocks:
    """Process-wide mutation locks, one per target.

    Entries are reference counted and dropped once nobody holds or waits on
    them, so the map only ever contains targets with in-flight mutations.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._entries: dict[TargetRef, _LockEntry] = {}

    def __len__(self):
        return len(self._entries)

    @contextmanager
    def hold(self, target: TargetRef, timeout: float):
        with self._guard:
            entry = self._entries.get(target)
            if entry is None:
                entry = self._entries[target] = _LockEntry()
            entry.users += 1

        try:
            if not entry.lock.acquire(timeout=timeout):
                logger.warning(
                    "target_lock_timeout",
                    target_type=target.type.value,
                    target_id=target.id,
                    timeout=timeout,
                )
                raise StoreUnavailableError("Timed out waiting for target lock")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[target]


target_locks = TargetLocks()


class CounterMaintainer:
    """Sole writer of the denormalized per-target, per-kind counts.

    Mutators must run inside `locked(target)`; they change the counter row
    in the caller's transaction so record and count commit together.
    """

    def __init__(
        self,
        db: Session,
        locks: TargetLocks | None = None,
        lock_timeout: float | None = None,
    ):
        self.db = db
        self.locks = locks if locks is not None else target_locks
        self.lock_timeout = (
            settings.LOCK_TIMEOUT if lock_timeout is None else lock_timeout
        )

    @contextmanager
    def locked(self, target: TargetRef):
        with self.locks.hold(target, self.lock_timeout):
            begin_write(self.db)
            self._row_for_update(target)
            yield

    def _row_for_update(self, target: TargetRef) -> ReactionCount:
        stmt = (
            Select(ReactionCount)
            .where(
                ReactionCount.target_type == target.type,
                ReactionCount.target_id == target.id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        counter = self.db.execute(stmt).scalar_one_or_none()
        if counter:
            return counter

        counter = ReactionCount(
            target_type=target.type, target_id=target.id, counts={}
        )
        try:
            with self.db.begin_nested():
                self.db.add(counter)
        except IntegrityError:
            # another process created it first
            counter = self.db.execute(stmt).scalar_one()
        return counter

    def _apply(self, target: TargetRef, deltas: dict[ReactionKind, int]):
        counter = self._row_for_update(target)
        for kind, delta in deltas.items():
            value = counter.counts.get(kind.value, 0) + delta
            if value < 0:
                logger.warning(
                    "reaction_count_below_zero",
                    target_type=target.type.value,
                    target_id=target.id,
                    kind=kind.value,
                )
                value = 0
            counter.counts[kind.value] = value

        flag_modified(counter, "counts")
        counter.last_updated = utcnow()
        self.db.flush()
        return zero_filled(counter.counts)

    def apply_insert(self, target: TargetRef, kind: ReactionKind):
        return self._apply(target, {kind: 1})

    def apply_change(
        self, target: TargetRef, from_kind: ReactionKind, to_kind: ReactionKind
    ):
        if from_kind == to_kind:
            return self._apply(target, {})
        return self._apply(target, {from_kind: -1, to_kind: 1})

    def apply_delete(self, target: TargetRef, kind: ReactionKind):
        return self._apply(target, {kind: -1})

    def get(self, target: TargetRef) -> dict[ReactionKind, int]:
        stmt = Select(ReactionCount.counts).where(
            ReactionCount.target_type == target.type,
            ReactionCount.target_id == target.id,
        )
        return zero_filled(self.db.execute(stmt).scalar_one_or_none())

    def get_many(self, target_type: TargetType, target_ids: list[int]):
        """Counts for many targets in one query, without taking locks."""
        result = {target_id: zero_filled(None) for target_id in target_ids}
        if not target_ids:
            return result

        stmt = Select(ReactionCount.target_id, ReactionCount.counts).where(
            ReactionCount.target_type == target_type,
            ReactionCount.target_id.in_(target_ids),
        )
        for target_id, counts in self.db.execute(stmt):
            result[target_id] = zero_filled(counts)
        return result

    def recount(self, target: TargetRef, store) -> dict[ReactionKind, int]:
        """Rebuild a target's counts from its records. Call inside `locked`."""
        counter = self._row_for_update(target)
        actual = store.count_by_target(target.type, target.id)
        rebuilt = {kind.value: actual.get(kind, 0) for kind in ReactionKind}

        if zero_filled(counter.counts) != zero_filled(rebuilt):
            logger.warning(
                "reaction_count_drift",
                target_type=target.type.value,
                target_id=target.id,
                stored=counter.counts,
                actual=rebuilt,
            )

        counter.counts = rebuilt
        flag_modified(counter, "counts")
        counter.last_updated = utcnow()
        self.db.flush()
        return zero_filled(rebuilt)
