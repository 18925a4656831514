import threading

import pytest

from reaction_engine.counters import CounterMaintainer, TargetLocks, zero_filled
from reaction_engine.errors import StoreUnavailableError
from reaction_engine.models import ReactionCount
from reaction_engine.store import ReactionStore
from reaction_engine.types import ReactionKind, TargetRef, TargetType

TARGET = TargetRef(TargetType.POST, 7)


def test_zero_filled_covers_every_kind():
    counts = zero_filled({"like": 2})
    assert list(counts) == list(ReactionKind)
    assert counts[ReactionKind.LIKE] == 2
    assert counts[ReactionKind.FIRE] == 0


def test_unknown_target_reads_as_zeros(db):
    counters = CounterMaintainer(db)
    assert counters.get(TARGET) == zero_filled(None)
    assert counters.get_many(TargetType.POST, [1, 2]) == {
        1: zero_filled(None),
        2: zero_filled(None),
    }


def test_apply_insert_change_delete(db):
    counters = CounterMaintainer(db)
    with counters.locked(TARGET):
        counters.apply_insert(TARGET, ReactionKind.LIKE)
        counters.apply_insert(TARGET, ReactionKind.LIKE)
        counters.apply_change(TARGET, ReactionKind.LIKE, ReactionKind.SAD)
        counts = counters.apply_delete(TARGET, ReactionKind.LIKE)
        db.commit()

    assert counts[ReactionKind.LIKE] == 0
    assert counts[ReactionKind.SAD] == 1
    assert counters.get(TARGET) == counts


def test_apply_change_same_kind_is_a_no_op(db):
    counters = CounterMaintainer(db)
    with counters.locked(TARGET):
        counters.apply_insert(TARGET, ReactionKind.LOVE)
        counts = counters.apply_change(TARGET, ReactionKind.LOVE, ReactionKind.LOVE)
        db.commit()
    assert counts[ReactionKind.LOVE] == 1


def test_counts_floor_at_zero(db):
    counters = CounterMaintainer(db)
    with counters.locked(TARGET):
        counts = counters.apply_delete(TARGET, ReactionKind.LAUGH)
        db.commit()
    assert counts[ReactionKind.LAUGH] == 0


def test_recount_repairs_drift(db):
    store = ReactionStore(db)
    counters = CounterMaintainer(db)
    store.insert(1, TARGET.type, TARGET.id, ReactionKind.LIKE)
    store.insert(2, TARGET.type, TARGET.id, ReactionKind.FIRE)
    db.add(
        ReactionCount(
            target_type=TARGET.type, target_id=TARGET.id, counts={"like": 5, "sad": 2}
        )
    )
    db.commit()

    with counters.locked(TARGET):
        counts = counters.recount(TARGET, store)
        db.commit()

    assert counts[ReactionKind.LIKE] == 1
    assert counts[ReactionKind.FIRE] == 1
    assert counts[ReactionKind.SAD] == 0
    assert counters.get(TARGET) == counts


def test_target_locks_are_released_and_dropped():
    locks = TargetLocks()
    with locks.hold(TARGET, timeout=1):
        assert len(locks) == 1
    assert len(locks) == 0


def test_lock_timeout_raises_store_unavailable():
    locks = TargetLocks()
    held = threading.Event()
    release = threading.Event()

    def holder():
        with locks.hold(TARGET, timeout=1):
            held.set()
            release.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    assert held.wait(5)
    try:
        with pytest.raises(StoreUnavailableError):
            with locks.hold(TARGET, timeout=0.05):
                pass
    finally:
        release.set()
        thread.join()

    assert len(locks) == 0


def test_other_targets_are_not_blocked():
    locks = TargetLocks()
    other = TargetRef(TargetType.COMMENT, 7)
    with locks.hold(TARGET, timeout=1):
        with locks.hold(other, timeout=0.05):
            assert len(locks) == 2
