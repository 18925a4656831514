from concurrent.futures import ThreadPoolExecutor
import random

from reaction_engine.services.summary import SummaryReader
from reaction_engine.services.toggle import ToggleService
from reaction_engine.store import ReactionStore
from reaction_engine.types import ReactionKind, TargetType


def test_concurrent_first_reactions_on_one_target(session_factory, users):
    clicks = [(1, "like"), (2, "like"), (3, "love")]

    def click(user_id, kind):
        with session_factory() as session:
            return ToggleService(session).toggle(user_id, "post", 99, kind)

    with ThreadPoolExecutor(max_workers=len(clicks)) as pool:
        results = list(pool.map(lambda args: click(*args), clicks))

    assert results == [ReactionKind.LIKE, ReactionKind.LIKE, ReactionKind.LOVE]
    with session_factory() as session:
        counts = SummaryReader(session).counts("post", 99)
    assert counts[ReactionKind.LIKE] == 2
    assert counts[ReactionKind.LOVE] == 1


def test_counts_match_records_after_concurrent_toggles(session_factory, users):
    rng = random.Random(34)
    kinds = [kind.value for kind in ReactionKind]
    clicks = [
        (rng.choice(users), rng.choice([1, 2]), rng.choice(kinds)) for _ in range(60)
    ]

    def click(args):
        user_id, target_id, kind = args
        with session_factory() as session:
            ToggleService(session).toggle(user_id, "post", target_id, kind)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(click, clicks))

    with session_factory() as session:
        reader = SummaryReader(session)
        store = ReactionStore(session)
        for target_id in [1, 2]:
            counts = reader.counts("post", target_id)
            actual = store.count_by_target(TargetType.POST, target_id)
            assert counts == {kind: actual.get(kind, 0) for kind in ReactionKind}
            assert sum(counts.values()) <= len(users)


def test_open_read_does_not_block_a_writer(session_factory, users):
    with session_factory() as read_session:
        assert SummaryReader(read_session).summary("post", 5).total == 0

        # the read transaction is still open while another session writes
        with session_factory() as write_session:
            kind = ToggleService(write_session).toggle(1, "post", 5, "like")
        assert kind == ReactionKind.LIKE

    with session_factory() as session:
        assert SummaryReader(session).summary("post", 5).total == 1
