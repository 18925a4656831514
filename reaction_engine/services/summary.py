from sqlalchemy.orm import Session

from reaction_engine.config import settings
from reaction_engine.counters import CounterMaintainer
from reaction_engine.errors import store_errors
from reaction_engine.profiles import (
    UNKNOWN_IDENTITY,
    ProfileDirectory,
    UserProfileDirectory,
)
from reaction_engine.schemas.reaction import ReactorResponse, SummaryResponse
from reaction_engine.services.toggle import (
    parse_kind,
    parse_target_type,
    target_ref,
)
from reaction_engine.store import ReactionStore
from reaction_engine.types import KIND_ORDER, ReactionKind


def rank_kinds(counts: dict[ReactionKind, int], n: int) -> list[ReactionKind]:
    """Kinds with a positive count, highest first, ties in enumeration order."""
    present = [kind for kind, count in counts.items() if count > 0]
    present.sort(key=lambda kind: (-counts[kind], KIND_ORDER[kind]))
    return present[:n]


class SummaryReader:
    """Read side: counts, top kinds and who reacted. Takes no locks."""

    def __init__(
        self,
        db: Session,
        profiles: ProfileDirectory | None = None,
        store: ReactionStore | None = None,
        counters: CounterMaintainer | None = None,
    ):
        self.db = db
        self.profiles = profiles or UserProfileDirectory(db)
        self.store = store or ReactionStore(db)
        self.counters = counters or CounterMaintainer(db)

    def counts(self, target_type, target_id) -> dict[ReactionKind, int]:
        target = target_ref(target_type, target_id)
        with store_errors(self.db):
            return self.counters.get(target)

    def top_kinds(self, target_type, target_id, n: int | None = None):
        n = settings.TOP_KINDS if n is None else n
        return rank_kinds(self.counts(target_type, target_id), n)

    def reactors(
        self,
        target_type,
        target_id,
        kind=None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[ReactorResponse], bool]:
        """One page of reactors, newest first, and whether more follow."""
        target = target_ref(target_type, target_id)
        kind = None if kind is None else parse_kind(kind)

        with store_errors(self.db):
            reactions = self.store.list_by_target(
                target.type, target.id, kind=kind, offset=offset, limit=limit + 1
            )
            has_more = len(reactions) > limit
            reactions = reactions[:limit]
            identities = self.profiles.resolve([r.user_id for r in reactions])

        items = [
            ReactorResponse(
                user_id=reaction.user_id,
                display_identity=identities.get(reaction.user_id, UNKNOWN_IDENTITY),
                kind=reaction.kind,
                date_created=reaction.date_created,
            )
            for reaction in reactions
        ]
        return items, has_more

    def latest_reactor_name(self, target_type, target_id) -> str | None:
        items, _ = self.reactors(target_type, target_id, limit=1)
        if not items:
            return None
        return items[0].display_identity.name

    def summary(self, target_type, target_id, user_id: int | None = None):
        target = target_ref(target_type, target_id)
        return self.summaries(target.type, [target.id], user_id=user_id)[target.id]

    def summaries(
        self,
        target_type,
        target_ids: list[int],
        user_id: int | None = None,
        n: int | None = None,
    ) -> dict[int, SummaryResponse]:
        """Summaries for a page of targets with a fixed number of queries."""
        target_type = parse_target_type(target_type)
        ids = list(
            dict.fromkeys(
                target_ref(target_type, target_id).id for target_id in target_ids
            )
        )
        n = settings.TOP_KINDS if n is None else n

        with store_errors(self.db):
            counts = self.counters.get_many(target_type, ids)
            latest = self.store.latest_by_targets(target_type, ids)
            identities = self.profiles.resolve(
                [reaction.user_id for reaction in latest.values()]
            )
            mine = {}
            if user_id is not None:
                mine = self.store.kinds_for_user(user_id, target_type, ids)

        result = {}
        for target_id in ids:
            latest_name = None
            if target_id in latest:
                reactor_id = latest[target_id].user_id
                latest_name = identities.get(reactor_id, UNKNOWN_IDENTITY).name

            result[target_id] = SummaryResponse(
                counts=counts[target_id],
                top_kinds=rank_kinds(counts[target_id], n),
                total=sum(counts[target_id].values()),
                latest_reactor_name=latest_name,
                my_reaction=mine.get(target_id),
            )
        return result
