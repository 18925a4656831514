from datetime import datetime

from pydantic import BaseModel

from reaction_engine.types import ReactionKind


class ReactionCreate(BaseModel):
    # validated by the toggle service so unknown kinds map to InvalidKindError
    kind: str


class ReactionSet(BaseModel):
    kind: str | None = None


class ReactionResponse(BaseModel):
    kind: ReactionKind | None = None


class DisplayIdentity(BaseModel):
    name: str
    avatar_url: str | None = None


class ReactorResponse(BaseModel):
    user_id: int
    display_identity: DisplayIdentity
    kind: ReactionKind
    date_created: datetime


class ReactorPage(BaseModel):
    items: list[ReactorResponse]
    has_more: bool


class SummaryResponse(BaseModel):
    counts: dict[ReactionKind, int]
    top_kinds: list[ReactionKind]
    total: int
    latest_reactor_name: str | None = None
    my_reaction: ReactionKind | None = None
