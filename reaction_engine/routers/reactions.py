from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi_pagination import Params
from sqlalchemy.orm import Session

from reaction_engine.db import get_db
from reaction_engine.schemas.reaction import (
    ReactionCreate,
    ReactionResponse,
    ReactionSet,
    ReactorPage,
    SummaryResponse,
)
from reaction_engine.services.summary import SummaryReader
from reaction_engine.services.toggle import ToggleService
from reaction_engine.types import TargetType
from reaction_engine.utils.auth import get_user_id

router = APIRouter(tags=["Reaction"])

MAX_BATCH_SIZE = 100


@router.post(
    "/reactions/{target_type}/{target_id}", response_model=ReactionResponse
)
def toggle_reaction(
    target_type: TargetType,
    target_id: int,
    reaction: ReactionCreate,
    user_id: int | None = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    kind = ToggleService(db).toggle(user_id, target_type, target_id, reaction.kind)
    return {"kind": kind}


@router.put(
    "/reactions/{target_type}/{target_id}/me", response_model=ReactionResponse
)
def set_reaction(
    target_type: TargetType,
    target_id: int,
    reaction: ReactionSet,
    user_id: int | None = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    kind = ToggleService(db).set_reaction(
        user_id, target_type, target_id, reaction.kind
    )
    return {"kind": kind}


@router.get(
    "/reactions/{target_type}/{target_id}/me", response_model=ReactionResponse
)
def get_my_reaction(
    target_type: TargetType,
    target_id: int,
    user_id: int | None = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    kind = ToggleService(db).get_my_reaction(user_id, target_type, target_id)
    return {"kind": kind}


@router.get(
    "/reactions/{target_type}/summaries",
    response_model=dict[int, SummaryResponse],
)
def get_summary_batch(
    target_type: TargetType,
    ids: list[int] = Query(...),
    user_id: int | None = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    if len(ids) > MAX_BATCH_SIZE:
        raise HTTPException(status_code=422, detail="Too many targets")
    return SummaryReader(db).summaries(target_type, ids, user_id=user_id)


@router.get(
    "/reactions/{target_type}/{target_id}/summary",
    response_model=SummaryResponse,
)
def get_summary(
    target_type: TargetType,
    target_id: int,
    user_id: int | None = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    return SummaryReader(db).summary(target_type, target_id, user_id=user_id)


@router.get(
    "/reactions/{target_type}/{target_id}/reactors",
    response_model=ReactorPage,
)
def list_reactors(
    target_type: TargetType,
    target_id: int,
    kind: str | None = None,
    params: Params = Depends(),
    db: Session = Depends(get_db),
):
    items, has_more = SummaryReader(db).reactors(
        target_type,
        target_id,
        kind=kind,
        offset=(params.page - 1) * params.size,
        limit=params.size,
    )
    return {"items": items, "has_more": has_more}
