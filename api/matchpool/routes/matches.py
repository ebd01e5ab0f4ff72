from typing import Any

from fastapi import APIRouter, Depends

from ..database import SessionLocal
from ..deps import require_actor_member
from ..schemas import MatchResultOut, ScheduleMatchRequest, UpdateMatchRequest
from ..services import lifecycle
from ..services.pools import get_pending_matches

router = APIRouter()


@router.get("/users/{user_id}/matches/pending")
def pending_matches(user_id: str, actor_member_id: str = Depends(require_actor_member)) -> dict[str, Any]:
    with SessionLocal() as db:
        items = get_pending_matches(db, user_id, actor_member_id=actor_member_id)
    return {"user_id": user_id, "matches": items}


@router.get("/matches/{match_id}", response_model=MatchResultOut)
def get_match(match_id: str, actor_member_id: str = Depends(require_actor_member)) -> MatchResultOut:
    with SessionLocal() as db:
        match = lifecycle.get_match(db, match_id)
        lifecycle.require_match_member(match, actor_member_id)
        return MatchResultOut.model_validate(match)


@router.patch("/matches/{match_id}", response_model=MatchResultOut)
def update_match(
    match_id: str,
    payload: UpdateMatchRequest,
    actor_member_id: str = Depends(require_actor_member),
) -> MatchResultOut:
    with SessionLocal() as db:
        match = lifecycle.update_match(
            db,
            match_id,
            actor_member_id,
            status=payload.status,
            scheduled_time=payload.scheduled_time,
            scheduled_event=payload.scheduled_event,
        )
        db.commit()
        return MatchResultOut.model_validate(match)


@router.post("/matches/{match_id}/schedule", response_model=MatchResultOut)
def schedule_match(
    match_id: str,
    payload: ScheduleMatchRequest,
    actor_member_id: str = Depends(require_actor_member),
) -> MatchResultOut:
    with SessionLocal() as db:
        match = lifecycle.schedule_match(
            db,
            match_id,
            actor_member_id,
            payload.scheduled_time,
            scheduled_event=payload.scheduled_event,
        )
        db.commit()
        return MatchResultOut.model_validate(match)


@router.post("/matches/{match_id}/complete", response_model=MatchResultOut)
def complete_match(match_id: str, actor_member_id: str = Depends(require_actor_member)) -> MatchResultOut:
    with SessionLocal() as db:
        match = lifecycle.complete_match(db, match_id, actor_member_id)
        db.commit()
        return MatchResultOut.model_validate(match)


@router.post("/matches/{match_id}/skip", response_model=MatchResultOut)
def skip_match(match_id: str, actor_member_id: str = Depends(require_actor_member)) -> MatchResultOut:
    with SessionLocal() as db:
        match = lifecycle.skip_match(db, match_id, actor_member_id)
        db.commit()
        return MatchResultOut.model_validate(match)
