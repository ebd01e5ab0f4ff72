from typing import Any

from fastapi import APIRouter, Depends, Query

from ..config import MATCH_HISTORY_LIMIT
from ..database import SessionLocal
from ..deps import require_admin
from ..schemas import (
    CreatePoolRequest,
    JoinPoolRequest,
    MatchResultOut,
    MatchRoundInfo,
    MemberMatchHistory,
    PoolMemberOut,
    PoolOut,
    PoolStats,
    RoundOutcomeOut,
    UpdateMembershipRequest,
    UpdatePoolRequest,
)
from ..services import pools as pool_service

router = APIRouter(dependencies=[Depends(require_admin)])


@router.post("/guilds/{guild_id}/pools", response_model=PoolOut, status_code=201)
def create_pool(guild_id: str, payload: CreatePoolRequest, created_by: str | None = Query(default=None)) -> PoolOut:
    with SessionLocal() as db:
        pool = pool_service.create_pool(db, guild_id, payload, created_by=created_by)
        db.commit()
        return PoolOut.model_validate(pool)


@router.get("/guilds/{guild_id}/pools", response_model=list[PoolOut])
def list_pools(guild_id: str) -> list[PoolOut]:
    with SessionLocal() as db:
        return [PoolOut.model_validate(p) for p in pool_service.list_guild_pools(db, guild_id)]


@router.get("/pools/{pool_id}", response_model=PoolOut)
def get_pool(pool_id: str) -> PoolOut:
    with SessionLocal() as db:
        return PoolOut.model_validate(pool_service.get_pool(db, pool_id))


@router.patch("/pools/{pool_id}", response_model=PoolOut)
def update_pool(pool_id: str, payload: UpdatePoolRequest) -> PoolOut:
    with SessionLocal() as db:
        pool = pool_service.update_pool(db, pool_id, payload)
        db.commit()
        return PoolOut.model_validate(pool)


@router.delete("/pools/{pool_id}")
def delete_pool(pool_id: str) -> dict[str, Any]:
    with SessionLocal() as db:
        pool_service.delete_pool(db, pool_id)
        db.commit()
    return {"status": "deleted", "pool_id": pool_id}


@router.post("/pools/{pool_id}/members", response_model=PoolMemberOut, status_code=201)
def join_pool(pool_id: str, payload: JoinPoolRequest) -> PoolMemberOut:
    with SessionLocal() as db:
        member = pool_service.join_pool(
            db,
            pool_id,
            member_id=payload.member_id,
            user_id=payload.user_id,
            exclusions=payload.excluded_members,
        )
        db.commit()
        return PoolMemberOut.model_validate(member)


@router.get("/pools/{pool_id}/members", response_model=list[PoolMemberOut])
def list_members(pool_id: str, include_inactive: bool = False) -> list[PoolMemberOut]:
    with SessionLocal() as db:
        pool_service.get_pool(db, pool_id)
        members = pool_service.list_pool_members(db, pool_id, include_inactive=include_inactive)
        return [PoolMemberOut.model_validate(m) for m in members]


@router.patch("/pools/{pool_id}/members/{member_id}", response_model=PoolMemberOut)
def update_membership(pool_id: str, member_id: str, payload: UpdateMembershipRequest) -> PoolMemberOut:
    with SessionLocal() as db:
        member = pool_service.update_membership(
            db,
            pool_id,
            member_id,
            active=payload.active,
            exclusions=payload.excluded_members,
        )
        db.commit()
        return PoolMemberOut.model_validate(member)


@router.delete("/pools/{pool_id}/members/{member_id}", response_model=PoolMemberOut)
def leave_pool(pool_id: str, member_id: str) -> PoolMemberOut:
    with SessionLocal() as db:
        member = pool_service.leave_pool(db, pool_id, member_id)
        db.commit()
        return PoolMemberOut.model_validate(member)


@router.get("/pools/{pool_id}/members/{member_id}/history", response_model=MemberMatchHistory)
def member_history(pool_id: str, member_id: str, days: int = Query(default=30, ge=1, le=365)) -> MemberMatchHistory:
    with SessionLocal() as db:
        return pool_service.get_member_match_history(db, pool_id, member_id, days=days)


@router.post("/pools/{pool_id}/rounds/trigger", response_model=RoundOutcomeOut)
def trigger_round(pool_id: str) -> RoundOutcomeOut:
    from .. import main as m

    outcome = m.scheduler.trigger_round_now(pool_id)
    return RoundOutcomeOut(
        pool_id=outcome.pool_id,
        round=outcome.round,
        status=outcome.status,
        match_count=outcome.match_count,
        skipped_members=outcome.skipped_members,
        error=outcome.error,
    )


@router.get("/pools/{pool_id}/rounds/{match_round}", response_model=MatchRoundInfo)
def get_round(pool_id: str, match_round: str) -> MatchRoundInfo:
    with SessionLocal() as db:
        return pool_service.get_round_info(db, pool_id, match_round)


@router.get("/pools/{pool_id}/stats", response_model=PoolStats)
def pool_stats(pool_id: str) -> PoolStats:
    with SessionLocal() as db:
        return pool_service.get_pool_stats(db, pool_id)


@router.get("/pools/{pool_id}/history", response_model=list[MatchResultOut])
def pool_history(pool_id: str, limit: int = Query(default=MATCH_HISTORY_LIMIT, ge=1, le=200)) -> list[MatchResultOut]:
    with SessionLocal() as db:
        pool_service.get_pool(db, pool_id)
        return [MatchResultOut.model_validate(m) for m in pool_service.get_match_history(db, pool_id, limit=limit)]
