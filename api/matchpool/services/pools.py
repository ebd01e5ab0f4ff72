from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select

from ..config import (
    DEFAULT_MATCH_SIZE,
    MATCH_HISTORY_LIMIT,
    MAX_ACTIVITY_SUGGESTION_LENGTH,
    MAX_EXCLUSIONS_PER_MEMBER,
    MAX_MATCH_SIZE,
    MAX_MEMBERS_PER_POOL,
    MAX_POOL_DESC_LENGTH,
    MAX_POOL_NAME_LENGTH,
    MAX_POOLS_PER_GUILD,
    MIN_MATCH_SIZE,
    POOL_FREQUENCIES,
)
from ..errors import (
    AlreadyPoolMemberError,
    ExclusionLimitReachedError,
    InvalidFrequencyError,
    InvalidMatchSizeError,
    MatchRoundNotFoundError,
    MemberPoolLimitReachedError,
    NotMatchMemberError,
    NotPoolMemberError,
    PoolHasPendingMatchesError,
    PoolLimitReachedError,
    PoolNotFoundError,
)
from ..models import MatchingPool, MatchResult, MatchRound, PoolMember
from ..schemas import (
    CreatePoolRequest,
    MatchResultOut,
    MatchRoundInfo,
    MemberMatchHistory,
    PoolStats,
    UpdatePoolRequest,
)
from .history import as_utc
from .lifecycle import OPEN_STATUSES, STATUS_COMPLETED, STATUS_PENDING, STATUS_SKIPPED
from .rounds import get_next_match_date

logger = logging.getLogger(__name__)


def is_valid_frequency(frequency: str | None) -> bool:
    return frequency in POOL_FREQUENCIES


def _validate_match_size(match_size: int) -> int:
    if match_size < MIN_MATCH_SIZE or match_size > MAX_MATCH_SIZE:
        raise InvalidMatchSizeError()
    return match_size


def _truncate(value: str | None, limit: int) -> str | None:
    if value is None:
        return None
    return value[:limit]


def normalize_exclusions(member_id: str, exclusions: list[str] | None) -> list[str]:
    """Trim, de-duplicate and drop self-exclusion, keeping first-seen order."""
    out: list[str] = []
    for raw in exclusions or []:
        value = str(raw or "").strip()
        if not value or value == member_id or value in out:
            continue
        out.append(value)
    if len(out) > MAX_EXCLUSIONS_PER_MEMBER:
        raise ExclusionLimitReachedError(f"at most {MAX_EXCLUSIONS_PER_MEMBER} exclusions per member")
    return out


def get_pool(db, pool_id: str) -> MatchingPool:
    pool = db.get(MatchingPool, pool_id)
    if pool is None:
        raise PoolNotFoundError()
    return pool


def list_guild_pools(db, guild_id: str) -> list[MatchingPool]:
    return list(
        db.execute(select(MatchingPool).where(MatchingPool.guild_id == guild_id).order_by(MatchingPool.created_on, MatchingPool.id))
        .scalars()
        .all()
    )


def create_pool(
    db,
    guild_id: str,
    request: CreatePoolRequest,
    created_by: str | None = None,
    now: datetime | None = None,
) -> MatchingPool:
    now = as_utc(now or datetime.now(timezone.utc))
    if not is_valid_frequency(request.frequency):
        raise InvalidFrequencyError()
    match_size = _validate_match_size(request.match_size or DEFAULT_MATCH_SIZE)

    count = db.execute(select(func.count()).select_from(MatchingPool).where(MatchingPool.guild_id == guild_id)).scalar_one()
    if count >= MAX_POOLS_PER_GUILD:
        raise PoolLimitReachedError()

    pool = MatchingPool(
        guild_id=guild_id,
        name=_truncate(request.name, MAX_POOL_NAME_LENGTH) or "",
        description=_truncate(request.description, MAX_POOL_DESC_LENGTH),
        frequency=request.frequency,
        match_size=match_size,
        activity_suggestion=_truncate(request.activity_suggestion, MAX_ACTIVITY_SUGGESTION_LENGTH),
        active=True,
        next_match_on=as_utc(request.first_match_on) if request.first_match_on else get_next_match_date(request.frequency, now),
        created_by=created_by,
        created_on=now,
        updated_on=now,
    )
    db.add(pool)
    db.flush()
    logger.info("[POOLS] created pool_id=%s guild_id=%s frequency=%s match_size=%d", pool.id, guild_id, pool.frequency, match_size)
    return pool


def update_pool(db, pool_id: str, request: UpdatePoolRequest, now: datetime | None = None) -> MatchingPool:
    now = as_utc(now or datetime.now(timezone.utc))
    pool = get_pool(db, pool_id)

    if request.frequency is not None and not is_valid_frequency(request.frequency):
        raise InvalidFrequencyError()
    if request.match_size is not None:
        _validate_match_size(request.match_size)

    if request.name is not None:
        pool.name = _truncate(request.name, MAX_POOL_NAME_LENGTH)
    if request.description is not None:
        pool.description = _truncate(request.description, MAX_POOL_DESC_LENGTH)
    if request.frequency is not None and request.frequency != pool.frequency:
        pool.frequency = request.frequency
        pool.next_match_on = get_next_match_date(request.frequency, now)
    if request.match_size is not None:
        pool.match_size = request.match_size
    if request.activity_suggestion is not None:
        pool.activity_suggestion = _truncate(request.activity_suggestion, MAX_ACTIVITY_SUGGESTION_LENGTH)
    if request.active is not None:
        pool.active = request.active
    pool.updated_on = now
    db.flush()
    return pool


def delete_pool(db, pool_id: str) -> None:
    pool = get_pool(db, pool_id)
    open_matches = db.execute(
        select(func.count())
        .select_from(MatchResult)
        .where(MatchResult.pool_id == pool_id)
        .where(MatchResult.status.in_(OPEN_STATUSES))
    ).scalar_one()
    if open_matches:
        raise PoolHasPendingMatchesError(f"pool has {open_matches} open matches")

    for model in (MatchResult, MatchRound, PoolMember):
        for row in db.execute(select(model).where(model.pool_id == pool_id)).scalars().all():
            db.delete(row)
    db.delete(pool)
    db.flush()
    logger.info("[POOLS] deleted pool_id=%s", pool_id)


def get_membership(db, pool_id: str, member_id: str) -> PoolMember | None:
    return db.execute(
        select(PoolMember).where(PoolMember.pool_id == pool_id).where(PoolMember.member_id == member_id)
    ).scalar_one_or_none()


def _active_member_count(db, pool_id: str) -> int:
    return db.execute(
        select(func.count()).select_from(PoolMember).where(PoolMember.pool_id == pool_id).where(PoolMember.active.is_(True))
    ).scalar_one()


def join_pool(
    db,
    pool_id: str,
    member_id: str,
    user_id: str,
    exclusions: list[str] | None = None,
    now: datetime | None = None,
) -> PoolMember:
    now = as_utc(now or datetime.now(timezone.utc))
    get_pool(db, pool_id)
    excluded = normalize_exclusions(member_id, exclusions)

    existing = get_membership(db, pool_id, member_id)
    if existing is not None and existing.active:
        raise AlreadyPoolMemberError()

    if _active_member_count(db, pool_id) >= MAX_MEMBERS_PER_POOL:
        raise MemberPoolLimitReachedError()

    if existing is not None:
        existing.active = True
        existing.user_id = user_id
        existing.excluded_members = excluded
        db.flush()
        logger.info("[POOLS] reactivated member_id=%s in pool_id=%s", member_id, pool_id)
        return existing

    member = PoolMember(
        pool_id=pool_id,
        member_id=member_id,
        user_id=user_id,
        active=True,
        excluded_members=excluded,
        joined_on=now,
    )
    db.add(member)
    db.flush()
    return member


def leave_pool(db, pool_id: str, member_id: str) -> PoolMember:
    member = get_membership(db, pool_id, member_id)
    if member is None or not member.active:
        raise NotPoolMemberError()
    member.active = False
    db.flush()
    return member


def update_membership(
    db,
    pool_id: str,
    member_id: str,
    active: bool | None = None,
    exclusions: list[str] | None = None,
) -> PoolMember:
    member = get_membership(db, pool_id, member_id)
    if member is None:
        raise NotPoolMemberError()

    if exclusions is not None:
        member.excluded_members = normalize_exclusions(member_id, exclusions)
    if active is not None and active != member.active:
        if active and _active_member_count(db, pool_id) >= MAX_MEMBERS_PER_POOL:
            raise MemberPoolLimitReachedError()
        member.active = active
    db.flush()
    return member


def list_pool_members(db, pool_id: str, include_inactive: bool = False) -> list[PoolMember]:
    query = select(PoolMember).where(PoolMember.pool_id == pool_id)
    if not include_inactive:
        query = query.where(PoolMember.active.is_(True))
    return list(db.execute(query.order_by(PoolMember.member_id)).scalars().all())


def get_round_matches(db, pool_id: str, match_round: str) -> list[MatchResult]:
    return list(
        db.execute(
            select(MatchResult)
            .where(MatchResult.pool_id == pool_id)
            .where(MatchResult.match_round == match_round)
            .order_by(MatchResult.created_on, MatchResult.id)
        )
        .scalars()
        .all()
    )


def get_round_info(db, pool_id: str, match_round: str) -> MatchRoundInfo:
    get_pool(db, pool_id)
    row = db.execute(
        select(MatchRound).where(MatchRound.pool_id == pool_id).where(MatchRound.match_round == match_round)
    ).scalar_one_or_none()
    if row is None:
        raise MatchRoundNotFoundError()
    matches = get_round_matches(db, pool_id, match_round)
    matches.sort(key=lambda m: list(m.members or []))
    return MatchRoundInfo(
        pool_id=pool_id,
        round=row.match_round,
        ran_on=as_utc(row.ran_on),
        match_count=len(matches),
        skipped_members=list(row.skipped_members or []),
        matches=[MatchResultOut.model_validate(m) for m in matches],
    )


def get_match_history(db, pool_id: str, limit: int = MATCH_HISTORY_LIMIT) -> list[MatchResult]:
    if limit <= 0:
        limit = MATCH_HISTORY_LIMIT
    return list(
        db.execute(
            select(MatchResult)
            .where(MatchResult.pool_id == pool_id)
            .order_by(MatchResult.created_on.desc(), MatchResult.id)
            .limit(limit)
        )
        .scalars()
        .all()
    )


def get_pending_matches(db, user_id: str, actor_member_id: str | None = None) -> list[dict[str, Any]]:
    """Open matches whose ``member_user_ids`` include ``user_id``, across every pool the user has joined.

    Memberships that were left still count, so a pending match is not lost when
    its member leaves the pool. When ``actor_member_id`` is given it must be one
    of the user's memberships.
    """
    memberships = db.execute(select(PoolMember).where(PoolMember.user_id == user_id)).scalars().all()
    if actor_member_id is not None and actor_member_id not in {m.member_id for m in memberships}:
        raise NotMatchMemberError("actor is not a member for this user")

    out: list[dict[str, Any]] = []
    for pool_id in sorted({m.pool_id for m in memberships}):
        pool = db.get(MatchingPool, pool_id)
        if pool is None:
            continue
        rows = db.execute(
            select(MatchResult)
            .where(MatchResult.pool_id == pool.id)
            .where(MatchResult.status == STATUS_PENDING)
            .order_by(MatchResult.created_on.desc(), MatchResult.id)
        ).scalars().all()
        for match in rows:
            user_ids = list(match.member_user_ids or [])
            if user_id not in user_ids:
                continue
            members = list(match.members or [])
            own = {members[i] for i, uid in enumerate(user_ids) if uid == user_id and i < len(members)}
            out.append(
                {
                    "match": MatchResultOut.model_validate(match).model_dump(mode="json"),
                    "pool_id": pool.id,
                    "pool_name": pool.name,
                    "guild_id": pool.guild_id,
                    "partner_ids": [m for m in members if m not in own],
                    "suggestion": pool.activity_suggestion,
                    "due_by": as_utc(pool.next_match_on).isoformat(),
                }
            )
    return out


def get_member_match_history(
    db,
    pool_id: str,
    member_id: str,
    days: int = 30,
    now: datetime | None = None,
) -> MemberMatchHistory:
    now = as_utc(now or datetime.now(timezone.utc))
    if get_membership(db, pool_id, member_id) is None:
        raise NotPoolMemberError()

    cutoff = now - timedelta(days=days)
    rows = db.execute(
        select(MatchResult)
        .where(MatchResult.pool_id == pool_id)
        .where(MatchResult.created_on > cutoff)
        .order_by(MatchResult.created_on.desc(), MatchResult.id)
    ).scalars().all()

    recent: list[MatchResult] = []
    counts: dict[str, int] = {}
    for match in rows:
        members = list(match.members or [])
        if member_id not in members:
            continue
        recent.append(match)
        for other in members:
            if other != member_id:
                counts[other] = counts.get(other, 0) + 1

    return MemberMatchHistory(
        member_id=member_id,
        recent_matches=[MatchResultOut.model_validate(m) for m in recent],
        match_counts=counts,
    )


def get_pool_stats(db, pool_id: str) -> PoolStats:
    get_pool(db, pool_id)

    def count(model, *conditions) -> int:
        query = select(func.count()).select_from(model).where(model.pool_id == pool_id)
        for condition in conditions:
            query = query.where(condition)
        return int(db.execute(query).scalar_one() or 0)

    total_members = count(PoolMember)
    active_members = count(PoolMember, PoolMember.active.is_(True))
    total_rounds = count(MatchRound)
    total_matches = count(MatchResult)
    completed = count(MatchResult, MatchResult.status == STATUS_COMPLETED)
    skipped = count(MatchResult, MatchResult.status == STATUS_SKIPPED)

    completion_rate = 0.0
    if total_matches > 0:
        completion_rate = round(100.0 * completed / total_matches, 2)

    return PoolStats(
        pool_id=pool_id,
        total_members=total_members,
        active_members=active_members,
        total_rounds=total_rounds,
        total_matches=total_matches,
        completed_matches=completed,
        skipped_matches=skipped,
        completion_rate=completion_rate,
    )
