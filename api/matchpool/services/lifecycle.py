import logging
from datetime import datetime, timezone

from sqlalchemy import select

from ..errors import CannotTransitionError, MatchNotFoundError, NotMatchMemberError
from ..models import MatchResult
from .events import log_match_event
from .history import as_utc

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_SCHEDULED = "scheduled"
STATUS_COMPLETED = "completed"
STATUS_SKIPPED = "skipped"

OPEN_STATUSES = (STATUS_PENDING, STATUS_SCHEDULED)
TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_SKIPPED)

_EVENT_TYPES = {
    "schedule": "match_scheduled",
    "complete": "match_completed",
    "skip": "match_skipped",
    "expire": "match_expired",
}


def transition_match_status(current: str, action: str) -> str:
    if current in TERMINAL_STATUSES:
        raise CannotTransitionError(f"match is already {current}")
    if current not in OPEN_STATUSES:
        raise CannotTransitionError(f"unknown match status {current!r}")

    if action == "schedule":
        return STATUS_SCHEDULED
    if action == "complete":
        return STATUS_COMPLETED
    if action in {"skip", "expire"}:
        return STATUS_SKIPPED

    raise CannotTransitionError(f"unknown action {action!r}")


def get_match(db, match_id: str) -> MatchResult:
    match = db.get(MatchResult, match_id)
    if match is None:
        raise MatchNotFoundError()
    return match


def require_match_member(match: MatchResult, member_id: str) -> None:
    if member_id not in (match.members or []):
        raise NotMatchMemberError()


def _apply(db, match: MatchResult, action: str, now: datetime, actor: str | None, extra: dict | None = None) -> MatchResult:
    previous = match.status
    match.status = transition_match_status(previous, action)
    match.updated_on = now
    payload = {"from": previous, "to": match.status, "actor": actor}
    payload.update(extra or {})
    log_match_event(
        db,
        pool_id=match.pool_id,
        event_type=_EVENT_TYPES[action],
        match_id=match.id,
        match_round=match.match_round,
        payload=payload,
        now=now,
    )
    return match


def schedule_match(
    db,
    match_id: str,
    member_id: str,
    scheduled_time: datetime,
    scheduled_event: str | None = None,
    now: datetime | None = None,
) -> MatchResult:
    now = now or datetime.now(timezone.utc)
    match = get_match(db, match_id)
    require_match_member(match, member_id)
    _apply(db, match, "schedule", now, member_id, {"scheduled_time": as_utc(scheduled_time).isoformat()})
    match.scheduled_time = as_utc(scheduled_time)
    if scheduled_event is not None:
        match.scheduled_event = scheduled_event
    return match


def complete_match(db, match_id: str, member_id: str, now: datetime | None = None) -> MatchResult:
    match = get_match(db, match_id)
    require_match_member(match, member_id)
    return _apply(db, match, "complete", now or datetime.now(timezone.utc), member_id)


def skip_match(db, match_id: str, member_id: str, now: datetime | None = None) -> MatchResult:
    match = get_match(db, match_id)
    require_match_member(match, member_id)
    return _apply(db, match, "skip", now or datetime.now(timezone.utc), member_id)


def update_match(
    db,
    match_id: str,
    member_id: str,
    status: str | None = None,
    scheduled_time: datetime | None = None,
    scheduled_event: str | None = None,
    now: datetime | None = None,
) -> MatchResult:
    """Generic member update: attaching a time schedules the match, then ``status`` is applied."""
    now = now or datetime.now(timezone.utc)
    match = get_match(db, match_id)
    require_match_member(match, member_id)

    if scheduled_time is not None:
        schedule_match(db, match_id, member_id, scheduled_time, scheduled_event=scheduled_event, now=now)

    if status is None:
        return match
    if status == match.status and status in OPEN_STATUSES:
        return match
    if status == STATUS_COMPLETED:
        return complete_match(db, match_id, member_id, now=now)
    if status == STATUS_SKIPPED:
        return skip_match(db, match_id, member_id, now=now)
    if status == STATUS_SCHEDULED:
        raise CannotTransitionError("scheduling a match requires scheduled_time")
    raise CannotTransitionError(f"cannot move match to {status!r}")


def expire_stale_matches(db, pool_id: str, current_round: str, now: datetime | None = None) -> int:
    """Skip open matches from earlier rounds once ``current_round`` exists for the pool."""
    now = now or datetime.now(timezone.utc)
    stale = db.execute(
        select(MatchResult)
        .where(MatchResult.pool_id == pool_id)
        .where(MatchResult.match_round != current_round)
        .where(MatchResult.status.in_(OPEN_STATUSES))
        .order_by(MatchResult.created_on, MatchResult.id)
    ).scalars().all()
    for match in stale:
        _apply(db, match, "expire", now, None, {"superseded_by": current_round})
    if stale:
        logger.info("[LIFECYCLE] pool_id=%s round=%s expired %d stale matches", pool_id, current_round, len(stale))
    return len(stale)
