from __future__ import annotations

import calendar
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..config import DEFAULT_MATCHING_CONFIG, ROUND_TICK_DEADLINE_SECONDS, ROUND_WORKERS
from ..database import SessionLocal
from ..errors import PoolNotFoundError
from ..models import MatchEvent, MatchingPool, MatchResult, MatchRound
from ..schemas import MatchingConfig, build_matching_config
from .events import log_match_event
from .history import MatchHistoryTracker, as_utc, load_history
from .lifecycle import STATUS_PENDING, expire_stale_matches
from .pairing import RoundMember, generate_round
from .providers import (
    CompatibilityProvider,
    DatabaseMembershipProvider,
    GuildMembershipProvider,
    LoggingNotificationDispatcher,
    NeutralCompatibilityProvider,
    NotificationDispatcher,
)

logger = logging.getLogger(__name__)

OUTCOME_CREATED = "created"
OUTCOME_ALREADY_GENERATED = "already_generated"
OUTCOME_SKIPPED_CAPACITY = "skipped_capacity"
OUTCOME_NOT_DUE = "not_due"
OUTCOME_DEFERRED = "deferred"
OUTCOME_ERROR = "error"


def get_match_round(value: datetime | date) -> str:
    """ISO-8601 week key, e.g. ``2025-W01``. Used verbatim as the idempotency key."""
    if isinstance(value, datetime):
        value = as_utc(value)
    iso_year, iso_week, _ = value.isocalendar()
    return f"{iso_year:04d}-W{iso_week:02d}"


def _add_one_month(value: datetime) -> datetime:
    year, month = (value.year + 1, 1) if value.month == 12 else (value.year, value.month + 1)
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def get_next_match_date(frequency: str, from_time: datetime) -> datetime:
    if frequency == "biweekly":
        return from_time + timedelta(days=14)
    if frequency == "monthly":
        return _add_one_month(from_time)
    return from_time + timedelta(days=7)


@dataclass
class RoundOutcome:
    pool_id: str
    round: str | None
    status: str
    match_count: int = 0
    skipped_members: list[str] = field(default_factory=list)
    match_ids: list[str] = field(default_factory=list)
    error: str | None = None


class RoundScheduler:
    """Runs due pool rounds idempotently.

    Pools are processed independently and may run concurrently on a bounded
    thread pool. Work for one pool is serialized by a per-pool lock; the
    ``(pool_id, match_round)`` unique key on ``match_round`` backs that up
    across processes.
    """

    def __init__(
        self,
        session_factory=None,
        config: MatchingConfig | None = None,
        compatibility: CompatibilityProvider | None = None,
        membership: GuildMembershipProvider | None = None,
        notifier: NotificationDispatcher | None = None,
        max_workers: int = ROUND_WORKERS,
        history: MatchHistoryTracker | None = None,
    ) -> None:
        self.session_factory = session_factory or SessionLocal
        self.config = config or build_matching_config(DEFAULT_MATCHING_CONFIG)
        self.compatibility = compatibility or NeutralCompatibilityProvider()
        self.membership = membership or DatabaseMembershipProvider()
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.max_workers = max(1, int(max_workers))
        self.history = history or MatchHistoryTracker()
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _pool_lock(self, pool_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(pool_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[pool_id] = lock
            return lock

    def _compatibility_lookup(self, a: RoundMember, b: RoundMember) -> float | None:
        try:
            return self.compatibility.score(a.user_id, b.user_id)
        except Exception:
            logger.warning(
                "[ROUNDS] compatibility lookup failed for users %s/%s; using neutral score",
                a.user_id,
                b.user_id,
                exc_info=True,
            )
            return None

    def due_pool_ids(self, now: datetime) -> list[str]:
        with self.session_factory() as db:
            return list(
                db.execute(
                    select(MatchingPool.id)
                    .where(MatchingPool.active.is_(True))
                    .where(MatchingPool.next_match_on <= now)
                    .order_by(MatchingPool.next_match_on, MatchingPool.id)
                ).scalars().all()
            )

    def run_due_rounds(self, now: datetime | None = None, deadline_seconds: float | None = ROUND_TICK_DEADLINE_SECONDS) -> list[RoundOutcome]:
        now = as_utc(now or datetime.now(timezone.utc))
        pool_ids = self.due_pool_ids(now)
        if not pool_ids:
            return []

        logger.info("[ROUNDS] %d pools due for matching at %s", len(pool_ids), now.isoformat())
        deadline = time.monotonic() + deadline_seconds if deadline_seconds is not None else None

        if self.max_workers == 1 or len(pool_ids) == 1:
            return [self._run_pool_safely(pool_id, now, deadline) for pool_id in pool_ids]

        by_pool: dict[str, RoundOutcome] = {}
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pool_ids))) as executor:
            future_to_pool = {executor.submit(self._run_pool_safely, pool_id, now, deadline): pool_id for pool_id in pool_ids}
            for future in as_completed(future_to_pool):
                by_pool[future_to_pool[future]] = future.result()
        return [by_pool[pool_id] for pool_id in pool_ids]

    def trigger_round_now(self, pool_id: str, now: datetime | None = None) -> RoundOutcome:
        """Administrative override for one pool; the round key comes from ``now``."""
        now = as_utc(now or datetime.now(timezone.utc))
        return self.run_pool_round(pool_id, now, scheduled=False)

    def _run_pool_safely(self, pool_id: str, now: datetime, deadline: float | None) -> RoundOutcome:
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning("[ROUNDS] pool_id=%s deferred to next tick: tick deadline passed", pool_id)
            return RoundOutcome(pool_id=pool_id, round=None, status=OUTCOME_DEFERRED)
        try:
            return self.run_pool_round(pool_id, now, scheduled=True)
        except Exception as exc:
            logger.exception("[ROUNDS] pool_id=%s round generation failed", pool_id)
            return RoundOutcome(pool_id=pool_id, round=None, status=OUTCOME_ERROR, error=str(exc))

    def run_pool_round(self, pool_id: str, now: datetime, scheduled: bool = True) -> RoundOutcome:
        with self._pool_lock(pool_id):
            with self.session_factory() as db:
                pool = db.get(MatchingPool, pool_id)
                if pool is None:
                    raise PoolNotFoundError()

                if scheduled and (not pool.active or as_utc(pool.next_match_on) > now):
                    return RoundOutcome(pool_id=pool_id, round=None, status=OUTCOME_NOT_DUE)

                round_id = get_match_round(pool.next_match_on if scheduled else now)

                existing = db.execute(
                    select(MatchRound).where(MatchRound.pool_id == pool_id).where(MatchRound.match_round == round_id)
                ).scalar_one_or_none()
                if existing is not None:
                    return self._finish_existing_round(db, pool, existing, now)

                members = self.membership.active_members(db, pool_id)
                if len(members) < pool.match_size:
                    logger.warning(
                        "[ROUNDS] pool_id=%s round=%s skipped: %d active members, match_size=%d",
                        pool_id,
                        round_id,
                        len(members),
                        pool.match_size,
                    )
                    already_logged = db.execute(
                        select(MatchEvent.id)
                        .where(MatchEvent.pool_id == pool_id)
                        .where(MatchEvent.event_type == "capacity_skip")
                        .where(MatchEvent.match_round == round_id)
                        .limit(1)
                    ).first()
                    if already_logged is None:
                        log_match_event(
                            db,
                            pool_id=pool_id,
                            event_type="capacity_skip",
                            match_round=round_id,
                            payload={"active_members": len(members), "match_size": pool.match_size},
                            now=now,
                        )
                        db.commit()
                    return RoundOutcome(pool_id=pool_id, round=round_id, status=OUTCOME_SKIPPED_CAPACITY)

                return self._create_round(db, pool, members, round_id, now)

    def _finish_existing_round(self, db, pool: MatchingPool, existing: MatchRound, now: datetime) -> RoundOutcome:
        advanced = False
        if pool.active and as_utc(pool.next_match_on) <= now:
            pool.last_match_on = existing.ran_on
            pool.next_match_on = get_next_match_date(pool.frequency, now)
            db.commit()
            advanced = True
        logger.info(
            "[ROUNDS] pool_id=%s round=%s already generated (timestamps_advanced=%s)",
            pool.id,
            existing.match_round,
            advanced,
        )
        return RoundOutcome(
            pool_id=pool.id,
            round=existing.match_round,
            status=OUTCOME_ALREADY_GENERATED,
            match_count=int(existing.match_count or 0),
            skipped_members=list(existing.skipped_members or []),
        )

    def _create_round(self, db, pool: MatchingPool, members: list, round_id: str, now: datetime) -> RoundOutcome:
        pool_id = pool.id
        roster = [RoundMember(m.member_id, m.user_id, frozenset(m.excluded_members or [])) for m in members]
        user_ids = {m.member_id: m.user_id for m in members}

        self.history.reset(pool_id)
        load_history(db, pool_id, since=now - timedelta(days=self.config.recency_days), tracker=self.history)
        assignment = generate_round(
            pool.match_size,
            roster,
            self.config,
            compatibility_lookup=self._compatibility_lookup,
            history_lookup=self.history.lookup(pool_id, self.config.recency_days, now),
        )

        matches: list[MatchResult] = []
        try:
            db.add(
                MatchRound(
                    id=str(uuid.uuid4()),
                    pool_id=pool_id,
                    match_round=round_id,
                    ran_on=now,
                    match_count=len(assignment.groups),
                    skipped_members=list(assignment.skipped),
                )
            )
            db.flush()
            for group in assignment.groups:
                match = MatchResult(
                    id=str(uuid.uuid4()),
                    pool_id=pool_id,
                    members=list(group),
                    member_user_ids=[user_ids[m] for m in group],
                    status=STATUS_PENDING,
                    match_round=round_id,
                    created_on=now,
                    updated_on=now,
                )
                db.add(match)
                matches.append(match)
            expired = expire_stale_matches(db, pool_id, round_id, now=now)
            pool.last_match_on = now
            pool.next_match_on = get_next_match_date(pool.frequency, now)
            log_match_event(
                db,
                pool_id=pool_id,
                event_type="round_created",
                match_round=round_id,
                payload={
                    "match_count": len(matches),
                    "skipped_members": list(assignment.skipped),
                    "expired_matches": expired,
                },
                now=now,
            )
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info("[ROUNDS] pool_id=%s round=%s created concurrently elsewhere; treating as generated", pool_id, round_id)
            return RoundOutcome(pool_id=pool_id, round=round_id, status=OUTCOME_ALREADY_GENERATED)

        self.history.record_round(pool_id, assignment.groups, now)
        self.history.prune(pool_id, older_than=now - timedelta(days=self.config.recency_days))

        logger.info(
            "[ROUNDS] pool_id=%s round=%s created %d matches, skipped %d members",
            pool_id,
            round_id,
            len(matches),
            len(assignment.skipped),
        )

        for match in matches:
            try:
                self.notifier.notify_match_created(match)
            except Exception:
                logger.exception("[ROUNDS] pool_id=%s round=%s notification failed for match_id=%s", pool_id, round_id, match.id)

        return RoundOutcome(
            pool_id=pool_id,
            round=round_id,
            status=OUTCOME_CREATED,
            match_count=len(matches),
            skipped_members=list(assignment.skipped),
            match_ids=[m.id for m in matches],
        )
