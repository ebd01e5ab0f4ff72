from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Sequence

from sqlalchemy import select

from ..models import MatchResult


def canonical_pair(member_a: str, member_b: str) -> tuple[str, str]:
    return tuple(sorted((member_a, member_b)))


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MatchHistoryTracker:
    """Recency counts of co-grouped member pairs, per pool.

    The tracker is a derived view over the match_result log: ``load_history``
    rebuilds it from persisted rows, and ``record_round`` only mirrors rows the
    caller has just committed. It is never the source of truth.
    """

    def __init__(self) -> None:
        self._entries: dict[str, dict[tuple[str, str], list[datetime]]] = defaultdict(lambda: defaultdict(list))
        self._lock = threading.Lock()

    def record_round(self, pool_id: str, groups: Iterable[Sequence[str]], round_time: datetime) -> int:
        round_time = as_utc(round_time)
        recorded = 0
        with self._lock:
            pool_entries = self._entries[pool_id]
            for group in groups:
                members = sorted(set(group))
                for i in range(len(members)):
                    for j in range(i + 1, len(members)):
                        pool_entries[(members[i], members[j])].append(round_time)
                        recorded += 1
        return recorded

    def count_for(self, pool_id: str, member_a: str, member_b: str, window_days: int, now: datetime | None = None) -> int:
        now = as_utc(now or datetime.now(timezone.utc))
        window_start = now - timedelta(days=window_days)
        with self._lock:
            times = self._entries.get(pool_id, {}).get(canonical_pair(member_a, member_b), [])
            return sum(1 for t in times if window_start < t <= now)

    def prune(self, pool_id: str, older_than: datetime) -> int:
        older_than = as_utc(older_than)
        removed = 0
        with self._lock:
            pool_entries = self._entries.get(pool_id)
            if not pool_entries:
                return 0
            for pair in list(pool_entries.keys()):
                kept = [t for t in pool_entries[pair] if t > older_than]
                removed += len(pool_entries[pair]) - len(kept)
                if kept:
                    pool_entries[pair] = kept
                else:
                    del pool_entries[pair]
        return removed

    def reset(self, pool_id: str) -> None:
        with self._lock:
            self._entries.pop(pool_id, None)

    def pair_counts(self, pool_id: str, window_days: int, now: datetime) -> dict[tuple[str, str], int]:
        now = as_utc(now)
        window_start = now - timedelta(days=window_days)
        with self._lock:
            pool_entries = self._entries.get(pool_id, {})
            counts = {pair: sum(1 for t in times if window_start < t <= now) for pair, times in pool_entries.items()}
        return {pair: c for pair, c in counts.items() if c > 0}

    def lookup(self, pool_id: str, window_days: int, now: datetime) -> Callable[[str, str], int]:
        counts = self.pair_counts(pool_id, window_days, now)

        def _history(member_a: str, member_b: str) -> int:
            return counts.get(canonical_pair(member_a, member_b), 0)

        return _history


def load_history(db, pool_id: str, since: datetime, tracker: MatchHistoryTracker | None = None) -> MatchHistoryTracker:
    tracker = tracker or MatchHistoryTracker()
    rows = db.execute(
        select(MatchResult.members, MatchResult.created_on)
        .where(MatchResult.pool_id == pool_id)
        .where(MatchResult.created_on > since)
        .order_by(MatchResult.created_on)
    ).all()
    for members, created_on in rows:
        tracker.record_round(pool_id, [list(members or [])], created_on)
    return tracker
