"""Collaborators the rotation engine consumes but does not own."""

import logging
from typing import Protocol

from sqlalchemy import select

from ..models import MatchResult, PoolMember

logger = logging.getLogger(__name__)


class CompatibilityProvider(Protocol):
    def score(self, user_a: str, user_b: str) -> float | None:
        """Return a 0-100 compatibility score, or None when unknown."""


class GuildMembershipProvider(Protocol):
    def active_members(self, db, pool_id: str) -> list[PoolMember]:
        ...


class NotificationDispatcher(Protocol):
    def notify_match_created(self, match: MatchResult) -> None:
        ...


class NeutralCompatibilityProvider:
    """Used when no scoring service is wired in; every pair is equally compatible."""

    def score(self, user_a: str, user_b: str) -> float | None:
        return None


class DatabaseMembershipProvider:
    def active_members(self, db, pool_id: str) -> list[PoolMember]:
        return list(
            db.execute(
                select(PoolMember)
                .where(PoolMember.pool_id == pool_id)
                .where(PoolMember.active.is_(True))
                .order_by(PoolMember.member_id)
            ).scalars().all()
        )


class LoggingNotificationDispatcher:
    def notify_match_created(self, match: MatchResult) -> None:
        logger.info(
            "[NOTIFY] match_created pool_id=%s round=%s match_id=%s members=%s",
            match.pool_id,
            match.match_round,
            match.id,
            ",".join(match.members or []),
        )
