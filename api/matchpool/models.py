import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint

from .database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class MatchingPool(Base):
    __tablename__ = "matching_pool"

    id = Column(String(36), primary_key=True, default=_uuid)
    guild_id = Column(String, nullable=False, index=True)
    name = Column(String(100), nullable=False, default="")
    description = Column(Text, nullable=True)
    frequency = Column(String, nullable=False, default="weekly")
    match_size = Column(Integer, nullable=False, default=2)
    activity_suggestion = Column(String(200), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    next_match_on = Column(DateTime(timezone=True), nullable=False)
    last_match_on = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String, nullable=True)
    created_on = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_on = Column(DateTime(timezone=True), nullable=False, default=_now_utc, onupdate=_now_utc)

    __table_args__ = (Index("idx_matching_pool_due", "active", "next_match_on"),)


class PoolMember(Base):
    __tablename__ = "pool_member"

    id = Column(String(36), primary_key=True, default=_uuid)
    pool_id = Column(String(36), ForeignKey("matching_pool.id", ondelete="CASCADE"), nullable=False)
    member_id = Column(String, nullable=False)
    user_id = Column(String, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    excluded_members = Column(JSON, nullable=False, default=list)
    joined_on = Column(DateTime(timezone=True), nullable=False, default=_now_utc)

    __table_args__ = (
        UniqueConstraint("pool_id", "member_id", name="uq_pool_member"),
        Index("idx_pool_member_user_id", "user_id"),
    )


class MatchRound(Base):
    __tablename__ = "match_round"

    id = Column(String(36), primary_key=True, default=_uuid)
    pool_id = Column(String(36), ForeignKey("matching_pool.id", ondelete="CASCADE"), nullable=False)
    match_round = Column(String(8), nullable=False)
    ran_on = Column(DateTime(timezone=True), nullable=False)
    match_count = Column(Integer, nullable=False, default=0)
    skipped_members = Column(JSON, nullable=False, default=list)

    __table_args__ = (UniqueConstraint("pool_id", "match_round", name="uq_pool_round"),)


class MatchResult(Base):
    __tablename__ = "match_result"

    id = Column(String(36), primary_key=True, default=_uuid)
    pool_id = Column(String(36), ForeignKey("matching_pool.id", ondelete="CASCADE"), nullable=False)
    members = Column(JSON, nullable=False)
    member_user_ids = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default="pending")
    match_round = Column(String(8), nullable=False)
    scheduled_event = Column(String, nullable=True)
    scheduled_time = Column(DateTime(timezone=True), nullable=True)
    created_on = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
    updated_on = Column(DateTime(timezone=True), nullable=False, default=_now_utc, onupdate=_now_utc)

    __table_args__ = (
        Index("idx_match_result_pool_round", "pool_id", "match_round"),
        Index("idx_match_result_pool_created", "pool_id", "created_on"),
        Index("idx_match_result_status", "status"),
    )


class MatchEvent(Base):
    __tablename__ = "match_event"

    id = Column(String(36), primary_key=True, default=_uuid)
    pool_id = Column(String(36), nullable=False, index=True)
    match_id = Column(String(36), nullable=True)
    match_round = Column(String(8), nullable=True)
    event_type = Column(String, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    created_on = Column(DateTime(timezone=True), nullable=False, default=_now_utc)
