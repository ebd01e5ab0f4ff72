from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import DEFAULT_MATCHING_CONFIG
from .errors import InvalidMatchingConfigError


class MatchingConfig(BaseModel):
    """Trade-off knobs for one pairing run; threaded explicitly through every call."""

    model_config = ConfigDict(frozen=True)

    variety_weight: float = Field(default=DEFAULT_MATCHING_CONFIG["variety_weight"], ge=0.0, le=1.0)
    compatibility_weight: float = Field(default=DEFAULT_MATCHING_CONFIG["compatibility_weight"], ge=0.0, le=1.0)
    recency_days: int = Field(default=DEFAULT_MATCHING_CONFIG["recency_days"], ge=1)


class CreatePoolRequest(BaseModel):
    name: str = ""
    description: str | None = None
    frequency: str = "weekly"
    match_size: int | None = None
    activity_suggestion: str | None = None
    first_match_on: datetime | None = None


class UpdatePoolRequest(BaseModel):
    name: str | None = None
    description: str | None = None
    frequency: str | None = None
    match_size: int | None = None
    activity_suggestion: str | None = None
    active: bool | None = None


class JoinPoolRequest(BaseModel):
    member_id: str
    user_id: str
    excluded_members: list[str] = Field(default_factory=list)


class UpdateMembershipRequest(BaseModel):
    active: bool | None = None
    excluded_members: list[str] | None = None


class ScheduleMatchRequest(BaseModel):
    scheduled_time: datetime
    scheduled_event: str | None = None


class UpdateMatchRequest(BaseModel):
    status: str | None = None
    scheduled_time: datetime | None = None
    scheduled_event: str | None = None


class PoolOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    guild_id: str
    name: str
    description: str | None = None
    frequency: str
    match_size: int
    activity_suggestion: str | None = None
    active: bool
    next_match_on: datetime
    last_match_on: datetime | None = None


class PoolMemberOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    pool_id: str
    member_id: str
    user_id: str
    active: bool
    excluded_members: list[str] = Field(default_factory=list)


class MatchResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    pool_id: str
    members: list[str]
    member_user_ids: list[str] = Field(default_factory=list)
    status: str
    match_round: str
    scheduled_event: str | None = None
    scheduled_time: datetime | None = None
    created_on: datetime


class MatchRoundInfo(BaseModel):
    pool_id: str
    round: str
    ran_on: datetime
    match_count: int
    skipped_members: list[str] = Field(default_factory=list)
    matches: list[MatchResultOut] = Field(default_factory=list)


class PoolStats(BaseModel):
    pool_id: str
    total_members: int
    active_members: int
    total_rounds: int
    total_matches: int
    completed_matches: int
    skipped_matches: int
    completion_rate: float


class MemberMatchHistory(BaseModel):
    member_id: str
    recent_matches: list[MatchResultOut] = Field(default_factory=list)
    match_counts: dict[str, int] = Field(default_factory=dict)


class RoundOutcomeOut(BaseModel):
    pool_id: str
    round: str | None = None
    status: str
    match_count: int = 0
    skipped_members: list[str] = Field(default_factory=list)
    error: str | None = None


def build_matching_config(values: dict | None = None) -> MatchingConfig:
    try:
        return MatchingConfig(**(values or {}))
    except ValidationError as exc:
        raise InvalidMatchingConfigError(str(exc)) from exc
