class MatchPoolError(Exception):
    """Base class for every domain error raised by the rotation engine.

    ``status_code`` is the HTTP status the API layer answers with and ``code``
    is a stable machine-readable identifier.
    """

    status_code = 400
    code = "match_pool_error"
    message = "matching pool error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)


# Validation


class InvalidMatchSizeError(MatchPoolError):
    code = "invalid_match_size"
    message = "match size must be between 2 and 6"


class InvalidFrequencyError(MatchPoolError):
    code = "invalid_frequency"
    message = "invalid frequency"


class InvalidMatchingConfigError(MatchPoolError):
    code = "invalid_matching_config"
    message = "invalid matching config"


class PoolLimitReachedError(MatchPoolError):
    status_code = 409
    code = "pool_limit_reached"
    message = "maximum pools per guild reached"


class MemberPoolLimitReachedError(MatchPoolError):
    status_code = 409
    code = "member_pool_limit_reached"
    message = "maximum members per pool reached"


class ExclusionLimitReachedError(MatchPoolError):
    code = "exclusion_limit_reached"
    message = "maximum exclusions reached"


# Lookup


class PoolNotFoundError(MatchPoolError):
    status_code = 404
    code = "pool_not_found"
    message = "pool not found"


class MatchNotFoundError(MatchPoolError):
    status_code = 404
    code = "match_not_found"
    message = "match not found"


class MatchRoundNotFoundError(MatchPoolError):
    status_code = 404
    code = "match_round_not_found"
    message = "match round not found"


class NotPoolMemberError(MatchPoolError):
    status_code = 404
    code = "not_pool_member"
    message = "not a member of this pool"


class NotMatchMemberError(MatchPoolError):
    status_code = 403
    code = "not_match_member"
    message = "not a member of this match"


# Conflict


class AlreadyPoolMemberError(MatchPoolError):
    status_code = 409
    code = "already_pool_member"
    message = "already a member of this pool"


class PoolHasPendingMatchesError(MatchPoolError):
    status_code = 409
    code = "pool_has_pending_matches"
    message = "pool still has pending matches"


# Capacity


class NotEnoughMembersError(MatchPoolError):
    status_code = 422
    code = "not_enough_members"
    message = "not enough active members to create matches"


# State


class CannotTransitionError(MatchPoolError):
    status_code = 409
    code = "cannot_transition"
    message = "match cannot transition from its current status"
