from datetime import timedelta

import pytest

from matchpool import config
from matchpool.errors import (
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
from matchpool.models import MatchingPool, MatchResult, MatchRound
from matchpool.schemas import CreatePoolRequest, UpdatePoolRequest
from matchpool.services import pools
from matchpool.services.history import as_utc

from conftest import add_members, add_pool


def test_create_pool_defaults_and_first_round_date(db, now):
    pool = pools.create_pool(db, "g1", CreatePoolRequest(name="Coffee chats"), created_by="admin", now=now)

    assert pool.match_size == 2
    assert pool.frequency == "weekly"
    assert pool.active is True
    assert as_utc(pool.next_match_on) == now + timedelta(days=7)
    assert pool.created_by == "admin"


def test_create_pool_honours_first_match_on_and_truncates_text(db, now):
    first = now + timedelta(days=2)
    request = CreatePoolRequest(
        name="x" * 150,
        description="d" * 600,
        frequency="monthly",
        match_size=4,
        activity_suggestion="s" * 300,
        first_match_on=first,
    )
    pool = pools.create_pool(db, "g1", request, now=now)

    assert as_utc(pool.next_match_on) == first
    assert len(pool.name) == 100
    assert len(pool.description) == 500
    assert len(pool.activity_suggestion) == 200


@pytest.mark.parametrize("size", [1, 7, -2])
def test_create_pool_rejects_match_size_out_of_range(db, now, size):
    with pytest.raises(InvalidMatchSizeError):
        pools.create_pool(db, "g1", CreatePoolRequest(match_size=size), now=now)


def test_create_pool_rejects_unknown_frequency(db, now):
    with pytest.raises(InvalidFrequencyError):
        pools.create_pool(db, "g1", CreatePoolRequest(frequency="daily"), now=now)


def test_guild_pool_limit(db, now, monkeypatch):
    monkeypatch.setattr(pools, "MAX_POOLS_PER_GUILD", 2)
    pools.create_pool(db, "g1", CreatePoolRequest(name="one"), now=now)
    pools.create_pool(db, "g1", CreatePoolRequest(name="two"), now=now)
    with pytest.raises(PoolLimitReachedError):
        pools.create_pool(db, "g1", CreatePoolRequest(name="three"), now=now)
    pools.create_pool(db, "g2", CreatePoolRequest(name="other guild"), now=now)


def test_update_pool_frequency_recomputes_next_round(db, now):
    pool = pools.create_pool(db, "g1", CreatePoolRequest(), now=now)
    later = now + timedelta(days=1)

    updated = pools.update_pool(db, pool.id, UpdatePoolRequest(frequency="biweekly", match_size=3, active=False), now=later)

    assert updated.frequency == "biweekly"
    assert as_utc(updated.next_match_on) == later + timedelta(days=14)
    assert updated.match_size == 3
    assert updated.active is False

    with pytest.raises(InvalidMatchSizeError):
        pools.update_pool(db, pool.id, UpdatePoolRequest(match_size=9), now=later)
    with pytest.raises(PoolNotFoundError):
        pools.update_pool(db, "missing", UpdatePoolRequest(name="x"), now=later)


def test_delete_pool_blocked_by_open_matches(db, now):
    add_pool(db, "p1")
    add_members(db, "p1", ["A", "B"])
    db.add(MatchResult(id="m1", pool_id="p1", members=["A", "B"], member_user_ids=[], status="scheduled", match_round="2025-W11"))
    db.flush()

    with pytest.raises(PoolHasPendingMatchesError):
        pools.delete_pool(db, "p1")

    db.get(MatchResult, "m1").status = "completed"
    db.flush()
    pools.delete_pool(db, "p1")
    db.commit()

    assert db.get(MatchingPool, "p1") is None
    assert db.get(MatchResult, "m1") is None


def test_join_normalizes_exclusions(db):
    add_pool(db, "p1")
    member = pools.join_pool(db, "p1", "A", "user-a", exclusions=[" B ", "B", "A", "", "C"])
    assert member.excluded_members == ["B", "C"]


def test_join_rejects_duplicates_and_reactivates_after_leaving(db):
    add_pool(db, "p1")
    pools.join_pool(db, "p1", "A", "user-a")
    with pytest.raises(AlreadyPoolMemberError):
        pools.join_pool(db, "p1", "A", "user-a")

    left = pools.leave_pool(db, "p1", "A")
    assert left.active is False
    with pytest.raises(NotPoolMemberError):
        pools.leave_pool(db, "p1", "A")

    back = pools.join_pool(db, "p1", "A", "user-a2", exclusions=["Z"])
    assert back.id == left.id
    assert back.active is True
    assert back.user_id == "user-a2"
    assert back.excluded_members == ["Z"]


def test_member_and_exclusion_limits(db, monkeypatch):
    add_pool(db, "p1")
    monkeypatch.setattr(pools, "MAX_MEMBERS_PER_POOL", 2)
    pools.join_pool(db, "p1", "A", "user-a")
    pools.join_pool(db, "p1", "B", "user-b")
    with pytest.raises(MemberPoolLimitReachedError):
        pools.join_pool(db, "p1", "C", "user-c")

    too_many = [f"x{i}" for i in range(config.MAX_EXCLUSIONS_PER_MEMBER + 1)]
    with pytest.raises(ExclusionLimitReachedError):
        pools.update_membership(db, "p1", "A", exclusions=too_many)


def test_update_membership_toggles_active_and_exclusions(db):
    add_pool(db, "p1")
    add_members(db, "p1", ["A", "B"])

    member = pools.update_membership(db, "p1", "A", active=False, exclusions=["B"])
    assert member.active is False
    assert member.excluded_members == ["B"]
    assert [m.member_id for m in pools.list_pool_members(db, "p1")] == ["B"]
    assert [m.member_id for m in pools.list_pool_members(db, "p1", include_inactive=True)] == ["A", "B"]

    with pytest.raises(NotPoolMemberError):
        pools.update_membership(db, "p1", "Z", active=True)


def test_round_info_and_stats(db, now):
    add_pool(db, "p1")
    add_members(db, "p1", ["A", "B", "C", "D", "E"])
    db.add(MatchRound(pool_id="p1", match_round="2025-W11", ran_on=now, match_count=2, skipped_members=["E"]))
    db.add(MatchResult(pool_id="p1", members=["C", "D"], member_user_ids=[], status="completed", match_round="2025-W11", created_on=now))
    db.add(MatchResult(pool_id="p1", members=["A", "B"], member_user_ids=[], status="skipped", match_round="2025-W11", created_on=now))
    db.flush()

    info = pools.get_round_info(db, "p1", "2025-W11")
    assert info.round == "2025-W11"
    assert info.match_count == 2
    assert info.skipped_members == ["E"]
    assert [m.members for m in info.matches] == [["A", "B"], ["C", "D"]]

    with pytest.raises(MatchRoundNotFoundError):
        pools.get_round_info(db, "p1", "2025-W12")

    stats = pools.get_pool_stats(db, "p1")
    assert stats.total_members == 5
    assert stats.active_members == 5
    assert stats.total_rounds == 1
    assert stats.total_matches == 2
    assert stats.completed_matches == 1
    assert stats.skipped_matches == 1
    assert stats.completion_rate == 50.0


def test_pending_matches_and_member_history(db, now):
    add_pool(db, "p1")
    add_members(db, "p1", ["A", "B", "C"])
    db.add(MatchResult(pool_id="p1", members=["A", "B"], member_user_ids=["user-A", "user-B"], status="pending", match_round="2025-W11", created_on=now))
    db.add(MatchResult(pool_id="p1", members=["A", "C"], member_user_ids=["user-A", "user-C"], status="completed", match_round="2025-W10", created_on=now - timedelta(days=7)))
    db.add(MatchResult(pool_id="p1", members=["A", "B"], member_user_ids=["user-A", "user-B"], status="completed", match_round="2025-W01", created_on=now - timedelta(days=70)))
    db.flush()

    pending = pools.get_pending_matches(db, "user-A")
    assert len(pending) == 1
    assert pending[0]["partner_ids"] == ["B"]
    assert pending[0]["pool_id"] == "p1"

    history = pools.get_member_match_history(db, "p1", "A", days=30, now=now)
    assert len(history.recent_matches) == 2
    assert history.match_counts == {"B": 1, "C": 1}

    assert len(pools.get_match_history(db, "p1", limit=2)) == 2
    with pytest.raises(NotPoolMemberError):
        pools.get_member_match_history(db, "p1", "Z", now=now)


def test_pending_matches_survive_leaving_and_check_the_actor(db, now):
    add_pool(db, "p1")
    add_members(db, "p1", ["A", "B"])
    db.add(MatchResult(pool_id="p1", members=["A", "B"], member_user_ids=["user-A", "user-B"], status="pending", match_round="2025-W11", created_on=now))
    db.flush()

    pools.leave_pool(db, "p1", "B")

    pending = pools.get_pending_matches(db, "user-B", actor_member_id="B")
    assert [item["partner_ids"] for item in pending] == [["A"]]
    with pytest.raises(NotMatchMemberError):
        pools.get_pending_matches(db, "user-B", actor_member_id="A")
    assert pools.get_pending_matches(db, "user-nobody") == []
