from datetime import timedelta

from matchpool.models import MatchResult
from matchpool.services.history import MatchHistoryTracker, as_utc, canonical_pair, load_history

from conftest import add_pool


def test_canonical_pair_is_order_independent():
    assert canonical_pair("b", "a") == ("a", "b")
    assert canonical_pair("a", "b") == ("a", "b")


def test_as_utc_treats_naive_values_as_utc(now):
    naive = now.replace(tzinfo=None)
    assert as_utc(naive) == now


def test_record_round_counts_every_pair_in_a_group(now):
    tracker = MatchHistoryTracker()
    recorded = tracker.record_round("p1", [["A", "B", "C"], ["D", "E"]], now)

    assert recorded == 4
    assert tracker.count_for("p1", "A", "C", 30, now) == 1
    assert tracker.count_for("p1", "C", "A", 30, now) == 1
    assert tracker.count_for("p1", "D", "E", 30, now) == 1
    assert tracker.count_for("p1", "A", "D", 30, now) == 0
    assert tracker.count_for("other-pool", "A", "B", 30, now) == 0


def test_count_window_is_open_at_start_and_closed_at_now(now):
    tracker = MatchHistoryTracker()
    tracker.record_round("p1", [["A", "B"]], now - timedelta(days=30))
    tracker.record_round("p1", [["A", "B"]], now - timedelta(days=29))
    tracker.record_round("p1", [["A", "B"]], now)
    tracker.record_round("p1", [["A", "B"]], now + timedelta(seconds=1))

    assert tracker.count_for("p1", "A", "B", 30, now) == 2


def test_prune_drops_entries_at_or_before_cutoff(now):
    tracker = MatchHistoryTracker()
    tracker.record_round("p1", [["A", "B"]], now - timedelta(days=40))
    tracker.record_round("p1", [["A", "B"]], now - timedelta(days=31))
    tracker.record_round("p1", [["C", "D"]], now - timedelta(days=31))
    tracker.record_round("p1", [["A", "B"]], now - timedelta(days=1))

    removed = tracker.prune("p1", older_than=now - timedelta(days=31))

    assert removed == 3
    assert tracker.pair_counts("p1", 365, now) == {("A", "B"): 1}
    assert tracker.prune("missing", older_than=now) == 0


def test_lookup_snapshots_counts_for_the_pairing_engine(now):
    tracker = MatchHistoryTracker()
    tracker.record_round("p1", [["A", "B"]], now - timedelta(days=3))
    tracker.record_round("p1", [["A", "B"]], now - timedelta(days=2))

    lookup = tracker.lookup("p1", 30, now)
    assert lookup("B", "A") == 2
    assert lookup("A", "C") == 0

    tracker.reset("p1")
    assert tracker.count_for("p1", "A", "B", 30, now) == 0
    assert lookup("A", "B") == 2


def test_load_history_rebuilds_from_match_results(db, now):
    add_pool(db, "p1")
    add_pool(db, "p2")
    rows = [
        ("p1", ["A", "B"], now - timedelta(days=7)),
        ("p1", ["A", "B", "C"], now - timedelta(days=14)),
        ("p1", ["A", "B"], now - timedelta(days=60)),
        ("p2", ["A", "B"], now - timedelta(days=7)),
    ]
    for pool_id, members, created_on in rows:
        db.add(MatchResult(pool_id=pool_id, members=members, member_user_ids=[], match_round="2025-W01", created_on=created_on))
    db.commit()

    tracker = load_history(db, "p1", since=now - timedelta(days=30))

    assert tracker.count_for("p1", "A", "B", 30, now) == 2
    assert tracker.count_for("p1", "B", "C", 30, now) == 1
    assert tracker.count_for("p2", "A", "B", 30, now) == 0
