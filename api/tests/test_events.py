from matchpool.services.events import log_match_event


class FakeDB:
    def __init__(self):
        self.calls = []

    def execute(self, stmt, params=None):
        self.calls.append((str(stmt), stmt.compile().params))


def test_log_match_event_inserts_expected_payload_shape():
    db = FakeDB()
    log_match_event(
        db=db,
        pool_id="00000000-0000-0000-0000-000000000123",
        event_type="match_completed",
        match_id="m1",
        match_round="2026-W07",
        payload={"from": "scheduled", "to": "completed"},
    )
    assert len(db.calls) == 1
    sql, params = db.calls[0]
    assert "INSERT INTO match_event" in sql
    assert params["event_type"] == "match_completed"
    assert params["pool_id"] == "00000000-0000-0000-0000-000000000123"
    assert params["match_round"] == "2026-W07"
    assert params["payload"] == {"from": "scheduled", "to": "completed"}


def test_log_match_event_defaults_empty_payload():
    db = FakeDB()
    log_match_event(db=db, pool_id="p1", event_type="round_created")
    _, params = db.calls[0]
    assert params["payload"] == {}
    assert params["match_id"] is None
    assert params["created_on"] is not None
