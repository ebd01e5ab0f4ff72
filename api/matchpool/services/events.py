import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import insert

from ..models import MatchEvent


def log_match_event(
    db,
    pool_id: str,
    event_type: str,
    match_id: str | None = None,
    match_round: str | None = None,
    payload: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> None:
    payload = payload or {}
    db.execute(
        insert(MatchEvent).values(
            id=str(uuid.uuid4()),
            pool_id=pool_id,
            match_id=match_id,
            match_round=match_round,
            event_type=event_type,
            payload=payload,
            created_on=now or datetime.now(timezone.utc),
        )
    )
