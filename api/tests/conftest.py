from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from matchpool import models  # noqa: F401
from matchpool.database import Base
from matchpool.models import MatchingPool, PoolMember

FIXED_NOW = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    # in-memory sqlite shared by every session through StaticPool
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def now():
    return FIXED_NOW


def add_pool(db, pool_id="pool-1", guild_id="guild-1", match_size=2, frequency="weekly", next_match_on=FIXED_NOW, active=True):
    pool = MatchingPool(
        id=pool_id,
        guild_id=guild_id,
        name=f"Pool {pool_id}",
        frequency=frequency,
        match_size=match_size,
        active=active,
        next_match_on=next_match_on,
    )
    db.add(pool)
    db.flush()
    return pool


def add_members(db, pool_id, member_ids, exclusions=None):
    exclusions = exclusions or {}
    rows = []
    for member_id in member_ids:
        row = PoolMember(
            pool_id=pool_id,
            member_id=member_id,
            user_id=f"user-{member_id}",
            active=True,
            excluded_members=list(exclusions.get(member_id, [])),
        )
        db.add(row)
        rows.append(row)
    db.flush()
    return rows
