"""
Concurrent joins racing for the same slot.

Each racer gets its own engine and session so the two transactions really
overlap on the server. SQLite serializes writers and ignores FOR UPDATE, so
these only run when TEST_DATABASE_URL points at PostgreSQL.
"""
import asyncio
import os
import pytest
from datetime import timedelta
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from tunislock.services import match_service, roster_service
from tunislock.services.errors import TunisLockError
from tunislock.utils.datetime_utils import utcnow

pytestmark = pytest.mark.skipif(
    not os.getenv("TEST_DATABASE_URL"), reason="row locks need PostgreSQL (set TEST_DATABASE_URL)"
)

ISOLATION_LEVELS = ["READ COMMITTED", "SERIALIZABLE"]


async def _join_and_commit(engine, match_id, user_id, team, position):
    """One request's worth of work. Returns the join result or the error that stopped it."""
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        try:
            result = await roster_service.join_match(session, match_id, user_id, team, position)
            await session.commit()
            return result
        except (TunisLockError, DBAPIError) as e:
            await session.rollback()
            return e


async def _race(test_engine, isolation_level, match_id, entries):
    engines = [
        create_async_engine(test_engine.url, poolclass=NullPool, isolation_level=isolation_level)
        for _ in entries
    ]
    try:
        return await asyncio.gather(
            *(
                _join_and_commit(engine, match_id, user_id, team, position)
                for engine, (user_id, team, position) in zip(engines, entries)
            )
        )
    finally:
        for engine in engines:
            await engine.dispose()


async def _create_match(session, creator_id, players_needed):
    return await match_service.create_match(
        session,
        creator_id=creator_id,
        location="Ennasr",
        date_time=utcnow() + timedelta(days=2),
        players_needed=players_needed,
        location_available=True,
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("isolation_level", ISOLATION_LEVELS)
async def test_two_joiners_for_last_slot(test_engine, db_session, make_user, isolation_level):
    creator = await make_user()
    match = await _create_match(db_session, creator.id, players_needed=6)
    match_id = match["id"]
    roster = [("A", "goalkeeper"), ("A", "defender"), ("A", "forward"), ("B", "goalkeeper"), ("B", "defender")]
    for team, position in roster:
        player = await make_user()
        await roster_service.join_match(db_session, match_id, player.id, team, position)
    first, second = await make_user(), await make_user()
    first_id, second_id = first.id, second.id
    await db_session.commit()

    results = await _race(
        test_engine,
        isolation_level,
        match_id,
        [(first_id, "B", "midfielder"), (second_id, "B", "midfielder")],
    )

    winners = [r for r in results if isinstance(r, dict)]
    assert len(winners) == 1
    assert winners[0]["is_full"] is True

    db_session.expire_all()
    participants = await match_service.get_participants(db_session, match_id)
    assert len(participants) == 6
    details = await match_service.get_match_details(db_session, match_id)
    assert details["status"] == "full"


@pytest.mark.asyncio
@pytest.mark.parametrize("isolation_level", ISOLATION_LEVELS)
async def test_two_goalkeepers_for_one_team(test_engine, db_session, make_user, isolation_level):
    creator = await make_user()
    match = await _create_match(db_session, creator.id, players_needed=10)
    match_id = match["id"]
    first, second = await make_user(), await make_user()
    first_id, second_id = first.id, second.id
    await db_session.commit()

    results = await _race(
        test_engine,
        isolation_level,
        match_id,
        [(first_id, "A", "goalkeeper"), (second_id, "A", "goalkeeper")],
    )

    assert len([r for r in results if isinstance(r, dict)]) == 1

    db_session.expire_all()
    participants = await match_service.get_participants(db_session, match_id)
    goalkeepers = [p for p in participants if p.team == "A" and p.position == "goalkeeper"]
    assert len(goalkeepers) == 1
    assert goalkeepers[0].user_id in (first_id, second_id)
