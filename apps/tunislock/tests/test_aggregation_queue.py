"""
Tests for the profile aggregation queue.

Jobs are processed through sessions the queue opens itself (conftest points
db.AsyncSessionLocal at the test database), so the test session commits
before processing.
"""
import pytest
from datetime import timedelta
from sqlalchemy import select
from tunislock.database.models import AggregationJobStatus, ProfileAggregationJob
from tunislock.services import match_service, profile_service, rating_service, roster_service
from tunislock.services.aggregation_queue import AggregationQueue
from tunislock.utils.datetime_utils import utcnow

# db_session and make_user fixtures are provided by conftest.py


async def _rated_players(session, make_user):
    """Completed match where p1 graded p2; returns (p1, p2, job_id)."""
    creator, p1, p2 = await make_user(), await make_user(), await make_user()
    match = await match_service.create_match(
        session,
        creator_id=creator.id,
        location="Lac 2",
        date_time=utcnow() + timedelta(days=1),
        players_needed=6,
        location_available=True,
    )
    await roster_service.join_match(session, match["id"], p1.id, "A", "goalkeeper")
    await roster_service.join_match(session, match["id"], p2.id, "B", "goalkeeper")
    await match_service.complete_match(session, match["id"], creator.id)
    result = await rating_service.submit_rating(
        session, p1.id, match["id"], p2.id, grades={"speed_given": "S", "passing_given": "B"}
    )
    return p1, p2, result["aggregation_job_id"]


async def _get_job(session, job_id):
    result = await session.execute(
        select(ProfileAggregationJob)
        .where(ProfileAggregationJob.id == job_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


# ─────────────────────────────────────────────────────────────────────────────
# Enqueue
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_enqueue_dedups_against_pending_only(db_session, make_user):
    user = await make_user()
    queue = AggregationQueue()

    first = await queue.enqueue_aggregation(db_session, user.id)
    assert await queue.enqueue_aggregation(db_session, user.id) == first

    job = await _get_job(db_session, first)
    job.status = AggregationJobStatus.RUNNING
    await db_session.flush()

    second = await queue.enqueue_aggregation(db_session, user.id)
    assert second != first


@pytest.mark.asyncio
async def test_register_callback_requires_callable():
    queue = AggregationQueue()
    with pytest.raises(TypeError):
        queue.register_aggregation_callback("not callable")


@pytest.mark.asyncio
async def test_processing_without_callback_fails_fast(test_engine):
    queue = AggregationQueue()
    with pytest.raises(RuntimeError):
        await queue.process_next_job()


# ─────────────────────────────────────────────────────────────────────────────
# Processing
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_process_pending_recomputes_profile(db_session, make_user):
    p1, p2, job_id = await _rated_players(db_session, make_user)
    rated_user_id = p2.id
    await db_session.commit()

    queue = AggregationQueue()
    queue.register_aggregation_callback(profile_service.recompute_profile)
    assert await queue.process_pending() == 1

    job = await _get_job(db_session, job_id)
    assert job.status == AggregationJobStatus.COMPLETED
    assert job.started_at is not None
    assert job.completed_at is not None

    db_session.expire_all()
    profile = await profile_service.get_user_profile(db_session, rated_user_id)
    assert profile["speed"] == 95
    assert profile["passing"] == 75
    assert profile["overall_score"] == 85
    assert profile["ratings_count"] == 1


@pytest.mark.asyncio
async def test_empty_queue(test_engine):
    queue = AggregationQueue()
    queue.register_aggregation_callback(profile_service.recompute_profile)
    assert await queue.process_next_job() is None
    assert await queue.process_pending() == 0


@pytest.mark.asyncio
async def test_failed_job_is_recorded_and_queue_continues(db_session, make_user):
    broken, healthy = await make_user(), await make_user()
    queue = AggregationQueue()
    broken_job = await queue.enqueue_aggregation(db_session, broken.id)
    healthy_job = await queue.enqueue_aggregation(db_session, healthy.id)
    await db_session.commit()

    async def callback(session, user_id):
        if user_id == broken.id:
            raise RuntimeError("ratings table unreadable")
        return await profile_service.recompute_profile(session, user_id)

    queue.register_aggregation_callback(callback)
    assert await queue.process_pending() == 2

    failed = await _get_job(db_session, broken_job)
    assert failed.status == AggregationJobStatus.FAILED
    assert failed.error_message == "ratings table unreadable"

    completed = await _get_job(db_session, healthy_job)
    assert completed.status == AggregationJobStatus.COMPLETED


@pytest.mark.asyncio
async def test_interrupted_running_job_is_requeued(db_session, make_user):
    user = await make_user()
    user_id = user.id
    queue = AggregationQueue()
    job_id = await queue.enqueue_aggregation(db_session, user_id)
    job = await _get_job(db_session, job_id)
    job.status = AggregationJobStatus.RUNNING
    job.started_at = utcnow()
    await db_session.commit()

    assert await queue.requeue_stale_jobs() == 1

    job = await _get_job(db_session, job_id)
    assert job.status == AggregationJobStatus.PENDING
    assert job.started_at is None

    queue.register_aggregation_callback(profile_service.recompute_profile)
    assert await queue.process_pending() == 1
    job = await _get_job(db_session, job_id)
    assert job.status == AggregationJobStatus.COMPLETED


@pytest.mark.asyncio
async def test_worker_start_requeues_interrupted_jobs(db_session, make_user):
    user = await make_user()
    queue = AggregationQueue()
    job_id = await queue.enqueue_aggregation(db_session, user.id)
    job = await _get_job(db_session, job_id)
    job.status = AggregationJobStatus.RUNNING
    await db_session.commit()

    # Stopped before the loop, so only the startup recovery runs
    queue._stop_event.set()
    await queue._process_queue_worker()

    job = await _get_job(db_session, job_id)
    assert job.status == AggregationJobStatus.PENDING
    assert await queue.requeue_stale_jobs() == 0


# ─────────────────────────────────────────────────────────────────────────────
# Status views
# ─────────────────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_queue_and_job_status(db_session, make_user):
    user = await make_user()
    queue = AggregationQueue()
    job_id = await queue.enqueue_aggregation(db_session, user.id)

    status = await queue.get_queue_status(db_session)
    assert status["worker_running"] is False
    assert [j["id"] for j in status["pending"]] == [job_id]
    assert status["running"] == []
    assert status["recent_failed"] == []

    job = await queue.get_job_status(db_session, job_id)
    assert job["status"] == "pending"
    assert job["rated_user_id"] == user.id
    assert await queue.get_job_status(db_session, job_id + 100) is None
