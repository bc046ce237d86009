"""
Profile aggregation queue.

Database-backed job queue that recomputes a rated user's aggregate profile
after a rating is recorded:
- Jobs are inserted in the same transaction as the rating, so a committed
  rating always has a pending job
- A pending job for the same user absorbs new requests; a running job does not
- A single background worker drains pending jobs oldest first, so two
  aggregations for the same user never run at once
"""

import asyncio
import logging
import os
from typing import Optional, Dict, Callable, Awaitable
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, update, and_
from tunislock.database.models import ProfileAggregationJob, AggregationJobStatus
from tunislock.database import db
from tunislock.utils.datetime_utils import utcnow, isoformat_or_none

logger = logging.getLogger(__name__)

AGGREGATION_POLL_SECONDS = float(os.getenv("AGGREGATION_POLL_SECONDS", "5"))


def _job_to_dict(job: ProfileAggregationJob) -> Dict:
    return {
        "id": job.id,
        "rated_user_id": job.rated_user_id,
        "status": job.status.value if job.status else None,
        "created_at": isoformat_or_none(job.created_at),
        "started_at": isoformat_or_none(job.started_at),
        "completed_at": isoformat_or_none(job.completed_at),
        "error_message": job.error_message,
    }


class AggregationQueue:
    """Database-backed queue for profile aggregation jobs."""

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        self._aggregation_callback: Optional[Callable[[AsyncSession, int], Awaitable[Dict]]] = None

    def _new_session(self) -> AsyncSession:
        factory = self._session_factory or db.AsyncSessionLocal
        return factory()

    async def enqueue_aggregation(self, session: AsyncSession, rated_user_id: int) -> int:
        """
        Enqueue an aggregation job for a user.

        Only flushes; the job becomes visible to the worker when the caller's
        transaction commits. If a pending job already exists for the user it
        is reused, since it has not read the ratings yet.

        Args:
            session: Database session of the triggering operation
            rated_user_id: User whose profile must be recomputed

        Returns:
            Job ID
        """
        existing = await self._find_pending_job(session, rated_user_id)
        if existing:
            return existing.id

        job = ProfileAggregationJob(
            rated_user_id=rated_user_id,
            status=AggregationJobStatus.PENDING,
        )
        session.add(job)
        await session.flush()
        await session.refresh(job)
        logger.debug(f"Enqueued aggregation job {job.id} for user {rated_user_id}")
        return job.id

    def wake(self) -> None:
        """Tell the worker there may be new jobs. Safe to call without a worker."""
        self._wake_event.set()

    async def _find_pending_job(
        self, session: AsyncSession, rated_user_id: int
    ) -> Optional[ProfileAggregationJob]:
        result = await session.execute(
            select(ProfileAggregationJob)
            .where(
                and_(
                    ProfileAggregationJob.rated_user_id == rated_user_id,
                    ProfileAggregationJob.status == AggregationJobStatus.PENDING,
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _get_first_pending_job(self, session: AsyncSession) -> Optional[ProfileAggregationJob]:
        result = await session.execute(
            select(ProfileAggregationJob)
            .where(ProfileAggregationJob.status == AggregationJobStatus.PENDING)
            .order_by(ProfileAggregationJob.created_at.asc(), ProfileAggregationJob.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def register_aggregation_callback(
        self, aggregation_callback: Callable[[AsyncSession, int], Awaitable[Dict]]
    ) -> None:
        """
        Register the function that recomputes one user's profile.

        Must be called before jobs can be executed, typically at startup.

        Raises:
            TypeError: If the callback is not callable
        """
        if not callable(aggregation_callback):
            raise TypeError("aggregation_callback must be callable")

        if self._aggregation_callback is not None:
            logger.warning("Re-registering aggregation callback (previous callback will be replaced)")

        self._aggregation_callback = aggregation_callback
        logger.info("Profile aggregation callback registered successfully")

    def _require_callback(self) -> None:
        if self._aggregation_callback is None:
            raise RuntimeError(
                "Aggregation callback not registered. "
                "Call register_aggregation_callback() before processing jobs."
            )

    async def _run_job(self, job_id: int, rated_user_id: int) -> bool:
        """Run one job that is already marked running. Returns True on success."""
        async with self._new_session() as session:
            try:
                await self._aggregation_callback(session, rated_user_id)
                await session.execute(
                    update(ProfileAggregationJob)
                    .where(ProfileAggregationJob.id == job_id)
                    .values(status=AggregationJobStatus.COMPLETED, completed_at=utcnow())
                )
                await session.commit()
                return True
            except Exception as e:
                await session.rollback()
                logger.error(
                    f"Aggregation job {job_id} for user {rated_user_id} failed: {e}",
                    exc_info=True,
                )
                await session.execute(
                    update(ProfileAggregationJob)
                    .where(ProfileAggregationJob.id == job_id)
                    .values(
                        status=AggregationJobStatus.FAILED,
                        completed_at=utcnow(),
                        error_message=str(e),
                    )
                )
                await session.commit()
                return False

    async def process_next_job(self) -> Optional[int]:
        """
        Claim and run the oldest pending job.

        Returns:
            ID of the processed job, or None if the queue was empty
        """
        self._require_callback()
        async with self._new_session() as session:
            job = await self._get_first_pending_job(session)
            if not job:
                return None
            job_id, rated_user_id = job.id, job.rated_user_id
            await session.execute(
                update(ProfileAggregationJob)
                .where(ProfileAggregationJob.id == job_id)
                .values(status=AggregationJobStatus.RUNNING, started_at=utcnow())
            )
            await session.commit()

        await self._run_job(job_id, rated_user_id)
        return job_id

    async def process_pending(self) -> int:
        """Drain the queue. Returns the number of jobs processed."""
        processed = 0
        while not self._stop_event.is_set():
            job_id = await self.process_next_job()
            if job_id is None:
                break
            processed += 1
        return processed

    async def requeue_stale_jobs(self) -> int:
        """
        Put jobs left running by a previous worker back to pending.

        Only one worker runs at a time, so any running job seen before it
        starts was interrupted mid-way. Recomputing is idempotent.

        Returns:
            Number of jobs requeued
        """
        async with self._new_session() as session:
            result = await session.execute(
                update(ProfileAggregationJob)
                .where(ProfileAggregationJob.status == AggregationJobStatus.RUNNING)
                .values(status=AggregationJobStatus.PENDING, started_at=None)
            )
            requeued = result.rowcount or 0
            await session.commit()
        if requeued:
            logger.warning(f"Requeued {requeued} interrupted aggregation job(s)")
        return requeued

    async def _process_queue_worker(self) -> None:
        """Background worker that processes pending jobs."""
        logger.info("Aggregation worker started")
        try:
            await self.requeue_stale_jobs()
        except Exception as e:
            logger.error(f"Error requeueing interrupted aggregation jobs: {e}", exc_info=True)
        while not self._stop_event.is_set():
            try:
                self._wake_event.clear()
                await self.process_pending()
                try:
                    await asyncio.wait_for(self._wake_event.wait(), timeout=AGGREGATION_POLL_SECONDS)
                except asyncio.TimeoutError:
                    pass
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in aggregation worker: {e}", exc_info=True)
                await asyncio.sleep(AGGREGATION_POLL_SECONDS)
        logger.info("Aggregation worker stopped")

    async def get_queue_status(self, session: AsyncSession) -> Dict:
        """Running, pending and recent finished jobs."""
        result = await session.execute(
            select(ProfileAggregationJob)
            .where(ProfileAggregationJob.status == AggregationJobStatus.RUNNING)
            .order_by(ProfileAggregationJob.started_at.asc())
        )
        running = result.scalars().all()

        result = await session.execute(
            select(ProfileAggregationJob)
            .where(ProfileAggregationJob.status == AggregationJobStatus.PENDING)
            .order_by(ProfileAggregationJob.created_at.asc(), ProfileAggregationJob.id.asc())
        )
        pending = result.scalars().all()

        # Last 10 of each finished status
        result = await session.execute(
            select(ProfileAggregationJob)
            .where(ProfileAggregationJob.status == AggregationJobStatus.COMPLETED)
            .order_by(ProfileAggregationJob.completed_at.desc())
            .limit(10)
        )
        recent_completed = result.scalars().all()

        result = await session.execute(
            select(ProfileAggregationJob)
            .where(ProfileAggregationJob.status == AggregationJobStatus.FAILED)
            .order_by(ProfileAggregationJob.completed_at.desc())
            .limit(10)
        )
        recent_failed = result.scalars().all()

        return {
            "worker_running": self.is_worker_running(),
            "running": [_job_to_dict(j) for j in running],
            "pending": [_job_to_dict(j) for j in pending],
            "recent_completed": [_job_to_dict(j) for j in recent_completed],
            "recent_failed": [_job_to_dict(j) for j in recent_failed],
        }

    async def get_job_status(self, session: AsyncSession, job_id: int) -> Optional[Dict]:
        """Get status of a specific job."""
        result = await session.execute(
            select(ProfileAggregationJob).where(ProfileAggregationJob.id == job_id)
        )
        job = result.scalar_one_or_none()
        if not job:
            return None
        return _job_to_dict(job)

    def is_worker_running(self) -> bool:
        return self._worker_task is not None and not self._worker_task.done()

    def start_background_worker(self) -> None:
        """Start the background worker."""
        if not self.is_worker_running():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._process_queue_worker())

    def stop_background_worker(self) -> None:
        """Stop the background worker."""
        self._stop_event.set()
        self._wake_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()


# Global queue instance
_aggregation_queue = AggregationQueue()


def get_aggregation_queue() -> AggregationQueue:
    """Get the global aggregation queue instance."""
    return _aggregation_queue
