"""Profile aggregation queue route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from tunislock.api.auth_dependencies import require_user
from tunislock.database.db import get_db_session
from tunislock.models.schemas import AggregationJobResponse, AggregationQueueStatusResponse
from tunislock.services.aggregation_queue import get_aggregation_queue

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/aggregation/status", response_model=AggregationQueueStatusResponse)
async def get_aggregation_status(
    user: dict = Depends(require_user), session: AsyncSession = Depends(get_db_session)
):
    """Running, pending and recently finished aggregation jobs."""
    try:
        return await get_aggregation_queue().get_queue_status(session)
    except Exception as e:
        logger.error(f"Error fetching aggregation queue status: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching queue status: {str(e)}")


@router.get("/api/aggregation/jobs/{job_id}", response_model=AggregationJobResponse)
async def get_aggregation_job(
    job_id: int,
    user: dict = Depends(require_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Status of one aggregation job."""
    try:
        job = await get_aggregation_queue().get_job_status(session, job_id)
    except Exception as e:
        logger.error(f"Error fetching aggregation job {job_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Error fetching job: {str(e)}")
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job
