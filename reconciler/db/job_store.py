"""
Queries and bulk transitions over the job tables.

Every function takes the session to run on, so callers decide the
transaction boundaries. "No matching row" is returned as None, 0 or an
empty list; store failures propagate as SQLAlchemyError.
"""

import operator
from datetime import timedelta
from decimal import Decimal
from functools import reduce
from typing import Dict, List, Optional, Sequence, Type

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from reconciler.db.models.job import AbstractJob, CompletionJob, JobState, RefundJob, VoidJob, utcnow

JOB_MODELS: Dict[str, Type[AbstractJob]] = {
    CompletionJob.kind: CompletionJob,
    VoidJob.kind: VoidJob,
    RefundJob.kind: RefundJob,
}

ALL_JOB_MODELS: Sequence[Type[AbstractJob]] = tuple(JOB_MODELS.values())


def get_job_model(kind: str) -> Type[AbstractJob]:
    """Resolve a kind name ("completion", "refund", "void") to its model"""
    try:
        return JOB_MODELS[kind]
    except KeyError:
        raise ValueError(f"Unknown job kind: {kind}") from None


async def load_not_sent_for_order(db: AsyncSession, model: Type[AbstractJob], order_id: int) -> Optional[AbstractJob]:
    """The job of this kind still in CREATED for the order, if any"""
    result = await db.execute(
        select(model)
        .where(model.order_id == order_id, model.state == JobState.CREATED)
        .order_by(model.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def load_running_for_order(db: AsyncSession, model: Type[AbstractJob], order_id: int) -> Optional[AbstractJob]:
    """Any job of this kind for the order that has not reached a terminal state"""
    result = await db.execute(
        select(model)
        .where(model.order_id == order_id, model.state.not_in(JobState.TERMINAL))
        .order_by(model.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def count_running_for_order(
    db: AsyncSession,
    order_id: int,
    models: Sequence[Type[AbstractJob]] = ALL_JOB_MODELS,
) -> int:
    """
    Count non-terminal jobs for the order across the given kinds.
    
    The per-kind counts are summed inside one SELECT so they come from
    a single snapshot.
    """
    counts = [
        select(func.count(model.id))
        .where(model.order_id == order_id, model.state.not_in(JobState.TERMINAL))
        .scalar_subquery()
        for model in models
    ]
    result = await db.execute(select(reduce(operator.add, counts)))
    return int(result.scalar_one() or 0)


async def count_for_order(db: AsyncSession, model: Type[AbstractJob], order_id: int) -> int:
    """Count all jobs of this kind ever created for the order"""
    result = await db.execute(select(func.count(model.id)).where(model.order_id == order_id))
    return int(result.scalar_one())


async def load_by_order(db: AsyncSession, model: Type[AbstractJob], order_id: int) -> List[AbstractJob]:
    result = await db.execute(select(model).where(model.order_id == order_id).order_by(model.id))
    return list(result.scalars().all())


async def load_all_by_order(db: AsyncSession, order_id: int) -> List[AbstractJob]:
    """Jobs of every kind for the order, oldest first"""
    jobs: List[AbstractJob] = []
    for model in ALL_JOB_MODELS:
        jobs.extend(await load_by_order(db, model, order_id))
    return sorted(jobs, key=lambda job: (job.created_at, job.id))


async def load_by_job(db: AsyncSession, model: Type[AbstractJob], space_id: int, job_id: int) -> Optional[AbstractJob]:
    """Find a job by the remote operation id the gateway assigned"""
    result = await db.execute(
        select(model).where(model.job_id == job_id, model.space_id == space_id)
    )
    return result.scalar_one_or_none()


async def load_not_sent(
    db: AsyncSession,
    period: timedelta = timedelta(minutes=10),
    model: Optional[Type[AbstractJob]] = None,
) -> List[AbstractJob]:
    """
    Jobs stuck in CREATED whose last update is older than ``period``.
    
    Without a model, completions, voids and refunds are returned together.
    """
    if model is None:
        jobs: List[AbstractJob] = []
        for job_model in ALL_JOB_MODELS:
            jobs.extend(await load_not_sent(db, period, job_model))
        return jobs
    
    cutoff = utcnow() - period
    result = await db.execute(
        select(model).where(model.state == JobState.CREATED, model.updated_at < cutoff)
    )
    return list(result.scalars().all())


async def has_not_sent(db: AsyncSession, period: timedelta = timedelta(minutes=10)) -> bool:
    """Whether any kind has a job stuck in CREATED longer than ``period``"""
    cutoff = utcnow() - period
    for model in ALL_JOB_MODELS:
        result = await db.execute(
            select(model.id).where(model.state == JobState.CREATED, model.updated_at < cutoff).limit(1)
        )
        if result.first() is not None:
            return True
    return False


async def load_oldest_checkable(
    db: AsyncSession,
    model: Optional[Type[AbstractJob]] = None,
    older_than: Optional[timedelta] = None,
) -> Optional[AbstractJob]:
    """
    The FAILED_CHECK job with the smallest updated_at, ties broken by id.
    
    Without a model the oldest job across all kinds is returned.
    With ``older_than`` only jobs untouched for at least that long qualify.
    """
    jobs = await load_checkable(db, model, older_than, limit=1)
    return jobs[0] if jobs else None


async def load_checkable(
    db: AsyncSession,
    model: Optional[Type[AbstractJob]] = None,
    older_than: Optional[timedelta] = None,
    limit: Optional[int] = None,
) -> List[AbstractJob]:
    """FAILED_CHECK jobs oldest first by (updated_at, id), across all kinds without a model"""
    if model is None:
        candidates: List[AbstractJob] = []
        for job_model in ALL_JOB_MODELS:
            candidates.extend(await load_checkable(db, job_model, older_than, limit))
        candidates.sort(key=lambda job: (job.updated_at, job.id))
        return candidates if limit is None else candidates[:limit]

    query = select(model).where(model.state == JobState.FAILED_CHECK)
    if older_than is not None:
        query = query.where(model.updated_at < utcnow() - older_than)
    query = query.order_by(model.updated_at.asc(), model.id.asc())
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def load_failed_checked_for_order(db: AsyncSession, model: Type[AbstractJob], order_id: int) -> List[AbstractJob]:
    result = await db.execute(
        select(model)
        .where(model.order_id == order_id, model.state == JobState.FAILED_CHECK)
        .order_by(model.id)
    )
    return list(result.scalars().all())


async def mark_failed_as_done(
    db: AsyncSession,
    order_id: int,
    model: Optional[Type[AbstractJob]] = None,
) -> int:
    """
    Move the order's FAILED_CHECK jobs to FAILED_DONE.
    
    Returns:
        Number of jobs transitioned
    """
    models = ALL_JOB_MODELS if model is None else (model,)
    affected = 0
    for job_model in models:
        result = await db.execute(
            update(job_model)
            .where(job_model.order_id == order_id, job_model.state == JobState.FAILED_CHECK)
            .values(state=JobState.FAILED_DONE)
            .execution_options(synchronize_session=False)
        )
        affected += result.rowcount
    return affected


async def sum_refunded_amount(db: AsyncSession, order_id: int) -> Decimal:
    """Total amount of successful refunds for the order"""
    result = await db.execute(
        select(func.sum(RefundJob.amount))
        .where(RefundJob.order_id == order_id, RefundJob.state == JobState.SUCCESS)
    )
    total = result.scalar_one()
    return Decimal(total) if total is not None else Decimal("0")


async def load_by_external_id(db: AsyncSession, space_id: int, external_id: str) -> Optional[RefundJob]:
    result = await db.execute(
        select(RefundJob).where(RefundJob.space_id == space_id, RefundJob.external_id == external_id)
    )
    return result.scalar_one_or_none()
