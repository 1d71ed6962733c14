"""
Order job endpoints (capture, refund, void)
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Security
from sqlalchemy.ext.asyncio import AsyncSession

from reconciler.api.v1.dependencies import get_job_services, get_transaction_service, job_to_response
from reconciler.core.exceptions import ActionNotPossibleError, ConflictingOperationError, JobServiceError
from reconciler.core.security import verify_api_key
from reconciler.db.base import get_db
from reconciler.db import job_store
from reconciler.schemas.job import (
    CompletionCreateRequest,
    JobResponse,
    MarkDoneResponse,
    OrderJobsResponse,
    RefundCreateRequest,
    TransactionContext,
)
from reconciler.services.job_service import AbstractJobService, JobServices
from reconciler.services.transaction_service import TransactionService

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Security(verify_api_key)])


async def _get_context(order_id: int, transaction_service: TransactionService) -> TransactionContext:
    context = await transaction_service.get_context(order_id)
    if context is None:
        raise HTTPException(status_code=404, detail=f"No transaction stored for order {order_id}")
    return context


async def _create_and_send(
    service: AbstractJobService,
    context: TransactionContext,
    transaction_service: TransactionService,
    **kwargs,
) -> JobResponse:
    try:
        await transaction_service.ensure_possible(service.kind, context)
        job = await service.create(context, **kwargs)
        job = await service.send(job)
    except (ActionNotPossibleError, ConflictingOperationError) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except JobServiceError as e:
        logger.error(f"{service.kind} for order {context.order_id} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return job_to_response(job, context.language)


@router.post("/{order_id}/completion", response_model=JobResponse)
async def complete_order(
    order_id: int,
    data: Optional[CompletionCreateRequest] = None,
    job_services: JobServices = Depends(get_job_services),
    transaction_service: TransactionService = Depends(get_transaction_service),
):
    """Capture the authorized transaction of an order"""
    context = await _get_context(order_id, transaction_service)
    amount = data.amount if data else None
    return await _create_and_send(job_services.completion, context, transaction_service, amount=amount)


@router.post("/{order_id}/void", response_model=JobResponse)
async def void_order(
    order_id: int,
    job_services: JobServices = Depends(get_job_services),
    transaction_service: TransactionService = Depends(get_transaction_service),
):
    """Cancel the authorization of an order"""
    context = await _get_context(order_id, transaction_service)
    return await _create_and_send(job_services.void, context, transaction_service)


@router.post("/{order_id}/refund", response_model=JobResponse)
async def refund_order(
    order_id: int,
    data: RefundCreateRequest,
    job_services: JobServices = Depends(get_job_services),
    transaction_service: TransactionService = Depends(get_transaction_service),
):
    """Refund line item reductions of a settled order"""
    context = await _get_context(order_id, transaction_service)
    return await _create_and_send(
        job_services.refund,
        context,
        transaction_service,
        reductions=data.reductions,
        restock=data.restock,
    )


@router.get("/{order_id}/jobs", response_model=OrderJobsResponse)
async def list_order_jobs(
    order_id: int,
    language: Optional[str] = Query(None, description="Language for failure reasons"),
    db: AsyncSession = Depends(get_db),
):
    """All jobs of an order and how many of them are still running"""
    async with db.begin():
        jobs = await job_store.load_all_by_order(db, order_id)
        running = await job_store.count_running_for_order(db, order_id)
    return OrderJobsResponse(
        order_id=order_id,
        running=running,
        jobs=[job_to_response(job, language) for job in jobs],
    )


@router.post("/{order_id}/failed-jobs/done", response_model=MarkDoneResponse)
async def mark_failed_jobs_done(
    order_id: int,
    job_services: JobServices = Depends(get_job_services),
):
    """Stop tracking the order's failed jobs"""
    updated = await job_services.mark_failed_as_done(order_id)
    return MarkDoneResponse(order_id=order_id, updated=updated)
