"""
Job services for completions, refunds and voids

Each service turns a merchant action into a durable job (``create``) and
hands it to the gateway (``send``). Both steps run in their own database
transaction while holding the lock on the remote transaction, so two
requests for the same transaction never create or send competing jobs.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type, Union

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reconciler.core.config import settings
from reconciler.core.exceptions import (
    ActionNotPossibleError,
    ConflictingOperationError,
    GatewayRejectedError,
    JobServiceError,
)
from reconciler.db import job_store
from reconciler.db.models.alert import Alert
from reconciler.db.models.job import AbstractJob, CompletionJob, JobState, RefundJob, VoidJob, utcnow
from reconciler.schemas.gateway import LineItemReduction, Operation, RefundRequest
from reconciler.schemas.job import ReductionItem, TransactionContext
from reconciler.services.alert_service import AlertService
from reconciler.services.gateway_client import GatewayClient
from reconciler.services.transaction_lock import lock_transaction

logger = logging.getLogger(__name__)


class AbstractJobService:
    """Create/send orchestration shared by all job kinds"""

    model: Type[AbstractJob] = AbstractJob
    # Kinds whose running jobs forbid creating a new job of this kind
    blocking_models: Tuple[Type[AbstractJob], ...] = ()

    def __init__(
        self,
        session_factory: async_sessionmaker,
        gateway: GatewayClient,
        alert_service: Optional[AlertService] = None,
    ):
        self.session_factory = session_factory
        self.gateway = gateway
        self.alert_service = alert_service or AlertService(session_factory)

    @property
    def kind(self) -> str:
        return self.model.kind

    async def create(self, context: TransactionContext, **kwargs: Any) -> AbstractJob:
        """
        Create the job for the order, or return the one not sent yet.

        Args:
            context: Transaction the job belongs to
            **kwargs: Kind-specific fields

        Returns:
            The new or already pending job, in state CREATED

        Raises:
            ConflictingOperationError: A pending job with different parameters exists
            ActionNotPossibleError: Another job of a blocking kind is already running for the order
            JobServiceError: The job could not be stored
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    await self._lock(db, context.space_id, context.transaction_id)

                    job = await job_store.load_not_sent_for_order(db, self.model, context.order_id)
                    if job is not None:
                        self._check_pending(job, **kwargs)
                        logger.info(f"Reusing pending {self.kind} job {job.id} for order {context.order_id}")
                        return job

                    running = await job_store.count_running_for_order(db, context.order_id, self.blocking_models)
                    if running:
                        raise ActionNotPossibleError(
                            f"Order {context.order_id} already has a running job blocking a new {self.kind}"
                        )

                    job = self._create_base(context)
                    await self._populate(db, job, context, **kwargs)
                    db.add(job)
                    await db.flush()
                    logger.info(f"Created {self.kind} job {job.id} for order {context.order_id}")
            return job
        except (ConflictingOperationError, ActionNotPossibleError):
            raise
        except Exception as e:
            logger.error(f"Error creating {self.kind} job for order {context.order_id}: {e}", exc_info=True)
            raise JobServiceError(f"Failed to create {self.kind} job for order {context.order_id}: {e}") from e

    async def send(self, job: AbstractJob) -> AbstractJob:
        """
        Send a job to the gateway and record the answer.

        A rejection by the gateway is recorded as FAILED_CHECK and returned,
        not raised. Any other failure rolls back and leaves the job as it was,
        unless the gateway already answered: that answer is always stored.

        Returns:
            The job in state SENT or FAILED_CHECK, or unchanged if it was not sendable

        Raises:
            JobServiceError: Infrastructure failure, nothing was persisted
        """
        answer: Optional[Dict[str, Any]] = None
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    await self._lock(db, job.space_id, job.transaction_id)

                    current = await db.get(self.model, job.id, populate_existing=True)
                    if current is None:
                        raise LookupError(f"{self.kind} job {job.id} does not exist")
                    if current.state not in JobState.SENDABLE:
                        logger.info(f"Skipping {self.kind} job {current.id} in state {current.state}")
                        return current

                    previous_state = current.state
                    try:
                        operation = await self._call_gateway(current)
                    except GatewayRejectedError as rejection:
                        answer = self._rejection_values(rejection)
                        logger.warning(f"Gateway rejected {self.kind} job {current.id}: {rejection.message}")
                    else:
                        answer = self._operation_values(current, operation)
                        logger.info(f"Sent {self.kind} job {current.id}, remote id {operation.id}")
                    # A repeated identical rejection changes no other column; the
                    # fresh timestamp moves the job to the back of the recheck queue
                    answer["updated_at"] = utcnow()

                    for field, value in answer.items():
                        setattr(current, field, value)
                    await db.flush()
                    await self._track_failed_jobs(db, previous_state, current.state)
            return current
        except Exception as e:
            if answer is not None:
                return await self._record_answer(job, answer, e)
            logger.error(f"Error sending {self.kind} job {job.id}: {e}", exc_info=True)
            raise JobServiceError(f"Failed to send {self.kind} job {job.id}: {e}") from e

    async def resolve_outcome(
        self,
        space_id: int,
        job_id: int,
        succeeded: bool,
        failure_reason: Optional[Dict[str, str]] = None,
    ) -> Optional[AbstractJob]:
        """
        Apply the final state the gateway reported for a sent job.

        Returns:
            The updated job, or None if no job carries that remote id
        """
        async with self.session_factory() as db:
            async with db.begin():
                job = await job_store.load_by_job(db, self.model, space_id, job_id)
                if job is None:
                    return None
                await self._lock(db, job.space_id, job.transaction_id)
                await db.refresh(job)
                if job.state != JobState.SENT:
                    return job

                if succeeded:
                    job.state = JobState.SUCCESS
                else:
                    job.state = JobState.FAILED_CHECK
                    if failure_reason:
                        job.failure_reason = failure_reason
                await db.flush()
                await self._track_failed_jobs(db, JobState.SENT, job.state)
                logger.info(f"{self.kind} job {job.id} resolved to {job.state}")
        return job

    async def mark_failed_as_done(self, order_id: int) -> int:
        """Give up on the order's FAILED_CHECK jobs of this kind"""
        async with self.session_factory() as db:
            async with db.begin():
                updated = await job_store.mark_failed_as_done(db, order_id, self.model)
                if updated:
                    await self.alert_service.increment(Alert.KEY_FAILED_JOBS, -updated, db=db)
        if updated:
            logger.info(f"Marked {updated} failed {self.kind} jobs of order {order_id} as done")
        return updated

    def _create_base(self, context: TransactionContext) -> AbstractJob:
        return self.model(
            transaction_id=context.transaction_id,
            order_id=context.order_id,
            space_id=context.space_id,
            state=JobState.CREATED,
            labels={},
        )

    async def _populate(self, db: AsyncSession, job: AbstractJob, context: TransactionContext, **kwargs: Any) -> None:
        """Set kind-specific fields on a new job"""

    def _check_pending(self, job: AbstractJob, **kwargs: Any) -> None:
        """Verify a pending job matches the requested operation"""

    async def _call_gateway(self, job: AbstractJob) -> Operation:
        raise NotImplementedError

    def _operation_values(self, job: AbstractJob, operation: Operation) -> Dict[str, Any]:
        values: Dict[str, Any] = {
            "job_id": operation.id,
            "labels": {label.label_id: label.value for label in operation.labels},
            "state": JobState.SENT,
        }
        if operation.failure_reason is not None:
            values["failure_reason"] = operation.failure_reason
        elif job.state == JobState.FAILED_CHECK:
            values["failure_reason"] = None
        return values

    @staticmethod
    def _rejection_values(rejection: GatewayRejectedError) -> Dict[str, Any]:
        return {
            "state": JobState.FAILED_CHECK,
            "failure_reason": {settings.FALLBACK_LANGUAGE: rejection.message},
        }

    async def _record_answer(self, job: AbstractJob, answer: Dict[str, Any], error: Exception) -> AbstractJob:
        """
        Store the gateway answer in a fresh transaction after the locked one failed.
        """
        logger.error(
            f"Storing gateway answer for {self.kind} job {job.id} failed ({error}), retrying without lock",
            exc_info=True,
        )
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    result = await db.execute(select(self.model.state).where(self.model.id == job.id))
                    previous_state = result.scalar_one()
                    await db.execute(
                        update(self.model)
                        .where(self.model.id == job.id)
                        .values(**answer)
                        .execution_options(synchronize_session=False)
                    )
                    try:
                        async with db.begin_nested():
                            await self._track_failed_jobs(db, previous_state, answer["state"])
                    except SQLAlchemyError as e:
                        # The answer itself must survive a broken counter
                        logger.error(f"Could not update failed job alert for {self.kind} job {job.id}: {e}")
                    return await db.get(self.model, job.id, populate_existing=True)
        except Exception as e:
            logger.error(f"Could not record gateway answer for {self.kind} job {job.id}: {e}", exc_info=True)
            raise JobServiceError(
                f"Failed to record gateway answer for {self.kind} job {job.id}: {e} | original error: {error}"
            ) from error

    async def _track_failed_jobs(self, db: AsyncSession, previous_state: str, new_state: str) -> None:
        if new_state == JobState.FAILED_CHECK and previous_state != JobState.FAILED_CHECK:
            await self.alert_service.increment(Alert.KEY_FAILED_JOBS, 1, db=db)
        elif previous_state == JobState.FAILED_CHECK and new_state != JobState.FAILED_CHECK:
            await self.alert_service.increment(Alert.KEY_FAILED_JOBS, -1, db=db)

    async def _lock(self, db: AsyncSession, space_id: int, transaction_id: int) -> None:
        if not await lock_transaction(db, space_id, transaction_id):
            logger.warning(f"Transaction {space_id}/{transaction_id} is not stored, proceeding without row lock")


class CompletionService(AbstractJobService):
    """Captures authorized transactions"""

    model = CompletionJob
    blocking_models = (CompletionJob, VoidJob)

    async def create(self, context: TransactionContext, amount: Optional[Decimal] = None) -> CompletionJob:
        return await super().create(context, amount=amount)

    async def _populate(self, db, job, context, amount=None, **kwargs):
        job.amount = amount

    async def _call_gateway(self, job: CompletionJob) -> Operation:
        return await self.gateway.capture(job.space_id, job.transaction_id)


class VoidService(AbstractJobService):
    """Cancels authorizations"""

    model = VoidJob
    blocking_models = (CompletionJob, VoidJob)

    async def create(self, context: TransactionContext) -> VoidJob:
        return await super().create(context)

    async def _call_gateway(self, job: VoidJob) -> Operation:
        return await self.gateway.void(job.space_id, job.transaction_id)


ReductionInput = Union[ReductionItem, Dict[str, Any]]


class RefundService(AbstractJobService):
    """Refunds line item reductions of settled transactions"""

    model = RefundJob
    blocking_models = (RefundJob,)

    async def create(
        self,
        context: TransactionContext,
        reductions: Iterable[ReductionInput],
        restock: bool = False,
    ) -> RefundJob:
        return await super().create(context, reductions=self.line_item_reductions(reductions), restock=restock)

    @staticmethod
    def line_item_reductions(reductions: Iterable[ReductionInput]) -> List[Dict[str, Any]]:
        """
        Normalize requested reductions, dropping items that reduce nothing.
        """
        items = []
        for reduction in reductions:
            if not isinstance(reduction, ReductionItem):
                reduction = ReductionItem(**reduction)
            if reduction.quantity > 0 or reduction.unit_price > 0:
                items.append({
                    "line_item_id": reduction.id,
                    "quantity": float(reduction.quantity),
                    "unit_price": float(reduction.unit_price),
                })
        return items

    async def external_refund_id(self, db: AsyncSession, order_id: int) -> str:
        """r-{order_id}-{n}, n counting every refund job of the order including this one"""
        count = await job_store.count_for_order(db, RefundJob, order_id)
        return f"r-{order_id}-{count + 1}"

    async def _populate(self, db, job, context, reductions=(), restock=False, **kwargs):
        job.reduction_items = list(reductions)
        job.restock = restock
        job.external_id = await self.external_refund_id(db, context.order_id)

    def _check_pending(self, job: RefundJob, reductions=(), **kwargs) -> None:
        if list(job.reduction_items or []) != list(reductions):
            raise ConflictingOperationError(
                f"A refund with different line items is already pending for order {job.order_id}"
            )

    async def _call_gateway(self, job: RefundJob) -> Operation:
        refund = RefundRequest(
            external_id=job.external_id,
            transaction_id=job.transaction_id,
            reductions=[
                LineItemReduction(
                    line_item_id=item["line_item_id"],
                    quantity=Decimal(str(item["quantity"])),
                    unit_price=Decimal(str(item["unit_price"])),
                )
                for item in job.reduction_items or []
            ],
        )
        return await self.gateway.refund(job.space_id, refund)

    def _operation_values(self, job: RefundJob, operation: Operation) -> Dict[str, Any]:
        values = super()._operation_values(job, operation)
        values["amount"] = operation.amount
        return values


class JobServices:
    """The three job services sharing one store, gateway and alert counters"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        gateway: GatewayClient,
        alert_service: Optional[AlertService] = None,
    ):
        self.session_factory = session_factory
        self.alert_service = alert_service or AlertService(session_factory)
        self.completion = CompletionService(session_factory, gateway, self.alert_service)
        self.refund = RefundService(session_factory, gateway, self.alert_service)
        self.void = VoidService(session_factory, gateway, self.alert_service)

    def for_kind(self, kind: str) -> AbstractJobService:
        services = {service.kind: service for service in (self.completion, self.refund, self.void)}
        try:
            return services[kind]
        except KeyError:
            raise ValueError(f"Unknown job kind: {kind}") from None

    def for_job(self, job: AbstractJob) -> AbstractJobService:
        return self.for_kind(job.kind)

    async def send(self, job: AbstractJob) -> AbstractJob:
        return await self.for_job(job).send(job)

    async def mark_failed_as_done(self, order_id: int) -> int:
        """Give up on the order's FAILED_CHECK jobs of every kind in one transaction"""
        async with self.session_factory() as db:
            async with db.begin():
                updated = await job_store.mark_failed_as_done(db, order_id)
                if updated:
                    await self.alert_service.increment(Alert.KEY_FAILED_JOBS, -updated, db=db)
        if updated:
            logger.info(f"Marked {updated} failed jobs of order {order_id} as done")
        return updated
