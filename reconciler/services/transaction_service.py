"""
Stored transaction lookups and action guards
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reconciler.core.exceptions import ActionNotPossibleError
from reconciler.db import job_store
from reconciler.db.models.job import CompletionJob, RefundJob, VoidJob
from reconciler.db.models.transaction_info import TransactionInfo, TransactionState
from reconciler.schemas.job import TransactionContext

logger = logging.getLogger(__name__)

REFUNDABLE_STATES = (TransactionState.COMPLETED, TransactionState.FULFILL, TransactionState.DECLINE)


class TransactionService:
    """Provides the transaction context that seeds new jobs"""
    
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
    
    async def get_context(self, order_id: int, db: Optional[AsyncSession] = None) -> Optional[TransactionContext]:
        """
        Load the stored transaction for an order.
        
        Returns:
            The transaction context, or None if the order has no transaction
        """
        if db is None:
            async with self.session_factory() as session:
                info = await self._load_by_order_id(session, order_id)
        else:
            info = await self._load_by_order_id(db, order_id)
        if info is None:
            return None
        return TransactionContext(
            space_id=info.space_id,
            transaction_id=info.transaction_id,
            order_id=info.order_id,
            state=info.state,
            language=info.language,
        )
    
    async def has_running_jobs(self, context: TransactionContext) -> bool:
        async with self.session_factory() as session:
            return await job_store.count_running_for_order(session, context.order_id) > 0
    
    async def is_completion_possible(self, context: TransactionContext) -> bool:
        """Authorized and neither a completion nor a void is running"""
        if context.state != TransactionState.AUTHORIZED:
            return False
        async with self.session_factory() as session:
            running = await job_store.count_running_for_order(session, context.order_id, (CompletionJob, VoidJob))
        return running == 0
    
    async def is_void_possible(self, context: TransactionContext) -> bool:
        return await self.is_completion_possible(context)
    
    async def is_refund_possible(self, context: TransactionContext) -> bool:
        """Settled (or declined) and no refund is running"""
        if context.state not in REFUNDABLE_STATES:
            return False
        async with self.session_factory() as session:
            running = await job_store.count_running_for_order(session, context.order_id, (RefundJob,))
        return running == 0
    
    async def ensure_possible(self, kind: str, context: TransactionContext) -> None:
        """Raise ActionNotPossibleError if the action cannot be started now"""
        checks = {
            CompletionJob.kind: self.is_completion_possible,
            VoidJob.kind: self.is_void_possible,
            RefundJob.kind: self.is_refund_possible,
        }
        if not await checks[kind](context):
            logger.info(f"{kind} not possible for order {context.order_id} in state {context.state}")
            raise ActionNotPossibleError(
                f"A {kind} is not possible for order {context.order_id} (transaction state {context.state})"
            )
    
    @staticmethod
    async def _load_by_order_id(db: AsyncSession, order_id: int) -> Optional[TransactionInfo]:
        result = await db.execute(
            select(TransactionInfo).where(TransactionInfo.order_id == order_id).order_by(TransactionInfo.id.desc()).limit(1)
        )
        return result.scalar_one_or_none()
