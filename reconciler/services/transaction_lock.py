"""
Pessimistic lock on one remote transaction
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reconciler.db.models.transaction_info import TransactionInfo

logger = logging.getLogger(__name__)


async def lock_transaction(db: AsyncSession, space_id: int, transaction_id: int) -> bool:
    """
    Take a row-level exclusive lock on the stored transaction.
    
    Must be called inside an open transaction on ``db``; the lock is held
    until that transaction commits or rolls back.
    
    Args:
        db: Session with an open transaction
        space_id: Gateway space of the transaction
        transaction_id: Remote transaction id
        
    Returns:
        True if a matching transaction row exists
    """
    if not db.in_transaction():
        raise RuntimeError("lock_transaction requires an open database transaction")
    
    result = await db.execute(
        select(TransactionInfo.id)
        .where(
            TransactionInfo.space_id == space_id,
            TransactionInfo.transaction_id == transaction_id,
        )
        .with_for_update()
    )
    found = result.first() is not None
    if not found:
        logger.debug(f"No stored transaction {space_id}/{transaction_id} to lock")
    return found
