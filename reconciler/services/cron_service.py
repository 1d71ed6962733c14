"""
Cron claim table

Turns an externally triggered, possibly concurrent cron into a single-flight
execution slot. Admission is decided only by unique-constraint collisions
and affected-row counts, so any number of processes can share the table.
"""

import logging
from datetime import timedelta
from typing import Optional
from uuid import uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from reconciler.core.config import settings
from reconciler.db.models.cron import CONSTRAINT_PENDING, CONSTRAINT_PROCESSING, CronJob, CronState
from reconciler.db.models.job import utcnow

logger = logging.getLogger(__name__)

HANGING_CRON_MESSAGE = "Cron did not terminate correctly, timeout exceeded."


class CronService:
    """Operations on the cron claim table"""
    
    def __init__(
        self,
        session_factory: async_sessionmaker,
        schedule_delay: Optional[timedelta] = None,
        timeout: Optional[timedelta] = None,
        retention: Optional[timedelta] = None,
    ):
        self.session_factory = session_factory
        self.schedule_delay = schedule_delay if schedule_delay is not None else timedelta(minutes=settings.CRON_SCHEDULE_DELAY_MINUTES)
        self.timeout = timeout if timeout is not None else timedelta(minutes=settings.CRON_TIMEOUT_MINUTES)
        self.retention = retention if retention is not None else timedelta(days=settings.CRON_RETENTION_DAYS)
    
    async def insert_new_pending_cron(self) -> bool:
        """
        Schedule the next execution unless one is already pending.
        
        Returns:
            True if a new pending row was inserted
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    result = await db.execute(
                        select(CronJob.security_token).where(CronJob.state == CronState.PENDING)
                    )
                    if result.first() is not None:
                        return False
                    
                    cron = CronJob(
                        security_token=str(uuid4()),
                        state=CronState.PENDING,
                        constraint_key=CONSTRAINT_PENDING,
                        date_scheduled=utcnow() + self.schedule_delay,
                    )
                    db.add(cron)
                    await db.flush()
            logger.debug(f"Scheduled cron {cron.id} for {cron.date_scheduled}")
            return True
        except IntegrityError:
            logger.debug("Another process scheduled the pending cron first")
            return False
        except SQLAlchemyError as e:
            logger.error(f"Error scheduling cron: {e}", exc_info=True)
            return False
    
    async def get_current_security_token_for_pending_cron(self) -> Optional[str]:
        """Token of the pending cron if it is due, otherwise None"""
        try:
            async with self.session_factory() as db:
                result = await db.execute(
                    select(CronJob.security_token)
                    .where(CronJob.state == CronState.PENDING, CronJob.date_scheduled < utcnow())
                    .limit(1)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error reading pending cron: {e}", exc_info=True)
            return None
    
    async def set_processing(self, security_token: str) -> bool:
        """
        Claim the execution slot for a pending cron.
        
        Returns:
            True only for the single caller whose update moved the row
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    result = await db.execute(
                        update(CronJob)
                        .where(CronJob.security_token == security_token, CronJob.state == CronState.PENDING)
                        .values(
                            state=CronState.PROCESSING,
                            constraint_key=CONSTRAINT_PROCESSING,
                            date_started=utcnow(),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    claimed = result.rowcount == 1
        except IntegrityError:
            # Another cron is still processing
            logger.debug(f"Cron {security_token} not admitted, processing slot occupied")
            return False
        return claimed
    
    async def set_complete(self, security_token: str, error: Optional[str] = None) -> bool:
        """
        Finish a processing cron as success, or as error when ``error`` is given.
        
        Returns:
            True if the processing row for the token was completed
        """
        async with self.session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    update(CronJob)
                    .where(CronJob.security_token == security_token, CronJob.state == CronState.PROCESSING)
                    .values(
                        state=CronState.ERROR if error else CronState.SUCCESS,
                        constraint_key=CronJob.id,
                        date_completed=utcnow(),
                        error_message=error,
                    )
                    .execution_options(synchronize_session=False)
                )
                return result.rowcount == 1
    
    async def clean_up_hanging_crons(self) -> int:
        """
        Fail processing crons that started longer ago than the timeout.
        
        Returns:
            Number of crons recovered
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    now = utcnow()
                    result = await db.execute(
                        update(CronJob)
                        .where(CronJob.state == CronState.PROCESSING, CronJob.date_started < now - self.timeout)
                        .values(
                            state=CronState.ERROR,
                            constraint_key=CronJob.id,
                            date_completed=now,
                            error_message=HANGING_CRON_MESSAGE,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    recovered = result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error cleaning up hanging crons: {e}", exc_info=True)
            return 0
        if recovered:
            logger.warning(f"Recovered {recovered} hanging cron(s)")
        return recovered
    
    async def clean_up_cron_db(self) -> int:
        """
        Delete completed crons older than the retention window.
        
        Returns:
            Number of rows deleted
        """
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    result = await db.execute(
                        delete(CronJob)
                        .where(
                            CronJob.state.in_((CronState.SUCCESS, CronState.ERROR)),
                            CronJob.date_completed < utcnow() - self.retention,
                        )
                        .execution_options(synchronize_session=False)
                    )
                    return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error cleaning up cron table: {e}", exc_info=True)
            return 0
