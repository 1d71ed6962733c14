"""
Cron runner

One invocation of the externally triggered cron: recover stale claims,
schedule the next slot, and, if this caller wins the due slot, retry jobs
that never reached the gateway and re-check the oldest failed one.
"""

import logging
from datetime import timedelta
from typing import List, Optional

from reconciler.core.config import settings
from reconciler.db import job_store
from reconciler.schemas.job import CronRunResponse
from reconciler.services.cron_service import CronService
from reconciler.services.job_service import JobServices

logger = logging.getLogger(__name__)


class CronRunner:
    """Drives the cron claim table and the job retry work"""

    def __init__(
        self,
        cron_service: CronService,
        job_services: JobServices,
        not_sent_period: Optional[timedelta] = None,
        recheck_period: Optional[timedelta] = None,
    ):
        self.cron_service = cron_service
        self.job_services = job_services
        self.session_factory = job_services.session_factory
        self.not_sent_period = not_sent_period if not_sent_period is not None else timedelta(minutes=settings.NOT_SENT_PERIOD_MINUTES)
        self.recheck_period = recheck_period if recheck_period is not None else timedelta(minutes=settings.RECHECK_PERIOD_MINUTES)

    async def run(self) -> CronRunResponse:
        """
        Run one cron cycle.

        Returns:
            status "idle" when nothing is due, "skipped" when another caller
            won the slot, otherwise "success" or "error"
        """
        await self.cron_service.clean_up_hanging_crons()
        await self.cron_service.clean_up_cron_db()
        await self.cron_service.insert_new_pending_cron()

        token = await self.cron_service.get_current_security_token_for_pending_cron()
        if token is None:
            return CronRunResponse(status="idle")

        if not await self.cron_service.set_processing(token):
            logger.debug(f"Lost cron slot {token} to another caller")
            return CronRunResponse(status="skipped", token=token)

        logger.info(f"Running cron {token}")
        errors: List[str] = []
        sent = rechecked = 0
        try:
            sent = await self.send_not_sent(errors)
            rechecked = await self.recheck_oldest_failed(errors)
        except Exception as e:
            logger.error(f"Cron {token} failed: {e}", exc_info=True)
            errors.append(str(e))

        error_message = "\n".join(errors) if errors else None
        if not await self.cron_service.set_complete(token, error_message):
            logger.warning(f"Cron {token} was no longer processing when it finished")

        await self.cron_service.insert_new_pending_cron()
        return CronRunResponse(
            status="error" if errors else "success",
            token=token,
            sent=sent,
            rechecked=rechecked,
            errors=errors,
        )

    async def send_not_sent(self, errors: List[str]) -> int:
        """Send every job stuck in CREATED longer than the not-sent period"""
        async with self.session_factory() as db:
            if not await job_store.has_not_sent(db, self.not_sent_period):
                return 0
            jobs = await job_store.load_not_sent(db, self.not_sent_period)

        sent = 0
        for job in jobs:
            try:
                await self.job_services.send(job)
                sent += 1
            except Exception as e:
                logger.error(f"Retrying {job.kind} job {job.id} failed: {e}")
                errors.append(f"{job.kind} job {job.id}: {e}")
        return sent

    async def recheck_oldest_failed(self, errors: List[str]) -> int:
        """
        Re-send the oldest FAILED_CHECK job whose order has nothing else running.

        One job per cycle. Jobs of busy orders are skipped for this cycle. Every
        answer refreshes updated_at, so a repeated rejection moves the job to the
        back of the queue.
        """
        job = None
        async with self.session_factory() as db:
            for candidate in await job_store.load_checkable(db, older_than=self.recheck_period):
                if await job_store.count_running_for_order(db, candidate.order_id):
                    logger.debug(
                        f"Order {candidate.order_id} has running jobs, not re-checking {candidate.kind} job {candidate.id}"
                    )
                    continue
                job = candidate
                break
        if job is None:
            return 0

        try:
            await self.job_services.send(job)
        except Exception as e:
            logger.error(f"Re-checking {job.kind} job {job.id} failed: {e}")
            errors.append(f"{job.kind} job {job.id}: {e}")
            return 0
        return 1
