"""
Cron trigger endpoint

Called by any external scheduler; concurrent calls are safe, only one
of them runs the job work for a given slot.
"""

import logging
from fastapi import APIRouter, Depends, Security

from reconciler.api.v1.dependencies import get_cron_runner
from reconciler.core.security import verify_api_key
from reconciler.schemas.job import CronRunResponse
from reconciler.services.cron_runner import CronRunner

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/run", response_model=CronRunResponse)
async def run_cron(
    runner: CronRunner = Depends(get_cron_runner),
    api_key: str = Security(verify_api_key),
):
    """
    Run one cron cycle: recover hanging claims, schedule the next slot,
    and process pending jobs if this call wins the due slot.
    """
    return await runner.run()
