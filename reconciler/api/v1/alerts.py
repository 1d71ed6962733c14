"""
Alert counter endpoints
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Security

from reconciler.api.v1.dependencies import get_alert_service, get_manual_task_service
from reconciler.core.exceptions import GatewayError
from reconciler.core.security import verify_api_key
from reconciler.schemas.job import AlertResponse
from reconciler.services.alert_service import AlertService, ManualTaskService

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Security(verify_api_key)])


@router.get("", response_model=List[AlertResponse])
async def list_alerts(alert_service: AlertService = Depends(get_alert_service)):
    """Current operator alert counters"""
    alerts = await alert_service.list_alerts()
    return [
        AlertResponse(key=alert.key, route=alert.route, level=alert.level, count=alert.count)
        for alert in alerts
    ]


@router.post("/manual-task/refresh")
async def refresh_manual_tasks(
    space_id: int = Query(..., description="Gateway space to count open manual tasks in"),
    manual_task_service: ManualTaskService = Depends(get_manual_task_service),
):
    """Reload the number of open manual tasks from the gateway"""
    try:
        count = await manual_task_service.update(space_id)
    except GatewayError as e:
        logger.error(f"Failed to refresh manual tasks for space {space_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return {"key": "manual_task", "count": count}
