"""Tests for the alert counters."""

import asyncio

import pytest
from sqlalchemy import delete

from conftest import SPACE_ID
from reconciler.db.models.alert import Alert
from reconciler.services.alert_service import AlertService, ManualTaskService


async def test_increment_and_clamp(alert_service):
    await alert_service.increment(Alert.KEY_FAILED_JOBS, 3)
    await alert_service.increment(Alert.KEY_FAILED_JOBS, -1)
    assert await alert_service.read(Alert.KEY_FAILED_JOBS) == 2

    await alert_service.increment(Alert.KEY_FAILED_JOBS, -5)
    assert await alert_service.read(Alert.KEY_FAILED_JOBS) == 0


async def test_concurrent_increments_are_not_lost(alert_service):
    await asyncio.gather(*(alert_service.increment(Alert.KEY_FAILED_JOBS, 1) for _ in range(20)))

    assert await alert_service.read(Alert.KEY_FAILED_JOBS) == 20


async def test_missing_counter_is_created(session_factory):
    service = AlertService(session_factory)
    assert await service.read(Alert.KEY_MANUAL_TASK) == 0

    await service.increment(Alert.KEY_MANUAL_TASK, 2)
    await service.increment(Alert.KEY_MANUAL_TASK, 1)

    alerts = await service.list_alerts()
    assert [(a.key, a.route, a.level, a.count) for a in alerts] == [
        (Alert.KEY_MANUAL_TASK, "/manual-tasks", "warning", 3),
    ]


async def test_set_count(alert_service, session_factory):
    await alert_service.set_count(Alert.KEY_MANUAL_TASK, 7)
    assert await alert_service.read(Alert.KEY_MANUAL_TASK) == 7

    async with session_factory() as db:
        async with db.begin():
            await db.execute(delete(Alert))
    await alert_service.set_count(Alert.KEY_MANUAL_TASK, -2)
    assert await alert_service.read(Alert.KEY_MANUAL_TASK) == 0


async def test_unknown_key(alert_service):
    with pytest.raises(ValueError):
        await alert_service.increment("orders_on_fire", 1)


async def test_manual_task_service_stores_gateway_count(alert_service, gateway):
    gateway.manual_tasks = 4

    count = await ManualTaskService(gateway, alert_service).update(SPACE_ID)

    assert count == 4
    assert await alert_service.read(Alert.KEY_MANUAL_TASK) == 4
    assert gateway.calls == [("manual_tasks", SPACE_ID)]
