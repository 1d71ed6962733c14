"""Tests for one cron cycle: claiming the slot and retrying jobs."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from conftest import backdate, store_transaction
from reconciler.core.exceptions import GatewayError, GatewayRejectedError
from reconciler.db.models.cron import CronJob, CronState
from reconciler.db.models.job import CompletionJob, JobState, VoidJob
from reconciler.services.cron_runner import CronRunner
from reconciler.services.cron_service import CronService


@pytest.fixture
def runner(session_factory, job_services):
    return CronRunner(
        CronService(session_factory, schedule_delay=timedelta(minutes=1)),
        job_services,
        not_sent_period=timedelta(minutes=10),
        recheck_period=timedelta(minutes=10),
    )


async def make_pending_due(session_factory):
    async with session_factory() as db:
        result = await db.execute(select(CronJob.id).where(CronJob.state == CronState.PENDING))
        cron_id = result.scalar_one()
    await backdate(session_factory, CronJob, cron_id, column="date_scheduled", minutes=2)


async def schedule_due_cron(runner, session_factory):
    await runner.cron_service.insert_new_pending_cron()
    await make_pending_due(session_factory)


async def reload(session_factory, job):
    async with session_factory() as db:
        return await db.get(type(job), job.id)


async def test_first_run_only_schedules(runner, session_factory):
    response = await runner.run()

    assert response.status == "idle"
    async with session_factory() as db:
        states = (await db.execute(select(CronJob.state))).scalars().all()
    assert states == [CronState.PENDING]


async def test_run_sends_stale_created_jobs(runner, job_services, gateway, session_factory, context):
    stale = await job_services.completion.create(context)
    fresh_context = await store_transaction(session_factory, order_id=43, transaction_id=101)
    fresh = await job_services.void.create(fresh_context)
    await backdate(session_factory, CompletionJob, stale.id, minutes=11)
    await schedule_due_cron(runner, session_factory)

    response = await runner.run()

    assert response.status == "success"
    assert response.sent == 1
    assert (await reload(session_factory, stale)).state == JobState.SENT
    assert (await reload(session_factory, fresh)).state == JobState.CREATED
    assert [call[0] for call in gateway.calls] == ["capture"]

    async with session_factory() as db:
        rows = (await db.execute(select(CronJob).order_by(CronJob.id))).scalars().all()
    assert [row.state for row in rows] == [CronState.SUCCESS, CronState.PENDING]
    assert rows[0].security_token == response.token


async def test_run_rechecks_oldest_failed_job(runner, job_services, gateway, session_factory, context):
    job = await job_services.void.create(context)
    gateway.queue("void", GatewayRejectedError("declined"))
    await job_services.send(job)
    await backdate(session_factory, VoidJob, job.id, minutes=30)
    await schedule_due_cron(runner, session_factory)

    response = await runner.run()

    assert response.rechecked == 1
    assert (await reload(session_factory, job)).state == JobState.SENT


async def test_recheck_waits_for_running_jobs_of_the_order(runner, job_services, gateway, session_factory, context):
    failed = await job_services.void.create(context)
    gateway.queue("void", GatewayRejectedError("declined"))
    await job_services.send(failed)
    await backdate(session_factory, VoidJob, failed.id, minutes=30)
    running = await job_services.completion.create(context)
    await job_services.send(running)
    await schedule_due_cron(runner, session_factory)

    response = await runner.run()

    assert response.rechecked == 0
    assert (await reload(session_factory, failed)).state == JobState.FAILED_CHECK


async def test_recent_failures_are_not_rechecked(runner, job_services, gateway, session_factory, context):
    job = await job_services.void.create(context)
    gateway.queue("void", GatewayRejectedError("declined"))
    await job_services.send(job)
    await schedule_due_cron(runner, session_factory)

    response = await runner.run()

    assert response.status == "success"
    assert response.rechecked == 0


async def test_send_errors_mark_the_cron_as_error(runner, job_services, gateway, session_factory, context):
    job = await job_services.completion.create(context)
    await backdate(session_factory, CompletionJob, job.id, minutes=11)
    gateway.queue("capture", GatewayError("timeout"))
    await schedule_due_cron(runner, session_factory)

    response = await runner.run()

    assert response.status == "error"
    assert response.sent == 0
    assert len(response.errors) == 1
    async with session_factory() as db:
        cron = (await db.execute(select(CronJob).where(CronJob.security_token == response.token))).scalar_one()
    assert cron.state == CronState.ERROR
    assert "timeout" in cron.error_message
    assert (await reload(session_factory, job)).state == JobState.CREATED


async def test_concurrent_runs_execute_once(runner, job_services, gateway, session_factory, context):
    job = await job_services.completion.create(context)
    await backdate(session_factory, CompletionJob, job.id, minutes=11)
    await schedule_due_cron(runner, session_factory)

    responses = await asyncio.gather(runner.run(), runner.run())

    statuses = sorted(response.status for response in responses)
    assert statuses.count("success") == 1
    assert set(statuses) - {"success"} <= {"skipped", "idle"}
    assert [call for call in gateway.calls if call[0] == "capture"] == [("capture", 1, 100)]


async def fail_void(job_services, gateway, session_factory, context, minutes):
    job = await job_services.void.create(context)
    gateway.queue("void", GatewayRejectedError("declined"))
    await job_services.send(job)
    await backdate(session_factory, VoidJob, job.id, minutes=minutes)
    return job


async def test_repeated_rejection_moves_job_to_the_back(runner, job_services, gateway, session_factory, context):
    await fail_void(job_services, gateway, session_factory, context, minutes=60)
    other_context = await store_transaction(session_factory, order_id=43, transaction_id=101)
    await fail_void(job_services, gateway, session_factory, other_context, minutes=30)
    gateway.calls.clear()
    gateway.queue("void", GatewayRejectedError("declined"))
    gateway.queue("void", GatewayRejectedError("declined"))
    errors = []

    assert await runner.recheck_oldest_failed(errors) == 1
    assert await runner.recheck_oldest_failed(errors) == 1

    assert [call[2] for call in gateway.calls] == [100, 101]
    assert errors == []


async def test_recheck_skips_orders_with_running_jobs(runner, job_services, gateway, session_factory, context):
    blocked = await fail_void(job_services, gateway, session_factory, context, minutes=60)
    await job_services.send(await job_services.completion.create(context))
    other_context = await store_transaction(session_factory, order_id=43, transaction_id=101)
    other = await fail_void(job_services, gateway, session_factory, other_context, minutes=30)
    gateway.calls.clear()
    errors = []

    assert await runner.recheck_oldest_failed(errors) == 1

    assert gateway.calls == [("void", 1, 101)]
    assert (await reload(session_factory, blocked)).state == JobState.FAILED_CHECK
    assert (await reload(session_factory, other)).state == JobState.SENT
