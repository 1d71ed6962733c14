"""API tests running the FastAPI app in-process against the test database."""

import logging

import httpx
import pytest

from conftest import ORDER_ID, SPACE_ID, store_transaction
from reconciler.api.v1.dependencies import get_gateway_client
from reconciler.core.config import settings
from reconciler.core.exceptions import GatewayError, GatewayRejectedError
from reconciler.db.base import get_session_factory_dependency
from reconciler.schemas.gateway import Operation
from reconciler.db import base
from reconciler.main import app, shutdown_event, startup_event


@pytest.fixture
async def client(session_factory, gateway, alert_service):
    app.dependency_overrides[get_session_factory_dependency] = lambda: session_factory
    app.dependency_overrides[get_gateway_client] = lambda: gateway
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()


async def test_complete_order(client, context, gateway):
    gateway.queue("capture", Operation(id=9001))

    response = await client.post(f"/orders/{ORDER_ID}/completion")

    assert response.status_code == 200
    body = response.json()
    assert body["kind"] == "completion"
    assert body["state"] == "SENT"
    assert body["job_id"] == 9001


async def test_rejection_is_reported_in_the_job(client, context, gateway):
    gateway.queue("void", GatewayRejectedError("insufficient funds"))

    response = await client.post(f"/orders/{ORDER_ID}/void")

    assert response.status_code == 200
    assert response.json()["state"] == "FAILED_CHECK"
    assert response.json()["failure_reason"] == "insufficient funds"


async def test_transport_error_is_bad_gateway(client, context, gateway):
    gateway.queue("capture", GatewayError("connection refused"))

    response = await client.post(f"/orders/{ORDER_ID}/completion")

    assert response.status_code == 502


async def test_action_not_possible(client, context):
    assert (await client.post(f"/orders/{ORDER_ID}/completion")).status_code == 200

    void = await client.post(f"/orders/{ORDER_ID}/void")
    refund = await client.post(f"/orders/{ORDER_ID}/refund", json={"reductions": [{"id": "line-1", "quantity": 1}]})

    assert void.status_code == 409
    assert refund.status_code == 409


async def test_unknown_order(client):
    response = await client.post("/orders/999/completion")

    assert response.status_code == 404


async def test_refund_order(client, session_factory):
    await store_transaction(session_factory, state="COMPLETED")

    response = await client.post(
        f"/orders/{ORDER_ID}/refund",
        json={"reductions": [{"id": "line-1", "quantity": 2, "unit_price": 0}], "restock": True},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["external_id"] == f"r-{ORDER_ID}-1"
    assert body["restock"] is True


async def test_list_jobs_and_give_up_on_failures(client, context, gateway, alert_service):
    gateway.queue("capture", GatewayRejectedError("declined"))
    await client.post(f"/orders/{ORDER_ID}/completion")

    listing = (await client.get(f"/orders/{ORDER_ID}/jobs", params={"language": "en"})).json()
    assert listing["running"] == 0
    assert [(job["kind"], job["state"], job["failure_reason"]) for job in listing["jobs"]] == [
        ("completion", "FAILED_CHECK", "declined"),
    ]

    alerts = {alert["key"]: alert["count"] for alert in (await client.get("/alerts")).json()}
    assert alerts["failed_jobs"] == 1

    done = await client.post(f"/orders/{ORDER_ID}/failed-jobs/done")
    assert done.json() == {"order_id": ORDER_ID, "updated": 1}
    alerts = {alert["key"]: alert["count"] for alert in (await client.get("/alerts")).json()}
    assert alerts["failed_jobs"] == 0


async def test_resolve_outcome(client, context):
    sent = (await client.post(f"/orders/{ORDER_ID}/completion")).json()

    response = await client.post(
        "/jobs/completion/outcome",
        json={"space_id": SPACE_ID, "job_id": sent["job_id"], "succeeded": True},
    )
    missing = await client.post(
        "/jobs/completion/outcome",
        json={"space_id": SPACE_ID, "job_id": 1, "succeeded": True},
    )
    unknown_kind = await client.post(
        "/jobs/capture/outcome",
        json={"space_id": SPACE_ID, "job_id": 1, "succeeded": True},
    )

    assert response.json()["state"] == "SUCCESS"
    assert missing.status_code == 404
    assert unknown_kind.status_code == 404


async def test_refresh_manual_tasks(client, gateway):
    gateway.manual_tasks = 2

    response = await client.post("/alerts/manual-task/refresh", params={"space_id": SPACE_ID})

    assert response.json() == {"key": "manual_task", "count": 2}


async def test_cron_run(client):
    response = await client.post("/cron/run")

    assert response.status_code == 200
    assert response.json()["status"] == "idle"


async def test_api_key_required_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "operator-key")

    denied = await client.get("/alerts")
    allowed = await client.get("/alerts", headers={"X-API-Key": "operator-key"})

    assert denied.status_code == 401
    assert allowed.status_code == 200


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_startup_reports_missing_configuration(monkeypatch, caplog):
    monkeypatch.setattr(settings, "DATABASE_URL", None)
    monkeypatch.setattr(settings, "GATEWAY_BASE_URL", None)
    monkeypatch.setattr(settings, "API_KEY", None)

    with caplog.at_level(logging.INFO, logger="reconciler.main"):
        await startup_event()

    messages = [record.getMessage() for record in caplog.records]
    assert any("DATABASE_URL is not set" in message for message in messages)
    assert any("Gateway credentials are incomplete" in message for message in messages)
    assert any("re-checking failed jobs after" in message for message in messages)


async def test_shutdown_disposes_the_engine(monkeypatch):
    monkeypatch.setattr(settings, "DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    engine = base.get_engine()
    assert base.get_session_factory() is not None

    await shutdown_event()

    assert base._engine is None
    assert base._AsyncSessionLocal is None
    assert base.get_engine() is not engine
    await base.dispose_engine()
