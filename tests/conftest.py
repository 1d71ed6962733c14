"""Shared fixtures: a throwaway SQLite database and an in-memory gateway."""

from datetime import timedelta
from typing import Any, Dict, List

import pytest
from sqlalchemy import update

from reconciler.db.base import Base, create_engine_for_url, create_session_factory
from reconciler.db.models.alert import Alert
from reconciler.db.models.job import utcnow
from reconciler.db.models.transaction_info import TransactionInfo, TransactionState
from reconciler.schemas.gateway import Operation
from reconciler.schemas.job import TransactionContext
from reconciler.services.alert_service import AlertService
from reconciler.services.job_service import JobServices

# Attach every table to Base.metadata
import reconciler.db.models.cron  # noqa: F401

SPACE_ID = 1
TRANSACTION_ID = 100
ORDER_ID = 42


class FakeGateway:
    """Gateway double answering from per-operation queues"""

    def __init__(self):
        self.calls: List[tuple] = []
        self.responses: Dict[str, List[Any]] = {"capture": [], "refund": [], "void": []}
        self.next_id = 9000
        self.manual_tasks = 0

    def queue(self, operation: str, result: Any) -> None:
        """Queue an Operation to return or an exception to raise"""
        self.responses[operation].append(result)

    async def _answer(self, operation: str) -> Operation:
        if self.responses[operation]:
            result = self.responses[operation].pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        self.next_id += 1
        return Operation(id=self.next_id)

    async def capture(self, space_id, transaction_id):
        self.calls.append(("capture", space_id, transaction_id))
        return await self._answer("capture")

    async def refund(self, space_id, refund):
        self.calls.append(("refund", space_id, refund))
        return await self._answer("refund")

    async def void(self, space_id, transaction_id):
        self.calls.append(("void", space_id, transaction_id))
        return await self._answer("void")

    async def count_open_manual_tasks(self, space_id):
        self.calls.append(("manual_tasks", space_id))
        return self.manual_tasks


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'reconciler.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
async def alert_service(session_factory):
    async with session_factory() as db:
        async with db.begin():
            db.add_all([
                Alert(key=Alert.KEY_MANUAL_TASK, route="/manual-tasks", level="warning", count=0),
                Alert(key=Alert.KEY_FAILED_JOBS, route="/orders/failed-jobs", level="danger", count=0),
            ])
    return AlertService(session_factory)


@pytest.fixture
def job_services(session_factory, gateway, alert_service):
    return JobServices(session_factory, gateway, alert_service)


async def store_transaction(session_factory, order_id=ORDER_ID, transaction_id=TRANSACTION_ID,
                            state=TransactionState.AUTHORIZED) -> TransactionContext:
    async with session_factory() as db:
        async with db.begin():
            db.add(TransactionInfo(
                space_id=SPACE_ID,
                transaction_id=transaction_id,
                order_id=order_id,
                state=state,
                currency="EUR",
                language="de-DE",
            ))
    return TransactionContext(
        space_id=SPACE_ID,
        transaction_id=transaction_id,
        order_id=order_id,
        state=state,
        language="de-DE",
    )


@pytest.fixture
async def context(session_factory):
    return await store_transaction(session_factory)


async def backdate(session_factory, model, row_id, column="updated_at", **delta):
    """Move a timestamp column of one row into the past"""
    async with session_factory() as db:
        async with db.begin():
            await db.execute(
                update(model)
                .where(model.id == row_id)
                .values({column: utcnow() - timedelta(**delta)})
            )
