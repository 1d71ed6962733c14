"""
Operational alert counters
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from reconciler.db.models.alert import Alert
from reconciler.services.gateway_client import GatewayClient

logger = logging.getLogger(__name__)

# key -> (route, level) used when a counter row has to be created
ALERT_DEFAULTS: Dict[str, Tuple[str, str]] = {
    Alert.KEY_MANUAL_TASK: ("/manual-tasks", "warning"),
    Alert.KEY_FAILED_JOBS: ("/orders/failed-jobs", "danger"),
}


class AlertService:
    """
    Reads and updates the alert counters.
    
    Every method accepts an optional session; without one it runs in its
    own transaction.
    """
    
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
    
    async def increment(self, key: str, delta: int, db: Optional[AsyncSession] = None) -> None:
        """Atomically add ``delta`` to the counter, clamped at zero"""
        if db is None:
            async with self.session_factory() as session:
                async with session.begin():
                    await self._increment(session, key, delta)
            return
        await self._increment(db, key, delta)
    
    async def set_count(self, key: str, count: int, db: Optional[AsyncSession] = None) -> None:
        """Overwrite the counter with an absolute value"""
        if db is None:
            async with self.session_factory() as session:
                async with session.begin():
                    await self._set_count(session, key, count)
            return
        await self._set_count(db, key, count)
    
    async def read(self, key: str, db: Optional[AsyncSession] = None) -> int:
        """Current counter value, 0 if the counter does not exist yet"""
        if db is None:
            async with self.session_factory() as session:
                return await self._read(session, key)
        return await self._read(db, key)
    
    async def list_alerts(self) -> List[Alert]:
        async with self.session_factory() as session:
            result = await session.execute(select(Alert).order_by(Alert.key))
            return list(result.scalars().all())
    
    async def _increment(self, db: AsyncSession, key: str, delta: int) -> None:
        self._check_key(key)
        new_count = case((Alert.count + delta < 0, 0), else_=Alert.count + delta)
        result = await db.execute(
            update(Alert)
            .where(Alert.key == key)
            .values(count=new_count)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0 and not await self._create(db, key, max(delta, 0)):
            # Lost the insert race, the row exists now
            await db.execute(
                update(Alert)
                .where(Alert.key == key)
                .values(count=new_count)
                .execution_options(synchronize_session=False)
            )
    
    async def _set_count(self, db: AsyncSession, key: str, count: int) -> None:
        self._check_key(key)
        count = max(count, 0)
        result = await db.execute(
            update(Alert)
            .where(Alert.key == key)
            .values(count=count)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0 and not await self._create(db, key, count):
            await db.execute(
                update(Alert)
                .where(Alert.key == key)
                .values(count=count)
                .execution_options(synchronize_session=False)
            )
    
    async def _read(self, db: AsyncSession, key: str) -> int:
        self._check_key(key)
        result = await db.execute(select(Alert.count).where(Alert.key == key))
        count = result.scalar_one_or_none()
        return int(count) if count is not None else 0
    
    async def _create(self, db: AsyncSession, key: str, count: int) -> bool:
        route, level = ALERT_DEFAULTS[key]
        try:
            async with db.begin_nested():
                db.add(Alert(key=key, route=route, level=level, count=count))
        except IntegrityError:
            return False
        return True
    
    @staticmethod
    def _check_key(key: str) -> None:
        if key not in ALERT_DEFAULTS:
            raise ValueError(f"Unknown alert key: {key}")


class ManualTaskService:
    """Keeps the manual task alert in sync with the gateway"""
    
    def __init__(self, gateway: GatewayClient, alert_service: AlertService):
        self.gateway = gateway
        self.alert_service = alert_service
    
    async def update(self, space_id: int) -> int:
        """
        Fetch the number of open manual tasks and store it in the alert.
        
        Returns:
            The number of open manual tasks
        """
        count = await self.gateway.count_open_manual_tasks(space_id)
        await self.alert_service.set_count(Alert.KEY_MANUAL_TASK, count)
        logger.info(f"Space {space_id} has {count} open manual tasks")
        return count
