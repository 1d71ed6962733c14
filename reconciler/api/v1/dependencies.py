"""
Service dependencies shared by the routers
"""

from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from reconciler.db.base import get_session_factory_dependency
from reconciler.db.models.job import AbstractJob
from reconciler.schemas.job import JobResponse
from reconciler.services.alert_service import AlertService, ManualTaskService
from reconciler.services.cron_runner import CronRunner
from reconciler.services.cron_service import CronService
from reconciler.services.gateway_client import GatewayClient, HttpGatewayClient
from reconciler.services.job_service import JobServices
from reconciler.services.transaction_service import TransactionService
from reconciler.utils.translation import translate


def get_gateway_client() -> GatewayClient:
    """Dependency to get the gateway client"""
    return HttpGatewayClient()


def get_alert_service(
    session_factory: async_sessionmaker = Depends(get_session_factory_dependency),
) -> AlertService:
    return AlertService(session_factory)


def get_job_services(
    session_factory: async_sessionmaker = Depends(get_session_factory_dependency),
    gateway: GatewayClient = Depends(get_gateway_client),
    alert_service: AlertService = Depends(get_alert_service),
) -> JobServices:
    return JobServices(session_factory, gateway, alert_service)


def get_transaction_service(
    session_factory: async_sessionmaker = Depends(get_session_factory_dependency),
) -> TransactionService:
    return TransactionService(session_factory)


def get_cron_runner(
    session_factory: async_sessionmaker = Depends(get_session_factory_dependency),
    job_services: JobServices = Depends(get_job_services),
) -> CronRunner:
    return CronRunner(CronService(session_factory), job_services)


def get_manual_task_service(
    gateway: GatewayClient = Depends(get_gateway_client),
    alert_service: AlertService = Depends(get_alert_service),
) -> ManualTaskService:
    return ManualTaskService(gateway, alert_service)


def job_to_response(job: AbstractJob, language: Optional[str] = None) -> JobResponse:
    """Serialize a job, translating its failure reason"""
    return JobResponse(
        id=job.id,
        kind=job.kind,
        state=job.state,
        order_id=job.order_id,
        space_id=job.space_id,
        transaction_id=job.transaction_id,
        job_id=job.job_id,
        labels=job.labels or {},
        failure_reason=translate(job.failure_reason, language),
        amount=getattr(job, "amount", None),
        external_id=getattr(job, "external_id", None),
        restock=getattr(job, "restock", None),
        created_at=job.created_at,
        updated_at=job.updated_at,
    )
