"""
Job outcome endpoint
"""

from fastapi import APIRouter, Depends, HTTPException, Security

from reconciler.api.v1.dependencies import get_job_services, job_to_response
from reconciler.core.security import verify_api_key
from reconciler.schemas.job import JobResponse, OutcomeRequest
from reconciler.services.job_service import JobServices

router = APIRouter()


@router.post("/{kind}/outcome", response_model=JobResponse)
async def resolve_outcome(
    kind: str,
    data: OutcomeRequest,
    job_services: JobServices = Depends(get_job_services),
    api_key: str = Security(verify_api_key),
):
    """
    Record the final state the gateway reported for a sent job.
    
    Parsing the gateway notification is up to the caller.
    """
    try:
        service = job_services.for_kind(kind)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    
    job = await service.resolve_outcome(data.space_id, data.job_id, data.succeeded, data.failure_reason)
    if job is None:
        raise HTTPException(status_code=404, detail=f"No {kind} job with remote id {data.job_id}")
    return job_to_response(job)
