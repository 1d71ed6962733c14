"""
Job-related Pydantic schemas
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict
from pydantic import BaseModel, Field


class TransactionContext(BaseModel):
    """Identifiers of the stored transaction a job is created for"""
    space_id: int = Field(..., description="Gateway space (tenant) id")
    transaction_id: int = Field(..., description="Remote transaction id")
    order_id: int = Field(..., description="Local order id")
    state: Optional[str] = Field(None, description="Last known remote transaction state")
    language: Optional[str] = Field(None, description="Customer language of the transaction")


class ReductionItem(BaseModel):
    """Requested reduction of one line item"""
    id: str = Field(..., description="Unique line item id")
    quantity: Decimal = Field(Decimal("0"), ge=0, description="Quantity to refund")
    unit_price: Decimal = Field(Decimal("0"), ge=0, description="Unit price reduction")


class CompletionCreateRequest(BaseModel):
    amount: Optional[Decimal] = Field(None, ge=0, description="Amount to capture, defaults to the authorized amount")


class RefundCreateRequest(BaseModel):
    reductions: List[ReductionItem] = Field(..., description="Line item reductions for this refund")
    restock: bool = Field(False, description="Return refunded items to stock")


class JobResponse(BaseModel):
    """A capture, refund or void job"""
    id: int
    kind: str
    state: str
    order_id: int
    space_id: int
    transaction_id: int
    job_id: Optional[int] = None
    labels: Dict[str, str] = Field(default_factory=dict)
    failure_reason: Optional[str] = Field(None, description="Failure reason in the requested language")
    amount: Optional[Decimal] = None
    external_id: Optional[str] = None
    restock: Optional[bool] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderJobsResponse(BaseModel):
    order_id: int
    running: int = Field(..., description="Jobs of any kind not yet in a terminal state")
    jobs: List[JobResponse]


class MarkDoneResponse(BaseModel):
    order_id: int
    updated: int = Field(..., description="Number of jobs moved to FAILED_DONE")


class OutcomeRequest(BaseModel):
    """Final state of a sent job as reported by the gateway"""
    space_id: int
    job_id: int
    succeeded: bool
    failure_reason: Optional[Dict[str, str]] = None


class AlertResponse(BaseModel):
    key: str
    route: str
    level: str
    count: int


class CronRunResponse(BaseModel):
    status: str = Field(..., description="idle, skipped, success or error")
    token: Optional[str] = None
    sent: int = 0
    rechecked: int = 0
    errors: List[str] = Field(default_factory=list)
