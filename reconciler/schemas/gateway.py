"""
Payloads exchanged with the payment gateway
"""

from decimal import Decimal
from typing import Optional, List, Dict
from pydantic import BaseModel, Field


class OperationLabel(BaseModel):
    """Diagnostic label attached to a gateway operation"""
    label_id: str = Field(..., description="Label descriptor id")
    value: str = Field(..., description="Label content as string")


class Operation(BaseModel):
    """Result of a completion, refund or void call"""
    id: int = Field(..., description="Remote operation id")
    failure_reason: Optional[Dict[str, str]] = Field(None, description="Language code -> failure description")
    labels: List[OperationLabel] = Field(default_factory=list)
    amount: Optional[Decimal] = Field(None, description="Settled amount (refunds only)")


class LineItemReduction(BaseModel):
    """Reduction of one line item in a refund"""
    line_item_id: str = Field(..., description="Unique id of the line item")
    quantity: Decimal = Field(Decimal("0"), description="Quantity reduction")
    unit_price: Decimal = Field(Decimal("0"), description="Unit price reduction")


class RefundRequest(BaseModel):
    """Refund sent to the gateway"""
    external_id: str
    transaction_id: int
    reductions: List[LineItemReduction] = Field(default_factory=list)
    type: str = "MERCHANT_INITIATED_ONLINE"
