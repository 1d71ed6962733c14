"""
Payment gateway client
"""

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from reconciler.core.config import settings
from reconciler.core.exceptions import GatewayError, GatewayRejectedError
from reconciler.schemas.gateway import Operation, OperationLabel, RefundRequest

logger = logging.getLogger(__name__)


class GatewayClient(Protocol):
    """Operations the job engine needs from the gateway"""

    async def capture(self, space_id: int, transaction_id: int) -> Operation:
        ...

    async def refund(self, space_id: int, refund: RefundRequest) -> Operation:
        ...

    async def void(self, space_id: int, transaction_id: int) -> Operation:
        ...

    async def count_open_manual_tasks(self, space_id: int) -> int:
        ...


class HttpGatewayClient:
    """
    Gateway client over the REST API.
    
    Definitive refusals (HTTP 4xx) raise GatewayRejectedError; timeouts,
    network errors and 5xx answers raise GatewayError.
    """
    
    def __init__(
        self,
        base_url: Optional[str] = None,
        user_id: Optional[str] = None,
        api_secret: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or settings.GATEWAY_BASE_URL or "").rstrip("/")
        self.user_id = user_id or settings.GATEWAY_USER_ID
        self.api_secret = api_secret or settings.GATEWAY_API_SECRET
        self.timeout = timeout or settings.GATEWAY_TIMEOUT
        self._client = client
    
    def is_configured(self) -> bool:
        """Check if the gateway client is properly configured"""
        return bool(self.base_url and self.user_id and self.api_secret)
    
    async def capture(self, space_id: int, transaction_id: int) -> Operation:
        data = await self._post(
            "/transaction-completion/completeOnline",
            params={"spaceId": space_id, "id": transaction_id},
        )
        return self._parse_operation(data)
    
    async def refund(self, space_id: int, refund: RefundRequest) -> Operation:
        payload = {
            "externalId": refund.external_id,
            "transaction": refund.transaction_id,
            "type": refund.type,
            "reductions": [
                {
                    "lineItemUniqueId": reduction.line_item_id,
                    "quantityReduction": float(reduction.quantity),
                    "unitPriceReduction": float(reduction.unit_price),
                }
                for reduction in refund.reductions
            ],
        }
        data = await self._post("/refund/refund", params={"spaceId": space_id}, json=payload)
        return self._parse_operation(data)
    
    async def void(self, space_id: int, transaction_id: int) -> Operation:
        data = await self._post(
            "/transaction-void/voidOnline",
            params={"spaceId": space_id, "id": transaction_id},
        )
        return self._parse_operation(data)
    
    async def count_open_manual_tasks(self, space_id: int) -> int:
        data = await self._post(
            "/manual-task/count",
            params={"spaceId": space_id},
            json={"filter": {"fieldName": "state", "operator": "EQUALS", "type": "LEAF", "value": "OPEN"}},
        )
        return int(data)
    
    async def _post(self, path: str, params: Dict[str, Any], json: Optional[Dict[str, Any]] = None) -> Any:
        if not self.is_configured():
            raise GatewayError("Payment gateway not configured (GATEWAY_BASE_URL, GATEWAY_USER_ID, GATEWAY_API_SECRET)")
        
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                response = await self._client.post(url, params=params, json=json, auth=(self.user_id, self.api_secret))
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, params=params, json=json, auth=(self.user_id, self.api_secret))
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            logger.error(f"Gateway call {path} failed: {e}")
            raise GatewayError(f"Gateway call {path} failed: {e}") from e
        except httpx.HTTPError as e:
            raise GatewayError(f"Gateway call {path} failed: {e}") from e
        
        if 400 <= response.status_code < 500:
            message = self._error_message(response)
            logger.warning(f"Gateway rejected {path} with {response.status_code}: {message}")
            raise GatewayRejectedError(message, status_code=response.status_code)
        if response.status_code >= 500:
            raise GatewayError(f"Gateway call {path} returned {response.status_code}")
        
        return response.json()
    
    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        if isinstance(body, dict):
            return str(body.get("message") or body.get("defaultMessage") or body)
        return str(body)
    
    @staticmethod
    def _parse_operation(data: Dict[str, Any]) -> Operation:
        failure_reason = None
        failure = data.get("failureReason")
        if failure:
            failure_reason = failure.get("description") or None
        
        labels = [
            OperationLabel(label_id=str(label["descriptor"]["id"]), value=str(label.get("contentAsString", "")))
            for label in data.get("labels") or []
        ]
        return Operation(
            id=data["id"],
            failure_reason=failure_reason,
            labels=labels,
            amount=data.get("amount"),
        )
