"""Payment gateway adapter.

Transport failures and 5xx answers raise ``ExternalServiceError`` so the
caller can leave the order untouched and let the customer retry. A 4xx answer
is a rejected token. Only a JSON body with ``state == "Completed"`` counts as
a successful payment.
"""
from enum import Enum
from typing import Optional

import httpx
import structlog

from hamromart.core.config import settings
from hamromart.core.errors import ExternalServiceError

logger = structlog.get_logger(__name__)


class GatewayResult(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentGateway:
    def __init__(self, url: Optional[str] = None, secret_key: Optional[str] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None):
        self.url = url or settings.PAYMENT_GATEWAY_URL
        self.secret_key = secret_key or settings.PAYMENT_GATEWAY_SECRET_KEY
        self.timeout = timeout if timeout is not None else settings.PAYMENT_GATEWAY_TIMEOUT_SECONDS
        self.transport = transport

    def verify(self, token: str, amount_cents: int, mobile: str) -> GatewayResult:
        payload = {"token": token, "amount": amount_cents, "mobile": mobile}
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                resp = client.post(
                    self.url,
                    json=payload,
                    headers={"Authorization": f"Key {self.secret_key}"},
                )
        except httpx.TimeoutException as exc:
            raise ExternalServiceError("payment_gateway", "Payment gateway timed out") from exc
        except httpx.RequestError as exc:
            raise ExternalServiceError("payment_gateway", "Payment gateway unavailable") from exc

        if resp.status_code >= 500:
            raise ExternalServiceError("payment_gateway", f"Payment gateway error ({resp.status_code})")
        if resp.status_code >= 400:
            # the gateway rejects bad or already-used tokens with a 4xx
            logger.info("payment_rejected", status_code=resp.status_code)
            return GatewayResult.FAILED
        try:
            body = resp.json()
        except ValueError as exc:
            raise ExternalServiceError("payment_gateway", "Unreadable payment gateway response") from exc

        state = body.get("state") if isinstance(body, dict) else None
        return GatewayResult.COMPLETED if state == "Completed" else GatewayResult.FAILED
