"""Payment gateway collaborator: authorize-and-capture and prior-auth capture."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from app.integrations.http import HttpServiceClient

logger = logging.getLogger(__name__)


class PaymentResult(BaseModel):
    success: bool
    transaction_id: str | None = None
    error: str | None = None


class PaymentGateway(Protocol):
    async def authorize_and_capture(
        self, amount: Decimal, card_details: dict[str, Any], billing_info: dict[str, Any]
    ) -> PaymentResult: ...

    async def capture_prior_auth(self, transaction_id: str, amount: Decimal) -> PaymentResult: ...


class HttpPaymentGateway(HttpServiceClient):
    service_name = "payment-gateway"

    async def authorize_and_capture(
        self, amount: Decimal, card_details: dict[str, Any], billing_info: dict[str, Any]
    ) -> PaymentResult:
        body = {
            "type": "authCapture",
            "amount": str(amount),
            "card": card_details,
            "billTo": billing_info,
        }
        return await self._transact(body)

    async def capture_prior_auth(self, transaction_id: str, amount: Decimal) -> PaymentResult:
        body = {
            "type": "priorAuthCapture",
            "amount": str(amount),
            "refTransId": transaction_id,
        }
        return await self._transact(body)

    async def _transact(self, body: dict[str, Any]) -> PaymentResult:
        try:
            data = await self._request("POST", "/transactions", json=body)
        except httpx.HTTPError as exc:
            # Never log card details; the body is not included here
            logger.error("Payment gateway %s failed: %s", body["type"], exc)
            return PaymentResult(success=False, error=f"Payment gateway error: {exc}")
        if not data.get("approved"):
            return PaymentResult(
                success=False,
                transaction_id=data.get("transactionId"),
                error=data.get("message") or "Transaction declined",
            )
        return PaymentResult(success=True, transaction_id=data.get("transactionId"))
