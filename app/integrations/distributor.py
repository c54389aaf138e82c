"""Distributor order-submission collaborator."""

from __future__ import annotations

import logging
from typing import Any, Protocol
from pydantic import BaseModel

from app.integrations.http import HttpServiceClient

logger = logging.getLogger(__name__)


class SubmissionResult(BaseModel):
    success: bool
    distributor_order_number: str | None = None
    estimated_ship_date: str | None = None
    error: str | None = None


class DistributorClient(Protocol):
    async def submit_order(self, order_payload: dict[str, Any]) -> SubmissionResult: ...


class HttpDistributorClient(HttpServiceClient):
    service_name = "distributor"

    async def submit_order(self, order_payload: dict[str, Any]) -> SubmissionResult:
        """Submit an order. Transport errors propagate; business rejections are returned."""
        data = await self._request("POST", "/orders", json=order_payload)
        if data.get("accepted"):
            return SubmissionResult(
                success=True,
                distributor_order_number=data.get("orderNumber"),
                estimated_ship_date=data.get("estimatedShipDate"),
            )
        return SubmissionResult(success=False, error=data.get("message") or "Order rejected")

