"""CRM collaborator: contacts, deals and deal stages."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import BaseModel

from app.domain.order import OrderStatus
from app.integrations.http import HttpServiceClient

logger = logging.getLogger(__name__)

_STAGE_BY_STATUS: dict[str, str] = {
    OrderStatus.PAID.value: "Paid",
    OrderStatus.PENDING_FFL.value: "Pending FFL",
    OrderStatus.HOLD_MULTI_FIREARM.value: "Compliance Hold",
    OrderStatus.PROCESSING.value: "Processing",
    OrderStatus.MANUAL_PROCESSING_REQUIRED.value: "Manual Review",
    OrderStatus.READY_TO_FULFILL.value: "Ready to Fulfill",
    OrderStatus.SHIPPED.value: "Closed Won",
    OrderStatus.DELIVERED.value: "Closed Won",
    OrderStatus.CANCELLED.value: "Closed Lost",
    OrderStatus.REJECTED.value: "Closed Lost",
}


def deal_stage_for(status: str) -> str:
    """CRM deal stage for an order status."""
    return _STAGE_BY_STATUS.get(status, "Qualification")


class DealResult(BaseModel):
    success: bool
    deal_id: str | None = None
    error: str | None = None


class CRMClient(Protocol):
    async def find_or_create_contact(self, email: str, name: str) -> str: ...

    async def create_deal(self, contact_id: str, order_data: dict[str, Any]) -> DealResult: ...

    async def update_deal_stage(self, deal_id: str, stage: str) -> bool: ...


class HttpCRMClient(HttpServiceClient):
    service_name = "crm"

    async def find_or_create_contact(self, email: str, name: str) -> str:
        found = await self._request("GET", "/contacts", params={"email": email})
        contacts = found.get("data") or []
        if contacts:
            return str(contacts[0]["id"])
        created = await self._request("POST", "/contacts", json={"email": email, "name": name})
        return str(created["id"])

    async def create_deal(self, contact_id: str, order_data: dict[str, Any]) -> DealResult:
        data = await self._request(
            "POST", "/deals", json={"contactId": contact_id, **order_data}
        )
        deal_id = data.get("id")
        if not deal_id:
            return DealResult(success=False, error=data.get("message") or "Deal not created")
        return DealResult(success=True, deal_id=str(deal_id))

    async def update_deal_stage(self, deal_id: str, stage: str) -> bool:
        data = await self._request("PATCH", f"/deals/{deal_id}", json={"stage": stage})
        return bool(data.get("updated", True))
