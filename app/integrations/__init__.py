"""External collaborators — interfaces and HTTP clients.

Files:
  http.py         — shared httpx client shell (start/aclose lifecycle, bounded timeouts)
  payments.py     — PaymentGateway protocol + HTTP client
  distributor.py  — DistributorClient protocol + HTTP client
  crm.py          — CRMClient protocol + HTTP client, order-status → deal-stage mapping
  catalog.py      — ProductCatalog protocol + database-backed implementation

Rule: services depend on the protocols only; concrete clients are built once
in the application lifespan and injected.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.config import Settings
from app.integrations.crm import CRMClient, HttpCRMClient
from app.integrations.distributor import DistributorClient, HttpDistributorClient
from app.integrations.payments import HttpPaymentGateway, PaymentGateway


@dataclass
class Collaborators:
    payments: PaymentGateway
    distributor: DistributorClient
    crm: CRMClient

    async def start(self) -> None:
        for client in (self.payments, self.distributor, self.crm):
            start = getattr(client, "start", None)
            if start is not None:
                await start()

    async def aclose(self) -> None:
        for client in (self.payments, self.distributor, self.crm):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()


def build_collaborators(settings: Settings) -> Collaborators:
    return Collaborators(
        payments=HttpPaymentGateway(
            settings.payment_gateway_url,
            api_key=settings.payment_api_key,
            timeout=settings.payment_timeout,
        ),
        distributor=HttpDistributorClient(
            settings.distributor_url,
            api_key=settings.distributor_api_key,
            timeout=settings.distributor_timeout,
        ),
        crm=HttpCRMClient(
            settings.crm_url,
            api_key=settings.crm_api_key,
            timeout=settings.crm_timeout,
        ),
    )
