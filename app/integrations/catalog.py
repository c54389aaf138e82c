"""Product catalog lookup used by summary enrichment."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.product import Product
from app.repositories.product import ProductRepository


class ProductCatalog(Protocol):
    async def get_by_upc(self, upc: str) -> Product | None: ...

    async def get_by_mpn_or_sku(self, identifier: str) -> Product | None: ...


class DatabaseProductCatalog:
    """Catalog backed by the local ``products`` table."""

    def __init__(self, session: AsyncSession):
        self._repo = ProductRepository(session)

    async def get_by_upc(self, upc: str) -> Product | None:
        return await self._repo.get_by_upc(upc)

    async def get_by_mpn_or_sku(self, identifier: str) -> Product | None:
        return await self._repo.get_by_mpn_or_sku(identifier)
