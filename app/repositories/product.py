"""Product repository — catalog lookups by UPC, MPN and SKU."""

from __future__ import annotations

from sqlalchemy import or_

from app.domain.product import Product
from app.repositories.base import BaseRepository


class ProductRepository(BaseRepository[Product]):
    model = Product

    async def get_by_upc(self, upc: str) -> Product | None:
        result = await self._session.execute(self._base_query().where(Product.upc == upc))
        return result.scalars().first()

    async def get_by_mpn_or_sku(self, identifier: str) -> Product | None:
        # MPN first; a SKU match is only used when no MPN matches
        result = await self._session.execute(
            self._base_query().where(
                or_(Product.mpn == identifier, Product.sku == identifier)
            )
        )
        matches = list(result.scalars().all())
        for product in matches:
            if product.mpn == identifier:
                return product
        return matches[0] if matches else None
