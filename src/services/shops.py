from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional

import api.endpoints as endpoints
from api.client import ApiClient, ApiResult
from db.models import Coordinates, Product, Shop
from services.delivery import estimate_charges
from utils.logger import get_logger

_logger = get_logger(__name__)


def _items(result: ApiResult, key: str) -> List[dict]:
    payload = result.payload
    if isinstance(payload, dict):
        payload = payload.get(key, [])
    return [p for p in payload or [] if isinstance(p, dict)]


class ShopService:
    """Read-only access to shops and their products."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api
        self._shops: Dict[str, Shop] = {}

    async def list_shops(self, category: Optional[str] = None) -> List[Shop]:
        params = {"category": category} if category else None
        result = await self.api.call(endpoints.list_shops, params)
        result.raise_for_error()
        shops = [Shop.from_api(s) for s in _items(result, "shops")]
        self._shops.update({s.id: s for s in shops})
        return shops

    async def get_shop(self, shop_id: str) -> Shop:
        if shop_id in self._shops:
            return self._shops[shop_id]
        result = await self.api.call(endpoints.get_shop, shop_id)
        result.raise_for_error()
        payload = result.payload
        if isinstance(payload, dict) and isinstance(payload.get("shop"), dict):
            payload = payload["shop"]
        shop = Shop.from_api(payload if isinstance(payload, dict) else {"_id": shop_id})
        self._shops[shop.id] = shop
        return shop

    async def products(self, shop_id: str) -> List[Product]:
        result = await self.api.call(endpoints.products_by_shop, shop_id)
        result.raise_for_error()
        shop = self._shops.get(shop_id)
        products = []
        for raw in _items(result, "products"):
            product = Product.from_api(raw)
            if not product.shop_id:
                product = replace(product, shop_id=shop_id)
            if shop is not None and not product.shop_name:
                product = replace(product, shop_name=shop.name)
            products.append(product)
        _logger.debug(f"Loaded {len(products)} products for shop {shop_id}")
        return products

    async def product(self, product_id: str) -> Product:
        result = await self.api.call(endpoints.get_product, product_id)
        result.raise_for_error()
        payload = result.payload
        if isinstance(payload, dict) and isinstance(payload.get("product"), dict):
            payload = payload["product"]
        return Product.from_api(payload or {})

    def cached(self, shop_id: str) -> Optional[Shop]:
        return self._shops.get(shop_id)

    def distance_estimates(self, shops: List[Shop], customer: Optional[Coordinates]):
        if customer is None:
            return {}
        return estimate_charges(shops, customer)
