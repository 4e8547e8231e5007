from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Sequence

from rapidfuzz import fuzz, process, utils

import api.endpoints as endpoints
from api.client import ApiClient
from db.models import Product
from utils.logger import get_logger

_logger = get_logger(__name__)

MAX_INDEX_SIZE = 20000
SCORE_THRESHOLD = 0.5

# name outranks tags, tags outrank the shop name
FIELD_WEIGHTS = (("name", 1.0), ("tags", 0.85), ("shop", 0.7))


class SearchIndex:
    """
    Weighted fuzzy match over product name, tags and shop name.

    Each field is scored with rapidfuzz's WRatio on lower-cased, punctuation
    stripped text; a product's score is its best weighted field score.
    """

    def __init__(self, products: Sequence[Product] = ()) -> None:
        self.products: List[Product] = list(products)[:MAX_INDEX_SIZE]
        self._fields = {
            "name": [p.name for p in self.products],
            "tags": [" ".join(p.tags) for p in self.products],
            "shop": [p.shop_name for p in self.products],
        }

    def __len__(self) -> int:
        return len(self.products)

    def scores(self, query: str) -> Dict[int, float]:
        best: Dict[int, float] = {}
        for name, weight in FIELD_WEIGHTS:
            matches = process.extract(
                query,
                self._fields[name],
                scorer=fuzz.WRatio,
                processor=utils.default_process,
                limit=None,
                score_cutoff=100 * SCORE_THRESHOLD / weight,
            )
            for _, score, i in matches:
                weighted = score / 100 * weight
                if weighted > best.get(i, 0.0):
                    best[i] = weighted
        return best

    def search(self, query: str, limit: int = 500) -> List[Product]:
        if not utils.default_process(query):
            return []
        ranked = sorted(self.scores(query).items(), key=lambda pair: (-pair[1], pair[0]))
        return [self.products[i] for i, _ in ranked[:limit]]


class SearchService:
    """
    Instant local suggestions from a prefetched product index, with the
    server search endpoint as fallback when the index is missing or has
    no match.
    """

    def __init__(self, api: ApiClient) -> None:
        self.api = api
        self.index: Optional[SearchIndex] = None
        self.index_error: Optional[str] = None

    @property
    def index_loaded(self) -> bool:
        return self.index is not None

    async def load_index(self, limit: int = MAX_INDEX_SIZE) -> None:
        result = await self.api.call(endpoints.product_index, min(limit, MAX_INDEX_SIZE))
        if not result.success:
            self.index_error = result.message or "Failed to load product index"
            _logger.warning(f"Product index unavailable: {self.index_error}")
            return
        payload = result.payload
        raw = payload.get("products", []) if isinstance(payload, dict) else payload or []
        self.index = SearchIndex([Product.from_api(p) for p in raw if isinstance(p, dict)])
        self.index_error = None
        _logger.info(f"Product index loaded with {len(self.index)} products")

    async def search_local(self, query: str, limit: int = 500) -> List[Product]:
        if self.index is None:
            return []
        return await asyncio.to_thread(self.index.search, query, limit)

    async def search(self, query: str, limit: int = 50) -> List[Product]:
        query = query.strip()
        if not query:
            return []
        local = await self.search_local(query, limit)
        if local:
            return local
        return await self.search_server(query, limit)

    async def search_server(self, query: str, limit: int = 50) -> List[Product]:
        result = await self.api.call(endpoints.search_products, query, limit)
        if not result.success:
            _logger.warning(f"Server search failed: {result.message}")
            return []
        payload = result.payload
        raw = payload.get("products", []) if isinstance(payload, dict) else payload or []
        return [Product.from_api(p) for p in raw if isinstance(p, dict)]
