from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import List, Optional

from db.database import LocalStore
from db.models import CartItem, OrderSummary, Product, Shop
from db.storage import CART_KEY, SELECTED_SHOP_KEY
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass(frozen=True)
class AddResult:
    item: CartItem
    cleared_other_shop: bool = False


class CartService:
    """
    Cart for a single shop. Every mutation is written through to the local
    store; a product from a different shop empties the cart first.
    """

    def __init__(
        self,
        store: LocalStore,
        *,
        default_delivery_fee: float = 30.0,
        tax_percentage: float = 0.0,
    ) -> None:
        self.store = store
        self.default_delivery_fee = default_delivery_fee
        self.tax_percentage = tax_percentage
        self.items: List[CartItem] = []
        self.selected_shop: Optional[Shop] = None
        self.calculated_delivery_fee: Optional[float] = None

    async def load(self) -> None:
        raw_items = await self.store.get(CART_KEY, [])
        items: List[CartItem] = []
        if isinstance(raw_items, list):
            for raw in raw_items:
                try:
                    items.append(CartItem.from_dict(raw))
                except (KeyError, TypeError, ValueError):
                    _logger.warning(f"Dropping unreadable cart entry: {raw!r}")
        self.items = items

        raw_shop = await self.store.get(SELECTED_SHOP_KEY)
        try:
            self.selected_shop = Shop.from_dict(raw_shop) if isinstance(raw_shop, dict) else None
        except TypeError:
            _logger.warning("Dropping unreadable selected shop")
            self.selected_shop = None
        _logger.info(f"Cart restored: {len(self.items)} items")

    async def _persist(self) -> None:
        if self.items:
            await self.store.set(CART_KEY, [i.to_dict() for i in self.items])
        else:
            await self.store.remove(CART_KEY)
        if self.selected_shop is not None:
            await self.store.set(SELECTED_SHOP_KEY, self.selected_shop.to_dict())
        else:
            await self.store.remove(SELECTED_SHOP_KEY)

    def find(self, product_id: str) -> Optional[CartItem]:
        return next((i for i in self.items if i.product.id == product_id), None)

    async def add(
        self, product: Product, quantity: int = 1, notes: str = "", shop: Optional[Shop] = None
    ) -> AddResult:
        if not product.id or not product.shop_id:
            raise ValueError("product must carry an id and a shop id")
        if quantity < 1:
            raise ValueError("quantity must be at least 1")

        cleared = False
        if self.selected_shop is not None and self.selected_shop.id != product.shop_id:
            if self.items:
                _logger.info(
                    f"Switching shop {self.selected_shop.id} -> {product.shop_id}, clearing cart"
                )
                cleared = True
            self.items = []
            self.selected_shop = None
            self.calculated_delivery_fee = None

        if self.selected_shop is None:
            self.selected_shop = shop or Shop(
                id=product.shop_id,
                name=product.shop_name or "Shop",
                delivery_fee=self.default_delivery_fee,
            )

        now = datetime.now(timezone.utc).isoformat()
        existing = self.find(product.id)
        if existing:
            item = replace(existing, quantity=existing.quantity + quantity, notes=notes or existing.notes)
            self.items = [item if i.product.id == product.id else i for i in self.items]
        else:
            item = CartItem(product=product, shop_id=product.shop_id, quantity=quantity, notes=notes, added_at=now)
            self.items = [*self.items, item]

        await self._persist()
        return AddResult(item=item, cleared_other_shop=cleared)

    async def set_quantity(self, product_id: str, quantity: int) -> Optional[CartItem]:
        """Set a line's quantity; zero or less removes the line."""
        if quantity <= 0:
            await self.remove(product_id)
            return None
        existing = self.find(product_id)
        if existing is None:
            return None
        item = replace(existing, quantity=quantity)
        self.items = [item if i.product.id == product_id else i for i in self.items]
        await self._persist()
        return item

    async def increase(self, product_id: str) -> Optional[CartItem]:
        existing = self.find(product_id)
        if existing is None:
            return None
        return await self.set_quantity(product_id, existing.quantity + 1)

    async def decrease(self, product_id: str) -> Optional[CartItem]:
        existing = self.find(product_id)
        if existing is None:
            return None
        return await self.set_quantity(product_id, existing.quantity - 1)

    async def update_notes(self, product_id: str, notes: str) -> Optional[CartItem]:
        existing = self.find(product_id)
        if existing is None:
            return None
        item = replace(existing, notes=notes or "")
        self.items = [item if i.product.id == product_id else i for i in self.items]
        await self._persist()
        return item

    async def remove(self, product_id: str) -> bool:
        before = len(self.items)
        self.items = [i for i in self.items if i.product.id != product_id]
        if not self.items:
            self.selected_shop = None
            self.calculated_delivery_fee = None
        await self._persist()
        return len(self.items) != before

    async def clear(self) -> None:
        self.items = []
        self.selected_shop = None
        self.calculated_delivery_fee = None
        await self._persist()
        _logger.info("Cart cleared")

    # ---------------------------
    # Totals
    # ---------------------------

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def subtotal(self) -> float:
        return round(sum(i.line_total for i in self.items), 2)

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self.items)

    @property
    def delivery_fee(self) -> float:
        if self.calculated_delivery_fee is not None:
            return self.calculated_delivery_fee
        if self.selected_shop is None:
            return self.default_delivery_fee
        return self.selected_shop.delivery_fee

    @property
    def taxes(self) -> float:
        return round(self.subtotal * self.tax_percentage / 100, 2)

    @property
    def total(self) -> float:
        return round(self.subtotal + self.delivery_fee + self.taxes, 2)

    def summary(self) -> OrderSummary:
        return OrderSummary(
            items=list(self.items),
            item_count=self.item_count,
            subtotal=self.subtotal,
            delivery_fee=self.delivery_fee,
            taxes=self.taxes,
            total=self.total,
            shop=self.selected_shop,
        )
