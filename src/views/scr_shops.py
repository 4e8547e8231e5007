from typing import Dict, List, Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Label

from api.errors import ApiRequestError
from db.models import Product, Shop
from services.delivery import delivery_fee_display, format_distance
from utils.messages import CartChangedMessage
from utils.pure import format_money
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal


class ShopsScreen(BaseScreen):
    """
    Shops on the left, the highlighted shop's products on the right.
    """

    BINDINGS = [
        Binding("enter", "noop", "View Product", show=True, key_display="⏎"),
    ]

    def __init__(self) -> None:
        super().__init__()
        self._shops: List[Shop] = []
        self._products: List[Product] = []
        self._shop: Optional[Shop] = None
        self._estimates: Dict[str, Dict[str, float]] = {}

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Horizontal(id="hort-shops"):
            with Vertical(id="div-shop-list"):
                yield Label("Shops", classes="section-title")
                yield DataTable(id="table-shops")
            with Vertical(id="div-shop-products"):
                yield Label("Select a shop", id="label-shop-title", classes="section-title")
                yield Label("", id="label-shop-fee")
                yield DataTable(id="table-products")
        with Horizontal(id="hort-buttons"):
            yield Button("Refresh", id="btn-refresh")

    def on_mount(self) -> None:
        shops = self.query_one("#table-shops", DataTable)
        shops.cursor_type = "row"
        shops.zebra_stripes = True
        shops.add_columns("Shop", "Category", "Delivery", "Distance")

        products = self.query_one("#table-products", DataTable)
        products.cursor_type = "row"
        products.zebra_stripes = True
        products.add_columns("Product", "Price", "Unit", "In Stock")

        self.load_shops()

    @on(Button.Pressed, "#btn-refresh")
    @on(ScreenResume)
    def handle_refresh(self) -> None:
        self.load_shops()

    @work(exclusive=True, group="shops")
    async def load_shops(self) -> None:
        state = self.app.state
        try:
            self._shops = await state.shops.list_shops()
        except ApiRequestError as e:
            self.notify(f"Could not load shops: {e.message}", severity="error")
            return

        location = await state.delivery.last_known_location()
        self._estimates = state.shops.distance_estimates(self._shops, location)

        table = self.query_one("#table-shops", DataTable)
        table.clear()
        for shop in self._shops:
            estimate = self._estimates.get(shop.id)
            table.add_row(
                shop.name,
                shop.category or "-",
                delivery_fee_display(shop),
                format_distance(estimate["distance"]) if estimate else "-",
                key=shop.id,
            )
        if not self._shops:
            self.query_one("#label-shop-title", Label).update("No shops available right now")

    @on(DataTable.RowHighlighted, "#table-shops")
    def handle_shop_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is None or event.row_key.value is None:
            return
        shop = next((s for s in self._shops if s.id == event.row_key.value), None)
        if shop is not None and shop != self._shop:
            self._shop = shop
            self.load_products(shop)

    @work(exclusive=True, group="products")
    async def load_products(self, shop: Shop) -> None:
        self.query_one("#label-shop-title", Label).update(shop.name)
        fee_text = delivery_fee_display(shop)
        if shop.address:
            fee_text += f"  ·  {shop.address}"
        self.query_one("#label-shop-fee", Label).update(fee_text)

        try:
            self._products = await self.app.state.shops.products(shop.id)
        except ApiRequestError as e:
            self.notify(f"Could not load products: {e.message}", severity="error")
            return

        table = self.query_one("#table-products", DataTable)
        table.clear()
        for product in self._products:
            table.add_row(
                product.name,
                format_money(product.price),
                product.unit or "-",
                "Yes" if product.in_stock else "No",
                key=product.id,
            )

    async def on_key(self, event: events.Key) -> None:
        table = self.query_one("#table-products", DataTable)
        if event.key != "enter" or self.focused != table or table.row_count == 0:
            return
        product = self._products[table.cursor_row]
        self.open_product(product)

    @work()
    async def open_product(self, product: Product) -> None:
        if await self.app.push_screen_wait(ProdDetailModal(product, self._shop)):
            self.app.post_message(CartChangedMessage())
