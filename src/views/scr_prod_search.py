import asyncio
from math import ceil
from typing import List

from textual import events, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal
from textual.reactive import reactive
from textual.validation import Number
from textual.widgets import DataTable, Input, Label

from db.models import Product
from utils.messages import CartChangedMessage
from utils.pure import format_money
from views.base_screen import BaseScreen
from views.modal_prod_detail import ProdDetailModal

PAGE_SIZE = 10
DEBOUNCE_SEC = 0.3


class ProdSearchScreen(BaseScreen):
    """
    Product search across shops. Suggestions come from the local index
    first; the server endpoint is only asked when the index has nothing.
    """

    # only here to be displayed in footer
    BINDINGS = [
        Binding("enter", "noop", "View Product", show=True, key_display="⏎"),
    ]

    page_idx = reactive(1)
    page_cnt = reactive(1)
    query_str = reactive("")

    def __init__(self):
        super().__init__()
        self._results: List[Product] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Input(
            id="input-search", placeholder="Search products, tags or shops..."
        )
        yield Label("", id="label-search-source")
        yield DataTable(id="table-search-result")
        with Horizontal(id="hort-table-control"):
            yield Input("1", id="input-page", type="integer")
            yield Label(" / 1", id="label-total-page-cnt")

    def on_mount(self):
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Product", "Price", "Shop", "Tags")

        self.query_one("#input-search").focus()
        if not self.app.state.search.index_loaded:
            self.load_index()

    @work(exclusive=True, group="index")
    async def load_index(self) -> None:
        await self.app.state.search.load_index()

    async def on_input_changed(self, message: Input.Changed) -> None:
        if message.input.id == "input-search":
            self.query_str = message.value
            self.update_search_result(self.query_str)
        if message.input.id == "input-page" and message.value.isdigit():
            self.page_idx = int(message.value)

    async def on_key(self, event: events.Key) -> None:
        table = self.query_one(DataTable)
        if event.key == "enter" and self.focused == table and table.row_count:
            index = (self.page_idx - 1) * PAGE_SIZE + table.cursor_row
            self.open_product(self._results[index])

    @work()
    async def open_product(self, product: Product) -> None:
        if await self.app.push_screen_wait(ProdDetailModal(product)):
            self.app.post_message(CartChangedMessage())

    def validate_page_idx(self, page_idx):
        return max(1, min(page_idx, self.page_cnt))

    def watch_page_idx(self, _, new_page_idx):
        self.query_one("#input-page").value = str(new_page_idx)
        self.query_one("#input-page").validators = [
            Number(minimum=1, maximum=self.page_cnt)
        ]
        self._render_page()

    @work(exclusive=True)
    async def update_search_result(self, query: str) -> None:
        # exclusive worker: a newer keystroke cancels this sleep
        await asyncio.sleep(DEBOUNCE_SEC)
        search = self.app.state.search
        results: List[Product] = []
        source = ""
        if query.strip():
            results = await search.search_local(query)
            source = "Instant results"
            if not results:
                results = await search.search_server(query.strip())
                source = "Server results"
        self._results = results

        self.page_cnt = max(ceil(len(results) / PAGE_SIZE), 1)
        self.query_one("#label-total-page-cnt").content = f" / {self.page_cnt}"
        self.query_one("#label-search-source", Label).update(
            f"{source}: {len(results)} found" if query.strip() else ""
        )
        self.page_idx = 1
        self._render_page()

    def _render_page(self) -> None:
        start = (self.page_idx - 1) * PAGE_SIZE
        table = self.query_one(DataTable)
        table.clear()
        for product in self._results[start : start + PAGE_SIZE]:
            table.add_row(
                product.name,
                format_money(product.price),
                product.shop_name or "-",
                ", ".join(product.tags[:3]),
            )
