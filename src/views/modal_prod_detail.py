from typing import Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.reactive import reactive
from textual.screen import ModalScreen
from textual.validation import Number
from textual.widgets import Button, Input, Label, MarkdownViewer

from api.errors import ApiRequestError
from db.models import CartItem, Product, Shop
from utils.messages import CartChangedMessage
from utils.pure import format_money, generate_markdown_table
from views.modal_dialog import DialogModal

MAX_LINE_QTY = 99


class ProdDetailModal(ModalScreen[bool]):
    """
    prod detail, plus adding to cart
    Will return true of cart changed, false if not
    """

    order_qty = reactive(1)

    def __init__(self, product: Product, shop: Optional[Shop] = None) -> None:
        super().__init__()

        self._prod = product
        self._shop = shop
        self._existing_cart_item: Optional[CartItem] = None

    def compose(self) -> ComposeResult:
        with Horizontal(id="hort-prod-detail"):
            yield MarkdownViewer("", show_table_of_contents=False)
            with Vertical():
                yield Label("Quantity")
                with Horizontal():
                    yield Button("-", id="btn-sub-qty")
                    yield Input(
                        value="1",
                        id="input-order-qty",
                        type="integer",
                        validators=[Number(minimum=1, maximum=MAX_LINE_QTY)],
                    )
                    yield Button("+", id="btn-add-qty")
                yield Label("Notes for your shopper")
                yield Input(placeholder="e.g. ripe ones please", id="input-notes")
                with Horizontal():
                    yield Button("Go Back", id="btn-quit")
                    yield Button("Add to Cart", id="btn-addcart", variant="primary")

    async def on_mount(self):
        prod = self._prod
        table_rows = [
            ["Price", format_money(prod.price)],
            ["Unit", prod.unit or "-"],
            ["Shop", prod.shop_name or (self._shop.name if self._shop else "-")],
            ["Tags", ", ".join(prod.tags) or "-"],
        ]
        md = f"### {prod.name}\n\n"
        md += generate_markdown_table(["Attribute", "Value"], table_rows, ["l", "l"])
        if prod.description:
            md += f"\n\n{prod.description}"
        await self.query_one(MarkdownViewer).document.update(md)

        if not prod.in_stock:
            order_btn = self.query_one("#btn-addcart")
            order_btn.label = "Out of Stock"
            order_btn.disabled = True
            order_btn.variant = "warning"

        self._existing_cart_item = self.app.state.cart.find(prod.id)
        if self._existing_cart_item:
            self.order_qty = self._existing_cart_item.quantity
            self.query_one("#input-notes", Input).value = self._existing_cart_item.notes
            self.query_one("#btn-addcart").label = "Update Cart"

        self.query_one("#input-order-qty").focus()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(False)

    async def on_input_changed(self, message: Input.Changed) -> None:
        if (
            message.input.id == "input-order-qty"
            and message.input.is_valid
            and self.focused == message.input
        ):
            self.order_qty = int(message.value)

    def watch_order_qty(self, qty: int):
        self.query_one("#btn-sub-qty").disabled = qty <= 1
        self.query_one("#btn-add-qty").disabled = qty >= MAX_LINE_QTY
        self.query_one("#input-order-qty", Input).value = str(qty)

    @on(Button.Pressed, "#btn-add-qty")
    def handle_add_qty(self):
        self.order_qty += 1

    @on(Button.Pressed, "#btn-sub-qty")
    def handle_sub_qty(self):
        self.order_qty -= 1

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(False)

    @on(Button.Pressed, "#btn-addcart")
    @work(exclusive=True)
    async def handle_addcart(self):
        cart = self.app.state.cart
        notes = self.query_one("#input-notes", Input).value.strip()

        if self._existing_cart_item:
            await cart.set_quantity(self._prod.id, self.order_qty)
            await cart.update_notes(self._prod.id, notes)
            self.app.notify("Updated cart item quantity.")
            self.app.post_message(CartChangedMessage())
            self.dismiss(True)
            return

        if cart.selected_shop is not None and cart.selected_shop.id != self._prod.shop_id:
            if not await self.app.push_screen_wait(
                DialogModal(
                    f"Your cart has items from {cart.selected_shop.name}. "
                    "Adding this product will clear it. Continue?",
                    primary_text="Clear & Add",
                    secondary_text="Cancel",
                    tone="warning",
                )
            ):
                return

        shop = self._shop
        if shop is None or shop.id != self._prod.shop_id:
            try:
                shop = await self.app.state.shops.get_shop(self._prod.shop_id)
            except ApiRequestError:
                shop = None

        await cart.add(self._prod, self.order_qty, notes, shop)
        self.app.notify(f"{self._prod.name} added to cart.")
        self.app.post_message(CartChangedMessage())
        self.dismiss(True)
