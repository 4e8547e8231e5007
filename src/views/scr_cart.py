from textual import on, work
from textual.app import ComposeResult
from textual.containers import Container, Horizontal, HorizontalGroup, VerticalScroll
from textual.events import ScreenResume
from textual.message import Message
from textual.widgets import Button, Label, Markdown, Rule

from db.models import CartItem
from services.delivery import delivery_fee_display
from utils.messages import CartChangedMessage, ModeSwitchedMessage
from utils.pure import format_money, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_checkout import CheckoutModal
from views.modal_dialog import DialogModal


class CartItemActionMessage(Message):
    bubble = True

    def __init__(self, action: str) -> None:
        super().__init__()
        self.action = action


class CartItemActionLabel(Label):
    def action_increase(self):
        self.post_message(CartItemActionMessage("increase"))

    def action_decrease(self):
        self.post_message(CartItemActionMessage("decrease"))

    def action_remove(self):
        self.post_message(CartItemActionMessage("remove"))


class CartItemWidget(HorizontalGroup):
    def __init__(self, item: CartItem):
        super().__init__()
        self.item = item

    def compose(self):
        product = self.item.product
        with Container(id="div-cart-item-group"):
            with Container(id="div-item"):
                yield Label(product.name, id="label-item-name")
                yield Label(f"x{self.item.quantity}", id="label-item-qty")
                yield Label(format_money(self.item.line_total), id="label-item-price")
            with Container(id="div-actions"):
                yield CartItemActionLabel("[@click=decrease()]-1[/]", id="link-item-dec")
                yield CartItemActionLabel("[@click=increase()]+1[/]", id="link-item-inc")
                yield CartItemActionLabel("[@click=remove()]Remove[/]", id="link-item-remove")
            if self.item.notes:
                yield Label(f"Note: {self.item.notes}", id="label-item-notes")

    @on(CartItemActionMessage)
    @work()
    async def handle_action(self, message: CartItemActionMessage):
        message.stop()
        cart = self.app.state.cart
        product_id = self.item.product.id

        if message.action == "increase":
            await cart.increase(product_id)
        elif message.action == "decrease":
            if self.item.quantity <= 1 and not await self._confirm_remove():
                return
            await cart.decrease(product_id)
        elif message.action == "remove":
            if not await self._confirm_remove():
                return
            await cart.remove(product_id)
            self.notify("Item removed from cart.", severity="information")

        self.post_message(CartChangedMessage())

    async def _confirm_remove(self) -> bool:
        return await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove this item from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        )


class CartScreen(BaseScreen):
    """
    Cart lines for the selected shop, an order summary, and checkout.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        yield Label("", id="label-cart-shop")
        yield VerticalScroll(id="vertscroll-content")
        yield Rule(line_style="dashed")
        yield Markdown("", id="md-cart-summary")
        with Horizontal(id="hort-buttons"):
            yield Button("Clear Cart", id="btn-clear-cart")
            yield Button("Refresh", id="btn-refresh")
            yield Button("Checkout", id="btn-checkout", variant="primary")

    async def on_mount(self):
        self.handle_cart_change()

    @on(CartChangedMessage)
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(Button.Pressed, "#btn-refresh")
    @work(exclusive=True)  # must be exclusive, else widgets get mounted twice
    async def handle_cart_change(self):
        state = self.app.state
        cart = state.cart

        content = self.query_one("#vertscroll-content")
        await content.remove_children()
        await content.mount_all([CartItemWidget(item) for item in cart.items])
        content.set_class(cart.is_empty, "no-items")

        shop = cart.selected_shop
        self.query_one("#label-cart-shop", Label).update(
            f"Shopping from {shop.name}" if shop else "Your cart is empty"
        )

        if shop is not None and shop.is_distance_based:
            location = await state.delivery.last_known_location()
            await state.delivery.refresh_cart_fee(cart, location)

        await self.query_one("#md-cart-summary", Markdown).update(self._summary_md())
        for sidebar in self.query("Sidebar"):
            sidebar.refresh_menu_labels()

    def _summary_md(self) -> str:
        cart = self.app.state.cart
        if cart.is_empty:
            return ""
        summary = cart.summary()
        rows = [
            [f"Subtotal ({summary.item_count} items)", format_money(summary.subtotal)],
            ["Delivery", delivery_fee_display(summary.shop, cart.calculated_delivery_fee)],
        ]
        if summary.taxes:
            rows.append(["Taxes", format_money(summary.taxes)])
        rows.append(["**Total**", f"**{format_money(summary.total)}**"])
        return generate_markdown_table(["Order Summary", ""], rows, ["l", "r"])

    @on(Button.Pressed, "#btn-clear-cart")
    @work()
    async def handle_clear_cart(self) -> None:
        cart = self.app.state.cart
        if cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        remove_confirmed = await self.app.push_screen_wait(
            DialogModal(
                "Do you really want to remove all items from cart?",
                primary_text="Yes",
                secondary_text="No",
                tone="error",
            )
        )
        if remove_confirmed:
            await cart.clear()
            self.post_message(CartChangedMessage())

    @on(Button.Pressed, "#btn-checkout")
    @work()
    async def handle_checkout(self) -> None:
        if self.app.state.cart.is_empty:
            self.app.notify("Cart is empty.", severity="warning")
            return

        order_id = await self.app.push_screen_wait(CheckoutModal())
        self.post_message(CartChangedMessage())
        if order_id:
            self.app.open_order(order_id)
