from typing import List, Optional

from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.reactive import reactive
from textual.widgets import Button, DataTable, MarkdownViewer

from api.client import ApiResult
from api.errors import ApiRequestError, ValidationError
from db.models import Order
from services.orders import (
    can_approve_bill,
    can_cancel,
    can_pay_now,
    cancellation_policy,
    cancellation_prompt,
    free_cancellation_remaining,
    inquiry_state,
    is_active,
    needs_revision_review,
    status_label,
)
from utils.messages import ModeSwitchedMessage, NewOrderMessage
from utils.pure import format_money, format_remaining, generate_markdown_table
from views.base_screen import BaseScreen
from views.modal_dialog import DialogModal, InputDialogModal

INQUIRY_METHODS = ("call", "whatsapp")


class PastOrdersScreen(BaseScreen):
    """
    Customers browse their orders, active ones first, and act on the
    highlighted one. Which actions are offered depends only on its status.
    """

    BINDINGS = [
        Binding("r", "refresh", "Refresh", show=True),
    ]

    selected_id = reactive[Optional[str]](None)

    def __init__(self) -> None:
        super().__init__()
        self._orders: List[Order] = []
        self._focus_order_id: Optional[str] = None

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield MarkdownViewer(id="md-order-detail", show_table_of_contents=False)
            yield DataTable(id="table-orders")
        with Horizontal(id="hort-table-control"):
            yield Button("Refresh", id="btn-refresh")
            yield Button("Cancel Order", id="btn-cancel", variant="error")
            yield Button("Contact Shopper", id="btn-inquiry")
            yield Button("Pay (UPI)", id="btn-pay", variant="warning")
            yield Button("Approve Revision", id="btn-revision", variant="success")
            yield Button("Approve Bill", id="btn-bill", variant="success")
            yield Button("Reject Bill", id="btn-bill-reject")
            yield Button("Rate", id="btn-rate")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("Order No", "Placed", "Shop", "Status", "Total")
        self._refresh_buttons(None)
        # countdowns in the detail view
        self.set_interval(30, self._tick)

    def focus_order(self, order_id: str) -> None:
        self._focus_order_id = order_id
        self._load_orders()

    def action_refresh(self) -> None:
        self._load_orders()

    @on(Button.Pressed, "#btn-refresh")
    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    @on(NewOrderMessage)
    def handle_refresh(self):
        self._load_orders()

    @work(exclusive=True, group="orders")
    async def _load_orders(self) -> None:
        state = self.app.state
        try:
            orders = await state.orders.list_orders()
        except ApiRequestError as e:
            self.notify(f"Could not load orders: {e.message}", severity="error")
            return

        active, past = state.orders.split_active(orders)
        self._orders = active + past

        table = self.query_one(DataTable)
        table.clear()
        for o in self._orders:
            table.add_row(
                o.order_number,
                o.created_at.astimezone().strftime("%d %b %H:%M") if o.created_at else "-",
                o.shop_name or "-",
                status_label(o.status),
                format_money(o.total),
                key=o.id,
            )

        for o in active:
            if await state.orders.inquiries.should_notify(o):
                self.notify(
                    f"You can now contact the shopper for order #{o.order_number}.",
                    title="Inquiry available",
                )

        if not self._orders:
            self.selected_id = None
            self._render_detail(None)
            return
        target = self._focus_order_id
        self._focus_order_id = None
        index = next((i for i, o in enumerate(self._orders) if o.id == target), 0)
        table.move_cursor(row=index)
        self._select(self._orders[index])

    @on(DataTable.RowHighlighted)
    def handle_row_highlight(self, event: DataTable.RowHighlighted) -> None:
        if event.row_key is None:
            return
        order = self._find(event.row_key.value)
        if order is not None:
            self._select(order)

    def _find(self, order_id: Optional[str]) -> Optional[Order]:
        return next((o for o in self._orders if o.id == order_id), None)

    @property
    def selected(self) -> Optional[Order]:
        return self._find(self.selected_id)

    def _select(self, order: Order) -> None:
        self.selected_id = order.id
        self._render_detail(order)
        self._refresh_buttons(order)

    def _tick(self) -> None:
        order = self.selected
        if order is not None and is_active(order):
            self._render_detail(order)
            self._refresh_buttons(order)

    def _refresh_buttons(self, order: Optional[Order]) -> None:
        gates = {
            "#btn-cancel": order is not None and can_cancel(order),
            "#btn-inquiry": order is not None and inquiry_state(order).available,
            "#btn-pay": order is not None and can_pay_now(order),
            "#btn-revision": order is not None and needs_revision_review(order),
            "#btn-bill": order is not None and can_approve_bill(order),
            "#btn-bill-reject": order is not None and can_approve_bill(order),
            "#btn-rate": order is not None and order.status == "delivered",
        }
        for selector, enabled in gates.items():
            button = self.query_one(selector, Button)
            button.disabled = not enabled
            button.display = enabled or selector == "#btn-cancel"

    def _render_detail(self, order: Optional[Order]) -> None:
        viewer = self.query_one("#md-order-detail", MarkdownViewer)
        if order is None:
            viewer.document.update("### Select an order to view its details.")
            return

        placed = order.created_at.astimezone().strftime("%d %b %Y, %H:%M") if order.created_at else "-"
        md = (
            f"### Order #{order.order_number} · {status_label(order.status)}\n"
            f"Placed: {placed}  \n"
            f"Shop: {order.shop_name or '-'}  \n"
        )
        address = order.delivery_address
        if address:
            md += f"Deliver to: {address.get('formattedAddress') or address.get('street', '')}  \n"
        if order.personal_shopper.get("name"):
            md += f"Shopper: {order.personal_shopper['name']}  \n"
        if order.delivery_otp and order.status in ("picked_up", "out_for_delivery"):
            md += f"\n**Delivery OTP: {order.delivery_otp}** (share with the delivery person)\n"

        rows = []
        for item in order.items:
            qty = str(item.quantity)
            price = format_money(item.price)
            if not item.is_available:
                qty = f"~~{qty}~~ unavailable"
            elif item.revised_quantity is not None and item.revised_quantity != item.quantity:
                qty = f"~~{item.quantity}~~ {item.revised_quantity}"
            if item.revised_price is not None and item.revised_price != item.price:
                price = f"~~{price}~~ {format_money(item.revised_price)}"
            rows.append([item.name, qty, price])
        md += "\n" + generate_markdown_table(["Item", "Qty", "Price"], rows, ["l", "c", "r"])

        value = order.revised_order_value or order.order_value
        label = "Revised total" if order.revised_order_value else "Total"
        md += (
            f"\n\nSubtotal: {format_money(value.subtotal)}  \n"
            f"Delivery fee: {format_money(value.delivery_fee)}  \n"
        )
        if value.tax:
            md += f"Tax: {format_money(value.tax)}  \n"
        md += f"**{label}: {format_money(value.total)}**\n"

        if can_cancel(order):
            policy = cancellation_policy(order)
            md += f"\n*{policy.message}*: {policy.description}"
            remaining = free_cancellation_remaining(order)
            if policy.kind == "free" and remaining.total_seconds() > 0:
                md += f" (free for {format_remaining(remaining)} more)"
            md += "\n"
        if is_active(order):
            inquiry = inquiry_state(order)
            if not inquiry.available:
                md += f"\nContact shopper available in {inquiry.minutes_remaining} min\n"
        viewer.document.update(md)

    # ---------------------------
    # Actions
    # ---------------------------

    async def _report(self, result: ApiResult, success_text: str) -> None:
        if result.success:
            self.notify(success_text)
        else:
            await self.app.push_screen_wait(DialogModal(result.message, tone="error"))
        self._load_orders()

    @on(Button.Pressed, "#btn-cancel")
    @work(exclusive=True, group="action")
    async def handle_cancel(self) -> None:
        order = self.selected
        if order is None:
            return
        if not can_cancel(order):
            await self.app.push_screen_wait(
                DialogModal("This order can no longer be cancelled.", tone="warning")
            )
            return
        policy = cancellation_policy(order)
        if not await self.app.push_screen_wait(
            DialogModal(cancellation_prompt(order, policy), "Cancel Order", "Keep Order", "error")
        ):
            return
        try:
            result = await self.app.state.orders.cancel(order)
        except ValidationError as e:
            self.notify(e.message, severity="error")
            return
        await self._report(result, f"Order #{order.order_number} cancelled.")

    @on(Button.Pressed, "#btn-inquiry")
    @work(exclusive=True, group="action")
    async def handle_inquiry(self) -> None:
        order = self.selected
        if order is None:
            return
        phone = order.personal_shopper.get("phone")
        method = await self.app.push_screen_wait(
            InputDialogModal(
                f"Contact your shopper{f' at {phone}' if phone else ''}. "
                f"How will you reach them? ({' / '.join(INQUIRY_METHODS)})",
                value=INQUIRY_METHODS[0],
            )
        )
        if method is None:
            return
        if method.lower() not in INQUIRY_METHODS:
            self.notify(f"Choose one of: {', '.join(INQUIRY_METHODS)}", severity="error")
            return
        try:
            result = await self.app.state.orders.inquire(order, method.lower())
        except ValidationError as e:
            self.notify(e.message, severity="error")
            return
        await self._report(result, "Your shopper has been notified.")

    @on(Button.Pressed, "#btn-pay")
    @work(exclusive=True, group="action")
    async def handle_pay(self) -> None:
        order = self.selected
        if order is None:
            return
        amount = (order.revised_order_value or order.order_value).total
        transaction_id = await self.app.push_screen_wait(
            InputDialogModal(
                f"Pay {format_money(amount)} via UPI, then enter the transaction ID "
                "from your payment app.",
                placeholder="UPI transaction ID",
                primary_text="Confirm Payment",
            )
        )
        if transaction_id is None:
            return
        try:
            result = await self.app.state.orders.confirm_payment(order, transaction_id)
        except ValidationError as e:
            self.notify(e.message, severity="error")
            return
        await self._report(result, "Payment submitted. Your shopper will confirm it shortly.")

    @on(Button.Pressed, "#btn-revision")
    @work(exclusive=True, group="action")
    async def handle_revision(self) -> None:
        order = self.selected
        if order is None:
            return
        new_total = (order.revised_order_value or order.order_value).total
        if not await self.app.push_screen_wait(
            DialogModal(
                f"Approve the revised order? New total: {format_money(new_total)}",
                "Approve",
                "Not now",
                "positive",
            )
        ):
            return
        result = await self.app.state.orders.approve_revision(order)
        await self._report(result, "Revised order approved.")

    @on(Button.Pressed, "#btn-bill")
    @work(exclusive=True, group="action")
    async def handle_bill(self) -> None:
        order = self.selected
        if order is None:
            return
        if not await self.app.push_screen_wait(
            DialogModal("Approve the bill uploaded by your shopper?", "Approve", "Not now", "positive")
        ):
            return
        result = await self.app.state.orders.approve_bill(order)
        await self._report(result, "Bill approved. Your order will be out for delivery soon.")

    @on(Button.Pressed, "#btn-bill-reject")
    @work(exclusive=True, group="action")
    async def handle_bill_reject(self) -> None:
        order = self.selected
        if order is None:
            return
        reason = await self.app.push_screen_wait(
            InputDialogModal("Why are you rejecting the bill?", primary_text="Reject Bill")
        )
        if reason is None:
            return
        try:
            result = await self.app.state.orders.reject_bill(order, reason)
        except ValidationError as e:
            self.notify(e.message, severity="error")
            return
        await self._report(result, "Bill rejected. Your shopper will review it.")

    @on(Button.Pressed, "#btn-rate")
    @work(exclusive=True, group="action")
    async def handle_rate(self) -> None:
        order = self.selected
        if order is None:
            return
        rating = await self.app.push_screen_wait(
            InputDialogModal("Rate this order from 1 to 5", value="5", primary_text="Rate")
        )
        if rating is None:
            return
        if not rating.isdigit():
            self.notify("Rating must be a number between 1 and 5.", severity="error")
            return
        try:
            result = await self.app.state.orders.rate(order, int(rating))
        except ValidationError as e:
            self.notify(e.message, severity="error")
            return
        await self._report(result, "Thanks for your feedback!")
