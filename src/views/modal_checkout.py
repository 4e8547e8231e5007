from typing import Optional

from textual import events, on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label, MarkdownViewer

from api.errors import ApiRequestError, DuplicateOrderError, ValidationError
from db.models import DeliveryAddress
from services.delivery import delivery_fee_display
from services.orders import status_label, validate_address
from utils.messages import NewOrderMessage
from utils.pure import format_money, generate_markdown_table
from views.modal_dialog import DialogModal

ADDRESS_FIELDS = {
    "street": "input-street",
    "city": "input-city",
    "state": "input-state",
    "zip_code": "input-zip",
    "instructions": "input-instructions",
    "contact_name": "input-contact-name",
    "contact_phone": "input-contact-phone",
}


class CheckoutModal(ModalScreen[Optional[str]]):
    """
    Order summary plus the delivery address form.
    Dismisses with the new order id, or None if nothing was placed.
    """

    def compose(self) -> ComposeResult:
        with Vertical():
            yield MarkdownViewer("", show_table_of_contents=False)
            with VerticalScroll(id="div-address-form"):
                yield Label("Street address *")
                yield Input(placeholder="12 MG Road, Flat 4B", id="input-street")
                with Horizontal():
                    with Vertical():
                        yield Label("City *")
                        yield Input(placeholder="Indore", id="input-city")
                    with Vertical():
                        yield Label("State *")
                        yield Input(placeholder="Madhya Pradesh", id="input-state")
                    with Vertical():
                        yield Label("PIN code")
                        yield Input(placeholder="452001", id="input-zip", type="integer")
                yield Label("Delivery instructions")
                yield Input(placeholder="Ring the bell twice", id="input-instructions")
                with Horizontal():
                    with Vertical():
                        yield Label("Contact name *")
                        yield Input(id="input-contact-name")
                    with Vertical():
                        yield Label("Contact phone * (+91)")
                        yield Input(placeholder="9876543210", id="input-contact-phone")
            with Horizontal():
                yield Button("Go Back", id="btn-quit")
                yield Button("Use My Last Location", id="btn-locate")
                yield Button("Place Order", id="btn-submit", variant="primary")

    async def on_mount(self):
        state = self.app.state
        saved = await state.delivery.saved_address()
        if saved is not None:
            for attr, input_id in ADDRESS_FIELDS.items():
                self.query_one(f"#{input_id}", Input).value = getattr(saved, attr) or ""
        elif state.session.user is not None:
            user = state.session.user
            self.query_one("#input-contact-name", Input).value = user.name
            self.query_one("#input-contact-phone", Input).value = user.phone.removeprefix("+91")

        await self.render_summary()
        self.query_one("#input-street").focus()

    async def render_summary(self) -> None:
        cart = self.app.state.cart
        summary = cart.summary()
        headers = ["Product", "Unit Price", "Quantity", "Total"]
        rows = [
            [
                item.product.name,
                format_money(item.product.price),
                item.quantity,
                format_money(item.line_total),
            ]
            for item in summary.items
        ]
        md = f"### Order Summary{f' · {summary.shop.name}' if summary.shop else ''}\n\n"
        md += generate_markdown_table(headers, rows, ["l", "r", "c", "r"])
        md += f"\n\n**Subtotal:** {format_money(summary.subtotal)}  \n"
        md += f"**Delivery:** {delivery_fee_display(summary.shop, cart.calculated_delivery_fee)}  \n"
        if summary.taxes:
            md += f"**Taxes:** {format_money(summary.taxes)}  \n"
        md += f"**Total:** {format_money(summary.total)}\n\n"
        md += "Payment: cash on delivery or UPI once your shopper confirms."
        await self.query_one(MarkdownViewer).document.update(md)

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)

    def _read_address(self) -> DeliveryAddress:
        values = {
            attr: self.query_one(f"#{input_id}", Input).value.strip()
            for attr, input_id in ADDRESS_FIELDS.items()
        }
        return DeliveryAddress(**values)

    def _mark_invalid(self, field: Optional[str]) -> None:
        for input_id in ADDRESS_FIELDS.values():
            self.query_one(f"#{input_id}", Input).remove_class("-invalid")
        input_id = ADDRESS_FIELDS.get(field or "")
        if input_id:
            target = self.query_one(f"#{input_id}", Input)
            target.add_class("-invalid")
            target.focus()

    @on(Button.Pressed, "#btn-submit")
    @work(exclusive=True)
    async def handle_submit(self):
        state = self.app.state
        address = self._read_address()

        try:
            validate_address(address)
        except ValidationError as e:
            self._mark_invalid(e.field)
            self.notify(e.message, severity="error")
            return

        address = await state.delivery.locate_address(address, state.geocoder, state.cart)
        # summary and confirmation show the fee for this address
        await self.render_summary()

        if not await self.app.push_screen_wait(
            DialogModal(
                f"Place order for {format_money(state.cart.total)}?",
                primary_text="Yes",
                secondary_text="No",
                tone="positive",
            )
        ):
            return

        await state.delivery.save_address(address)

        placed = await self._place(address, confirm_duplicate=False)
        if placed is None:
            return

        self.notify(f"Order placed. Your order number is {placed.order_number}.")
        self.app.post_message(NewOrderMessage(placed.order_id))
        self.dismiss(placed.order_id)

    async def _place(self, address: DeliveryAddress, confirm_duplicate: bool):
        orders = self.app.state.orders
        try:
            return await orders.place_order(address, confirm_duplicate=confirm_duplicate)
        except ValidationError as e:
            self._mark_invalid(e.field)
            self.notify(e.message, severity="error")
        except DuplicateOrderError as e:
            info = e.info
            if info.is_exact or not info.requires_confirmation or confirm_duplicate:
                await self.app.push_screen_wait(DialogModal(info.message, tone="error"))
                return None
            similarity = (
                f" ({info.similarity_percentage:g}% similar)"
                if info.similarity_percentage is not None
                else ""
            )
            caption = (
                f"{info.message}{similarity}\n\n"
                f"Existing order #{info.existing_order_number}: "
                f"{status_label(info.existing_order_status)}\n\n"
                "Place this order anyway?"
            )
            if await self.app.push_screen_wait(
                DialogModal(caption, "Place Anyway", "Cancel", tone="warning")
            ):
                return await self._place(address, confirm_duplicate=True)
        except ApiRequestError as e:
            await self.app.push_screen_wait(
                DialogModal(f"Failed to place order: {e.message}", tone="error")
            )
        return None

    @on(Button.Pressed, "#btn-locate")
    @work(exclusive=True, group="locate")
    async def handle_locate(self):
        state = self.app.state
        found = await state.delivery.describe_last_location(state.geocoder)
        if found is None:
            self.notify("No recent location on record.", severity="warning")
            return
        if found.approximate or not found.street:
            self.notify("Could not find an address for your last location.", severity="warning")
            return
        for attr in ("street", "city", "state", "zip_code"):
            value = getattr(found, attr)
            if value:
                self.query_one(f"#{ADDRESS_FIELDS[attr]}", Input).value = value
        self.notify(f"Filled in {found.formatted_address or found.street}")

    @on(Button.Pressed, "#btn-quit")
    def handle_quit(self):
        self.dismiss(None)
