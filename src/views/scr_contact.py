from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, Input, Label, TextArea

from api.errors import ValidationError
from services.contact import submit_contact
from views.base_screen import BaseScreen


class ContactScreen(BaseScreen):
    """
    Contact form for support. Name and email default to the signed-in user.
    """

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical(id="div-contact"):
            yield Label("Name")
            yield Input(id="input-contact-name")
            yield Label("Email")
            yield Input(id="input-contact-email")
            yield Label("Subject")
            yield Input(placeholder="Question about my order", id="input-contact-subject")
            yield Label("Message")
            yield TextArea(id="textarea-contact-message")
            with Horizontal(id="hort-buttons"):
                yield Button("Send", id="btn-send", variant="primary")

    def on_mount(self) -> None:
        user = self.app.state.session.user
        if user is not None:
            self.query_one("#input-contact-name", Input).value = user.name
            self.query_one("#input-contact-email", Input).value = user.email
        self.query_one("#input-contact-subject").focus()

    @on(Button.Pressed, "#btn-send")
    @work(exclusive=True)
    async def handle_send(self) -> None:
        subject = self.query_one("#input-contact-subject", Input)
        message = self.query_one("#textarea-contact-message", TextArea)
        try:
            result = await submit_contact(
                self.app.state.api,
                self.query_one("#input-contact-name", Input).value,
                self.query_one("#input-contact-email", Input).value,
                subject.value,
                message.text,
            )
        except ValidationError as e:
            self.notify(e.message, severity="error")
            return

        if not result.success:
            self.notify(result.message, severity="error")
            return
        self.notify("Thanks! We'll get back to you soon.")
        subject.value = ""
        message.text = ""
