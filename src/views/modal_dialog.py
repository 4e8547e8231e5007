from typing import Dict, Literal, Optional, Tuple

from typing_extensions import override

from textual import on
from textual.app import ComposeResult
from textual.containers import Container, Horizontal
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Label

from utils.messages import QuitRequestedMessage


class DialogModal(ModalScreen[bool]):
    """
    A blocking confirm dialog. Dismisses with True for the primary button.
    """

    VARIANT_MAP: Dict[
        str, Tuple[Literal["primary", "default", "success", "warning", "error"]]
    ] = {
        "default": ("primary", "default"),
        "positive": ("success", "default"),
        "warning": ("warning", "default"),
        "error": ("error", "primary"),
    }

    def __init__(
        self,
        caption: str,
        primary_text: str = "OK",
        secondary_text: str = "",
        tone: Literal["default", "positive", "warning", "error"] = "default",
    ):
        super().__init__()
        self.caption = caption
        self.primary_text = primary_text
        self.secondary_text = secondary_text
        self.tone = tone

    def compose(self) -> ComposeResult:
        with Container(id="div-dialog"):
            yield Label(self.caption, id="caption")
            with Horizontal(id="dialog"):
                if self.secondary_text:
                    yield Button(
                        self.secondary_text,
                        variant=DialogModal.VARIANT_MAP[self.tone][1],
                        id="btn-secondary",
                    )
                yield Button(
                    self.primary_text,
                    variant=DialogModal.VARIANT_MAP[self.tone][0],
                    id="btn-primary",
                )

    def on_mount(self):
        # destructive dialogs focus the safe choice
        if not self.secondary_text or not self.tone == "error":
            self.query_one("#btn-primary").focus()
        else:
            self.query_one("#btn-secondary").focus()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-primary":
            self.dismiss(True)
        if event.button.id == "btn-secondary":
            self.dismiss(False)


class SimpleDialogModal(DialogModal):
    def __init__(self, caption: str, tone: str = "default"):
        super().__init__(caption, tone=tone)


class QuitDialogModal(DialogModal):
    def __init__(self):
        super().__init__("Are you sure you want to quit?", "Yes", "No", "error")

    @override
    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "btn-primary":
            self.post_message(QuitRequestedMessage())
            self.dismiss(True)
        else:
            self.dismiss(False)


class InputDialogModal(ModalScreen[Optional[str]]):
    """
    Asks for one line of text. Dismisses with the stripped value, or None
    when cancelled.
    """

    def __init__(
        self,
        caption: str,
        placeholder: str = "",
        primary_text: str = "Submit",
        value: str = "",
        required: bool = True,
    ):
        super().__init__()
        self.caption = caption
        self.placeholder = placeholder
        self.primary_text = primary_text
        self.value = value
        self.required = required

    def compose(self) -> ComposeResult:
        with Container(id="div-dialog"):
            yield Label(self.caption, id="caption")
            yield Input(self.value, placeholder=self.placeholder, id="input-dialog")
            with Horizontal(id="dialog"):
                yield Button("Cancel", id="btn-secondary")
                yield Button(self.primary_text, variant="primary", id="btn-primary")

    def on_mount(self):
        self.query_one("#input-dialog").focus()

    @on(Input.Submitted, "#input-dialog")
    @on(Button.Pressed, "#btn-primary")
    def handle_submit(self) -> None:
        field = self.query_one("#input-dialog", Input)
        value = field.value.strip()
        if self.required and not value:
            field.add_class("-invalid")
            self.notify("This field is required.", severity="error")
            return
        self.dismiss(value)

    @on(Button.Pressed, "#btn-secondary")
    def handle_cancel(self) -> None:
        self.dismiss(None)
