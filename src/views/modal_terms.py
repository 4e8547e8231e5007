from textual import on
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Button, Label, MarkdownViewer

from db.models import Terms


class TermsModal(ModalScreen[bool]):
    """
    Blocking terms and conditions prompt.
    Dismisses with True on accept, False on decline; escape does nothing.
    """

    def __init__(self, terms: Terms) -> None:
        super().__init__()
        self.terms = terms

    def compose(self) -> ComposeResult:
        with Vertical(id="div-terms"):
            yield Label(f"{self.terms.title} (v{self.terms.version})", classes="section-title")
            yield MarkdownViewer(self.terms.content, show_table_of_contents=False)
            with Horizontal():
                yield Button("Decline", id="btn-decline", variant="error")
                yield Button("I Accept", id="btn-accept", variant="success")

    def on_mount(self) -> None:
        self.query_one("#btn-accept").focus()

    @on(Button.Pressed, "#btn-accept")
    def handle_accept(self) -> None:
        self.dismiss(True)

    @on(Button.Pressed, "#btn-decline")
    def handle_decline(self) -> None:
        self.dismiss(False)
