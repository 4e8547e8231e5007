from typing import List

from textual import on, work
from textual.app import ComposeResult
from textual.containers import Horizontal, Vertical
from textual.events import ScreenResume
from textual.widgets import Button, DataTable, Label, Markdown

from db.models import Notice
from utils.messages import ModeSwitchedMessage, NotificationsChangedMessage
from views.base_screen import BaseScreen

NOTICE_ICONS = {"info": "ℹ", "warning": "⚠", "success": "✔", "error": "✖"}


class NotificationsScreen(BaseScreen):
    """
    Notices from the admins on top, this session's live notifications below.
    """

    def __init__(self) -> None:
        super().__init__()
        self._notices: List[Notice] = []

    def compose(self) -> ComposeResult:
        yield from super().compose()
        with Vertical():
            yield Label("Notices", classes="section-title")
            yield Markdown("", id="md-notices")
            yield Label("Notifications", id="label-notifications", classes="section-title")
            yield DataTable(id="table-notifications")
        with Horizontal(id="hort-buttons"):
            yield Button("Dismiss Notices", id="btn-dismiss-notices")
            yield Button("Mark All Read", id="btn-mark-read")
            yield Button("Clear", id="btn-clear", variant="error")

    def on_mount(self) -> None:
        table = self.query_one(DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_columns("", "Time", "Title", "Message")

    @on(ModeSwitchedMessage)
    @on(ScreenResume)
    def handle_resume(self) -> None:
        self.render_notifications()
        self.load_notices()

    @on(NotificationsChangedMessage)
    def handle_notifications_changed(self) -> None:
        self.render_notifications()

    def render_notifications(self) -> None:
        center = self.app.state.notifications
        table = self.query_one(DataTable)
        table.clear()
        for n in center.notifications:
            table.add_row(
                "" if n.read else "●",
                n.timestamp.astimezone().strftime("%H:%M:%S"),
                n.title,
                n.message,
                key=n.id,
            )
        self.query_one("#label-notifications", Label).update(
            f"Notifications ({center.unread_count} unread)"
            if center.unread_count
            else "Notifications"
        )
        for sidebar in self.query("Sidebar"):
            sidebar.refresh_menu_labels()

    @work(exclusive=True, group="notices")
    async def load_notices(self) -> None:
        service = self.app.state.notices
        await service.fetch_active()
        self._notices = await service.visible()
        if not self._notices:
            md = "*No notices right now.*"
        else:
            md = "\n\n".join(
                f"**{NOTICE_ICONS.get(n.type, 'ℹ')} {n.title}**"
                f"{' (pinned)' if n.is_permanent else ''}  \n{n.message}"
                for n in self._notices
            )
        await self.query_one("#md-notices", Markdown).update(md)
        self.query_one("#btn-dismiss-notices").disabled = not any(
            not n.is_permanent for n in self._notices
        )

    @on(DataTable.RowSelected)
    def handle_row_selected(self, event: DataTable.RowSelected) -> None:
        if event.row_key is not None:
            self.app.state.notifications.mark_read(event.row_key.value)
            self.render_notifications()

    @on(Button.Pressed, "#btn-dismiss-notices")
    @work(exclusive=True, group="dismiss")
    async def handle_dismiss_notices(self) -> None:
        service = self.app.state.notices
        for notice in self._notices:
            await service.dismiss(notice)
        self.load_notices()

    @on(Button.Pressed, "#btn-mark-read")
    def handle_mark_read(self) -> None:
        self.app.state.notifications.mark_all_read()
        self.render_notifications()

    @on(Button.Pressed, "#btn-clear")
    def handle_clear(self) -> None:
        self.app.state.notifications.clear()
        self.render_notifications()
