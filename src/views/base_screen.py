from textual import on, work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.events import Resize
from textual.screen import Screen
from textual.widgets import Button, Footer, Header, Label, ListItem, ListView, Markdown

from utils.messages import ModeSwitchedMessage, UserLoginMessage, UserLogoutMessage
from utils.pure import generate_markdown_table
from views.modal_dialog import DialogModal, QuitDialogModal
from views.modal_resize import ResizeScreenPromptModal

CONNECTION_LABELS = {
    "connected": "● Live updates on",
    "connecting": "◌ Connecting...",
    "disconnected": "○ Offline",
}


class Sidebar(Container):
    init_mode = ""

    def compose(self) -> ComposeResult:
        yield Label("User Info", id="label-info-1")
        yield Markdown("", id="md-userinfo")
        yield Label("", id="label-connection")
        yield Button("Log out", id="btn-logout", variant="error")
        yield Label("Menu", id="label-info-2")
        yield ListView(id="list-menu")

    async def on_mount(self):
        self.init_mode = self.app.current_mode
        state = self.app.state

        user = state.session.user
        if user is None:
            return

        table_rows = [
            ["Name", user.name],
            ["Email", user.email],
        ]
        if user.phone:
            table_rows.append(["Phone", user.phone])
        md_table_str = generate_markdown_table(None, table_rows, ["l", "l"])
        await self.query_one(Markdown).update(md_table_str)

        if state.realtime is not None:
            self.show_connection(state.realtime.state, state.realtime.reconnect_attempts)
        else:
            self.query_one("#label-connection", Label).update("Live updates disabled")

        list_menu: ListView = self.query_one("#list-menu")
        await list_menu.clear()
        await list_menu.extend(
            [
                ListItem(Label(self.menu_label(k, v)), id="list-menu-item-" + k)
                for k, v in self.app.CUSTOMER_MODES.items()
            ]
        )
        self.highlight_item(self.init_mode)

    def menu_label(self, mode: str, text: str) -> str:
        if mode == "notifications":
            unread = self.app.state.notifications.unread_count
            if unread:
                return f"{text} ({unread})"
        if mode == "cart":
            count = self.app.state.cart.item_count
            if count:
                return f"{text} ({count})"
        return text

    def refresh_menu_labels(self) -> None:
        for k, v in self.app.CUSTOMER_MODES.items():
            for item in self.query(f"#list-menu-item-{k}"):
                item.query_one(Label).update(self.menu_label(k, v))

    def show_connection(self, state: str, reconnect_attempts: int = 0) -> None:
        text = CONNECTION_LABELS.get(state, state)
        if state != "connected" and reconnect_attempts:
            text += f" (retry {reconnect_attempts})"
        label = self.query_one("#label-connection", Label)
        label.update(text)
        label.set_class(state == "connected", "-online")

    async def on_list_view_selected(self, event: ListView.Selected):
        selected_mode = event.item.id.removeprefix("list-menu-item-")
        self.highlight_item(self.init_mode)
        if self.app.current_mode != selected_mode:
            self.post_message(ModeSwitchedMessage(self.app.current_mode, selected_mode))
            await self.app.switch_mode(selected_mode)

    @on(Button.Pressed, "#btn-logout")
    @work()
    async def handle_logout(self):
        if not await self.app.push_screen_wait(
            DialogModal(
                "Are you sure you want to log out?",
                primary_text="Yes",
                secondary_text="No",
                tone="warning",
            )
        ):
            return

        self.post_message(UserLogoutMessage())

    def highlight_item(self, mode_str: str):
        list_menu = self.query_one("#list-menu")
        for item in list_menu.children:
            item.highlighted = item.id == "list-menu-item-" + mode_str


class BaseScreen(Screen):
    """
    Inherited by all screens, contains common elements like
    headers, footers, sidebar, and keybindings.
    """

    BINDINGS = [
        Binding("ctrl+z", "quit", "Quit App", show=True),
    ]

    def __init__(self):
        super().__init__()

        self.configure()

    def configure(
        self,
        header_sub_title: str = "",
        show_sidebar: bool = True,
    ) -> None:
        self.app.title = self.app.state.settings.app_name
        self.sub_title = header_sub_title
        for k, v in self.app.MODES.items():
            if isinstance(self, v) and k in self.app.CUSTOMER_MODES:
                self.sub_title = self.app.CUSTOMER_MODES[k]

        self._show_sidebar = show_sidebar

    def compose(self) -> ComposeResult:
        if self._show_sidebar:
            yield Sidebar()
        yield Header()
        yield Footer(show_command_palette=False)

    async def on_resize(self, event: Resize) -> None:
        min_width = 80
        min_height = 24
        if event.size.width < min_width or event.size.height < min_height:
            self.app.push_screen(ResizeScreenPromptModal(min_width, min_height))

    @on(UserLoginMessage)
    def handle_user_login(self):
        self.refresh()

    @work()
    async def action_quit(self):
        await self.app.push_screen_wait(QuitDialogModal())
