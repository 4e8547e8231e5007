import asyncio
from datetime import datetime
from typing import Optional

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import LoadingIndicator

from db.models import AuthSession, Notification
from realtime.fanout import NotificationFanout
from realtime.notifications import PendingAlert
from realtime.sound import SoundPlayer
from realtime.transport import RealtimeClient
from services.terms import DECLINE_MESSAGE
from utils.config import Settings
from utils.logger import configure_log_file, get_logger
from utils.messages import (
    CartChangedMessage,
    ConnectionStatusMessage,
    ModeSwitchedMessage,
    NewOrderMessage,
    NotificationsChangedMessage,
    QuitRequestedMessage,
    UserLoginMessage,
    UserLogoutMessage,
)
from utils.pure import seconds_until_midnight
from utils.state import GlobalState
from views.base_screen import Sidebar
from views.modal_dialog import DialogModal
from views.modal_terms import TermsModal
from views.scr_cart import CartScreen
from views.scr_contact import ContactScreen
from views.scr_login import LoginScreen
from views.scr_notifications import NotificationsScreen
from views.scr_past_orders import PastOrdersScreen
from views.scr_prod_search import ProdSearchScreen
from views.scr_profile import ProfileScreen
from views.scr_shops import ShopsScreen

_logger = get_logger(__name__)

SESSION_ENDED_NOTICE = "Your session has ended. Please log in again."
MIDNIGHT_NOTICE = "Signed out at midnight. Please log in again."

REDIRECT_PROMPTS = {
    "orders": "View your orders now?",
    "revision": "Your shopper revised the order. Review the changes now?",
    "payment": "Your shopper is waiting for UPI payment. Pay now?",
    "bill": "The bill is ready. Review it now?",
}


class ShopperApp(App):
    BINDINGS = [
        Binding("ctrl+t", "switch_light", "Toggle Theme", show=True),
    ]

    MODES = {
        "shops": ShopsScreen,
        "prod_search": ProdSearchScreen,
        "cart": CartScreen,
        "orders": PastOrdersScreen,
        "notifications": NotificationsScreen,
        "profile": ProfileScreen,
        "contact": ContactScreen,
    }

    CUSTOMER_MODES = {
        "shops": "Shops",
        "prod_search": "Search Products",
        "cart": "Cart",
        "orders": "My Orders",
        "notifications": "Notifications",
        "profile": "My Profile",
        "contact": "Contact Us",
    }

    CSS_PATH = [
        "styles/index.tcss",
        "styles/login.tcss",
        "styles/shops.tcss",
        "styles/cart.tcss",
        "styles/orders.tcss",
    ]

    state: GlobalState

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__()
        settings = settings or Settings.load()
        self.state = GlobalState.build(settings)
        self.fanout: Optional[NotificationFanout] = None
        self._logout_notice = ""
        self._signing_out = False

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()

    async def on_mount(self) -> None:
        self.state.session.add_listener(self._on_identity_changed)

        realtime = self.state.realtime
        if realtime is not None:
            realtime.add_listener(self._on_connection_changed)
            self.fanout = NotificationFanout(
                self.state.notifications,
                self,
                sound=SoundPlayer(self.bell),
            )
            self.fanout.start(realtime.queue)

        await self.state.start()
        self._schedule_midnight_logout()
        self.main_flow()

    async def on_unmount(self) -> None:
        if self.fanout is not None:
            await self.fanout.stop()
        await self.state.shutdown()

    def action_switch_light(self):
        if self.theme == "textual-dark":
            self.theme = "solarized-light"
        else:
            self.theme = "textual-dark"
        self.notify(f"Theme changed to {self.theme}")

    # ---------------------------
    # Session flow
    # ---------------------------

    @work(exclusive=True, group="main-flow")
    async def main_flow(self, notice: str = ""):
        if not self.state.session.is_authenticated:
            await self.push_screen_wait(LoginScreen(notice))

        if not await self.ensure_terms():
            return

        self.post_message(ModeSwitchedMessage(self.current_mode, "shops"))
        await self.switch_mode("shops")
        self.load_search_index()

    async def ensure_terms(self) -> bool:
        """False means the user declined and is being signed out."""
        terms_service = self.state.terms
        terms = await terms_service.fetch_current()
        if terms is None or not terms_service.needs_acceptance:
            return True
        if await self.push_screen_wait(TermsModal(terms)):
            if await terms_service.accept():
                return True
            self.notify(terms_service.error or "Could not record acceptance.", severity="error")
        self._logout_notice = DECLINE_MESSAGE
        await terms_service.decline()
        return False

    @work(exclusive=True, group="search-index")
    async def load_search_index(self) -> None:
        if not self.state.search.index_loaded:
            await self.state.search.load_index()

    async def _on_identity_changed(self, session: Optional[AuthSession]) -> None:
        # a 401 or a declined terms prompt signs the user out from under the screens
        if session is None and not self._signing_out:
            self.post_message(UserLogoutMessage(SESSION_ENDED_NOTICE))

    def _schedule_midnight_logout(self) -> None:
        self.set_timer(seconds_until_midnight(datetime.now()), self._midnight_logout)

    def _midnight_logout(self) -> None:
        """Sessions do not carry over into a new day."""
        if self.state.session.is_authenticated:
            _logger.info("Signing out at midnight")
            self.post_message(UserLogoutMessage(MIDNIGHT_NOTICE))
        self._schedule_midnight_logout()

    @on(CartChangedMessage)
    @on(NewOrderMessage)
    @on(UserLoginMessage)
    def handle_badges_changed(self) -> None:
        for sidebar in self.screen.query(Sidebar):
            sidebar.refresh_menu_labels()

    @on(UserLogoutMessage)
    @work(exclusive=True, group="logout")
    async def handle_user_logout(self, message: UserLogoutMessage):
        notice, self._logout_notice = self._logout_notice or message.reason, ""
        if self.state.session.is_authenticated:
            self._signing_out = True
            try:
                await self.state.session.logout()
            finally:
                self._signing_out = False
            self.notify("Logout successful.")
        self.state.notifications.clear()

        if self.current_mode != "_default":
            await self.switch_mode("_default")
        for mode, screen in self.MODES.items():
            # fresh screens for the next user
            await self.remove_mode(mode)
            self.add_mode(mode, screen)
        self.main_flow(notice)

    @on(QuitRequestedMessage)
    @work
    async def handle_quit(self):
        self.exit()

    # ---------------------------
    # Realtime sink
    # ---------------------------

    def _on_connection_changed(self, client: RealtimeClient) -> None:
        self.post_message(ConnectionStatusMessage(client.state, client.reconnect_attempts))

    @on(ConnectionStatusMessage)
    def handle_connection_status(self, message: ConnectionStatusMessage) -> None:
        for sidebar in self.screen.query(Sidebar):
            sidebar.show_connection(message.state, message.reconnect_attempts)

    def notifications_changed(self) -> None:
        self.screen.post_message(NotificationsChangedMessage())
        for sidebar in self.screen.query(Sidebar):
            sidebar.refresh_menu_labels()

    def toast(self, notification: Notification, urgent: bool) -> None:
        self.notify(
            notification.message,
            title=notification.title,
            severity="warning" if urgent else "information",
            timeout=10 if urgent else 5,
        )

    async def show_alert(self, alert: PendingAlert) -> None:
        answered = asyncio.get_running_loop().create_future()

        def done(result) -> None:
            if not answered.done():
                answered.set_result(result)

        if alert.redirect:
            dialog = DialogModal(alert.text, "View", "Later", "warning")
        else:
            dialog = DialogModal(alert.text, tone="warning" if alert.critical else "default")
        self.push_screen(dialog, callback=done)
        if await answered and alert.redirect:
            self.navigate(alert.redirect)

    def show_otp(self, otp: str, order_id: Optional[str]) -> None:
        self.notify(
            f"Share OTP {otp} with the delivery person.",
            title="Delivery OTP",
            severity="warning",
            timeout=30,
        )

    def schedule_order_refresh(self, delay: float, order_id: Optional[str]) -> None:
        def refresh() -> None:
            if self.current_mode in ("orders", "cart"):
                self.screen.post_message(NewOrderMessage(order_id))

        self.set_timer(delay, refresh)

    @work(group="redirect")
    async def prompt_redirect(self, target: str) -> None:
        kind = target.split(":", 1)[0]
        if await self.push_screen_wait(
            DialogModal(REDIRECT_PROMPTS.get(kind, "Open your order?"), "View", "Later")
        ):
            self.navigate(target)

    def refresh_notices(self) -> None:
        if self.current_mode == "notifications":
            self.screen.post_message(ModeSwitchedMessage("notifications", "notifications"))

    @work(exclusive=True, group="terms")
    async def refresh_terms(self) -> None:
        if self.state.session.is_authenticated:
            await self.ensure_terms()

    # ---------------------------
    # Navigation
    # ---------------------------

    def navigate(self, target: str) -> None:
        """Targets look like "orders" or "<kind>:<order id>"; all land on the orders screen."""
        _, _, order_id = target.partition(":")
        self.open_order(order_id or None)

    @work(group="navigate")
    async def open_order(self, order_id: Optional[str]) -> None:
        if self.current_mode != "orders":
            self.post_message(ModeSwitchedMessage(self.current_mode, "orders"))
            await self.switch_mode("orders")
        if order_id:
            screen = self.screen
            if isinstance(screen, PastOrdersScreen):
                screen.focus_order(order_id)


def run() -> None:
    settings = Settings.load()
    settings.ensure_dirs()
    configure_log_file(settings.log_file)
    _logger.info(f"Starting {settings.app_name} against {settings.api_base_url}")
    app = ShopperApp(settings)
    app.run()


if __name__ == "__main__":
    run()
