from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from api.client import ApiClient
from api.geocoding import Geocoder
from db.database import LocalStore
from db.models import AuthSession
from realtime.notifications import NotificationCenter
from realtime.transport import RealtimeClient
from services.cart import CartService
from services.delivery import DeliveryService
from services.notices import NoticeService
from services.orders import OrderService
from services.search import SearchService
from services.shops import ShopService
from services.session import SessionService
from services.terms import TermsService
from utils.config import Settings
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass
class GlobalState:
    """
    Every service the screens talk to, built once at app start.

    Screens reach it through `self.app.state`; nothing is a module-level
    singleton. `start()` restores persisted state, `shutdown()` tears the
    realtime connection down.
    """

    settings: Settings
    store: LocalStore
    api: ApiClient
    session: SessionService
    cart: CartService
    delivery: DeliveryService
    orders: OrderService
    search: SearchService
    shops: ShopService
    notices: NoticeService
    terms: TermsService
    geocoder: Geocoder
    realtime: Optional[RealtimeClient] = None
    notifications: NotificationCenter = field(default_factory=NotificationCenter)

    @classmethod
    def build(cls, settings: Settings, store: Optional[LocalStore] = None) -> GlobalState:
        store = store or LocalStore(str(settings.db_path))
        session = SessionService(store)
        api = ApiClient(
            settings.api_base_url,
            token_provider=session.token,
            on_unauthorized=session.handle_unauthorized,
            timeout=settings.api_timeout_sec,
            retry_attempts=settings.retry_attempts,
            retry_delay=settings.retry_delay_sec,
        )
        session.api = api
        cart = CartService(
            store,
            default_delivery_fee=settings.default_delivery_fee,
            tax_percentage=settings.tax_percentage,
        )
        realtime = None
        if settings.enable_socket_notifications:
            realtime = RealtimeClient(
                settings.socket_url, heartbeat_interval=settings.heartbeat_interval_sec
            )
        return cls(
            settings=settings,
            store=store,
            api=api,
            session=session,
            cart=cart,
            delivery=DeliveryService(api, store, location_max_age_sec=settings.location_max_age_sec),
            orders=OrderService(api, cart, store),
            search=SearchService(api),
            shops=ShopService(api),
            notices=NoticeService(api, store, session),
            terms=TermsService(api, store, session),
            geocoder=Geocoder(settings.geocoder_url),
            realtime=realtime,
        )

    @property
    def user(self):
        return self.session.user

    async def start(self) -> Optional[AuthSession]:
        if self.realtime is not None:
            self.session.add_listener(self._on_identity_changed)
        await self.cart.load()
        return await self.session.restore()

    async def _on_identity_changed(self, session: Optional[AuthSession]) -> None:
        await self.realtime.switch_identity(session.user.id if session else None)

    async def shutdown(self) -> None:
        if self.realtime is not None:
            await self.realtime.disconnect()
        _logger.info("Services shut down")
