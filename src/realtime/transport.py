# Socket.IO connection to the backend, one per signed-in identity
from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Literal, Optional

import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError
from socketio.exceptions import SocketIOError

from realtime.events import SUBSCRIBED_EVENTS, RealtimeEvent
from utils.logger import get_logger

_logger = get_logger(__name__)

ConnectionState = Literal["disconnected", "connecting", "connected"]
StateListener = Callable[["RealtimeClient"], None]

HEARTBEAT_INTERVAL_SEC = 25.0
RECONNECT_DELAY_SEC = 1.0
RECONNECT_DELAY_MAX_SEC = 5.0


class RealtimeClient:
    """
    Owns the socketio.AsyncClient for the current identity.

    Inbound named events are pushed onto `queue` as RealtimeEvent and never
    handled here; NotificationFanout is the only consumer. Connection state
    is tracked on its own so a dropped transport never touches notifications.
    """

    def __init__(
        self,
        url: str,
        *,
        heartbeat_interval: float = HEARTBEAT_INTERVAL_SEC,
        reconnect_delay: float = RECONNECT_DELAY_SEC,
        reconnect_delay_max: float = RECONNECT_DELAY_MAX_SEC,
        client_factory: Optional[Callable[[], socketio.AsyncClient]] = None,
        queue: Optional[asyncio.Queue] = None,
    ) -> None:
        self.url = url
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_delay = reconnect_delay
        self.reconnect_delay_max = reconnect_delay_max
        self.client_factory = client_factory or self._default_client
        self.queue: asyncio.Queue = queue or asyncio.Queue()

        self.state: ConnectionState = "disconnected"
        self.reconnect_attempts = 0
        self.user_id: Optional[str] = None
        self.last_error: Optional[str] = None

        self._sio: Optional[socketio.AsyncClient] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._retry_task: Optional[asyncio.Task] = None
        self._listeners: List[StateListener] = []

    @staticmethod
    def _default_client() -> socketio.AsyncClient:
        return socketio.AsyncClient(
            reconnection=True,
            reconnection_delay=1,
            reconnection_delay_max=5,
            logger=False,
        )

    @property
    def is_connected(self) -> bool:
        return self.state == "connected"

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: ConnectionState) -> None:
        if self.state == state:
            return
        _logger.debug(f"Socket state {self.state} -> {state}")
        self.state = state
        for listener in self._listeners:
            listener(self)

    # ---------------------------
    # Lifecycle
    # ---------------------------

    async def switch_identity(self, user_id: Optional[str]) -> None:
        """Tear down the old connection and, for a signed-in user, open a fresh one."""
        if user_id == self.user_id and self._sio is not None:
            return
        await self.disconnect()
        self.user_id = user_id
        if user_id:
            await self.connect()

    async def connect(self) -> None:
        if self.user_id is None:
            raise RuntimeError("Cannot connect without a signed-in user")
        self._stop_retry()
        self._sio = self.client_factory()
        self._register_handlers(self._sio)
        _logger.info(f"Connecting to {self.url} as customer {self.user_id}")
        if not await self._attempt(self._sio):
            # the library only reconnects after an established session drops
            self._retry_task = asyncio.create_task(self._retry_loop(self._sio))

    async def _attempt(self, sio: socketio.AsyncClient) -> bool:
        self._set_state("connecting")
        try:
            await sio.connect(self.url, transports=["websocket", "polling"], wait_timeout=20)
        except SocketConnectionError as exc:
            # connect_error has already counted this attempt
            self.last_error = str(exc)
            _logger.warning(f"Socket connection failed: {exc}")
            self._set_state("disconnected")
            return False
        return True

    def retry_delay(self) -> float:
        exponent = min(max(self.reconnect_attempts - 1, 0), 10)
        return min(self.reconnect_delay * 2**exponent, self.reconnect_delay_max)

    async def _retry_loop(self, sio: socketio.AsyncClient) -> None:
        while self._sio is sio and not self.is_connected:
            await asyncio.sleep(self.retry_delay())
            if self._sio is not sio or self.is_connected:
                return
            _logger.info(f"Retrying socket connection (attempt {self.reconnect_attempts + 1})")
            await self._attempt(sio)

    def _stop_retry(self) -> None:
        if self._retry_task is not None:
            self._retry_task.cancel()
            self._retry_task = None

    async def disconnect(self) -> None:
        self._stop_retry()
        self._stop_heartbeat()
        sio, self._sio = self._sio, None
        if sio is not None:
            try:
                await sio.disconnect()
            except SocketIOError as exc:
                _logger.debug(f"Ignoring error while disconnecting: {exc}")
        self.reconnect_attempts = 0
        self._set_state("disconnected")

    def _register_handlers(self, sio: socketio.AsyncClient) -> None:
        sio.on("connect", self._on_connect)
        sio.on("disconnect", self._on_disconnect)
        sio.on("connect_error", self._on_connect_error)
        for name in SUBSCRIBED_EVENTS:
            sio.on(name, self._forwarder(name))

    def _forwarder(self, name: str):
        async def forward(data=None):
            payload = data if isinstance(data, dict) else {"value": data}
            await self.queue.put(RealtimeEvent(name=name, data=payload))

        return forward

    async def _on_connect(self) -> None:
        self.reconnect_attempts = 0
        self.last_error = None
        self._set_state("connected")
        await self.emit("registerCustomer", self.user_id)
        _logger.info(f"Registered as customer {self.user_id}")
        self._start_heartbeat()

    async def _on_disconnect(self, reason=None) -> None:
        _logger.info(f"Socket disconnected{f': {reason}' if reason else ''}")
        self._stop_heartbeat()
        self._set_state("disconnected")

    async def _on_connect_error(self, error=None) -> None:
        self.reconnect_attempts += 1
        self.last_error = str(error) if error else "connection error"
        _logger.warning(f"Socket connection error (attempt {self.reconnect_attempts}): {self.last_error}")
        self._set_state("disconnected")

    # ---------------------------
    # Outbound
    # ---------------------------

    async def emit(self, event: str, data=None) -> bool:
        if self._sio is None or not self.is_connected:
            _logger.debug(f"Dropping '{event}', socket not connected")
            return False
        await self._sio.emit(event, data)
        return True

    def heartbeat_payload(self) -> dict:
        return {
            "timestamp": int(time.time() * 1000),
            "userId": self.user_id,
            "userType": "customer",
        }

    def _start_heartbeat(self) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

    def _stop_heartbeat(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None

    async def _heartbeat_loop(self) -> None:
        while self.is_connected:
            await asyncio.sleep(self.heartbeat_interval)
            if self.is_connected:
                await self.emit("heartbeat", self.heartbeat_payload())
                _logger.debug("Heartbeat sent")
