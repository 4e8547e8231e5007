"""
Single consumer of the realtime event queue.

Each event goes through `interpret`, and the resulting EventOutcome is
applied to the NotificationCenter and to a UI sink. The sink is whatever
renders things (the Textual app in production, a recorder in tests).
"""

from __future__ import annotations

import asyncio
from typing import List, Optional, Protocol

from db.models import Notification
from realtime.events import EventOutcome, RealtimeEvent, interpret
from realtime.notifications import (
    DRAIN_INTERVAL_SEC,
    PURGE_INTERVAL_SEC,
    NotificationCenter,
    PendingAlert,
)
from realtime.sound import SoundPlayer
from utils.logger import get_logger

_logger = get_logger(__name__)


class FanoutSink(Protocol):
    def toast(self, notification: Notification, urgent: bool) -> None: ...

    async def show_alert(self, alert: PendingAlert) -> None: ...

    def show_otp(self, otp: str, order_id: Optional[str]) -> None: ...

    def schedule_order_refresh(self, delay: float, order_id: Optional[str]) -> None: ...

    def prompt_redirect(self, target: str) -> None: ...

    def refresh_notices(self) -> None: ...

    def refresh_terms(self) -> None: ...

    def notifications_changed(self) -> None: ...


class NotificationFanout:
    def __init__(
        self,
        center: NotificationCenter,
        sink: FanoutSink,
        *,
        sound: Optional[SoundPlayer] = None,
        drain_interval: float = DRAIN_INTERVAL_SEC,
        purge_interval: float = PURGE_INTERVAL_SEC,
    ) -> None:
        self.center = center
        self.sink = sink
        self.sound = sound or SoundPlayer(enabled=False)
        self.drain_interval = drain_interval
        self.purge_interval = purge_interval
        self._tasks: List[asyncio.Task] = []

    async def apply(self, event: RealtimeEvent) -> EventOutcome:
        outcome = interpret(event)
        if outcome.is_empty:
            return outcome
        _logger.debug(f"Event '{event.name}' -> {outcome}")

        notification = outcome.notification
        if notification is not None:
            if self.center.holds_id(notification.id):
                _logger.debug(f"Event '{event.name}' redelivered as {notification.id}, ignoring")
                return outcome
            # same text for another order still alerts, only the list entry is deduplicated
            if self.center.add(notification):
                self.sink.notifications_changed()
                self.sink.toast(notification, outcome.urgent)
            else:
                _logger.debug(f"Notification text already listed: {notification.title}")
            if outcome.alert_text:
                self.center.queue_alert(
                    notification,
                    outcome.alert_text,
                    now=event.received_at,
                    redirect=outcome.redirect,
                )
            elif outcome.redirect:
                self.sink.prompt_redirect(outcome.redirect)

        if outcome.play_sound:
            await self.sound.play(outcome.urgent)
        if outcome.otp:
            self.sink.show_otp(outcome.otp, outcome.order_id)
        if outcome.refresh_orders_after is not None:
            self.sink.schedule_order_refresh(outcome.refresh_orders_after, outcome.order_id)
        if outcome.refresh_notices:
            self.sink.refresh_notices()
        if outcome.refresh_terms:
            self.sink.refresh_terms()
        return outcome

    async def drain_alerts(self) -> int:
        """Show every due alert; critical ones leave the queue once acknowledged."""
        shown = 0
        for alert in self.center.drain():
            if alert.shown:
                continue
            try:
                await self.sink.show_alert(alert)
            except Exception:
                _logger.exception(f"Could not show alert '{alert.notification.title}', retrying later")
                self.center.requeue(alert)
                continue
            if alert.critical:
                self.center.acknowledge(alert.notification.id)
            shown += 1
        return shown

    def purge_alerts(self) -> int:
        removed = self.center.purge_stale()
        if removed:
            _logger.info(f"Purged {removed} stale pending alerts")
        return removed

    # ---------------------------
    # Loops
    # ---------------------------

    async def consume(self, queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            try:
                await self.apply(event)
            except Exception:
                _logger.exception(f"Failed to handle realtime event '{event.name}'")
            finally:
                queue.task_done()

    async def _drain_loop(self) -> None:
        while True:
            await asyncio.sleep(self.drain_interval)
            try:
                await self.drain_alerts()
            except Exception:
                _logger.exception("Alert drain failed")

    async def _purge_loop(self) -> None:
        while True:
            await asyncio.sleep(self.purge_interval)
            try:
                self.purge_alerts()
            except Exception:
                _logger.exception("Alert purge failed")

    def start(self, queue: asyncio.Queue) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self.consume(queue)),
            asyncio.create_task(self._drain_loop()),
            asyncio.create_task(self._purge_loop()),
        ]

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
