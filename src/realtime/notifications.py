from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from db.models import Notification

MAX_NOTIFICATIONS = 50

CRITICAL_TYPES = frozenset(
    {
        "shopping_completed",
        "order_revised",
        "payment_confirmed",
        "order_cancelled",
        "order_accepted",
        "shopper_response",
    }
)

DRAIN_INTERVAL_SEC = 15.0
PURGE_INTERVAL_SEC = 60.0
PENDING_ALERT_MAX_AGE = timedelta(minutes=5)


def is_critical(notification_type: str) -> bool:
    return notification_type in CRITICAL_TYPES


@dataclass(frozen=True)
class PendingAlert:
    notification: Notification
    text: str
    critical: bool
    queued_at: datetime
    shown: bool = False
    redirect: Optional[str] = None


class NotificationCenter:
    """
    In-memory notification list plus the queue of alerts waiting for a
    blocking dialog. Lives for the whole app session and is independent of
    the transport's connection state.
    """

    def __init__(self, max_notifications: int = MAX_NOTIFICATIONS) -> None:
        self.max_notifications = max_notifications
        self.notifications: List[Notification] = []
        self.pending_alerts: List[PendingAlert] = []

    def is_duplicate(self, notification: Notification) -> bool:
        return any(
            n.id == notification.id
            or (n.title == notification.title and n.message == notification.message)
            for n in self.notifications
        )

    def add(self, notification: Notification) -> bool:
        """Prepend unless a notification with the same id or content is held."""
        if self.is_duplicate(notification):
            return False
        self.notifications = [notification, *self.notifications][: self.max_notifications]
        return True

    def remove(self, notification_id: str) -> None:
        self.notifications = [n for n in self.notifications if n.id != notification_id]

    def clear(self) -> None:
        self.notifications = []

    def mark_read(self, notification_id: str) -> None:
        self.notifications = [
            replace(n, read=True) if n.id == notification_id else n for n in self.notifications
        ]

    def mark_all_read(self) -> None:
        self.notifications = [replace(n, read=True) for n in self.notifications]

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.read)

    # ---------------------------
    # Pending alerts
    # ---------------------------

    def queue_alert(
        self,
        notification: Notification,
        text: str,
        now: Optional[datetime] = None,
        redirect: Optional[str] = None,
    ) -> PendingAlert:
        """One pending alert per event; the notification id identifies the event."""
        for pending in self.pending_alerts:
            if pending.notification.id == notification.id:
                return pending
        alert = PendingAlert(
            notification=notification,
            text=text or notification.message,
            critical=is_critical(notification.type),
            queued_at=now or datetime.now(timezone.utc),
            redirect=redirect,
        )
        self.pending_alerts = [*self.pending_alerts, alert]
        return alert

    def drain(self) -> List[PendingAlert]:
        """
        Alerts due for display. Non-critical ones leave the queue now;
        critical ones stay until acknowledged or purged.
        """
        due = list(self.pending_alerts)
        self.pending_alerts = [replace(a, shown=True) for a in due if a.critical]
        return due

    def holds_id(self, notification_id: str) -> bool:
        return any(n.id == notification_id for n in self.notifications) or any(
            a.notification.id == notification_id for a in self.pending_alerts
        )

    def requeue(self, alert: PendingAlert) -> None:
        """Put back an alert whose dialog could not be shown, to retry on the next drain."""
        others = [a for a in self.pending_alerts if a.notification.id != alert.notification.id]
        self.pending_alerts = [replace(alert, shown=False), *others]

    def acknowledge(self, notification_id: str) -> None:
        self.pending_alerts = [
            a for a in self.pending_alerts if a.notification.id != notification_id
        ]

    def purge_stale(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        before = len(self.pending_alerts)
        self.pending_alerts = [
            a for a in self.pending_alerts if now - a.queued_at <= PENDING_ALERT_MAX_AGE
        ]
        return before - len(self.pending_alerts)
