import unittest
from datetime import datetime, timedelta, timezone

import fakes  # noqa: F401

from db.models import Notification
from realtime.notifications import MAX_NOTIFICATIONS, NotificationCenter

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def note(nid, ntype="status_update", title=None, message=None):
    return Notification(
        id=nid,
        type=ntype,
        title=title or f"Title {nid}",
        message=message or f"Message {nid}",
        timestamp=NOW,
    )


class NotificationCenterTestCase(unittest.TestCase):
    def setUp(self):
        self.center = NotificationCenter()

    def test_newest_first(self):
        self.center.add(note("a"))
        self.center.add(note("b"))
        self.assertEqual([n.id for n in self.center.notifications], ["b", "a"])

    def test_dedup_by_id_or_content(self):
        self.assertTrue(self.center.add(note("a", title="T", message="M")))
        self.assertFalse(self.center.add(note("a", title="Other", message="Other")))
        self.assertFalse(self.center.add(note("z", title="T", message="M")))
        self.assertEqual(len(self.center.notifications), 1)

    def test_capped_at_fifty(self):
        for i in range(MAX_NOTIFICATIONS + 5):
            self.center.add(note(str(i)))
        self.assertEqual(len(self.center.notifications), MAX_NOTIFICATIONS)
        self.assertEqual(self.center.notifications[0].id, str(MAX_NOTIFICATIONS + 4))
        self.assertEqual(self.center.notifications[-1].id, "5")

    def test_read_state(self):
        self.center.add(note("a"))
        self.center.add(note("b"))
        self.assertEqual(self.center.unread_count, 2)
        self.center.mark_read("a")
        self.assertEqual(self.center.unread_count, 1)
        self.center.mark_all_read()
        self.assertEqual(self.center.unread_count, 0)
        self.center.remove("a")
        self.assertEqual([n.id for n in self.center.notifications], ["b"])
        self.center.clear()
        self.assertEqual(self.center.notifications, [])

    def test_drain_keeps_critical_until_acknowledged(self):
        self.center.queue_alert(note("info"), "fyi", now=NOW)
        self.center.queue_alert(note("crit", ntype="order_revised"), "review", now=NOW)

        due = self.center.drain()
        self.assertEqual([a.notification.id for a in due], ["info", "crit"])
        self.assertEqual([a.notification.id for a in self.center.pending_alerts], ["crit"])
        self.assertTrue(self.center.pending_alerts[0].shown)

        self.center.acknowledge("crit")
        self.assertEqual(self.center.pending_alerts, [])

    def test_queue_alert_falls_back_to_message(self):
        alert = self.center.queue_alert(note("a"), "", now=NOW, redirect="orders")
        self.assertEqual(alert.text, "Message a")
        self.assertEqual(alert.redirect, "orders")
        self.assertFalse(alert.critical)

    def test_purge_stale_alerts(self):
        self.center.queue_alert(note("old", ntype="order_revised"), "x", now=NOW - timedelta(minutes=6))
        self.center.queue_alert(note("new", ntype="order_revised"), "y", now=NOW - timedelta(minutes=4))
        self.assertEqual(self.center.purge_stale(NOW), 1)
        self.assertEqual([a.notification.id for a in self.center.pending_alerts], ["new"])


if __name__ == "__main__":
    unittest.main()
