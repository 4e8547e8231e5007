import asyncio
import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from fakes import RecordingSink

from db.models import Notification
from realtime.events import RealtimeEvent
from realtime.fanout import NotificationFanout
from realtime.notifications import NotificationCenter
from realtime.sound import FALLBACK_TONES, URGENT_REPEAT, SoundPlayer, plan_for

AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def event(name, **data):
    return RealtimeEvent(name=name, data=data, received_at=AT)


class NotificationFanoutTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.center = NotificationCenter()
        self.sink = RecordingSink()
        self.rings = 0

        def bell():
            self.rings += 1

        self.sound = SoundPlayer(bell)
        patcher = mock.patch("realtime.sound.URGENT_GAP_SEC", 0)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.fanout = NotificationFanout(self.center, self.sink, sound=self.sound)

    async def test_informational_event_toasts_and_rings_once(self):
        await self.fanout.apply(event("orderStatusUpdate", orderId="o1", status="shopper_at_shop"))

        self.assertEqual(len(self.center.notifications), 1)
        self.assertEqual(self.sink.changes, 1)
        self.assertEqual(len(self.sink.toasts), 1)
        self.assertFalse(self.sink.toasts[0][1])
        self.assertEqual(self.center.pending_alerts, [])
        self.assertEqual(self.sink.refreshes, [(2.0, "o1")])
        self.assertEqual(self.rings, 1)

    async def test_critical_event_queues_alert_with_redirect(self):
        await self.fanout.apply(event("orderRevised", orderId="o2"))

        self.assertEqual(len(self.center.pending_alerts), 1)
        alert = self.center.pending_alerts[0]
        self.assertTrue(alert.critical)
        self.assertEqual(alert.redirect, "revision:o2")
        self.assertTrue(self.sink.toasts[0][1])
        self.assertEqual(self.sound.last_plan, plan_for(True))

    async def test_redirect_without_alert_prompts_directly(self):
        await self.fanout.apply(event("orderStatusUpdate", orderId="o3", status="awaiting_upi_payment"))
        self.assertEqual(self.sink.redirects, ["payment:o3"])
        self.assertEqual(self.center.pending_alerts, [])

    async def test_redelivered_event_is_ignored(self):
        first = event("shopperResponse", notificationId="n1", message="On my way")
        await self.fanout.apply(first)
        await self.fanout.apply(first)

        self.assertEqual(len(self.center.notifications), 1)
        self.assertEqual(len(self.sink.toasts), 1)
        self.assertEqual(len(self.center.pending_alerts), 1)
        self.assertEqual(self.sound.plays, 1)

    async def test_same_cancellation_for_two_orders_alerts_twice(self):
        await self.fanout.apply(event("orderCancelled", orderId="A", reason="Shop closed"))
        await self.fanout.apply(event("orderCancelled", orderId="B", reason="Shop closed"))

        # identical text is listed once
        self.assertEqual(len(self.center.notifications), 1)
        self.assertEqual(len(self.sink.toasts), 1)
        self.assertEqual(len(self.center.pending_alerts), 2)
        self.assertEqual(self.sink.refreshes, [(2.0, "A"), (2.0, "B")])
        self.assertEqual(self.sound.plays, 2)

        self.assertEqual(await self.fanout.drain_alerts(), 2)
        self.assertEqual(len(self.sink.alerts), 2)

    async def test_same_delivery_for_two_orders_refreshes_both(self):
        await self.fanout.apply(event("orderStatusUpdate", orderId="A", status="delivered"))
        await self.fanout.apply(event("orderStatusUpdate", orderId="B", status="delivered"))

        self.assertEqual(self.sink.refreshes, [(2.0, "A"), (2.0, "B")])
        self.assertEqual(len(self.center.pending_alerts), 2)

    async def test_order_number_tells_cancellations_apart(self):
        await self.fanout.apply(event("orderCancelled", orderId="A", orderNumber="101"))
        await self.fanout.apply(event("orderCancelled", orderId="B", orderNumber="102"))

        self.assertEqual(len(self.center.notifications), 2)
        self.assertIn("#102", self.center.notifications[0].message)

    async def test_failed_alert_is_retried_on_next_drain(self):
        await self.fanout.apply(event("orderStatusUpdate", orderId="o1", status="delivered"))

        with mock.patch.object(self.sink, "show_alert", side_effect=RuntimeError("no screen")):
            self.assertEqual(await self.fanout.drain_alerts(), 0)
        self.assertEqual(len(self.center.pending_alerts), 1)
        self.assertFalse(self.center.pending_alerts[0].shown)

        self.assertEqual(await self.fanout.drain_alerts(), 1)
        self.assertEqual(len(self.sink.alerts), 1)
        self.assertEqual(self.center.pending_alerts, [])

    async def test_otp_is_shown(self):
        await self.fanout.apply(
            event("orderStatusUpdate", orderId="o1", status="picked_up", deliveryOTP="1234")
        )
        self.assertEqual(self.sink.otps, [("1234", "o1")])

    async def test_notice_and_terms_refresh(self):
        await self.fanout.apply(event("noticesRefresh"))
        await self.fanout.apply(event("newTermsCreated"))
        self.assertEqual(self.sink.notices_refreshed, 1)
        self.assertEqual(self.sink.terms_refreshed, 1)
        self.assertEqual(self.center.notifications, [])

    async def test_drain_shows_each_alert_once(self):
        await self.fanout.apply(event("orderRevised", orderId="o2"))
        await self.fanout.apply(
            event("orderStatusUpdate", orderId="o1", status="delivered")
        )

        self.assertEqual(await self.fanout.drain_alerts(), 2)
        self.assertEqual(len(self.sink.alerts), 2)
        # critical alert was acknowledged after being shown
        self.assertEqual(self.center.pending_alerts, [])
        self.assertEqual(await self.fanout.drain_alerts(), 0)

    async def test_purge(self):
        self.center.queue_alert(
            Notification(id="x", type="order_revised", title="t", message="m", timestamp=AT),
            "old",
            now=datetime.now(timezone.utc) - timedelta(minutes=10),
        )
        self.assertEqual(self.fanout.purge_alerts(), 1)

    async def test_consume_loop_applies_and_drains(self):
        queue = asyncio.Queue()
        fanout = NotificationFanout(self.center, self.sink, drain_interval=0.01, purge_interval=0.01)
        fanout.start(queue)
        await queue.put(event("orderStatusUpdate", orderId="o1", status="shopper_at_shop"))
        await queue.put(event("orderCancelled", orderId="o1", reason="Closed"))
        await asyncio.wait_for(queue.join(), timeout=1)
        await asyncio.sleep(0.05)
        await fanout.stop()

        self.assertEqual(len(self.center.notifications), 2)
        self.assertEqual(len(self.sink.alerts), 1)

    async def test_drain_loop_survives_a_failing_dialog(self):
        sink = FlakySink()
        queue = asyncio.Queue()
        fanout = NotificationFanout(self.center, sink, drain_interval=0.01, purge_interval=10)
        fanout.start(queue)
        await queue.put(event("orderStatusUpdate", orderId="A", status="delivered"))
        await asyncio.wait_for(queue.join(), timeout=1)
        for _ in range(100):
            if sink.alerts:
                break
            await asyncio.sleep(0.01)
        await queue.put(event("orderCancelled", orderId="B", reason="Closed"))
        for _ in range(100):
            if len(sink.alerts) == 2:
                break
            await asyncio.sleep(0.01)
        drain_task = fanout._tasks[1]
        self.assertFalse(drain_task.done())
        await fanout.stop()

        self.assertEqual(sink.failures, 1)
        self.assertEqual([a.notification.type for a in sink.alerts], ["status_update", "order_cancelled"])


class FlakySink(RecordingSink):
    """Fails the first dialog, then behaves."""

    def __init__(self):
        super().__init__()
        self.failures = 0

    async def show_alert(self, alert):
        if not self.failures:
            self.failures += 1
            raise RuntimeError("screen not ready")
        await super().show_alert(alert)


class SoundPlayerTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_urgent_repeats(self):
        rings = []
        player = SoundPlayer(lambda: rings.append(1))
        self.assertEqual(plan_for(True).repeat, URGENT_REPEAT)

        with mock.patch("realtime.sound.URGENT_GAP_SEC", 0):
            await player.play(urgent=True)
        self.assertEqual(len(rings), URGENT_REPEAT)

    async def test_falls_back_to_tones(self):
        tones = []

        def broken_bell():
            raise OSError("no terminal")

        player = SoundPlayer(broken_bell, tone_player=tones.append)
        await player.play()
        self.assertEqual(tones, [FALLBACK_TONES])

    async def test_disabled_player_is_silent(self):
        player = SoundPlayer(enabled=False)
        await player.play(urgent=True)
        self.assertEqual(player.plays, 0)


if __name__ == "__main__":
    unittest.main()
