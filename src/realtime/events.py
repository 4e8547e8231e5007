"""
Pure mapping from inbound real-time events to UI outcomes.

Nothing here touches the UI or the network, so every reaction to a server
event can be tested by feeding a RealtimeEvent through `interpret`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from db.models import Notification
from realtime.notifications import is_critical

REFRESH_DELAY_SEC = 2.0


@dataclass(frozen=True)
class RealtimeEvent:
    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class EventOutcome:
    notification: Optional[Notification] = None
    alert_text: Optional[str] = None
    play_sound: bool = False
    urgent: bool = False
    otp: Optional[str] = None
    refresh_orders_after: Optional[float] = None
    redirect: Optional[str] = None  # "orders", "order:<id>", "revision:<id>", "payment:<id>", "bill:<id>"
    refresh_notices: bool = False
    refresh_terms: bool = False
    order_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return self == EventOutcome()


def status_message(status: str, data: Dict[str, Any]) -> str:
    if status == "pending_shopper":
        return "We are finding a personal shopper for your order"
    if status == "accepted_by_shopper":
        return "A personal shopper has accepted your order"
    if status == "awaiting_upi_payment":
        return "Your shopper is waiting for your UPI payment"
    if status == "payment_completed":
        return "Payment received, your shopper will start soon"
    if status == "shopper_at_shop":
        return "Your shopper has reached the shop"
    if status == "shopping_in_progress":
        return "Your shopper is picking your items"
    if status == "final_shopping":
        return "Your shopper is finishing your shopping"
    if status in ("shopper_revised_order", "customer_reviewing_revision"):
        return "Your shopper revised the order. Please review the changes"
    if status == "customer_approved_revision":
        return "You approved the revised order"
    if status in ("bill_uploaded", "bill_sent"):
        return "Shopping is complete. Please review and approve the bill"
    if status == "bill_approved":
        return "Bill approved, your order is being prepared for delivery"
    if status == "picked_up":
        if data.get("deliveryOTP"):
            return f"Your order has been picked up! Delivery OTP: {data['deliveryOTP']}"
        return "Your order has been picked up for delivery"
    if status == "out_for_delivery":
        return "Your order is out for delivery"
    if status == "delivered":
        return "Your order has been delivered successfully!"
    if status == "cancelled":
        return f"Order cancelled: {data['reason']}" if data.get("reason") else "Your order has been cancelled"
    return f"Order status: {status}"


_STATUS_TYPES = {
    "accepted_by_shopper": "order_accepted",
    "shopper_revised_order": "order_revised",
    "customer_reviewing_revision": "order_revised",
    "payment_completed": "payment_confirmed",
    "bill_uploaded": "shopping_completed",
    "bill_sent": "shopping_completed",
    "cancelled": "order_cancelled",
}


def _order_id(data: Dict[str, Any]) -> Optional[str]:
    order_id = data.get("orderId") or data.get("_id")
    if isinstance(order_id, dict):
        order_id = order_id.get("_id")
    return str(order_id) if order_id else None


def _order_label(data: Dict[str, Any], capitalize: bool = False) -> str:
    number = data.get("orderNumber")
    if number:
        return f"Order #{number}" if capitalize else f"order #{number}"
    return "Your order" if capitalize else "your order"


def _notification(event: RealtimeEvent, ntype: str, title: str, message: str) -> Notification:
    data = event.data
    synthetic = f"{ntype}-{_order_id(data) or 'none'}-{int(event.received_at.timestamp() * 1000)}"
    return Notification(
        id=str(data.get("notificationId") or synthetic),
        type=ntype,
        title=title,
        message=message,
        timestamp=event.received_at,
        data=dict(data),
    )


def _notify(event, ntype, title, message, **extra) -> EventOutcome:
    critical = is_critical(ntype)
    return EventOutcome(
        notification=_notification(event, ntype, title, message),
        alert_text=extra.pop("alert_text", message if critical else None),
        play_sound=True,
        urgent=critical,
        order_id=_order_id(event.data),
        **extra,
    )


def _on_status_update(event: RealtimeEvent) -> EventOutcome:
    data = event.data
    status = str(data.get("status") or "")
    ntype = _STATUS_TYPES.get(status, "status_update")
    message = status_message(status, data)
    if data.get("orderNumber"):
        message = f"Order #{data['orderNumber']}: {message}"
    order_id = _order_id(data)
    extra: Dict[str, Any] = {"refresh_orders_after": REFRESH_DELAY_SEC}

    if status == "picked_up" and data.get("deliveryOTP"):
        extra["otp"] = str(data["deliveryOTP"])
        extra["alert_text"] = (
            "Your order has been picked up!\n\n"
            f"Your delivery OTP is: {data['deliveryOTP']}\n\n"
            "Please share this OTP with the delivery person when they arrive."
        )
    elif status == "delivered":
        extra["alert_text"] = "Your order has been delivered successfully!\n\nThank you for using DelhiveryWay!"
    elif status == "awaiting_upi_payment" and order_id:
        extra["redirect"] = f"payment:{order_id}"
    elif ntype == "order_revised" and order_id:
        extra["redirect"] = f"revision:{order_id}"
    elif ntype == "shopping_completed" and order_id:
        extra["redirect"] = f"bill:{order_id}"

    return _notify(event, ntype, "Order Status Updated", message, **extra)


def _on_order_accepted(event: RealtimeEvent) -> EventOutcome:
    shopper = event.data.get("shopper") or event.data.get("personalShopper") or {}
    name = shopper.get("name") if isinstance(shopper, dict) else None
    message = f"{name or 'A personal shopper'} accepted {_order_label(event.data)}"
    return _notify(event, "order_accepted", "Order Accepted", message, refresh_orders_after=REFRESH_DELAY_SEC)


def _on_order_revised(event: RealtimeEvent) -> EventOutcome:
    order_id = _order_id(event.data)
    message = f"Your shopper revised {_order_label(event.data)}. Please review the changes."
    return _notify(
        event,
        "order_revised",
        "Order Revised",
        message,
        redirect=f"revision:{order_id}" if order_id else None,
        refresh_orders_after=REFRESH_DELAY_SEC,
    )


def _on_order_cancelled(event: RealtimeEvent) -> EventOutcome:
    reason = event.data.get("reason") or "No reason provided"
    label = _order_label(event.data, capitalize=True)
    return _notify(
        event,
        "order_cancelled",
        "Order Cancelled",
        f"{label} has been cancelled. Reason: {reason}",
        alert_text=(
            f"{label} has been cancelled.\n\nReason: {reason}\n\n"
            "A refund has been initiated and will reflect in your bank account in 3-5 business days."
        ),
        refresh_orders_after=REFRESH_DELAY_SEC,
    )


def _on_payment_confirmed(event: RealtimeEvent) -> EventOutcome:
    amount = event.data.get("amount")
    message = (
        f"Payment of ₹{amount} has been processed successfully. Your order is now confirmed."
        if amount is not None
        else "Your payment has been processed successfully."
    )
    return _notify(
        event,
        "payment_confirmed",
        "Payment Successful!",
        message,
        alert_text="Payment successful! Your order has been confirmed.\n\nWould you like to view your orders?",
        redirect="orders",
        refresh_orders_after=REFRESH_DELAY_SEC,
    )


def _on_shopping_completed(event: RealtimeEvent) -> EventOutcome:
    order_id = _order_id(event.data)
    return _notify(
        event,
        "shopping_completed",
        "Shopping Completed",
        f"Your shopper finished shopping for {_order_label(event.data)}. Please review the bill.",
        redirect=f"bill:{order_id}" if order_id else None,
        refresh_orders_after=REFRESH_DELAY_SEC,
    )


def _on_shopper_response(event: RealtimeEvent) -> EventOutcome:
    text = event.data.get("message") or event.data.get("response") or "Your shopper replied to your inquiry."
    return _notify(event, "shopper_response", "Shopper Response", str(text))


def _on_delivery_assigned(event: RealtimeEvent) -> EventOutcome:
    partner = event.data.get("deliveryPartner") or {}
    name = partner.get("name") if isinstance(partner, dict) else None
    return _notify(
        event,
        "delivery_assigned",
        "Delivery Partner Assigned!",
        f"{name or 'A delivery partner'} has been assigned to your order.",
    )


def _on_shopper_action(event: RealtimeEvent) -> EventOutcome:
    action = event.data.get("message") or event.data.get("action") or "Your shopper updated your order."
    return _notify(event, "shopper_action", "Shopper Update", str(action).replace("_", " "))


def _on_shopper_location(event: RealtimeEvent) -> EventOutcome:
    return EventOutcome(order_id=_order_id(event.data))


def _on_new_notice(event: RealtimeEvent) -> EventOutcome:
    title = event.data.get("title") or "New Notice"
    message = event.data.get("message") or "A new notice has been posted."
    outcome = _notify(event, "notice", str(title), str(message))
    return EventOutcome(
        notification=outcome.notification,
        play_sound=True,
        refresh_notices=True,
    )


def _on_notices_refresh(event: RealtimeEvent) -> EventOutcome:
    return EventOutcome(refresh_notices=True)


def _on_new_terms(event: RealtimeEvent) -> EventOutcome:
    return EventOutcome(refresh_terms=True)


def _ignore(event: RealtimeEvent) -> EventOutcome:
    return EventOutcome()


HANDLERS: Dict[str, Callable[[RealtimeEvent], EventOutcome]] = {
    "orderStatusUpdate": _on_status_update,
    "orderStatusUpdated": _on_status_update,
    "orderAccepted": _on_order_accepted,
    "orderRevised": _on_order_revised,
    "orderCancelled": _on_order_cancelled,
    "paymentConfirmed": _on_payment_confirmed,
    "shoppingCompleted": _on_shopping_completed,
    "shopperResponse": _on_shopper_response,
    "inquiryResponse": _on_shopper_response,
    "deliveryAssigned": _on_delivery_assigned,
    "shopperAction": _on_shopper_action,
    "shopperLocationUpdate": _on_shopper_location,
    "newNotice": _on_new_notice,
    "noticesRefresh": _on_notices_refresh,
    "newTermsCreated": _on_new_terms,
    "heartbeatAck": _ignore,
    "testResponse": _ignore,
}

SUBSCRIBED_EVENTS = tuple(HANDLERS)


def interpret(event: RealtimeEvent) -> EventOutcome:
    handler = HANDLERS.get(event.name, _ignore)
    return handler(event)
