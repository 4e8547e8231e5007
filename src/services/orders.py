"""
Order display rules and order actions.

The server owns every status transition; this module only labels statuses,
decides which actions to offer, and shapes the REST calls behind them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import api.endpoints as endpoints
from api.client import ApiClient, ApiResult
from api.errors import DUPLICATE_ORDER, ApiRequestError, DuplicateOrderError, ValidationError
from db.database import LocalStore
from db.models import DeliveryAddress, DuplicateOrderInfo, Order
from db.storage import inquiry_notified_key
from services.cart import CartService
from utils.logger import get_logger

_logger = get_logger(__name__)

FREE_CANCELLATION_WINDOW = timedelta(minutes=10)
DEFAULT_INQUIRY_MINUTES = 15

TERMINAL_STATUSES = frozenset({"delivered", "cancelled"})

CANCELLABLE_STATUSES = frozenset(
    {
        "pending_shopper",
        "accepted_by_shopper",
        "awaiting_upi_payment",
        "payment_completed",
        "shopper_at_shop",
        "shopping_in_progress",
        "final_shopping",
        "shopper_revised_order",
        "customer_reviewing_revision",
        "customer_approved_revision",
        "bill_uploaded",
        "bill_sent",
        "bill_approved",
    }
)
# overlaps CANCELLABLE_STATUSES on bill_uploaded / bill_approved; this list wins
NON_CANCELLABLE_STATUSES = frozenset(
    {"picked_up", "out_for_delivery", "delivered", "cancelled", "bill_uploaded", "bill_approved"}
)
NO_REFUND_STATUSES = frozenset(
    {"final_shopping", "out_for_delivery", "picked_up", "bill_uploaded", "bill_approved"}
)

REVISION_REVIEW_STATUSES = frozenset({"shopper_revised_order", "customer_reviewing_revision"})
BILL_REVIEW_STATUSES = frozenset({"bill_uploaded", "bill_sent"})
PAYMENT_DUE_STATUSES = frozenset({"awaiting_upi_payment"})

STATUS_LABELS = {
    "pending_shopper": "Finding Personal Shopper",
    "accepted_by_shopper": "Personal Shopper Assigned",
    "awaiting_upi_payment": "Awaiting Payment",
    "payment_completed": "Payment Completed",
    "shopper_at_shop": "Shopper at Store",
    "shopping_in_progress": "Shopping in Progress",
    "final_shopping": "Final Shopping",
    "shopper_revised_order": "Order Revised - Please Review",
    "customer_reviewing_revision": "Order Revised - Please Review",
    "customer_approved_revision": "Revision Approved",
    "bill_uploaded": "Bill Ready for Approval",
    "bill_sent": "Bill Sent for Approval",
    "bill_approved": "Bill Approved - Preparing Delivery",
    "picked_up": "Picked Up",
    "out_for_delivery": "Out for Delivery",
    "delivered": "Delivered",
    "cancelled": "Cancelled",
}

STATUS_COLORS = {
    "pending_shopper": "#ffc107",
    "accepted_by_shopper": "#28a745",
    "awaiting_upi_payment": "#fd7e14",
    "payment_completed": "#28a745",
    "shopper_at_shop": "#17a2b8",
    "shopping_in_progress": "#fd7e14",
    "final_shopping": "#fd7e14",
    "shopper_revised_order": "#dc3545",
    "customer_reviewing_revision": "#dc3545",
    "customer_approved_revision": "#28a745",
    "bill_uploaded": "#6f42c1",
    "bill_sent": "#6f42c1",
    "bill_approved": "#28a745",
    "picked_up": "#fd7e14",
    "out_for_delivery": "#6f42c1",
    "delivered": "#28a745",
    "cancelled": "#dc3545",
}
DEFAULT_STATUS_COLOR = "#6c757d"

_PHONE_RE = re.compile(r"^[0-9]{10}$")
_PLACEHOLDER_PHONES = frozenset({"0000000000", "1111111111", "1234567890"})


def status_label(status: str) -> str:
    if status in STATUS_LABELS:
        return STATUS_LABELS[status]
    return status.replace("_", " ").title()


def status_color(status: str) -> str:
    return STATUS_COLORS.get(status, DEFAULT_STATUS_COLOR)


def is_active(order: Order) -> bool:
    return order.status not in TERMINAL_STATUSES


def can_cancel(order: Order) -> bool:
    return order.status in CANCELLABLE_STATUSES and order.status not in NON_CANCELLABLE_STATUSES


def can_pay_now(order: Order) -> bool:
    return order.status in PAYMENT_DUE_STATUSES


def needs_revision_review(order: Order) -> bool:
    return order.status in REVISION_REVIEW_STATUSES


def can_approve_bill(order: Order) -> bool:
    return order.status in BILL_REVIEW_STATUSES


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now(timezone.utc)


def elapsed_since_creation(order: Order, now: Optional[datetime] = None) -> timedelta:
    if order.created_at is None:
        return timedelta(0)
    return _now(now) - order.created_at


# ---------------------------
# Cancellation
# ---------------------------


@dataclass(frozen=True)
class CancellationPolicy:
    kind: str  # "free", "delivery_fee_only" or "no_refund"
    fee: float
    refund: float
    message: str
    description: str


def cancellation_policy(order: Order, now: Optional[datetime] = None) -> CancellationPolicy:
    total = order.total
    delivery_fee = order.delivery_fee

    if order.status in NO_REFUND_STATUSES:
        return CancellationPolicy(
            kind="no_refund",
            fee=total,
            refund=0.0,
            message="No refund available",
            description="Order is in final stage - no refund will be issued",
        )
    if elapsed_since_creation(order, now) <= FREE_CANCELLATION_WINDOW:
        return CancellationPolicy(
            kind="free",
            fee=0.0,
            refund=total,
            message="Free cancellation",
            description="Full refund will be issued",
        )
    return CancellationPolicy(
        kind="delivery_fee_only",
        fee=delivery_fee,
        refund=round(total - delivery_fee, 2),
        message=f"Cancellation fee: ₹{delivery_fee:g}",
        description="Only delivery fee will be charged, rest will be refunded",
    )


def free_cancellation_remaining(order: Order, now: Optional[datetime] = None) -> timedelta:
    remaining = FREE_CANCELLATION_WINDOW - elapsed_since_creation(order, now)
    return max(remaining, timedelta(0))


def cancellation_prompt(order: Order, policy: CancellationPolicy) -> str:
    text = f"Cancel order #{order.order_number}?\n\n{policy.message}\n{policy.description}"
    if policy.kind == "delivery_fee_only":
        text += f"\nRefund amount: ₹{policy.refund:g}\n\nDo you want to proceed?"
    elif policy.kind == "no_refund":
        text += "\n\nAre you sure you want to proceed?"
    return text


# ---------------------------
# Inquiry window
# ---------------------------


@dataclass(frozen=True)
class InquiryState:
    available: bool
    minutes_remaining: int
    window_minutes: int

    @property
    def progress(self) -> float:
        if self.window_minutes <= 0:
            return 100.0
        return min(100.0, (self.window_minutes - self.minutes_remaining) / self.window_minutes * 100)


def inquiry_state(order: Order, now: Optional[datetime] = None) -> InquiryState:
    window = order.inquiry_available_time or DEFAULT_INQUIRY_MINUTES
    if order.status in TERMINAL_STATUSES:
        return InquiryState(available=False, minutes_remaining=0, window_minutes=window)
    elapsed_min = elapsed_since_creation(order, now).total_seconds() / 60
    if elapsed_min >= window:
        return InquiryState(available=True, minutes_remaining=0, window_minutes=window)
    remaining = int(-(-(window - elapsed_min) // 1))  # ceil
    return InquiryState(available=False, minutes_remaining=remaining, window_minutes=window)


class InquiryTracker:
    """Remembers, per order, that the user was told the inquiry window opened."""

    def __init__(self, store: LocalStore) -> None:
        self.store = store

    async def should_notify(self, order: Order, now: Optional[datetime] = None) -> bool:
        key = inquiry_notified_key(order.id)
        if order.status in TERMINAL_STATUSES:
            await self.store.remove(key)
            return False
        if not inquiry_state(order, now).available:
            return False
        if await self.store.get(key):
            return False
        await self.store.set(key, True)
        return True


# ---------------------------
# Checkout validation
# ---------------------------


def clean_phone(phone: str) -> str:
    return re.sub(r"\s+", "", phone or "")


def validate_phone(phone: str) -> str:
    """Return the normalised 10-digit phone or raise ValidationError."""
    cleaned = clean_phone(phone)
    if not cleaned:
        raise ValidationError(
            "Contact Phone Number is required. Please enter a valid phone number for delivery coordination.",
            field="contact_phone",
        )
    if not _PHONE_RE.match(cleaned):
        raise ValidationError(
            "Please enter a valid 10-digit phone number (numbers only, no spaces or special characters).",
            field="contact_phone",
        )
    if cleaned in _PLACEHOLDER_PHONES:
        raise ValidationError(
            "Please enter a valid phone number. The number you entered appears to be invalid.",
            field="contact_phone",
        )
    return cleaned


def is_valid_phone(phone: str) -> bool:
    try:
        validate_phone(phone)
    except ValidationError:
        return False
    return True


def validate_address(address: DeliveryAddress) -> None:
    if not address.street.strip() or not address.city.strip() or not address.state.strip():
        raise ValidationError("Please fill in all required address fields (Street, City, State)")
    name = address.contact_name.strip()
    if not name:
        raise ValidationError(
            "Contact Name is required. Please enter the name of the person who will receive the order.",
            field="contact_name",
        )
    if len(name) < 2:
        raise ValidationError("Contact Name must be at least 2 characters long.", field="contact_name")
    validate_phone(address.contact_phone)


def build_order_address(address: DeliveryAddress) -> dict:
    body = {
        "street": address.street.strip(),
        "city": address.city.strip(),
        "state": address.state.strip(),
        "zipCode": address.zip_code.strip(),
        "formattedAddress": address.formatted,
        "instructions": address.instructions,
        "contactName": address.contact_name.strip(),
        "contactPhone": f"{address.country_code}{clean_phone(address.contact_phone)}",
    }
    if address.coordinates is not None:
        body["coordinates"] = {"lat": address.coordinates.lat, "lng": address.coordinates.lng}
    return body


@dataclass(frozen=True)
class PlacedOrder:
    order_id: str
    order_number: str

    @property
    def route(self) -> str:
        return f"/order-confirmation/{self.order_id}"


def _orders_from(result: ApiResult) -> List[Order]:
    payload = result.payload
    if isinstance(payload, dict):
        payload = payload.get("orders", [])
    return [Order.from_api(o) for o in payload or [] if isinstance(o, dict)]


def _order_from(result: ApiResult) -> Order:
    payload = result.payload
    if isinstance(payload, dict) and isinstance(payload.get("order"), dict):
        payload = payload["order"]
    if not isinstance(payload, dict):
        raise ApiRequestError("Unexpected response from server")
    return Order.from_api(payload)


class OrderService:
    def __init__(self, api: ApiClient, cart: CartService, store: LocalStore) -> None:
        self.api = api
        self.cart = cart
        self.inquiries = InquiryTracker(store)

    async def place_order(
        self, address: DeliveryAddress, *, confirm_duplicate: bool = False
    ) -> PlacedOrder:
        """
        Validate the form, submit the cart, and clear it on success.

        Raises ValidationError before any request for bad input, and
        DuplicateOrderError when the server flags an exact or similar order.
        """
        if self.cart.is_empty or self.cart.selected_shop is None:
            raise ValidationError("Your cart is empty.")
        validate_address(address)

        items = [
            {
                "productId": i.product.id,
                "name": i.product.name,
                "price": i.product.price,
                "quantity": i.quantity,
                "notes": i.notes,
            }
            for i in self.cart.items
        ]
        result = await self.api.call(
            endpoints.create_order,
            self.cart.selected_shop.id,
            items,
            build_order_address(address),
            "cash",
            confirm_duplicate,
        )

        if result.error_kind == DUPLICATE_ORDER:
            info = DuplicateOrderInfo.from_api(result.data)
            _logger.warning(f"Duplicate order ({info.duplicate_type}): {info.message}")
            raise DuplicateOrderError(info)
        result.raise_for_error()

        order = _order_from(result)
        await self.cart.clear()
        _logger.info(f"Order {order.order_number} placed")
        return PlacedOrder(order_id=order.id, order_number=order.order_number)

    async def list_orders(self, params: Optional[dict] = None) -> List[Order]:
        result = await self.api.call(endpoints.customer_orders, params)
        result.raise_for_error()
        return _orders_from(result)

    async def active_orders(self) -> List[Order]:
        return [o for o in await self.list_orders() if is_active(o)]

    async def get(self, order_id: str) -> Order:
        result = await self.api.call(endpoints.get_order, order_id)
        result.raise_for_error()
        return _order_from(result)

    async def cancel(self, order: Order, reason: str = "Cancelled by customer") -> ApiResult:
        if not can_cancel(order):
            raise ValidationError("This order cannot be cancelled.")
        return await self.api.call(endpoints.cancel_order, order.id, reason)

    async def approve_revision(self, order: Order) -> ApiResult:
        return await self.api.call(endpoints.approve_revision, order.id)

    async def approve_bill(self, order: Order) -> ApiResult:
        return await self.api.call(endpoints.approve_bill, order.id)

    async def reject_bill(self, order: Order, reason: str) -> ApiResult:
        if not reason.strip():
            raise ValidationError("Please give a reason for rejecting the bill.")
        return await self.api.call(endpoints.reject_bill, order.id, reason.strip())

    async def confirm_payment(self, order: Order, transaction_id: str) -> ApiResult:
        transaction_id = transaction_id.strip()
        if len(transaction_id) < 6:
            raise ValidationError("Please enter the UPI transaction ID from your payment app.")
        return await self.api.call(endpoints.confirm_payment, order.id, transaction_id)

    async def inquire(self, order: Order, method: str, now: Optional[datetime] = None) -> ApiResult:
        if not inquiry_state(order, now).available:
            raise ValidationError("Inquiry is not available for this order yet.")
        return await self.api.call(endpoints.track_inquiry, order.id, method)

    async def rate(self, order: Order, rating: int, review: str = "") -> ApiResult:
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5.")
        return await self.api.call(endpoints.rate_order, order.id, rating, review)

    def split_active(self, orders: List[Order]) -> Tuple[List[Order], List[Order]]:
        active = [o for o in orders if is_active(o)]
        past = [o for o in orders if not is_active(o)]
        return active, past
