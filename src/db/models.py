# provide dataclass models for the data the backend hands us

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or epoch millis) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)):
        ts = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        try:
            ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _ref_id(value: Any) -> Optional[str]:
    # backend sends either a bare id or a populated document
    if value is None:
        return None
    if isinstance(value, dict):
        inner = value.get("_id") or value.get("id")
        return _ref_id(inner) if isinstance(inner, dict) else (str(inner) if inner else None)
    return str(value)


def _num(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class User:
    id: str
    name: str
    email: str
    role: str = "customer"
    phone: str = ""

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> User:
        return cls(
            id=_ref_id(data) or "",
            name=str(data.get("name") or ""),
            email=str(data.get("email") or ""),
            role=str(data.get("role") or "customer"),
            phone=str(data.get("phone") or ""),
        )


@dataclass(frozen=True)
class AuthSession:
    token: str
    user: User

    @property
    def is_valid(self) -> bool:
        return bool(
            self.token and self.user.id and self.user.email.strip() and self.user.name.strip()
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"token": self.token, "user": asdict(self.user)}

    @classmethod
    def from_dict(cls, data: Any) -> Optional[AuthSession]:
        """Rebuild a persisted session; returns None for anything malformed."""
        if not isinstance(data, dict):
            return None
        token = data.get("token")
        user = data.get("user")
        if not isinstance(token, str) or not isinstance(user, dict):
            return None
        session = cls(token=token, user=User.from_api(user))
        return session if session.is_valid else None


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    @property
    def in_india(self) -> bool:
        return 6 <= self.lat <= 37 and 68 <= self.lng <= 97

    @classmethod
    def from_api(cls, data: Any) -> Optional[Coordinates]:
        if not isinstance(data, dict):
            return None
        lat, lng = data.get("lat"), data.get("lng", data.get("lon"))
        if lat is None or lng is None:
            return None
        try:
            return cls(lat=float(lat), lng=float(lng))
        except (TypeError, ValueError):
            return None


@dataclass(frozen=True)
class Shop:
    id: str
    name: str
    delivery_fee: float = 30.0
    delivery_fee_mode: str = "fixed"  # "fixed" or "distance"
    fee_per_km: Optional[float] = None
    inquiry_available_time: int = 15  # minutes
    location: Optional[Coordinates] = None
    address: str = ""
    category: str = ""
    is_open: bool = True

    @property
    def is_distance_based(self) -> bool:
        return self.delivery_fee_mode == "distance"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Shop:
        loc = data.get("location")
        return cls(**{**data, "location": Coordinates(**loc) if loc else None})

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> Shop:
        # some endpoints wrap the shop as {success, data: {shop: {...}}}
        if isinstance(data.get("data"), dict) and isinstance(data["data"].get("shop"), dict):
            data = data["data"]["shop"]
        address = data.get("address")
        if isinstance(address, dict):
            address = ", ".join(
                str(address[k]) for k in ("street", "city", "state") if address.get(k)
            )
        fee_per_km = data.get("feePerKm")
        return cls(
            id=_ref_id(data) or "",
            name=str(data.get("name") or "Shop"),
            delivery_fee=_num(data.get("deliveryFee"), 30.0)
            if data.get("deliveryFee") is not None
            else 30.0,
            delivery_fee_mode=str(data.get("deliveryFeeMode") or "fixed"),
            fee_per_km=_num(fee_per_km) if fee_per_km is not None else None,
            inquiry_available_time=int(_num(data.get("inquiryAvailableTime"), 15) or 15),
            location=Coordinates.from_api(data.get("location") or data.get("coordinates")),
            address=str(address or ""),
            category=str(data.get("category") or ""),
            is_open=bool(data.get("isActive", data.get("isOpen", True))),
        )


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: float
    shop_id: str
    shop_name: str = ""
    tags: tuple = ()
    description: str = ""
    unit: str = ""
    in_stock: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {**asdict(self), "tags": list(self.tags)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Product:
        return cls(**{**data, "tags": tuple(data.get("tags") or ())})

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> Product:
        shop_ref = data.get("shopId")
        shop_name = shop_ref.get("name", "") if isinstance(shop_ref, dict) else ""
        tags = data.get("tags") or ()
        if isinstance(tags, str):
            tags = [t.strip() for t in tags.split(",") if t.strip()]
        return cls(
            id=_ref_id(data) or "",
            name=str(data.get("name") or ""),
            price=_num(data.get("price")),
            shop_id=_ref_id(shop_ref) or "",
            shop_name=str(shop_name or ""),
            tags=tuple(str(t) for t in tags),
            description=str(data.get("description") or ""),
            unit=str(data.get("unit") or ""),
            in_stock=bool(data.get("inStock", data.get("isAvailable", True))),
        )


@dataclass(frozen=True)
class CartItem:
    product: Product
    shop_id: str
    quantity: int
    notes: str = ""
    added_at: str = ""

    @property
    def line_total(self) -> float:
        return self.product.price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product": self.product.to_dict(),
            "shopId": self.shop_id,
            "quantity": self.quantity,
            "notes": self.notes,
            "addedAt": self.added_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CartItem:
        return cls(
            product=Product.from_dict(data["product"]),
            shop_id=str(data["shopId"]),
            quantity=max(1, int(data["quantity"])),
            notes=str(data.get("notes") or ""),
            added_at=str(data.get("addedAt") or ""),
        )


@dataclass(frozen=True)
class OrderSummary:
    items: List[CartItem]
    item_count: int
    subtotal: float
    delivery_fee: float
    taxes: float
    total: float
    shop: Optional[Shop]


@dataclass(frozen=True)
class DeliveryAddress:
    street: str
    city: str
    state: str
    contact_name: str
    contact_phone: str
    zip_code: str = ""
    instructions: str = ""
    country_code: str = "+91"
    coordinates: Optional[Coordinates] = None

    @property
    def formatted(self) -> str:
        parts = [self.street, self.city, self.state, self.zip_code, "India"]
        return ", ".join(p.strip() for p in parts if p and p.strip())


@dataclass(frozen=True)
class OrderValue:
    subtotal: float = 0.0
    delivery_fee: float = 0.0
    tax: float = 0.0
    total: float = 0.0

    @classmethod
    def from_api(cls, data: Any) -> Optional[OrderValue]:
        if not isinstance(data, dict):
            return None
        return cls(
            subtotal=_num(data.get("subtotal")),
            delivery_fee=_num(data.get("deliveryFee")),
            tax=_num(data.get("tax", data.get("taxes"))),
            total=_num(data.get("total")),
        )


@dataclass(frozen=True)
class OrderItem:
    product_id: str
    name: str
    quantity: int
    price: float
    revised_quantity: Optional[int] = None
    revised_price: Optional[float] = None
    is_available: bool = True

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> OrderItem:
        revised_qty = data.get("revisedQuantity")
        revised_price = data.get("revisedPrice")
        return cls(
            product_id=_ref_id(data.get("productId")) or "",
            name=str(data.get("name") or ""),
            quantity=int(_num(data.get("quantity"), 1)),
            price=_num(data.get("price")),
            revised_quantity=int(revised_qty) if revised_qty is not None else None,
            revised_price=_num(revised_price) if revised_price is not None else None,
            is_available=bool(data.get("isAvailable", True)),
        )


@dataclass(frozen=True)
class Order:
    id: str
    order_number: str
    status: str
    created_at: Optional[datetime]
    items: List[OrderItem] = field(default_factory=list)
    order_value: OrderValue = field(default_factory=OrderValue)
    revised_order_value: Optional[OrderValue] = None
    shop_id: str = ""
    shop_name: str = ""
    inquiry_available_time: int = 15
    delivery_address: Dict[str, Any] = field(default_factory=dict)
    personal_shopper_id: Optional[str] = None
    personal_shopper: Dict[str, Any] = field(default_factory=dict)
    delivery_otp: Optional[str] = None
    payment_status: str = ""
    updated_at: Optional[datetime] = None

    @property
    def total(self) -> float:
        return self.order_value.total

    @property
    def delivery_fee(self) -> float:
        return self.order_value.delivery_fee

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> Order:
        shop = data.get("shopId")
        shop_info = shop if isinstance(shop, dict) else {}
        shopper = data.get("personalShopperId")
        value = OrderValue.from_api(data.get("orderValue"))
        if value is None:
            value = OrderValue(
                subtotal=_num(data.get("subtotal")),
                delivery_fee=_num(data.get("deliveryFee")),
                tax=_num(data.get("tax")),
                total=_num(data.get("total")),
            )
        return cls(
            id=_ref_id(data) or "",
            order_number=str(data.get("orderNumber") or _ref_id(data) or ""),
            status=str(data.get("status") or "pending_shopper"),
            created_at=parse_timestamp(data.get("createdAt")),
            items=[OrderItem.from_api(i) for i in data.get("items") or []],
            order_value=value,
            revised_order_value=OrderValue.from_api(data.get("revisedOrderValue")),
            shop_id=_ref_id(shop) or "",
            shop_name=str(shop_info.get("name") or ""),
            inquiry_available_time=int(_num(shop_info.get("inquiryAvailableTime"), 15) or 15),
            delivery_address=data.get("deliveryAddress") or {},
            personal_shopper_id=_ref_id(shopper),
            personal_shopper=shopper if isinstance(shopper, dict) else {},
            delivery_otp=data.get("deliveryOTP"),
            payment_status=str(data.get("paymentStatus") or ""),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


@dataclass(frozen=True)
class Notification:
    id: str
    type: str
    title: str
    message: str
    timestamp: datetime
    data: Dict[str, Any] = field(default_factory=dict)
    read: bool = False


@dataclass(frozen=True)
class Notice:
    id: str
    title: str
    message: str
    type: str = "info"
    priority: str = "medium"
    display_type: str = "one-time"  # or "permanent"

    @property
    def is_permanent(self) -> bool:
        return self.display_type == "permanent"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> Notice:
        return cls(
            id=_ref_id(data) or "",
            title=str(data.get("title") or ""),
            message=str(data.get("message") or ""),
            type=str(data.get("type") or "info"),
            priority=str(data.get("priority") or "medium"),
            display_type=str(data.get("displayType") or "one-time"),
        )


@dataclass(frozen=True)
class Terms:
    id: str
    version: str
    content: str
    title: str = "Terms and Conditions"
    has_accepted: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> Terms:
        return cls(
            id=_ref_id(data) or "",
            version=str(data.get("version") or ""),
            content=str(data.get("content") or ""),
            title=str(data.get("title") or "Terms and Conditions"),
            has_accepted=bool(data.get("hasAccepted", False)),
        )


@dataclass(frozen=True)
class DuplicateOrderInfo:
    duplicate_type: str  # "exact" or "similar"
    message: str
    similarity_percentage: Optional[float] = None
    existing_order_number: str = ""
    existing_order_status: str = ""
    requires_confirmation: bool = False

    @property
    def is_exact(self) -> bool:
        return self.duplicate_type == "exact"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> DuplicateOrderInfo:
        similarity = data.get("similarityPercentage")
        return cls(
            duplicate_type=str(data.get("duplicateType") or "exact"),
            message=str(data.get("message") or "A similar order already exists."),
            similarity_percentage=_num(similarity) if similarity is not None else None,
            existing_order_number=str(data.get("existingOrderNumber") or ""),
            existing_order_status=str(data.get("existingOrderStatus") or ""),
            requires_confirmation=bool(data.get("requiresConfirmation", False)),
        )
