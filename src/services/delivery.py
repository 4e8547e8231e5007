from __future__ import annotations

import math
import time
from dataclasses import asdict, replace
from typing import Dict, Iterable, Optional

import api.endpoints as endpoints
from api.client import ApiClient
from api.geocoding import Geocoder, GeocodeResult
from db.database import LocalStore
from db.models import Coordinates, DeliveryAddress, Shop
from db.storage import CURRENT_LOCATION_KEY, DELIVERY_ADDRESS_KEY
from services.cart import CartService
from utils.logger import get_logger

_logger = get_logger(__name__)

EARTH_RADIUS_KM = 6371.0
BASE_CHARGE = 20

# (upper bound km, surcharge over BASE_CHARGE)
CHARGE_TIERS = [(2, 0), (5, 10), (10, 25), (15, 40), (25, 60)]
FAR_SURCHARGE = 80


def calculate_distance(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance in km; 0 for coordinates that cannot be right."""
    for c in (a, b):
        if not c.lat or not c.lng or abs(c.lat) > 90 or abs(c.lng) > 180:
            _logger.error(f"Invalid coordinates: {a} {b}")
            return 0.0

    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lng / 2) ** 2
    )
    distance = EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    if distance > 20000:
        _logger.error(f"Suspicious distance {distance:.0f}km between {a} and {b}")
        return 0.0
    return distance


def calculate_delivery_charge(distance_km: float) -> int:
    for limit, surcharge in CHARGE_TIERS:
        if distance_km <= limit:
            return BASE_CHARGE + surcharge
    return BASE_CHARGE + FAR_SURCHARGE


def estimate_charges(shops: Iterable[Shop], customer: Coordinates) -> Dict[str, Dict[str, float]]:
    """Local distance/charge estimate per shop id, for list display only."""
    charges: Dict[str, Dict[str, float]] = {}
    for shop in shops:
        if shop.location is None:
            charges[shop.id] = {"distance": 0.0, "charge": 30}
            continue
        distance = calculate_distance(customer, shop.location)
        charges[shop.id] = {
            "distance": round(distance, 1),
            "charge": calculate_delivery_charge(distance),
        }
    return charges


def format_distance(distance_km: float) -> str:
    if distance_km < 1:
        return f"{round(distance_km * 1000)}m"
    return f"{round(distance_km, 1)}km"


def delivery_fee_display(shop: Optional[Shop], calculated_fee: Optional[float] = None) -> str:
    if shop is None:
        return "₹30 delivery"
    if calculated_fee is not None:
        return f"₹{calculated_fee:g} delivery"
    if shop.is_distance_based and shop.fee_per_km:
        return f"From ₹{shop.fee_per_km:g} delivery"
    return f"₹{(shop.delivery_fee or 30):g} delivery"


class DeliveryService:
    def __init__(
        self,
        api: ApiClient,
        store: LocalStore,
        *,
        location_max_age_sec: float = 1800.0,
    ) -> None:
        self.api = api
        self.store = store
        self.location_max_age_sec = location_max_age_sec

    async def remember_location(self, coords: Coordinates, accuracy: Optional[float] = None) -> None:
        await self.store.set(
            CURRENT_LOCATION_KEY,
            {
                "lat": coords.lat,
                "lng": coords.lng,
                "accuracy": accuracy,
                "timestamp": int(time.time() * 1000),
            },
        )

    async def last_known_location(self, now_ms: Optional[int] = None) -> Optional[Coordinates]:
        cached = await self.store.get(CURRENT_LOCATION_KEY)
        if not isinstance(cached, dict) or not cached.get("timestamp"):
            return None
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        if now_ms - cached["timestamp"] >= self.location_max_age_sec * 1000:
            return None
        return Coordinates.from_api(cached)

    async def calculate_fee(self, shop_id: str, coords: Coordinates, order_value: float = 0) -> Optional[float]:
        """Ask the server for a distance-based fee; None when it cannot answer."""
        result = await self.api.call(
            endpoints.calculate_delivery_fee, shop_id, coords.lat, coords.lng, order_value
        )
        if not result.success:
            _logger.warning(f"Delivery fee calculation failed: {result.message}")
            return None
        payload = result.payload or {}
        fee = payload.get("deliveryFee", payload.get("fee")) if isinstance(payload, dict) else None
        try:
            return float(fee)
        except (TypeError, ValueError):
            _logger.warning(f"Delivery fee response without a fee: {payload!r}")
            return None

    async def refresh_cart_fee(self, cart: CartService, coords: Optional[Coordinates]) -> float:
        """
        Fixed-fee shops keep their constant. Distance-based shops get a server
        quote once coordinates inside India are known.
        """
        shop = cart.selected_shop
        if shop is None or not shop.is_distance_based:
            cart.calculated_delivery_fee = None
            return cart.delivery_fee
        if coords is None or not coords.in_india:
            return cart.delivery_fee
        fee = await self.calculate_fee(shop.id, coords, cart.subtotal)
        if fee is not None:
            cart.calculated_delivery_fee = fee
        return cart.delivery_fee

    async def locate_address(
        self, address: DeliveryAddress, geocoder: Geocoder, cart: CartService
    ) -> DeliveryAddress:
        """
        Attach coordinates to a delivery address. A precise hit is remembered
        as the current location and requotes a distance-based fee; a city
        fallback only drops any quote made for an earlier address.
        """
        geocoded = await geocoder.geocode(
            address.street, address.city, address.state, address.zip_code
        )
        if geocoded.approximate:
            _logger.info(f"Approximate location for '{address.street}', keeping the default fee")
            cart.calculated_delivery_fee = None
        else:
            await self.remember_location(geocoded.coordinates)
            await self.refresh_cart_fee(cart, geocoded.coordinates)
        return replace(address, coordinates=geocoded.coordinates)

    async def describe_last_location(self, geocoder: Geocoder) -> Optional[GeocodeResult]:
        coords = await self.last_known_location()
        if coords is None:
            return None
        return await geocoder.reverse(coords)

    async def save_address(self, address: DeliveryAddress) -> None:
        data = asdict(address)
        data.pop("coordinates", None)
        await self.store.set(DELIVERY_ADDRESS_KEY, data)

    async def saved_address(self) -> Optional[DeliveryAddress]:
        data = await self.store.get(DELIVERY_ADDRESS_KEY)
        if not isinstance(data, dict):
            return None
        try:
            return DeliveryAddress(**data)
        except TypeError:
            _logger.warning("Dropping unreadable saved delivery address")
            return None
