# forward/reverse geocoding against a Nominatim-compatible service
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Optional

import requests

from db.models import Coordinates
from utils.logger import get_logger

_logger = get_logger(__name__)

USER_AGENT = "DelhiveryWay-App/1.0"

CITY_FALLBACKS: Dict[str, Coordinates] = {
    "indore": Coordinates(22.7196, 75.8577),
    "mumbai": Coordinates(19.0760, 72.8777),
    "delhi": Coordinates(28.6139, 77.2090),
    "new delhi": Coordinates(28.6139, 77.2090),
    "bangalore": Coordinates(12.9716, 77.5946),
    "bengaluru": Coordinates(12.9716, 77.5946),
}
DEFAULT_FALLBACK = CITY_FALLBACKS["delhi"]


@dataclass(frozen=True)
class GeocodeResult:
    coordinates: Coordinates
    formatted_address: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    approximate: bool = False


class Geocoder:
    """
    Forward lookups are India-focused and never fail outright: when the
    service errors or returns something outside India, the city centre (or
    Delhi) is used and the result is flagged approximate. Reverse lookups
    degrade to coordinate-only results.
    """

    def __init__(
        self,
        base_url: str = "https://nominatim.openstreetmap.org",
        *,
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def _get(self, path: str, params: Dict[str, str]):
        response = self._session.get(
            f"{self.base_url}/{path}",
            params=params,
            headers={"User-Agent": USER_AGENT},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()

    async def geocode(self, street: str, city: str, state: str, zip_code: str = "") -> GeocodeResult:
        query = ", ".join(p for p in (street, city, state, zip_code, "India") if p)
        try:
            results = await asyncio.to_thread(
                self._get,
                "search",
                {"format": "json", "q": query, "limit": "1", "countrycodes": "in"},
            )
        except (requests.RequestException, ValueError) as exc:
            _logger.warning(f"Geocoding failed for '{query}': {exc}")
            results = []

        if results:
            try:
                coords = Coordinates(float(results[0]["lat"]), float(results[0]["lon"]))
            except (KeyError, TypeError, ValueError):
                coords = None
            if coords is not None and coords.in_india:
                return GeocodeResult(
                    coordinates=coords,
                    formatted_address=results[0].get("display_name", query),
                    street=street,
                    city=city,
                    state=state,
                    zip_code=zip_code,
                )
            _logger.warning(f"Discarding geocode outside India for '{query}': {coords}")

        fallback = CITY_FALLBACKS.get(city.strip().lower(), DEFAULT_FALLBACK)
        _logger.info(f"Using fallback coordinates {fallback} for '{query}'")
        return GeocodeResult(
            coordinates=fallback,
            formatted_address=query,
            street=street,
            city=city,
            state=state,
            zip_code=zip_code,
            approximate=True,
        )

    async def reverse(self, coords: Coordinates) -> GeocodeResult:
        try:
            data = await asyncio.to_thread(
                self._get,
                "reverse",
                {
                    "format": "json",
                    "lat": str(coords.lat),
                    "lon": str(coords.lng),
                    "zoom": "18",
                    "addressdetails": "1",
                },
            )
        except (requests.RequestException, ValueError) as exc:
            # best effort, the caller still has the coordinates
            _logger.warning(f"Reverse geocoding failed for {coords}: {exc}")
            return GeocodeResult(coordinates=coords, approximate=True)

        address = data.get("address") or {}
        street = " ".join(
            p for p in (address.get("house_number"), address.get("road")) if p
        ) or address.get("suburb", "")
        return GeocodeResult(
            coordinates=coords,
            formatted_address=data.get("display_name", ""),
            street=street,
            city=address.get("city") or address.get("town") or address.get("village") or "",
            state=address.get("state", ""),
            zip_code=address.get("postcode", ""),
        )
