import unittest

import requests

from fakes import FakeResponse

from api.geocoding import CITY_FALLBACKS, DEFAULT_FALLBACK, Geocoder
from db.models import Coordinates


class GeoResponse(FakeResponse):
    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}")


class FakeGeoSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class GeocoderTestCase(unittest.IsolatedAsyncioTestCase):
    async def test_forward_lookup(self):
        session = FakeGeoSession(
            GeoResponse(200, [{"lat": "12.97", "lon": "77.64", "display_name": "Indiranagar, Bengaluru"}])
        )
        result = await Geocoder(session=session).geocode("100 Feet Rd", "Bengaluru", "Karnataka", "560038")

        self.assertEqual(result.coordinates, Coordinates(12.97, 77.64))
        self.assertFalse(result.approximate)
        url, kwargs = session.calls[0]
        self.assertTrue(url.endswith("/search"))
        self.assertEqual(kwargs["params"]["q"], "100 Feet Rd, Bengaluru, Karnataka, 560038, India")
        self.assertEqual(kwargs["params"]["countrycodes"], "in")
        self.assertIn("User-Agent", kwargs["headers"])

    async def test_outside_india_falls_back_to_city(self):
        session = FakeGeoSession(GeoResponse(200, [{"lat": "51.5", "lon": "-0.12"}]))
        result = await Geocoder(session=session).geocode("Baker St", "Mumbai", "Maharashtra")
        self.assertTrue(result.approximate)
        self.assertEqual(result.coordinates, CITY_FALLBACKS["mumbai"])

    async def test_service_failure_falls_back_to_delhi(self):
        session = FakeGeoSession(requests.ConnectionError("down"))
        result = await Geocoder(session=session).geocode("Main Rd", "Unknownpur", "UP")
        self.assertTrue(result.approximate)
        self.assertEqual(result.coordinates, DEFAULT_FALLBACK)

        session = FakeGeoSession(GeoResponse(503, None))
        result = await Geocoder(session=session).geocode("Main Rd", "Indore", "MP")
        self.assertEqual(result.coordinates, CITY_FALLBACKS["indore"])

    async def test_reverse(self):
        session = FakeGeoSession(
            GeoResponse(
                200,
                {
                    "display_name": "12, MG Road, Bengaluru",
                    "address": {"house_number": "12", "road": "MG Road", "city": "Bengaluru", "state": "Karnataka", "postcode": "560001"},
                },
            )
        )
        coords = Coordinates(12.9756, 77.6050)
        result = await Geocoder(session=session).reverse(coords)
        self.assertEqual(result.street, "12 MG Road")
        self.assertEqual(result.city, "Bengaluru")
        self.assertEqual(result.zip_code, "560001")

        failing = Geocoder(session=FakeGeoSession(requests.Timeout("slow")))
        result = await failing.reverse(coords)
        self.assertTrue(result.approximate)
        self.assertEqual(result.coordinates, coords)


if __name__ == "__main__":
    unittest.main()
