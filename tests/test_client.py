import unittest

import requests

from fakes import FakeHttpSession, FakeResponse, fail, ok

from api.client import ApiClient, ApiRequest
from api.errors import (
    API_ERROR,
    AUTH_ERROR,
    DUPLICATE_ORDER,
    NETWORK_ERROR,
    NETWORK_MESSAGE,
    STATUS_MESSAGES,
    ApiRequestError,
    error_message_for,
)


class ApiClientTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.http = FakeHttpSession()
        self.unauthorized_calls = 0
        self.token = "tok-123"

        async def token_provider():
            return self.token

        async def on_unauthorized():
            self.unauthorized_calls += 1
            self.token = None

        self.client = ApiClient(
            "http://api.test/api/",
            token_provider=token_provider,
            on_unauthorized=on_unauthorized,
            retry_delay=0,
            session=self.http,
        )

    # ---------- Success path ----------

    async def test_get_sends_bearer_token_and_cache_buster(self):
        self.http.queue(ok({"shops": []}))
        result = await self.client.get("/shops", params={"category": "grocery"})

        self.assertTrue(result.success)
        self.assertEqual(result.status, 200)
        self.assertEqual(result.payload, {"shops": []})
        self.assertEqual(result.retries, 0)

        method, url, kwargs = self.http.calls[0]
        self.assertEqual(method, "GET")
        self.assertEqual(url, "http://api.test/api/shops")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer tok-123")
        self.assertEqual(kwargs["params"]["category"], "grocery")
        self.assertIn("_t", kwargs["params"])

    async def test_post_has_no_cache_buster(self):
        self.http.queue(ok({}))
        await self.client.post("/orders", json={"items": []})
        _, _, kwargs = self.http.calls[0]
        self.assertNotIn("_t", kwargs["params"])
        self.assertEqual(kwargs["json"], {"items": []})

    async def test_public_request_skips_auth_header(self):
        self.http.queue(ok({}))
        await self.client.send(ApiRequest("GET", "/terms/current", auth=False))
        _, _, kwargs = self.http.calls[0]
        self.assertNotIn("Authorization", kwargs["headers"])

    async def test_payload_without_envelope(self):
        self.http.queue(FakeResponse(200, [1, 2, 3]))
        result = await self.client.get("/raw")
        self.assertEqual(result.payload, [1, 2, 3])

    # ---------- Retries ----------

    async def test_server_error_is_retried_once_then_succeeds(self):
        self.http.queue(fail(500, "boom"), ok({"id": "o1"}))
        result = await self.client.get("/orders/o1")

        self.assertTrue(result.success)
        self.assertEqual(result.retries, 1)
        self.assertEqual(len(self.http.calls), 2)

    async def test_server_error_exhausts_retries(self):
        self.http.queue(*[fail(503) for _ in range(4)])
        result = await self.client.get("/orders")

        self.assertFalse(result.success)
        self.assertEqual(result.status, 503)
        self.assertEqual(result.attempts, 4)
        self.assertEqual(result.message, STATUS_MESSAGES[503])

    async def test_network_error_is_retried_and_reported(self):
        self.http.queue(*[requests.ConnectionError("down") for _ in range(4)])
        result = await self.client.get("/orders")

        self.assertFalse(result.success)
        self.assertEqual(result.status, 0)
        self.assertEqual(result.error_kind, NETWORK_ERROR)
        self.assertEqual(result.message, NETWORK_MESSAGE)
        self.assertEqual(len(self.http.calls), 4)

    async def test_timeout_then_success(self):
        self.http.queue(requests.Timeout("slow"), ok({}))
        result = await self.client.get("/orders")
        self.assertTrue(result.success)
        self.assertEqual(result.attempts, 2)

    async def test_client_errors_are_not_retried(self):
        self.http.queue(fail(404, "nope"))
        result = await self.client.get("/orders/missing")

        self.assertFalse(result.success)
        self.assertEqual(len(self.http.calls), 1)
        self.assertEqual(result.message, STATUS_MESSAGES[404])
        self.assertEqual(result.error_kind, API_ERROR)

    # ---------- 401 ----------

    async def test_unauthorized_clears_session_without_retry(self):
        self.http.queue(fail(401, "jwt expired"), ok({}))
        result = await self.client.get("/orders")

        self.assertFalse(result.success)
        self.assertEqual(result.error_kind, AUTH_ERROR)
        self.assertEqual(result.message, "jwt expired")
        self.assertEqual(self.unauthorized_calls, 1)
        self.assertEqual(len(self.http.calls), 1)
        self.assertIsNone(self.token)

    async def test_unauthorized_without_server_message(self):
        self.http.queue(FakeResponse(401))
        result = await self.client.get("/orders")
        self.assertEqual(result.message, STATUS_MESSAGES[401])

    # ---------- Error mapping ----------

    async def test_duplicate_order_keeps_server_message(self):
        self.http.queue(
            fail(409, "You already placed this order", duplicateOrder={"type": "exact"})
        )
        result = await self.client.post("/orders", json={"items": []})

        self.assertEqual(result.error_kind, DUPLICATE_ORDER)
        self.assertEqual(result.message, "You already placed this order")

    def test_unknown_status_uses_server_message(self):
        self.assertEqual(error_message_for(418, {"message": "teapot"}), "teapot")
        self.assertEqual(error_message_for(418, None), "An unexpected error occurred")
        self.assertEqual(error_message_for(507, {}), STATUS_MESSAGES[500])

    async def test_raise_for_error(self):
        self.http.queue(fail(400, "bad"))
        result = await self.client.get("/x")
        with self.assertRaises(ApiRequestError) as ctx:
            result.raise_for_error()
        self.assertEqual(ctx.exception.status, 400)
        self.assertEqual(ctx.exception.message, STATUS_MESSAGES[400])

    async def test_non_json_body(self):
        self.http.queue(FakeResponse(400, None, text="Bad Gateway page"))
        result = await self.client.get("/x")
        self.assertEqual(result.data, {"message": "Bad Gateway page"})


if __name__ == "__main__":
    unittest.main()
