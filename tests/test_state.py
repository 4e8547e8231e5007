import os
import tempfile
import unittest
from pathlib import Path

import fakes  # noqa: F401

from db.storage import AUTH_KEY
from utils.config import Settings
from utils.state import GlobalState


class GlobalStateTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        base = Path(self.temp_dir.name)
        self.settings = Settings(
            api_base_url="http://api.test/api",
            socket_url="http://api.test",
            geocoder_url="http://geo.test",
            data_dir=base,
            db_path=base / "state.sqlite",
            enable_socket_notifications=False,
            default_delivery_fee=25.0,
        )

    def tearDown(self):
        self.temp_dir.cleanup()

    async def test_build_wires_services(self):
        state = GlobalState.build(self.settings)

        self.assertIsNone(state.realtime)
        self.assertIs(state.session.api, state.api)
        self.assertIs(state.orders.cart, state.cart)
        self.assertEqual(state.cart.delivery_fee, 25.0)
        self.assertEqual(state.api.base_url, "http://api.test/api")
        self.assertTrue(os.path.samefile(os.path.dirname(state.store.db_path), self.temp_dir.name))

    async def test_start_restores_session_and_cart(self):
        state = GlobalState.build(self.settings)
        await state.store.set(
            AUTH_KEY, {"token": "tok", "user": {"id": "u1", "name": "Asha", "email": "asha@example.com"}}
        )

        restored = await state.start()
        self.assertEqual(restored.user.id, "u1")
        self.assertEqual(state.user.name, "Asha")
        self.assertTrue(state.cart.is_empty)
        self.assertEqual(await state.api.token_provider(), "tok")
        await state.shutdown()

    async def test_realtime_client_is_built_when_enabled(self):
        self.settings.enable_socket_notifications = True
        state = GlobalState.build(self.settings)
        self.assertEqual(state.realtime.url, "http://api.test")
        self.assertEqual(state.realtime.state, "disconnected")


if __name__ == "__main__":
    unittest.main()
