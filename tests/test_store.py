import os
import tempfile
import unittest
from unittest import mock

import fakes  # noqa: F401  (puts src/ on sys.path)

from db.database import LocalStore
from db.storage import AUTH_KEY, CART_KEY, inquiry_notified_key


class LocalStoreTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "nested", "test.sqlite")
        self.store = LocalStore(self.db_path)

    def tearDown(self):
        self.temp_dir.cleanup()

    async def test_get_missing_returns_default(self):
        self.assertIsNone(await self.store.get(AUTH_KEY))
        self.assertEqual(await self.store.get(AUTH_KEY, {}), {})
        self.assertFalse(await self.store.has(AUTH_KEY))
        # parent directory is created on first use
        self.assertTrue(os.path.exists(self.db_path))

    async def test_set_overwrites_and_round_trips_json(self):
        await self.store.set(CART_KEY, [{"productId": "p1", "quantity": 2}])
        await self.store.set(CART_KEY, [{"productId": "p2", "quantity": 1}])
        self.assertEqual(await self.store.get(CART_KEY), [{"productId": "p2", "quantity": 1}])

    async def test_falsy_values_still_count_as_present(self):
        await self.store.set("flag", False)
        self.assertTrue(await self.store.has("flag"))
        self.assertIs(await self.store.get("flag", True), False)

    async def test_remove_and_clear(self):
        await self.store.set("a", 1)
        await self.store.set("b", 2)
        await self.store.remove("a")
        self.assertFalse(await self.store.has("a"))
        await self.store.clear()
        self.assertEqual(await self.store.keys(), [])

    async def test_prefix_operations(self):
        await self.store.set(inquiry_notified_key("o1"), True)
        await self.store.set(inquiry_notified_key("o2"), True)
        await self.store.set("other", 1)

        self.assertEqual(
            await self.store.keys("inquiryNotified_"),
            ["inquiryNotified_o1", "inquiryNotified_o2"],
        )
        self.assertEqual(await self.store.remove_prefix("inquiryNotified_"), 2)
        self.assertEqual(await self.store.keys(), ["other"])
        with self.assertRaises(ValueError):
            await self.store.remove_prefix("")

    async def test_unreadable_value_falls_back_to_default(self):
        async with self.store.connect() as conn:
            await conn.execute(
                "INSERT INTO kv(key, value, updated_at) VALUES (?, ?, ?);",
                ("broken", "{not json", "2024-01-01"),
            )
            await conn.commit()
        self.assertEqual(await self.store.get("broken", "fallback"), "fallback")

    async def test_two_stores_share_the_file(self):
        await self.store.set(AUTH_KEY, {"token": "t"})
        other = LocalStore(self.db_path)
        self.assertEqual(await other.get(AUTH_KEY), {"token": "t"})

    async def test_failed_init_closes_the_connection(self):
        conn = mock.AsyncMock()
        with (
            mock.patch("db.database.aiosqlite.connect", mock.AsyncMock(return_value=conn)),
            mock.patch.object(LocalStore, "_init_db", side_effect=RuntimeError("disk full")),
        ):
            with self.assertRaises(RuntimeError):
                await self.store.get(AUTH_KEY)

        conn.close.assert_awaited_once()
        self.assertFalse(self.store._initialized)


if __name__ == "__main__":
    unittest.main()
