import os
import tempfile
import unittest

import fakes  # noqa: F401

from db.database import LocalStore
from db.models import Product, Shop
from db.storage import CART_KEY, SELECTED_SHOP_KEY
from services.cart import CartService

APPLE = Product(id="p1", name="Apple", price=40.0, shop_id="s1", shop_name="Fresh Mart", tags=("fruit",))
MILK = Product(id="p2", name="Milk", price=28.5, shop_id="s1", shop_name="Fresh Mart")
BREAD = Product(id="p3", name="Bread", price=35.0, shop_id="s2", shop_name="Bakery")


class CartServiceTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = LocalStore(os.path.join(self.temp_dir.name, "test.sqlite"))
        self.cart = CartService(self.store, default_delivery_fee=30.0)

    def tearDown(self):
        self.temp_dir.cleanup()

    async def test_adding_same_product_twice_increments_quantity(self):
        await self.cart.add(APPLE, 2)
        result = await self.cart.add(APPLE, 1, notes="ripe ones")

        self.assertEqual(len(self.cart.items), 1)
        self.assertEqual(result.item.quantity, 3)
        self.assertEqual(result.item.notes, "ripe ones")
        self.assertFalse(result.cleared_other_shop)
        self.assertEqual(self.cart.selected_shop.id, "s1")
        self.assertEqual(self.cart.selected_shop.name, "Fresh Mart")

    async def test_totals(self):
        await self.cart.add(APPLE, 2)
        await self.cart.add(MILK, 1)

        self.assertEqual(self.cart.item_count, 3)
        self.assertEqual(self.cart.subtotal, 108.5)
        self.assertEqual(self.cart.delivery_fee, 30.0)
        self.assertEqual(self.cart.total, 138.5)

        self.cart.calculated_delivery_fee = 45.0
        summary = self.cart.summary()
        self.assertEqual(summary.delivery_fee, 45.0)
        self.assertEqual(summary.total, 153.5)

    async def test_taxes(self):
        cart = CartService(self.store, tax_percentage=5)
        await cart.add(APPLE, 5)
        self.assertEqual(cart.taxes, 10.0)
        self.assertEqual(cart.total, 240.0)

    async def test_shop_delivery_fee_is_used(self):
        shop = Shop(id="s1", name="Fresh Mart", delivery_fee=20.0)
        await self.cart.add(APPLE, 1, shop=shop)
        self.assertEqual(self.cart.delivery_fee, 20.0)

    async def test_decrease_to_zero_removes_line(self):
        await self.cart.add(APPLE, 1)
        await self.cart.add(MILK, 2)

        self.assertIsNone(await self.cart.decrease("p1"))
        self.assertIsNone(self.cart.find("p1"))
        item = await self.cart.decrease("p2")
        self.assertEqual(item.quantity, 1)
        item = await self.cart.increase("p2")
        self.assertEqual(item.quantity, 2)

    async def test_removing_last_line_clears_persisted_cart(self):
        await self.cart.add(APPLE, 1)
        self.assertTrue(await self.store.has(CART_KEY))

        self.assertTrue(await self.cart.remove("p1"))
        self.assertTrue(self.cart.is_empty)
        self.assertIsNone(self.cart.selected_shop)
        self.assertFalse(await self.store.has(CART_KEY))
        self.assertFalse(await self.store.has(SELECTED_SHOP_KEY))
        self.assertFalse(await self.cart.remove("p1"))

    async def test_product_from_other_shop_empties_cart(self):
        await self.cart.add(APPLE, 2)
        result = await self.cart.add(BREAD, 1)

        self.assertTrue(result.cleared_other_shop)
        self.assertEqual([i.product.id for i in self.cart.items], ["p3"])
        self.assertEqual(self.cart.selected_shop.id, "s2")

    async def test_persistence_round_trip(self):
        await self.cart.add(APPLE, 2, notes="green")
        await self.cart.add(MILK, 1)

        restored = CartService(self.store)
        await restored.load()

        self.assertEqual(len(restored.items), 2)
        self.assertEqual(restored.find("p1").quantity, 2)
        self.assertEqual(restored.find("p1").notes, "green")
        self.assertEqual(restored.find("p1").product.tags, ("fruit",))
        self.assertEqual(restored.selected_shop.id, "s1")

    async def test_unreadable_entries_are_dropped_on_load(self):
        await self.store.set(CART_KEY, [{"bogus": True}, APPLE_ITEM])
        await self.cart.load()
        self.assertEqual([i.product.id for i in self.cart.items], ["p1"])

    async def test_update_notes_and_set_quantity(self):
        await self.cart.add(APPLE, 1)
        item = await self.cart.update_notes("p1", "no bruises")
        self.assertEqual(item.notes, "no bruises")
        item = await self.cart.set_quantity("p1", 6)
        self.assertEqual(item.quantity, 6)
        self.assertIsNone(await self.cart.set_quantity("missing", 2))

    async def test_invalid_additions(self):
        with self.assertRaises(ValueError):
            await self.cart.add(APPLE, 0)
        with self.assertRaises(ValueError):
            await self.cart.add(Product(id="p9", name="X", price=1, shop_id=""), 1)

    async def test_clear(self):
        await self.cart.add(APPLE, 1)
        await self.cart.clear()
        self.assertTrue(self.cart.is_empty)
        self.assertFalse(await self.store.has(CART_KEY))


APPLE_ITEM = {
    "product": APPLE.to_dict(),
    "shopId": "s1",
    "quantity": 1,
    "notes": "",
    "addedAt": "2024-05-01T10:00:00+00:00",
}


if __name__ == "__main__":
    unittest.main()
