import asyncio
import unittest
from unittest import mock

from fakes import FakeHttpSession, fail, ok

from api.client import ApiClient
from db.models import Product
from services.search import MAX_INDEX_SIZE, SearchIndex, SearchService

PRODUCTS = [
    Product(id="p1", name="Amul Milk", price=28, shop_id="s1", shop_name="Fresh Mart", tags=("dairy",)),
    Product(id="p2", name="Brown Bread", price=40, shop_id="s2", shop_name="Daily Bakery", tags=("bakery",)),
    Product(id="p3", name="Paneer", price=90, shop_id="s1", shop_name="Fresh Mart", tags=("dairy", "cheese")),
]


class SearchIndexTestCase(unittest.TestCase):
    def setUp(self):
        self.index = SearchIndex(PRODUCTS)

    def test_name_beats_tags(self):
        results = self.index.search("Milk")
        self.assertEqual([p.id for p in results], ["p1"])

    def test_tag_match(self):
        results = self.index.search("dairy")
        # an exact tag beats a tag inside a longer list
        self.assertEqual([p.id for p in results][:2], ["p1", "p3"])

    def test_typo_still_finds_the_product(self):
        results = self.index.search("mlik")
        self.assertEqual(results[0].id, "p1")

    def test_case_and_punctuation_are_ignored(self):
        self.assertEqual(self.index.search("AMUL, milk!")[0].id, "p1")

    def test_limit(self):
        self.assertEqual(len(self.index.search("dairy", limit=1)), 1)

    def test_shop_name_match(self):
        self.assertIn("p2", [p.id for p in self.index.search("bakery")])

    def test_blank_and_unrelated_queries(self):
        self.assertEqual(self.index.search("   "), [])
        self.assertEqual(self.index.search("xyzzy"), [])

    def test_index_is_capped(self):
        many = [Product(id=str(i), name="x", price=1, shop_id="s") for i in range(MAX_INDEX_SIZE + 3)]
        self.assertEqual(len(SearchIndex(many)), MAX_INDEX_SIZE)


class SearchServiceTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.http = FakeHttpSession()
        self.service = SearchService(ApiClient("http://api.test/api", retry_delay=0, session=self.http))

    async def test_local_results_skip_the_server(self):
        self.http.queue(ok({"products": [{"_id": "p1", "name": "Amul Milk", "price": 28, "shopId": "s1"}]}))
        await self.service.load_index()
        self.assertTrue(self.service.index_loaded)

        with mock.patch("services.search.asyncio.to_thread", wraps=asyncio.to_thread) as to_thread:
            results = await self.service.search("milk")
        self.assertEqual([p.id for p in results], ["p1"])
        self.assertEqual(len(self.http.calls), 1)
        # the index is scored once, off the event loop
        to_thread.assert_called_once()

    async def test_server_search_skips_the_index(self):
        self.service.index = SearchIndex(PRODUCTS)
        self.http.queue(ok({"products": []}))
        with mock.patch.object(SearchIndex, "search") as local:
            self.assertEqual(await self.service.search_server("milk"), [])
        local.assert_not_called()
        self.assertIn("/products/search", self.http.calls[0][1])

    async def test_server_fallback(self):
        self.http.queue(ok({"products": [{"_id": "p9", "name": "Ghee", "price": 300, "shopId": {"_id": "s1", "name": "Fresh Mart"}}]}))
        results = await self.service.search("ghee")

        self.assertEqual(results[0].id, "p9")
        self.assertEqual(results[0].shop_name, "Fresh Mart")
        self.assertIn("/products/search", self.http.calls[0][1])

    async def test_index_failure_is_recorded(self):
        self.http.queue(fail(404))
        await self.service.load_index()
        self.assertFalse(self.service.index_loaded)
        self.assertTrue(self.service.index_error)

    async def test_server_failure_returns_nothing(self):
        self.http.queue(fail(400))
        self.assertEqual(await self.service.search("ghee"), [])
        self.assertEqual(await self.service.search("  "), [])


if __name__ == "__main__":
    unittest.main()
