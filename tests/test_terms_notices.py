import os
import tempfile
import unittest

from fakes import FakeHttpSession, fail, ok

from api.client import ApiClient
from api.errors import ValidationError
from db.database import LocalStore
from db.models import AuthSession, User
from db.storage import DISMISSED_NOTICES_KEY, terms_accepted_key
from services.contact import submit_contact
from services.notices import NoticeService
from services.session import SessionService
from services.terms import DECLINE_MESSAGE, TermsService

TERMS = {"_id": "t1", "version": "2.0", "content": "# Terms\nBe nice.", "hasAccepted": False}


class ServiceTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = LocalStore(os.path.join(self.temp_dir.name, "test.sqlite"))
        self.http = FakeHttpSession()
        self.session = SessionService(self.store)
        self.api = ApiClient(
            "http://api.test/api",
            token_provider=self.session.token,
            retry_delay=0,
            session=self.http,
        )
        self.session.api = self.api

    def tearDown(self):
        self.temp_dir.cleanup()

    async def sign_in(self):
        user = User(id="u1", name="Asha", email="asha@example.com")
        await self.session.establish(AuthSession(token="tok", user=user))


class TermsServiceTestCase(ServiceTestCase):
    def setUp(self):
        super().setUp()
        self.terms = TermsService(self.api, self.store, self.session)

    async def test_user_accepts_on_server(self):
        await self.sign_in()
        self.http.queue(ok({"terms": TERMS}))
        terms = await self.terms.fetch_current()
        self.assertEqual(terms.version, "2.0")
        self.assertTrue(self.terms.needs_acceptance)

        self.http.queue(ok({}))
        self.assertTrue(await self.terms.accept())
        self.assertFalse(self.terms.needs_acceptance)
        self.assertEqual(self.http.calls[-1][2]["json"], {"termsId": "t1"})

    async def test_guest_acceptance_is_local(self):
        self.http.queue(ok({"terms": TERMS}))
        await self.terms.fetch_current()
        self.assertTrue(await self.terms.accept())
        self.assertEqual(len(self.http.calls), 1)
        self.assertTrue(await self.store.get(terms_accepted_key("t1")))

        self.http.queue(ok({"terms": TERMS}))
        terms = await self.terms.fetch_current()
        self.assertTrue(terms.has_accepted)

    async def test_failed_accept_keeps_prompting(self):
        await self.sign_in()
        self.http.queue(ok({"terms": TERMS}), fail(400))
        await self.terms.fetch_current()
        self.assertFalse(await self.terms.accept())
        self.assertTrue(self.terms.needs_acceptance)
        self.assertEqual(self.terms.error, "Failed to accept terms and conditions")

    async def test_decline_signs_out(self):
        await self.sign_in()
        self.http.queue(ok({"terms": TERMS}))
        await self.terms.fetch_current()

        self.assertEqual(await self.terms.decline(), DECLINE_MESSAGE)
        self.assertFalse(self.session.is_authenticated)
        self.assertFalse(self.terms.needs_acceptance)

    async def test_no_terms_or_failure(self):
        self.http.queue(ok({"terms": None}))
        self.assertIsNone(await self.terms.fetch_current())
        self.assertFalse(self.terms.needs_acceptance)

        self.http.queue(fail(404))
        self.assertIsNone(await self.terms.fetch_current())
        self.assertEqual(self.terms.error, "Failed to load terms and conditions")


class NoticeServiceTestCase(ServiceTestCase):
    def setUp(self):
        super().setUp()
        self.notices = NoticeService(self.api, self.store, self.session)
        self.http.queue(
            ok(
                {
                    "notices": [
                        {"_id": "n1", "title": "Holiday", "message": "Closed Monday"},
                        {"_id": "n2", "title": "Policy", "message": "Read me", "displayType": "permanent"},
                    ]
                }
            )
        )

    async def test_dismissed_one_time_notices_stay_hidden(self):
        notices = await self.notices.fetch_active()
        self.assertEqual(len(notices), 2)

        for notice in notices:
            await self.notices.dismiss(notice)

        visible = await self.notices.visible()
        self.assertEqual([n.id for n in visible], ["n2"])
        self.assertEqual(await self.store.get(DISMISSED_NOTICES_KEY), ["n1"])
        self.assertEqual([n.id for n in self.notices.permanent()], ["n2"])
        # guests do not report views
        self.assertEqual(len(self.http.calls), 1)

    async def test_signed_in_dismiss_reports_view(self):
        await self.sign_in()
        notices = await self.notices.fetch_active()
        self.http.queue(fail(500), fail(500), fail(500), fail(500))
        await self.notices.dismiss(notices[0])
        self.assertIn("/notices/n1/view", self.http.calls[-1][1])
        self.assertEqual(await self.notices.dismissed_ids(), ["n1"])

    async def test_failed_fetch_keeps_previous(self):
        await self.notices.fetch_active()
        self.http.queue(fail(400))
        self.assertEqual(len(await self.notices.fetch_active()), 2)


class ContactTestCase(ServiceTestCase):
    async def test_validation(self):
        with self.assertRaises(ValidationError) as ctx:
            await submit_contact(self.api, "Asha", "asha@example.com", " ", "hello")
        self.assertEqual(ctx.exception.field, "subject")
        with self.assertRaises(ValidationError):
            await submit_contact(self.api, "Asha", "asha.example.com", "Hi", "hello")
        self.assertEqual(self.http.calls, [])

    async def test_submit(self):
        self.http.queue(ok({}))
        result = await submit_contact(self.api, " Asha ", "asha@example.com", "Order", " Where is it? ")
        self.assertTrue(result.success)
        body = self.http.calls[0][2]["json"]
        self.assertEqual(body["name"], "Asha")
        self.assertEqual(body["message"], "Where is it?")


if __name__ == "__main__":
    unittest.main()
