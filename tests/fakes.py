"""Test doubles shared by the test modules."""

import os
import sys

import requests

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeHttpSession:
    """
    Stands in for requests.Session. Each queued item is either a FakeResponse
    or an exception instance to raise.
    """

    def __init__(self, *responses):
        self.headers = {}
        self.responses = list(responses)
        self.calls = []

    def queue(self, *responses):
        self.responses.extend(responses)

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if not self.responses:
            raise requests.ConnectionError("no response queued")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def ok(data=None, status=200):
    return FakeResponse(status, {"success": True, "data": data})


def fail(status, message="", **extra):
    body = {"success": False, "message": message}
    body.update(extra)
    return FakeResponse(status, body)


class RecordingSink:
    """Collects everything the notification fan-out asks the UI to do."""

    def __init__(self):
        self.toasts = []
        self.alerts = []
        self.otps = []
        self.refreshes = []
        self.redirects = []
        self.notices_refreshed = 0
        self.terms_refreshed = 0
        self.changes = 0

    def toast(self, notification, urgent):
        self.toasts.append((notification, urgent))

    async def show_alert(self, alert):
        self.alerts.append(alert)

    def show_otp(self, otp, order_id):
        self.otps.append((otp, order_id))

    def schedule_order_refresh(self, delay, order_id):
        self.refreshes.append((delay, order_id))

    def prompt_redirect(self, target):
        self.redirects.append(target)

    def refresh_notices(self):
        self.notices_refreshed += 1

    def refresh_terms(self):
        self.terms_refreshed += 1

    def notifications_changed(self):
        self.changes += 1
