from __future__ import annotations

from dataclasses import replace
from typing import Optional

import api.endpoints as endpoints
from api.client import ApiClient
from db.database import LocalStore
from db.models import Terms
from db.storage import terms_accepted_key
from services.session import SessionService
from utils.logger import get_logger

_logger = get_logger(__name__)

DECLINE_MESSAGE = "Terms and conditions must be accepted to use the service"


class TermsService:
    """
    Tracks the current terms and whether this identity has accepted them.
    Signed-in users accept on the server; guests only get a local flag.
    """

    def __init__(self, api: ApiClient, store: LocalStore, session: SessionService) -> None:
        self.api = api
        self.store = store
        self.session = session
        self.current: Optional[Terms] = None
        self.error: Optional[str] = None

    async def fetch_current(self) -> Optional[Terms]:
        result = await self.api.call(endpoints.current_terms)
        if not result.success:
            self.error = "Failed to load terms and conditions"
            _logger.warning(f"{self.error}: {result.message}")
            return self.current
        payload = result.payload
        raw = payload.get("terms") if isinstance(payload, dict) else None
        if not isinstance(raw, dict):
            self.current = None
            return None

        terms = Terms.from_api(raw)
        if not self.session.is_authenticated and await self.store.get(terms_accepted_key(terms.id)):
            terms = replace(terms, has_accepted=True)
        self.current = terms
        self.error = None
        return terms

    @property
    def needs_acceptance(self) -> bool:
        return self.current is not None and not self.current.has_accepted

    async def accept(self) -> bool:
        if self.current is None:
            return False
        if self.session.is_authenticated:
            result = await self.api.call(endpoints.accept_terms, self.current.id)
            if not result.success:
                self.error = "Failed to accept terms and conditions"
                _logger.warning(f"{self.error}: {result.message}")
                return False
        else:
            await self.store.set(terms_accepted_key(self.current.id), True)
        self.current = replace(self.current, has_accepted=True)
        _logger.info(f"Terms {self.current.id} v{self.current.version} accepted")
        return True

    async def decline(self) -> str:
        """Declining signs the user out; returns the message for the login screen."""
        await self.session.logout()
        self.current = None
        return DECLINE_MESSAGE
