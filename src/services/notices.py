from __future__ import annotations

from typing import List

import api.endpoints as endpoints
from api.client import ApiClient
from db.database import LocalStore
from db.models import Notice
from db.storage import DISMISSED_NOTICES_KEY
from services.session import SessionService
from utils.logger import get_logger

_logger = get_logger(__name__)


class NoticeService:
    def __init__(self, api: ApiClient, store: LocalStore, session: SessionService) -> None:
        self.api = api
        self.store = store
        self.session = session
        self.notices: List[Notice] = []

    async def fetch_active(self) -> List[Notice]:
        result = await self.api.call(endpoints.active_notices)
        if not result.success:
            _logger.warning(f"Could not load notices: {result.message}")
            return self.notices
        payload = result.payload
        raw = payload.get("notices", []) if isinstance(payload, dict) else payload or []
        self.notices = [Notice.from_api(n) for n in raw if isinstance(n, dict)]
        return self.notices

    async def dismissed_ids(self) -> List[str]:
        ids = await self.store.get(DISMISSED_NOTICES_KEY, [])
        return [str(i) for i in ids] if isinstance(ids, list) else []

    async def visible(self) -> List[Notice]:
        """Permanent notices always; one-time notices until dismissed."""
        dismissed = set(await self.dismissed_ids())
        return [n for n in self.notices if n.is_permanent or n.id not in dismissed]

    def permanent(self) -> List[Notice]:
        return [n for n in self.notices if n.is_permanent]

    async def dismiss(self, notice: Notice) -> None:
        if notice.is_permanent:
            return
        dismissed = await self.dismissed_ids()
        if notice.id not in dismissed:
            await self.store.set(DISMISSED_NOTICES_KEY, [*dismissed, notice.id])
        await self.mark_viewed(notice)

    async def mark_viewed(self, notice: Notice) -> None:
        # view tracking is best effort and meaningless for guests
        if not self.session.is_authenticated:
            return
        result = await self.api.call(endpoints.mark_notice_viewed, notice.id)
        if not result.success:
            _logger.debug(f"Notice view tracking failed for {notice.id}: {result.message}")
