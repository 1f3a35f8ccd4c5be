"""
Cookie change log.

Keeps a capped, newest-first history of cookie additions, modifications and
deletions in one persisted blob. The category comes only from which
snapshots are present; field values are never diffed.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from core.logging_config import get_logger
from models.audit import AuditLogEntry, ChangeSource, CookieChange, derive_category
from models.cookie import Cookie
from storage.kv_store import KeyValueStore
from .options_service import OptionsService

logger = get_logger(__name__)

LOG_STORAGE_KEY = "cookie_change_log"


class ActionSourceTracker:
    """
    Attributes cookie changes to the user.

    A user action (edit, delete, import from the UI) marks the next change as
    user-caused for a short window; anything else is attributed to the
    website.
    """

    def __init__(self, window_seconds: float = 0.5, clock: Callable[[], float] = time.monotonic):
        self.window_seconds = window_seconds
        self.clock = clock
        self._source = ChangeSource.WEBSITE
        self._marked_at: Optional[float] = None

    def mark_user_action(self, source: ChangeSource = ChangeSource.USER) -> None:
        self._source = ChangeSource(source)
        self._marked_at = self.clock()

    def current_source(self) -> ChangeSource:
        if self._marked_at is None:
            return ChangeSource.WEBSITE
        if self.clock() - self._marked_at > self.window_seconds:
            self.reset()
            return ChangeSource.WEBSITE
        return self._source

    def reset(self) -> None:
        self._source = ChangeSource.WEBSITE
        self._marked_at = None


def _snapshot(cookie: Optional[Cookie]) -> Optional[Dict[str, Any]]:
    return cookie.to_snapshot() if cookie is not None else None


class ChangeLog:
    """Capped newest-first cookie change history."""

    def __init__(
        self,
        kv_store: KeyValueStore,
        options_service: Optional[OptionsService] = None,
        default_limit: int = 2000,
    ):
        """
        Initialize change log.

        Args:
            kv_store: Store holding the log blob
            options_service: Source of the user-configured limit
            default_limit: Limit used without an options service
        """
        self.kv_store = kv_store
        self.options_service = options_service
        self.default_limit = default_limit

    async def _limit(self) -> int:
        if self.options_service is None:
            return self.default_limit
        options = await self.options_service.get_snapshot()
        return options.changelog_limit

    async def add_log(
        self,
        before: Optional[Cookie],
        after: Optional[Cookie],
        source: ChangeSource = ChangeSource.WEBSITE,
    ) -> Optional[AuditLogEntry]:
        """
        Record one cookie change.

        Args:
            before: Snapshot before the change (None for additions)
            after: Snapshot after the change (None for deletions)
            source: Who caused the change

        Returns:
            The stored entry, or None when both snapshots are missing
        """
        relevant = after or before
        if relevant is None:
            logger.warning("change_log_skipped", reason="missing_cookie_data")
            return None

        before_snapshot = _snapshot(before)
        after_snapshot = _snapshot(after)

        entry = AuditLogEntry(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(),
            category=derive_category(before_snapshot, after_snapshot),
            source=source,
            cookie_name=relevant.name or "Unknown Name",
            domain=relevant.domain or "Unknown Domain",
            change=CookieChange(before=before_snapshot, after=after_snapshot),
        )
        limit = await self._limit()
        serialized = entry.model_dump(mode="json")

        def prepend(current):
            logs = list(current) if isinstance(current, list) else []
            logs.insert(0, serialized)
            return logs[:limit]

        await self.kv_store.update(LOG_STORAGE_KEY, prepend, default=[])
        logger.debug(
            "cookie_change_logged",
            category=entry.category,
            source=entry.source,
            cookie_name=entry.cookie_name,
            domain=entry.domain,
        )
        return entry

    async def get_logs(self) -> List[AuditLogEntry]:
        """All entries, newest first."""
        raw = await self.kv_store.get(LOG_STORAGE_KEY)
        if not isinstance(raw, list):
            return []

        entries = []
        for item in raw:
            try:
                entries.append(AuditLogEntry.model_validate(item))
            except ValidationError as e:
                logger.warning("change_log_entry_unreadable", error=str(e))
        return entries

    async def clear_logs(self) -> None:
        await self.kv_store.set(LOG_STORAGE_KEY, [])
