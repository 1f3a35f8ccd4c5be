"""
Cookie change pipeline.

Every change event reported by the cookie store is turned into an audit log
entry (with the previous snapshot taken from a persisted cookie cache), fed
to the PII notifier, and folded back into the cache.
"""

from typing import Any, Dict, Optional

from core.logging_config import get_logger
from models.cookie import Cookie, CookieChangeEvent
from storage.cookie_store import CookieStore
from storage.kv_store import KeyValueStore
from .audit_log import ActionSourceTracker, ChangeLog
from .notification_dedup import PIINotifier

logger = get_logger(__name__)

COOKIE_CACHE_KEY = "cookie_cache"


class CookieChangeHandler:
    """Reacts to cookie store change events."""

    def __init__(
        self,
        cookie_store: CookieStore,
        kv_store: KeyValueStore,
        change_log: ChangeLog,
        notifier: PIINotifier,
        tracker: Optional[ActionSourceTracker] = None,
    ):
        """
        Initialize handler.

        Args:
            cookie_store: Store whose cookies seed the cache
            kv_store: Store holding the cookie cache blob
            change_log: Audit log receiving one entry per event
            notifier: PII notifier for written cookies
            tracker: Attribution of changes to user actions
        """
        self.cookie_store = cookie_store
        self.kv_store = kv_store
        self.change_log = change_log
        self.notifier = notifier
        self.tracker = tracker or ActionSourceTracker()

    async def populate_cookie_cache(self) -> int:
        """
        Snapshot every cookie into the cache.

        Returns:
            Number of cached cookies
        """
        cookies = await self.cookie_store.get_all({})
        cache = {cookie.key: cookie.to_snapshot() for cookie in cookies}
        await self.kv_store.set(COOKIE_CACHE_KEY, cache)
        logger.info("cookie_cache_populated", cookies=len(cache))
        return len(cache)

    async def _cached_cookie(self, cookie_key: str) -> Optional[Cookie]:
        cache = await self.kv_store.get(COOKIE_CACHE_KEY)
        if not isinstance(cache, dict):
            return None
        snapshot = cache.get(cookie_key)
        if not isinstance(snapshot, dict):
            return None
        return Cookie.model_validate(snapshot)

    async def handle_change(self, event: CookieChangeEvent) -> None:
        """Process one cookie change event."""
        cookie_key = event.cookie.key
        old_cookie = await self._cached_cookie(cookie_key)
        new_cookie = None if event.removed else event.cookie

        if event.removed and old_cookie is None:
            old_cookie = event.cookie

        source = self.tracker.current_source()
        await self.change_log.add_log(old_cookie, new_cookie, source)

        if new_cookie is not None:
            await self.notifier.maybe_notify(new_cookie)
        else:
            self.notifier.forget(cookie_key)

        self.tracker.reset()

        def apply(current: Any) -> Dict[str, Any]:
            cache = dict(current) if isinstance(current, dict) else {}
            if new_cookie is not None:
                cache[cookie_key] = new_cookie.to_snapshot()
            else:
                cache.pop(cookie_key, None)
            return cache

        await self.kv_store.update(COOKIE_CACHE_KEY, apply, default={})
        logger.debug(
            "cookie_change_handled",
            cookie_key=cookie_key,
            removed=event.removed,
            cause=event.cause,
            source=source.value,
        )
