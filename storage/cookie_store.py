"""
Cookie store boundary.

Platform cookie APIs (callback or promise flavored) are normalized to one
async contract: `get_all` returns cookies, `set` returns the written cookie
or raises `CookieWriteError`, `remove` is best effort. Stores notify
registered listeners of every change.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse

from core.exceptions import CookieWriteError
from models.cookie import Cookie, CookieChangeEvent

logger = logging.getLogger(__name__)

ChangeListener = Callable[[CookieChangeEvent], Awaitable[None]]


class CookieStore(ABC):
    """Abstract cookie store."""

    def __init__(self):
        self._listeners: List[ChangeListener] = []

    @abstractmethod
    async def get_all(self, filter: Optional[Dict[str, Any]] = None) -> List[Cookie]:
        """Return all cookies matching the filter (all cookies when empty)."""

    @abstractmethod
    async def set(self, cookie: Cookie) -> Cookie:
        """
        Write a cookie.

        Raises:
            CookieWriteError: Invalid attribute combination or quota exceeded
        """

    @abstractmethod
    async def remove(self, name: str, url: str) -> None:
        """Remove a cookie; no success signal is guaranteed."""

    def add_listener(self, listener: ChangeListener) -> None:
        """
        Register an async callback for change events.

        Args:
            listener: Coroutine function receiving a CookieChangeEvent
        """
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            logger.warning("Cookie change listener was not registered")

    async def _emit(self, event: CookieChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception as e:
                logger.error(f"Cookie change listener failed for {event.cookie.key}: {e}", exc_info=True)


def _domain_matches(cookie_domain: str, host: str) -> bool:
    domain = cookie_domain.lstrip(".").lower()
    host = host.lower()
    return host == domain or host.endswith("." + domain)


class InMemoryCookieStore(CookieStore):
    """
    Process-local cookie jar keyed by `name;domain;path`.

    Mirrors the browser's write validation closely enough for the scheduler:
    SameSite=None requires Secure, a domain is mandatory, and an optional
    quota caps the number of cookies.
    """

    def __init__(self, cookies: Optional[List[Cookie]] = None, max_cookies: Optional[int] = None):
        super().__init__()
        self.max_cookies = max_cookies
        self._cookies: Dict[str, Cookie] = {}
        for cookie in cookies or []:
            self._cookies[cookie.key] = cookie.model_copy()

    async def get_all(self, filter: Optional[Dict[str, Any]] = None) -> List[Cookie]:
        filter = filter or {}
        result = []
        for cookie in self._cookies.values():
            if "name" in filter and cookie.name != filter["name"]:
                continue
            if "domain" in filter and not _domain_matches(cookie.domain, filter["domain"].lstrip(".")):
                continue
            if "path" in filter and cookie.path != filter["path"]:
                continue
            if "secure" in filter and cookie.secure != filter["secure"]:
                continue
            if "session" in filter and cookie.is_session != filter["session"]:
                continue
            if "storeId" in filter and cookie.store_id != filter["storeId"]:
                continue
            result.append(cookie.model_copy())
        return result

    async def set(self, cookie: Cookie) -> Cookie:
        if not cookie.name:
            raise CookieWriteError("Cookie name is required", details={"domain": cookie.domain})
        if not cookie.domain:
            raise CookieWriteError("Cookie domain is required", details={"name": cookie.name})

        same_site = (cookie.same_site or "").lower()
        if same_site in ("no_restriction", "none") and not cookie.secure:
            raise CookieWriteError(
                "SameSite=None cookies must be Secure",
                details={"key": cookie.key},
            )

        is_new = cookie.key not in self._cookies
        if is_new and self.max_cookies is not None and len(self._cookies) >= self.max_cookies:
            raise CookieWriteError(
                f"Cookie quota of {self.max_cookies} exceeded",
                details={"key": cookie.key},
            )

        stored = cookie.model_copy()
        self._cookies[stored.key] = stored
        await self._emit(CookieChangeEvent(cookie=stored.model_copy(), removed=False, cause="explicit"))
        return stored.model_copy()

    async def remove(self, name: str, url: str) -> None:
        parsed = urlparse(url)
        host = parsed.hostname or ""
        path = parsed.path or "/"

        for key, cookie in list(self._cookies.items()):
            if cookie.name != name or not _domain_matches(cookie.domain, host):
                continue
            if not path.startswith(cookie.path or "/"):
                continue
            removed = self._cookies.pop(key)
            await self._emit(CookieChangeEvent(cookie=removed, removed=True, cause="explicit"))
