"""
PII notification deduplication.

A cookie is alerted on at most once per distinct finding set. The signature
of a finding set is the cookie key plus its five most severe findings; a
bounded cache remembers the last signature per cookie and evicts the oldest
inserted key once it is full. Re-storing an existing key keeps its original
position (strict insertion order, not LRU).
"""

import uuid
from typing import Dict, Iterable, List, Optional

from core.config import PIIConfig
from core.logging_config import get_logger
from models.cookie import Cookie
from models.pii import PIIFinding, ScanMode
from scanners.pii_scanner import scan_cookie_value_for_pii, sort_findings_by_severity
from .notification_surface import NotificationSurface
from .options_service import OptionsService

logger = get_logger(__name__)

NOTIFICATION_TITLE = "Cookie Guard: PII detected"
NOTIFICATION_PRIORITY = 2
ELLIPSIS = "…"


class NotificationDedupCache:
    """Bounded cookie-key -> signature map with insertion-order eviction."""

    def __init__(self, capacity: int = 500):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._entries: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, cookie_key: str) -> bool:
        return cookie_key in self._entries

    def get(self, cookie_key: str) -> Optional[str]:
        return self._entries.get(cookie_key)

    def keys(self) -> List[str]:
        """Keys from oldest to newest insertion."""
        return list(self._entries)

    def store(self, cookie_key: str, signature: str) -> Optional[str]:
        """
        Remember a signature.

        Returns:
            The evicted key, if the cache overflowed
        """
        self._entries[cookie_key] = signature
        if len(self._entries) > self.capacity:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            return oldest_key
        return None

    def discard(self, cookie_key: str) -> None:
        self._entries.pop(cookie_key, None)

    def clear(self) -> None:
        self._entries.clear()


def build_pii_signature(cookie_key: str, findings: Iterable[PIIFinding], limit: int = 5) -> str:
    """Signature over the first `limit` (already severity-sorted) findings."""
    important = [f"{finding.label}:{finding.value}" for finding in list(findings)[:limit]]
    return f"{cookie_key}:{'|'.join(important)}"


def truncate_value(value: str, limit: int = 40) -> str:
    if not isinstance(value, str):
        value = "" if value is None else str(value)
    return f"{value[:limit]}{ELLIPSIS}" if len(value) > limit else value


def format_pii_notification_message(
    cookie: Cookie,
    findings: List[PIIFinding],
    was_decoded: bool,
    max_findings: int = 3,
    value_limit: int = 40,
    max_length: int = 250,
) -> str:
    """
    Build the notification body.

    Args:
        cookie: Cookie the findings belong to
        findings: Severity-sorted findings
        was_decoded: Whether the value was base64-decoded before scanning
        max_findings: Findings listed in the body
        value_limit: Characters shown per finding value
        max_length: Hard cap on the message length
    """
    lines = [
        f"• {finding.label}: {truncate_value(finding.value, value_limit)}"
        for finding in findings[:max_findings]
    ]

    message = (
        f"Cookie {cookie.name or 'unnamed'} ({cookie.domain or 'unknown domain'}) "
        f"contains {len(findings)} potential PII item(s):"
    )
    if was_decoded:
        message += " The value was decoded from Base64."
    if lines:
        message += "\n" + "\n".join(lines)
    if len(message) > max_length:
        message = f"{message[:max_length - 3]}{ELLIPSIS}"
    return message


class PIINotifier:
    """
    Decides whether a cookie write deserves a PII alert and emits it.
    """

    def __init__(
        self,
        options_service: OptionsService,
        surface: NotificationSurface,
        config: Optional[PIIConfig] = None,
        cache: Optional[NotificationDedupCache] = None,
    ):
        """
        Initialize notifier.

        Args:
            options_service: Source of scan mode and notification toggle
            surface: Where notifications are shown
            config: Message and cache limits
            cache: Dedup cache (a new bounded cache by default)
        """
        self.options_service = options_service
        self.surface = surface
        self.config = config or PIIConfig()
        self.cache = cache or NotificationDedupCache(self.config.dedup_cache_size)

    def forget(self, cookie_key: str) -> None:
        """Drop dedup state for a removed cookie."""
        self.cache.discard(cookie_key)

    async def maybe_notify(self, cookie: Cookie) -> bool:
        """
        Scan a written cookie and alert once per distinct finding set.

        Returns:
            True if a notification was emitted
        """
        if cookie is None or not cookie.value:
            return False

        options = await self.options_service.get_snapshot()
        scan_mode = options.pii_scan_mode
        if scan_mode == ScanMode.OFF or not options.pii_browser_notifications_enabled:
            return False

        key = cookie.key
        scan_result = scan_cookie_value_for_pii(cookie.value, scan_mode)
        if not scan_result.found_pii:
            self.cache.discard(key)
            return False

        findings = sort_findings_by_severity(scan_result.found_pii)
        signature = build_pii_signature(key, findings, self.config.signature_findings)
        if self.cache.get(key) == signature:
            logger.debug("pii_notification_suppressed", cookie_key=key)
            return False

        evicted = self.cache.store(key, signature)
        if evicted is not None:
            logger.debug("pii_dedup_evicted", cookie_key=evicted)

        message = format_pii_notification_message(
            cookie,
            findings,
            scan_result.was_decoded,
            max_findings=self.config.message_findings,
            value_limit=self.config.value_preview_length,
            max_length=self.config.message_max_length,
        )
        notification_id = f"pii-{uuid.uuid4()}"

        try:
            await self.surface.create(notification_id, NOTIFICATION_TITLE, message, NOTIFICATION_PRIORITY)
        except Exception as e:
            logger.error("pii_notification_failed", cookie_key=key, error=str(e))

        logger.info(
            "pii_notification_emitted",
            cookie_key=key,
            findings=len(findings),
            was_decoded=scan_result.was_decoded,
        )
        return True
