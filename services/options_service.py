"""
Runtime options.

User-facing toggles live in one persisted `all_options` blob (browser API
camelCase keys). Missing or malformed values fall back to the configured
defaults. Snapshots are cached briefly because every cookie change event
consults them.
"""

import math
import time
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, Field

from core.config import Config
from core.logging_config import get_logger
from models.pii import ScanMode
from storage.kv_store import KeyValueStore

logger = get_logger(__name__)

OPTIONS_STORAGE_KEY = "all_options"
OPTIONS_CACHE_SECONDS = 5.0

# Python attribute -> persisted key
OPTION_KEYS = {
    "pii_scan_mode": "piiScanMode",
    "pii_browser_notifications_enabled": "piiBrowserNotificationsEnabled",
    "ml_enabled": "mlEnabled",
    "profiling_protection_enabled": "profilingProtectionEnabled",
    "profiling_protection_threshold_percent": "profilingProtectionThresholdPercent",
    "changelog_limit": "changelogLimit",
}


def _finite_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class OptionsSnapshot(BaseModel):
    """Effective option values at one point in time."""
    pii_scan_mode: ScanMode = Field(default=ScanMode.OFF)
    pii_browser_notifications_enabled: bool = Field(default=True)
    ml_enabled: bool = Field(default=True)
    profiling_protection_enabled: bool = Field(default=False)
    profiling_protection_threshold_percent: Optional[float] = Field(default=95.0)
    changelog_limit: int = Field(default=2000, ge=1)

    @classmethod
    def from_raw(cls, raw: Any, config: Config) -> "OptionsSnapshot":
        """
        Build a snapshot from the persisted blob.

        Args:
            raw: Stored `all_options` value (anything; non-dicts are ignored)
            config: Defaults for absent keys
        """
        raw = raw if isinstance(raw, dict) else {}

        mode = raw.get("piiScanMode", config.pii.scan_mode)
        try:
            mode = ScanMode(mode)
        except ValueError:
            mode = ScanMode.OFF

        if "piiBrowserNotificationsEnabled" in raw:
            notifications = raw["piiBrowserNotificationsEnabled"] is not False
        else:
            notifications = config.pii.notifications_enabled

        if "mlEnabled" in raw:
            ml_enabled = raw["mlEnabled"] is not False
        else:
            ml_enabled = config.profiling_protection.ml_enabled

        if "profilingProtectionEnabled" in raw:
            protection = raw["profilingProtectionEnabled"] is True
        else:
            protection = config.profiling_protection.enabled

        if "profilingProtectionThresholdPercent" in raw:
            threshold = _finite_number(raw["profilingProtectionThresholdPercent"])
        else:
            threshold = config.profiling_protection.threshold_percent

        limit = _finite_number(raw.get("changelogLimit"))
        changelog_limit = int(limit) if limit and limit >= 1 else config.changelog.limit

        return cls(
            pii_scan_mode=mode,
            pii_browser_notifications_enabled=notifications,
            ml_enabled=ml_enabled,
            profiling_protection_enabled=protection,
            profiling_protection_threshold_percent=threshold,
            changelog_limit=changelog_limit,
        )


class OptionsService:
    """Reads and updates the persisted options blob."""

    def __init__(
        self,
        kv_store: KeyValueStore,
        config: Config,
        cache_seconds: float = OPTIONS_CACHE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.kv_store = kv_store
        self.config = config
        self.cache_seconds = cache_seconds
        self.clock = clock
        self._cached: Optional[OptionsSnapshot] = None
        self._fetched_at = 0.0

    async def get_snapshot(self, refresh: bool = False) -> OptionsSnapshot:
        """
        Current options, served from a short-lived cache.

        Args:
            refresh: Bypass the cache
        """
        now = self.clock()
        if not refresh and self._cached is not None and now - self._fetched_at < self.cache_seconds:
            return self._cached

        raw = await self.kv_store.get(OPTIONS_STORAGE_KEY)
        self._cached = OptionsSnapshot.from_raw(raw, self.config)
        self._fetched_at = now
        return self._cached

    def reset_cache(self) -> None:
        self._cached = None
        self._fetched_at = 0.0

    async def update_options(self, **changes: Any) -> OptionsSnapshot:
        """
        Validate and persist option changes.

        Invalid values are logged and ignored; the threshold is clamped to
        0-100.

        Returns:
            The refreshed snapshot
        """
        accepted: Dict[str, Any] = {}

        for name, value in changes.items():
            storage_key = OPTION_KEYS.get(name)
            if storage_key is None:
                logger.error("unknown_option", option=name)
                continue

            if name == "pii_scan_mode":
                try:
                    accepted[storage_key] = ScanMode(value).value
                except ValueError:
                    logger.error("invalid_pii_scan_mode", mode=value)
            elif name == "profiling_protection_threshold_percent":
                number = _finite_number(value)
                if number is None:
                    logger.error("invalid_threshold_percent", value=value)
                else:
                    accepted[storage_key] = min(100.0, max(0.0, number))
            elif name == "changelog_limit":
                number = _finite_number(value)
                if number is None or number < 1:
                    logger.error("invalid_changelog_limit", value=value)
                else:
                    accepted[storage_key] = int(number)
            else:
                accepted[storage_key] = bool(value)

        if accepted:
            def merge(current):
                merged = dict(current) if isinstance(current, dict) else {}
                merged.update(accepted)
                return merged

            await self.kv_store.update(OPTIONS_STORAGE_KEY, merge, default={})
            logger.info("options_updated", options=sorted(accepted))

        return await self.get_snapshot(refresh=True)
