"""
Chameleon profiling protection.

On every tick, persistent cookies that the risk classifier labels as ad or
tracking cookies with high confidence get their value rewritten with random
characters of the same class (digit, upper, lower), so the value keeps its
shape but loses its identifying content. Each rewritten cookie then cools
down for a random 5-10 minutes before it is eligible again.

Cooldown state is one persisted map `cookie key -> {"next_at": epoch seconds}`.
Entries of cookies that have since disappeared are left in place.
"""

import asyncio
import math
import random
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from core.config import ProfilingProtectionConfig
from core.exceptions import CookieWriteError
from core.logging_config import bound_context, get_logger
from ml_classifier.classifier import RiskClassifier
from ml_classifier.config import DEFAULT_AD_THRESHOLD
from models.cookie import Cookie
from storage.cookie_store import CookieStore
from storage.kv_store import KeyValueStore
from .options_service import OptionsService

logger = get_logger(__name__)

CHAMELEON_STATE_KEY = "chameleon_state_v1"
CHAMELEON_ALARM_NAME = "chameleon_tick_v1"

_DIGITS = "0123456789"
_UPPER = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_LOWER = "abcdefghijklmnopqrstuvwxyz"


def resolve_ad_threshold(percent: Any) -> float:
    """Clamp a configured percentage to 0-100 and convert to a probability."""
    if isinstance(percent, bool):
        return DEFAULT_AD_THRESHOLD
    try:
        value = float(percent)
    except (TypeError, ValueError):
        return DEFAULT_AD_THRESHOLD
    if not math.isfinite(value):
        return DEFAULT_AD_THRESHOLD
    return min(100.0, max(0.0, value)) / 100


def obfuscate_value_preserve_structure(value: str, rng: Optional[random.Random] = None) -> str:
    """
    Replace ASCII letters and digits with random ones of the same class.

    Punctuation, whitespace and non-ASCII characters are kept, so length and
    separators survive.
    """
    rng = rng or random.SystemRandom()
    if not isinstance(value, str):
        value = "" if value is None else str(value)

    out = []
    for ch in value:
        if "0" <= ch <= "9":
            out.append(rng.choice(_DIGITS))
        elif "A" <= ch <= "Z":
            out.append(rng.choice(_UPPER))
        elif "a" <= ch <= "z":
            out.append(rng.choice(_LOWER))
        else:
            out.append(ch)
    return "".join(out)


def _next_eligible_at(entry: Any) -> Optional[float]:
    if not isinstance(entry, dict):
        return None
    next_at = entry.get("next_at")
    if isinstance(next_at, bool) or not isinstance(next_at, (int, float)):
        return None
    return float(next_at)


@dataclass
class ChameleonTickReport:
    """What one tick did."""
    tick_id: str
    ran: bool = False
    examined: int = 0
    rewritten: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped_session: int = 0
    skipped_cooling: int = 0
    skipped_low_confidence: int = 0
    skipped_unchanged: int = 0
    state_persisted: bool = False


class ChameleonScheduler:
    """
    Rewrites high-confidence tracking cookies with a jittered cooldown.
    """

    def __init__(
        self,
        cookie_store: CookieStore,
        kv_store: KeyValueStore,
        classifier: RiskClassifier,
        options_service: OptionsService,
        config: Optional[ProfilingProtectionConfig] = None,
        clock: Callable[[], float] = time.time,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize scheduler.

        Args:
            cookie_store: Cookies to enumerate and rewrite
            kv_store: Store holding the cooldown map
            classifier: Risk classifier adapter
            options_service: Feature flags and threshold
            config: Delay window and classification timeout
            clock: Epoch seconds source
            rng: Random source for values and cooldown jitter
        """
        self.cookie_store = cookie_store
        self.kv_store = kv_store
        self.classifier = classifier
        self.options_service = options_service
        self.config = config or ProfilingProtectionConfig()
        self.clock = clock
        self.rng = rng or random.SystemRandom()
        # One pass at a time, whoever fires it; created on first tick inside the loop
        self._tick_lock: Optional[asyncio.Lock] = None

    async def load_state(self) -> Dict[str, Any]:
        state = await self.kv_store.get(CHAMELEON_STATE_KEY)
        return state if isinstance(state, dict) else {}

    def _cooldown_seconds(self) -> int:
        minutes = self.rng.randint(self.config.min_delay_minutes, self.config.max_delay_minutes)
        return minutes * 60

    async def _rewrite(self, cookie: Cookie, new_value: str) -> bool:
        try:
            await self.cookie_store.set(cookie.model_copy(update={"value": new_value}))
        except CookieWriteError as e:
            logger.warning("chameleon_rewrite_failed", cookie_key=cookie.key, url=cookie.url, error=e.message)
            return False
        return True

    async def run_tick(self) -> ChameleonTickReport:
        """
        Run one obfuscation pass over all cookies.

        Safe to call late, early or repeatedly: eligibility depends only on
        the persisted cooldown map and the current time. Overlapping calls
        run one after the other, so a later pass sees the cooldowns the
        earlier one wrote.
        """
        report = ChameleonTickReport(tick_id=uuid.uuid4().hex[:12])

        if self._tick_lock is None:
            self._tick_lock = asyncio.Lock()
        async with self._tick_lock:
            options = await self.options_service.get_snapshot()
            if not options.profiling_protection_enabled or not options.ml_enabled:
                return report

            report.ran = True
            threshold = resolve_ad_threshold(options.profiling_protection_threshold_percent)
            with bound_context(tick_id=report.tick_id):
                await self._process(report, threshold)
        return report

    async def _process(self, report: ChameleonTickReport, threshold: float) -> None:
        now = self.clock()
        state = await self.load_state()
        cookies = await self.cookie_store.get_all({})
        changes: Dict[str, Dict[str, float]] = {}

        for cookie in cookies:
            if cookie is None:
                continue
            report.examined += 1

            if cookie.is_session:
                report.skipped_session += 1
                continue

            key = cookie.key
            next_at = _next_eligible_at(state.get(key))
            if next_at is not None and next_at > now:
                report.skipped_cooling += 1
                continue

            analysis = await self.classifier.classify_async(
                cookie, timeout=self.config.classification_timeout_seconds
            )
            if not analysis.is_ad or not analysis.ad_probability >= threshold:
                report.skipped_low_confidence += 1
                continue

            new_value = obfuscate_value_preserve_structure(cookie.value, self.rng)
            if new_value == cookie.value:
                report.skipped_unchanged += 1
                continue

            if not await self._rewrite(cookie, new_value):
                report.failed.append(key)
                continue

            changes[key] = {"next_at": now + self._cooldown_seconds()}
            report.rewritten.append(key)

        if changes:
            def merge(current):
                merged = dict(current) if isinstance(current, dict) else {}
                merged.update(changes)
                return merged

            await self.kv_store.update(CHAMELEON_STATE_KEY, merge, default={})
            report.state_persisted = True

        logger.info(
            "chameleon_tick_completed",
            threshold=threshold,
            examined=report.examined,
            rewritten=len(report.rewritten),
            failed=len(report.failed),
            cooling=report.skipped_cooling,
        )
