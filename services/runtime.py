"""
Service wiring.

Builds every component from a `Config`, connects the change pipeline to the
cookie store, and drives the chameleon tick from the alarm scheduler.
"""

import random
from typing import Optional

from core.config import Config
from core.exceptions import CookieGuardError
from core.logging_config import configure_structlog, get_logger
from ml_classifier.classifier import RiskClassifier
from ml_classifier.feature_extractor import FeatureExtractor
from ml_classifier.oracle import JoblibOracle
from storage.cookie_store import CookieStore
from storage.kv_store import InMemoryKeyValueStore, KeyValueStore, RedisKeyValueStore
from .alarm_scheduler import AlarmScheduler
from .audit_log import ActionSourceTracker, ChangeLog
from .chameleon import CHAMELEON_ALARM_NAME, ChameleonScheduler, ChameleonTickReport
from .cookie_events import CookieChangeHandler
from .notification_dedup import NotificationDedupCache, PIINotifier
from .notification_surface import LogNotificationSurface, NotificationSurface
from .options_service import OptionsService

logger = get_logger(__name__)


def build_kv_store(config: Config) -> KeyValueStore:
    """Create the key-value store selected by the storage config."""
    if config.storage.backend == "redis":
        return RedisKeyValueStore.from_url(
            config.storage.redis_url,
            key_prefix=config.storage.key_prefix,
            socket_timeout=config.storage.socket_timeout,
        )
    return InMemoryKeyValueStore()


def build_classifier(config: Config) -> RiskClassifier:
    """
    Create the risk classifier.

    Without a loadable model every classification fails safe, which keeps
    the chameleon tick from rewriting anything.
    """
    extractor = FeatureExtractor(config.model.training_base_timestamp)
    oracle = None

    if config.model.path is None:
        logger.warning("classifier_model_not_configured")
    else:
        try:
            oracle = JoblibOracle.load(config.model.path)
        except CookieGuardError as e:
            logger.warning("classifier_model_unavailable", path=str(config.model.path), error=e.message)

    return RiskClassifier(oracle=oracle, feature_extractor=extractor)


class CookieGuardRuntime:
    """
    Assembled service.

    The cookie store and notification surface are the host's; everything else
    is built from config unless injected.
    """

    def __init__(
        self,
        config: Config,
        cookie_store: CookieStore,
        surface: Optional[NotificationSurface] = None,
        kv_store: Optional[KeyValueStore] = None,
        classifier: Optional[RiskClassifier] = None,
        alarm_scheduler: Optional[AlarmScheduler] = None,
        rng: Optional[random.Random] = None,
        configure_logging: bool = True,
    ):
        self.config = config
        if configure_logging:
            configure_structlog(
                log_level=config.monitoring.log_level,
                json_logs=config.monitoring.log_format == "json",
                development_mode=config.debug,
            )

        self.cookie_store = cookie_store
        self.surface = surface or LogNotificationSurface()
        self.kv_store = kv_store or build_kv_store(config)
        self.classifier = classifier or build_classifier(config)
        self.alarm_scheduler = alarm_scheduler or AlarmScheduler()

        self.options_service = OptionsService(self.kv_store, config)
        self.change_log = ChangeLog(self.kv_store, self.options_service, config.changelog.limit)
        self.tracker = ActionSourceTracker(config.changelog.attribution_window_seconds)
        self.notifier = PIINotifier(
            self.options_service,
            self.surface,
            config.pii,
            NotificationDedupCache(config.pii.dedup_cache_size),
        )
        self.change_handler = CookieChangeHandler(
            self.cookie_store,
            self.kv_store,
            self.change_log,
            self.notifier,
            self.tracker,
        )
        self.chameleon = ChameleonScheduler(
            self.cookie_store,
            self.kv_store,
            self.classifier,
            self.options_service,
            config.profiling_protection,
            rng=rng,
        )
        self._started = False

    async def run_chameleon_tick(self) -> ChameleonTickReport:
        return await self.chameleon.run_tick()

    async def start(self) -> None:
        """Seed the cookie cache, subscribe to changes and start the alarm."""
        if self._started:
            return

        await self.change_handler.populate_cookie_cache()
        self.cookie_store.add_listener(self.change_handler.handle_change)
        self.alarm_scheduler.schedule(
            CHAMELEON_ALARM_NAME,
            self.config.profiling_protection.tick_minutes,
            self.run_chameleon_tick,
        )
        self.alarm_scheduler.start()
        self._started = True
        logger.info(
            "runtime_started",
            environment=self.config.environment,
            storage_backend=self.config.storage.backend,
            classifier_available=self.classifier.available,
        )

    async def stop(self) -> None:
        if not self._started:
            return

        self.alarm_scheduler.shutdown()
        self.cookie_store.remove_listener(self.change_handler.handle_change)
        await self.kv_store.close()
        self._started = False
        logger.info("runtime_stopped")
