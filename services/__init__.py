"""
Cookie Guard services: options, PII notifications, change log, chameleon
profiling protection, alarms and runtime wiring.
"""

from .options_service import OptionsService, OptionsSnapshot
from .notification_surface import (
    NotificationSurface,
    LogNotificationSurface,
    WebhookNotificationSurface,
    InMemoryNotificationSurface,
)
from .notification_dedup import NotificationDedupCache, PIINotifier, build_pii_signature
from .audit_log import ActionSourceTracker, ChangeLog
from .chameleon import ChameleonScheduler, ChameleonTickReport, obfuscate_value_preserve_structure
from .alarm_scheduler import AlarmScheduler
from .cookie_events import CookieChangeHandler
from .runtime import CookieGuardRuntime

__all__ = [
    "OptionsService",
    "OptionsSnapshot",
    "NotificationSurface",
    "LogNotificationSurface",
    "WebhookNotificationSurface",
    "InMemoryNotificationSurface",
    "NotificationDedupCache",
    "PIINotifier",
    "build_pii_signature",
    "ActionSourceTracker",
    "ChangeLog",
    "ChameleonScheduler",
    "ChameleonTickReport",
    "obfuscate_value_preserve_structure",
    "AlarmScheduler",
    "CookieChangeHandler",
    "CookieGuardRuntime",
]
