"""
Data models for Cookie Guard.
"""

from .cookie import Cookie, CookieChangeEvent, cookie_key, cookie_url
from .pii import ScanMode, Severity, FindingSource, PIIFinding, ScanResult, SEVERITY_WEIGHT
from .audit import AuditLogEntry, ChangeCategory, ChangeSource, CookieChange, derive_category

__all__ = [
    'Cookie',
    'CookieChangeEvent',
    'cookie_key',
    'cookie_url',
    'ScanMode',
    'Severity',
    'FindingSource',
    'PIIFinding',
    'ScanResult',
    'SEVERITY_WEIGHT',
    'AuditLogEntry',
    'ChangeCategory',
    'ChangeSource',
    'CookieChange',
    'derive_category',
]
