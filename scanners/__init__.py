"""
Cookie value scanners.
"""

from .pii_patterns import PII_PATTERNS, PIIPattern, PatternMatch, is_valid_luhn
from .pii_scanner import scan_cookie_value_for_pii, sort_findings_by_severity, try_decode_base64

__all__ = [
    "PII_PATTERNS",
    "PIIPattern",
    "PatternMatch",
    "is_valid_luhn",
    "scan_cookie_value_for_pii",
    "sort_findings_by_severity",
    "try_decode_base64",
]
