"""
PII Scanner

Runs the pattern catalog over a cookie value. In `decode_base64` mode a
strictly valid base64 value is decoded first and only the decoded text is
scanned. The scanner never raises: unscannable input or an unknown mode
yields an empty result.
"""

import base64
import binascii
import logging
import re
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from models.pii import (
    FindingSource,
    PIIFinding,
    ScanMode,
    ScanResult,
    SEVERITY_WEIGHT,
)
from .pii_patterns import PII_PATTERNS, PIIPattern, PatternMatch

logger = logging.getLogger(__name__)

_BASE64_RE = re.compile(r"[A-Za-z0-9+/]*={0,2}")
_PRINTABLE_RE = re.compile(r"[\x20-\x7E\r\n\t]*")


def try_decode_base64(text: str) -> Optional[str]:
    """
    Strictly decode a base64 string into printable text.

    Returns:
        Decoded text, or None if the input is not canonical base64 or the
        decoded bytes are not printable ASCII.
    """
    if not isinstance(text, str) or not text or len(text) % 4 != 0:
        return None
    if not _BASE64_RE.fullmatch(text):
        return None

    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        return None

    decoded = raw.decode("latin-1")
    if not _PRINTABLE_RE.fullmatch(decoded):
        return None
    return decoded


def _scan_text(
    text: str,
    source: FindingSource,
    patterns: Sequence[PIIPattern],
) -> List[PIIFinding]:
    findings: List[PIIFinding] = []
    seen: Set[Tuple[str, str]] = set()

    for pattern in patterns:
        for match in pattern.regex.finditer(text):
            candidate = PatternMatch(match.group(0), text, match.start(), match.end())
            if pattern.validate is not None and not pattern.validate(candidate):
                continue

            dedup_key = (pattern.label, candidate.text)
            if dedup_key in seen:
                continue
            seen.add(dedup_key)

            findings.append(
                PIIFinding(
                    label=pattern.label,
                    value=candidate.text,
                    severity=pattern.severity,
                    source=source,
                )
            )

    return findings


def scan_cookie_value_for_pii(
    text: str,
    scan_mode,
    patterns: Sequence[PIIPattern] = PII_PATTERNS,
) -> ScanResult:
    """
    Scan a cookie value for PII.

    Args:
        text: Cookie value
        scan_mode: ScanMode or its string value ("off", "simple", "decode_base64")
        patterns: Pattern catalog to apply

    Returns:
        ScanResult with findings in catalog discovery order
    """
    if not isinstance(text, str) or not text:
        return ScanResult(original_text=text if isinstance(text, str) else None)

    result = ScanResult(original_text=text)

    try:
        mode = ScanMode(scan_mode)
    except ValueError:
        logger.debug(f"Unknown PII scan mode {scan_mode!r}, skipping scan")
        return result

    if mode == ScanMode.OFF:
        return result

    if mode == ScanMode.DECODE_BASE64:
        decoded = try_decode_base64(text)
        if decoded is not None:
            result.was_decoded = True
            result.decoded_text = decoded
            result.found_pii = _scan_text(decoded, FindingSource.DECODED, patterns)
            return result

    result.found_pii = _scan_text(text, FindingSource.ORIGINAL, patterns)
    return result


def sort_findings_by_severity(findings: Iterable[PIIFinding]) -> List[PIIFinding]:
    """Stable sort, most severe first."""
    return sorted(
        findings,
        key=lambda finding: SEVERITY_WEIGHT.get(finding.severity, 0),
        reverse=True,
    )
