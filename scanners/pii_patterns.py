"""
PII Pattern Catalog

Declarative list of PII detectors applied to cookie values. Each detector is a
`PIIPattern` record (id, label, compiled regex, severity, optional validator).
Validators are pure functions of a `PatternMatch`: the matched text plus the
full context string and span, so neighbour checks need no shared state.

Email detection is deliberately allow-list based: only addresses at known
providers/organizations count as a finding.
"""

import re
from dataclasses import dataclass
from typing import Callable, NamedTuple, Optional, Tuple

from models.pii import Severity


class PatternMatch(NamedTuple):
    """A regex match handed to a validator."""
    text: str
    context: str
    start: int
    end: int


Validator = Callable[[PatternMatch], bool]


@dataclass(frozen=True)
class PIIPattern:
    """One catalog entry."""
    id: str
    label: str
    regex: re.Pattern
    severity: Severity
    validate: Optional[Validator] = None


ALLOWED_EMAIL_DOMAINS = frozenset({
    "gmail.com", "yandex.ru", "yandex.com", "mail.ru", "inbox.ru", "list.ru",
    "bk.ru", "internet.ru", "outlook.com", "hotmail.com", "live.com", "msn.com",
    "yahoo.com", "yahoo.ru", "ymail.com", "icloud.com", "me.com", "mac.com",
    "protonmail.com", "proton.me", "aol.com", "zoho.com", "gmx.com", "gmx.net",
    "rambler.ru", "rambler.com", "lenta.ru", "autorambler.ru", "myrambler.ru",
    "ro.ru", "microsoft.com", "google.com", "apple.com", "amazon.com",
    "meta.com", "facebook.com", "linkedin.com", "twitter.com", "github.com",
    "gitlab.com", "bitbucket.org",
})

ALLOWED_TLDS = frozenset({
    "com", "ru", "net", "org", "edu", "gov", "io", "co", "me", "info", "biz",
    "pro", "name", "mobi", "app", "dev", "tech", "online", "site", "xyz",
    "top", "club", "work", "store", "shop",
})

SENSITIVE_KEYWORDS = (
    "password", "passwd", "secret", "token", "apikey", "sessionid", "auth",
    "user_id", "client_id", "ssn", "bearer", "csrf", "jwt", "credential",
    "private_key", "login", "username", "access_token", "refresh_token",
    "api_secret", "oauth", "2fa", "mfa", "authorization", "fullname",
    "address", "birthdate", "dob", "passport", "license", "social_security",
    "tax_id", "email_address", "phone_number", "account_number",
    "routing_number", "cvv", "cvc", "expiry", "expiration_date", "pin",
    "bank_account", "iban", "swift", "encryption_key", "hash_salt",
    "secure_note", "backup_code", "recovery_key", "medical_id", "health_id",
)

MAESTRO_PREFIXES = ("5018", "5020", "5038", "5893", "6304", "6759", "6761", "6762", "6763")

_EMAIL_LOCAL_RE = re.compile(r"^[a-z0-9.!#$%&'*+/=?^_`{|}~-]+$")
_NON_DIGIT_RE = re.compile(r"\D", re.ASCII)


def _digits_only(text: str) -> str:
    return _NON_DIGIT_RE.sub("", text)


def _is_ascii_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def has_digit_neighbour(match: PatternMatch) -> bool:
    """True if a digit sits immediately before or after the match."""
    if match.start > 0 and _is_ascii_digit(match.context[match.start - 1]):
        return True
    if match.end < len(match.context) and _is_ascii_digit(match.context[match.end]):
        return True
    return False


def is_valid_luhn(number: str) -> bool:
    """Luhn checksum over a digit string."""
    total = 0
    for index, ch in enumerate(reversed(number)):
        digit = int(ch)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_email(match: PatternMatch) -> bool:
    """Accept only syntactically sane addresses at allow-listed domains."""
    email = match.text.lower()
    local_part, _, domain = email.partition("@")

    if not 1 <= len(local_part) <= 64:
        return False
    if not _EMAIL_LOCAL_RE.match(local_part):
        return False
    if local_part.startswith(".") or local_part.endswith("."):
        return False
    if ".." in local_part:
        return False

    domain_parts = domain.split(".")
    if len(domain_parts) < 2:
        return False
    if domain_parts[-1] not in ALLOWED_TLDS:
        return False
    if ".".join(domain_parts[-2:]) not in ALLOWED_EMAIL_DOMAINS:
        return False
    if len(domain) > 255:
        return False
    return all(len(part) <= 63 for part in domain_parts)


def validate_phone_ru(match: PatternMatch) -> bool:
    """Exactly 11 digits, not embedded in a longer digit run."""
    if len(_digits_only(match.text)) != 11:
        return False
    return not has_digit_neighbour(match)


# Brand rules: (name, prefix regex, allowed lengths)
CARD_BRAND_RULES: Tuple[Tuple[str, re.Pattern, frozenset], ...] = (
    # Visa has no range table, only a leading 4 and a standard length; like
    # every brand it still needs Luhn and no digit neighbours to count
    ("visa", re.compile(r"^4"), frozenset({13, 16, 19})),
    ("mastercard", re.compile(r"^5[1-5]"), frozenset({16})),
    ("amex", re.compile(r"^3[47]"), frozenset({15})),
    ("discover", re.compile(r"^(?:6011|65|64[4-9])"), frozenset({16, 19})),
    ("mir", re.compile(r"^220[0-4]"), frozenset(range(12, 20))),
    ("jcb", re.compile(r"^35"), frozenset({16, 17, 18, 19})),
    ("unionpay", re.compile(r"^62"), frozenset({16, 17, 18, 19})),
    ("maestro", re.compile(r"^(?:%s)" % "|".join(MAESTRO_PREFIXES)), frozenset(range(12, 20))),
)


def match_card_brand(number: str) -> Optional[str]:
    """Return the first brand whose prefix and length rules accept the number."""
    for brand, prefix, lengths in CARD_BRAND_RULES:
        if prefix.match(number) and len(number) in lengths:
            return brand
    return None


def _is_plausible_card(match: PatternMatch, brand: Optional[str] = None) -> bool:
    number = _digits_only(match.text)
    if not 12 <= len(number) <= 19:
        return False

    matched_brand = match_card_brand(number)
    if matched_brand is None:
        return False
    if brand is not None and matched_brand != brand:
        return False

    if not is_valid_luhn(number):
        return False
    return not has_digit_neighbour(match)


def validate_card_number(match: PatternMatch) -> bool:
    """Generic detector: any known brand, Luhn-valid, standalone."""
    return _is_plausible_card(match)


def brand_validator(brand: str) -> Validator:
    """Build a validator that only accepts numbers of one brand."""
    def validate(match: PatternMatch) -> bool:
        return _is_plausible_card(match, brand)
    validate.__name__ = f"validate_{brand}"
    return validate


PII_PATTERNS: Tuple[PIIPattern, ...] = (
    PIIPattern(
        id="EMAIL",
        label="Email",
        regex=re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b", re.ASCII),
        severity=Severity.HIGH,
        validate=validate_email,
    ),
    PIIPattern(
        id="PHONE_RU",
        label="Phone (RU)",
        regex=re.compile(r"(?:\+7|8)[-\s(]*\d{3}[-\s)]*\d{3}[-\s]*\d{2}[-\s]*\d{2}", re.ASCII),
        severity=Severity.HIGH,
        validate=validate_phone_ru,
    ),
    PIIPattern(
        id="IPV4",
        label="IPv4 address",
        regex=re.compile(
            r"\b(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}"
            r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\b",
            re.ASCII,
        ),
        severity=Severity.MEDIUM,
    ),
    PIIPattern(
        id="CREDIT_CARD",
        label="Card number",
        regex=re.compile(r"\b(?:\d[ -]*?){12,19}\b", re.ASCII),
        severity=Severity.CRITICAL,
        validate=validate_card_number,
    ),
    PIIPattern(
        id="SENSITIVE_KEYWORDS",
        label="Sensitive keyword",
        regex=re.compile(r"\b(?:%s)\b" % "|".join(SENSITIVE_KEYWORDS), re.IGNORECASE | re.ASCII),
        severity=Severity.HIGH,
    ),
    PIIPattern(
        id="MASTERCARD",
        label="Mastercard",
        regex=re.compile(r"\b5[1-5][0-9]{14}\b", re.ASCII),
        severity=Severity.CRITICAL,
        validate=brand_validator("mastercard"),
    ),
    PIIPattern(
        id="AMEX_CARD",
        label="American Express",
        regex=re.compile(r"\b3[47][0-9]{13}\b", re.ASCII),
        severity=Severity.CRITICAL,
        validate=brand_validator("amex"),
    ),
    PIIPattern(
        id="DISCOVER_CARD",
        label="Discover",
        regex=re.compile(r"\b(?:6011|64[4-9]|65)[0-9]{12,15}\b", re.ASCII),
        severity=Severity.CRITICAL,
        validate=brand_validator("discover"),
    ),
    PIIPattern(
        id="MIR_CARD",
        label="MIR",
        regex=re.compile(r"\b220[0-4][0-9]{8,15}\b", re.ASCII),
        severity=Severity.CRITICAL,
        validate=brand_validator("mir"),
    ),
    PIIPattern(
        id="JCB_CARD",
        label="JCB",
        regex=re.compile(r"\b35[0-9]{14,17}\b", re.ASCII),
        severity=Severity.CRITICAL,
        validate=brand_validator("jcb"),
    ),
    PIIPattern(
        id="UNION_PAY_CARD",
        label="Union Pay",
        regex=re.compile(r"\b62[0-9]{14,17}\b", re.ASCII),
        severity=Severity.CRITICAL,
        validate=brand_validator("unionpay"),
    ),
    PIIPattern(
        id="MAESTRO_CARD",
        label="Maestro",
        regex=re.compile(r"\b(?:%s)[0-9]{8,15}\b" % "|".join(MAESTRO_PREFIXES), re.ASCII),
        severity=Severity.CRITICAL,
        validate=brand_validator("maestro"),
    ),
)
