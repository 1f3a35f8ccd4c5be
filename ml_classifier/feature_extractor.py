"""
Feature Extractor for Cookie Risk Classification

Turns a cookie into the fixed-length numeric vector the ad/tracking oracle
was trained on:

    [name_length, value_length, value_entropy, value_digit_ratio,
     secure, http_only, ttl_hours]
"""

import math
from typing import Any, Dict, List, Mapping, Union

import pandas as pd

from models.cookie import Cookie
from .config import FEATURE_NAMES, TRAINING_BASE_TIMESTAMP

CookieLike = Union[Cookie, Mapping[str, Any]]


def shannon_entropy(text: str) -> float:
    """
    Shannon entropy (base 2) over character frequencies.
    Higher entropy = more random (e.g., tracking IDs).
    """
    if not text:
        return 0.0

    char_counts: Dict[str, int] = {}
    for char in text:
        char_counts[char] = char_counts.get(char, 0) + 1

    length = len(text)
    entropy = 0.0
    for count in char_counts.values():
        probability = count / length
        entropy -= probability * math.log2(probability)

    return entropy


def digit_ratio(text: str) -> float:
    """Share of ASCII digits in the text."""
    if not text:
        return 0.0
    digits = sum(1 for char in text if "0" <= char <= "9")
    return digits / len(text)


class FeatureExtractor:
    """
    Extract the oracle's 7-feature vector from cookies.

    The TTL anchor is configuration: it must match whatever instant the
    oracle was calibrated against, not the current time.
    """

    def __init__(self, training_base_timestamp: float = TRAINING_BASE_TIMESTAMP):
        self.training_base_timestamp = float(training_base_timestamp)

    def extract(self, cookie: CookieLike) -> List[float]:
        """
        Extract the feature vector from a cookie.

        Args:
            cookie: Cookie model or a dict in browser API shape

        Returns:
            List of 7 floats in FEATURE_NAMES order
        """
        cookie = self._coerce(cookie)
        value = cookie.value or ""

        return [
            float(len(cookie.name or "")),
            float(len(value)),
            shannon_entropy(value),
            digit_ratio(value),
            1.0 if cookie.secure else 0.0,
            1.0 if cookie.http_only else 0.0,
            self.ttl_hours(cookie),
        ]

    def extract_batch(self, cookies: List[CookieLike]) -> pd.DataFrame:
        """
        Extract features from multiple cookies at once.

        Args:
            cookies: List of cookies

        Returns:
            pandas DataFrame with one row per cookie and FEATURE_NAMES columns
        """
        rows = [self.extract(cookie) for cookie in cookies]
        return pd.DataFrame(rows, columns=FEATURE_NAMES)

    def ttl_hours(self, cookie: Cookie) -> float:
        """Hours between the training anchor and the cookie's expiration."""
        if not cookie.expiration_date:
            return 0.0
        expiration = float(cookie.expiration_date)
        if not math.isfinite(expiration):
            return 0.0
        return (expiration - self.training_base_timestamp) / 3600

    def get_feature_names(self) -> List[str]:
        return list(FEATURE_NAMES)

    @staticmethod
    def _coerce(cookie: CookieLike) -> Cookie:
        if isinstance(cookie, Cookie):
            return cookie
        return Cookie.model_validate(dict(cookie))
