"""
Risk Classifier Adapter

Wraps the external oracle: extracts the feature vector, calls the oracle and
turns its noisy output into a deterministic decision. An ambiguous or broken
oracle never produces an ad label; every failure path yields label 0 with
probability 0.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from models.cookie import Cookie
from .config import (
    AD_LABEL,
    DEFAULT_CLASSIFICATION_TIMEOUT,
    HIGH_CONFIDENCE_THRESHOLD,
    MEDIUM_CONFIDENCE_THRESHOLD,
    NOT_AD_LABEL,
)
from .feature_extractor import CookieLike, FeatureExtractor
from .oracle import ClassifierOracle

logger = logging.getLogger(__name__)


@dataclass
class ClassificationResult:
    """
    Result of cookie risk classification.

    Attributes:
        label: 1 if the oracle considers the cookie ad/tracking, else 0
        ad_probability: p(ad) in [0, 1]
        ad_probability_percent: Oracle's percent figure in [0, 100]
        raw: Raw oracle score (None if unavailable)
        proba: Validated [p0, p1] pair, empty when the oracle failed
        features: Feature vector sent to the oracle
        failed_safe: Whether the result is the fail-safe default
    """

    label: int
    ad_probability: float
    ad_probability_percent: float
    raw: Optional[float] = None
    proba: List[float] = field(default_factory=list)
    features: List[float] = field(default_factory=list)
    failed_safe: bool = False

    @property
    def is_ad(self) -> bool:
        return self.label == AD_LABEL

    @classmethod
    def fail_safe(cls, features: Optional[List[float]] = None) -> "ClassificationResult":
        return cls(
            label=NOT_AD_LABEL,
            ad_probability=0.0,
            ad_probability_percent=0.0,
            features=features or [],
            failed_safe=True,
        )


def _as_probability(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or not 0.0 <= number <= 1.0:
        return None
    return number


def _as_finite(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def label_from_proba(p_not_ad: float, p_ad: float) -> int:
    """Ad label iff p(ad) strictly exceeds p(not ad); ties are not ads."""
    return AD_LABEL if p_ad > p_not_ad else NOT_AD_LABEL


class RiskClassifier:
    """
    Cookie risk classifier over an opaque oracle.

    Features:
    - Deterministic label from the oracle's probability pair
    - Output validation (finite, in range) before use
    - Timeout-bounded async classification for the chameleon tick
    """

    def __init__(
        self,
        oracle: Optional[ClassifierOracle] = None,
        feature_extractor: Optional[FeatureExtractor] = None,
    ):
        """
        Initialize the adapter.

        Args:
            oracle: External classifier; None makes every result fail safe
            feature_extractor: Feature extractor (defaults to the training anchor)
        """
        self.oracle = oracle
        self.feature_extractor = feature_extractor or FeatureExtractor()

    @property
    def available(self) -> bool:
        return self.oracle is not None

    def classify(self, cookie: CookieLike) -> ClassificationResult:
        """
        Classify a single cookie.

        Args:
            cookie: Cookie model or dict in browser API shape

        Returns:
            ClassificationResult; the fail-safe result on any oracle problem
        """
        features = self.feature_extractor.extract(cookie)

        if self.oracle is None:
            return ClassificationResult.fail_safe(features)

        try:
            raw = self.oracle.predict(features)
            proba = self.oracle.predict_proba(features)
            percent = self.oracle.predict_percent(features)
        except Exception as e:
            logger.warning(f"Classifier oracle failed for features {features}: {e}")
            return ClassificationResult.fail_safe(features)

        pair = self._validate_pair(proba)
        if pair is None:
            logger.warning(f"Classifier oracle returned unusable probabilities: {proba!r}")
            return ClassificationResult.fail_safe(features)

        p_not_ad, p_ad = pair
        percent_value = _as_finite(percent)
        percent_value = min(100.0, max(0.0, percent_value)) if percent_value is not None else 0.0

        return ClassificationResult(
            label=label_from_proba(p_not_ad, p_ad),
            ad_probability=p_ad,
            ad_probability_percent=percent_value,
            raw=_as_finite(raw),
            proba=[p_not_ad, p_ad],
            features=features,
        )

    async def classify_async(
        self,
        cookie: Cookie,
        timeout: float = DEFAULT_CLASSIFICATION_TIMEOUT,
    ) -> ClassificationResult:
        """
        Classify in a worker thread, bounded by a timeout.

        On timeout the fail-safe result is returned so the caller skips the
        cookie rather than acting on an unknown score.
        """
        try:
            return await asyncio.wait_for(asyncio.to_thread(self.classify, cookie), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Classification of cookie {cookie.key} timed out after {timeout}s")
            return ClassificationResult.fail_safe()

    def classify_batch(self, cookies: List[CookieLike]) -> List[ClassificationResult]:
        """
        Classify multiple cookies.

        Args:
            cookies: List of cookies

        Returns:
            List of ClassificationResults in input order
        """
        return [self.classify(cookie) for cookie in cookies]

    @staticmethod
    def _validate_pair(proba: Any) -> Optional[Sequence[float]]:
        if isinstance(proba, (str, bytes)):
            return None
        try:
            values = list(proba)
        except TypeError:
            return None
        if len(values) != 2:
            return None

        p_not_ad = _as_probability(values[0])
        p_ad = _as_probability(values[1])
        if p_not_ad is None or p_ad is None:
            return None
        return p_not_ad, p_ad

    @staticmethod
    def get_confidence_level(ad_probability: float) -> str:
        """
        Get human-readable confidence level.

        Args:
            ad_probability: p(ad) in [0, 1]

        Returns:
            Confidence level string
        """
        if ad_probability >= HIGH_CONFIDENCE_THRESHOLD:
            return "High"
        elif ad_probability >= MEDIUM_CONFIDENCE_THRESHOLD:
            return "Medium"
        else:
            return "Low"
