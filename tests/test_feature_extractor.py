"""
Unit Tests for FeatureExtractor

Tests feature extraction from cookie objects to ensure correctness.
"""

import math

import pytest

from ml_classifier.config import FEATURE_NAMES, TRAINING_BASE_TIMESTAMP
from ml_classifier.feature_extractor import FeatureExtractor, digit_ratio, shannon_entropy
from models.cookie import Cookie


@pytest.fixture
def extractor():
    """Fixture to create FeatureExtractor instance."""
    return FeatureExtractor()


class TestHelpers:

    def test_entropy(self):
        assert shannon_entropy("") == 0.0
        assert shannon_entropy("aaaa") == 0.0
        assert shannon_entropy("aabb") == pytest.approx(1.0)
        assert shannon_entropy("abcd") == pytest.approx(2.0)

    def test_digit_ratio(self):
        assert digit_ratio("") == 0.0
        assert digit_ratio("a1b2") == 0.5
        assert digit_ratio("1234") == 1.0


class TestVector:
    """Feature vector layout and values."""

    def test_vector_order(self, extractor):
        cookie = Cookie(
            name="_ga",
            value="a1b2",
            domain=".example.com",
            secure=True,
            httpOnly=False,
            expirationDate=TRAINING_BASE_TIMESTAMP + 7200,
        )
        features = extractor.extract(cookie)

        assert len(features) == len(FEATURE_NAMES) == 7
        assert features == pytest.approx([3.0, 4.0, 2.0, 0.5, 1.0, 0.0, 2.0])
        assert all(isinstance(value, float) for value in features)

    def test_accepts_browser_shaped_dict(self, extractor):
        features = extractor.extract({
            "name": "sid",
            "value": "x",
            "domain": "example.com",
            "httpOnly": True,
        })
        assert features[5] == 1.0

    def test_session_cookie_has_zero_ttl(self, extractor):
        cookie = Cookie(name="sid", value="x", domain="example.com")
        assert extractor.extract(cookie)[6] == 0.0

    def test_ttl_is_relative_to_training_anchor(self):
        extractor = FeatureExtractor(training_base_timestamp=0)
        cookie = Cookie(name="a", value="b", domain="example.com", expirationDate=3600 * 24)
        assert extractor.extract(cookie)[6] == pytest.approx(24.0)

    def test_expired_cookie_has_negative_ttl(self, extractor):
        cookie = Cookie(
            name="old",
            value="v",
            domain="example.com",
            expirationDate=TRAINING_BASE_TIMESTAMP - 3600,
        )
        assert extractor.extract(cookie)[6] == pytest.approx(-1.0)

    def test_all_features_finite(self, extractor):
        cookie = Cookie(name="n" * 300, value="Zz9" * 1000, domain="example.com", expirationDate=4102444800)
        assert all(math.isfinite(value) for value in extractor.extract(cookie))


class TestBatch:

    def test_extract_batch_returns_dataframe(self, extractor):
        cookies = [
            Cookie(name="a", value="1", domain="example.com"),
            Cookie(name="bb", value="22", domain="example.com"),
        ]
        frame = extractor.extract_batch(cookies)

        assert list(frame.columns) == FEATURE_NAMES
        assert frame.shape == (2, 7)
        assert frame["name_length"].tolist() == [1.0, 2.0]

    def test_feature_names(self, extractor):
        assert extractor.get_feature_names() == FEATURE_NAMES
