"""
Unit Tests for the risk classifier adapter and the joblib oracle.
"""

import math
import time

import joblib
import numpy as np
import pytest
from sklearn.linear_model import LogisticRegression

from core.exceptions import ModelNotFoundError, OracleError
from ml_classifier.classifier import ClassificationResult, RiskClassifier, label_from_proba
from ml_classifier.oracle import ClassifierOracle, JoblibOracle


class TestLabelRule:

    def test_strictly_greater_is_ad(self):
        assert label_from_proba(0.2, 0.8) == 1
        assert label_from_proba(0.8, 0.2) == 0

    def test_tie_is_not_ad(self):
        assert label_from_proba(0.5, 0.5) == 0


class TestClassify:

    def test_confident_ad(self, classifier_factory, oracle_factory, cookie_factory):
        classifier = classifier_factory(oracle_factory([0.03, 0.97]))
        result = classifier.classify(cookie_factory())

        assert result.label == 1
        assert result.is_ad
        assert result.ad_probability == pytest.approx(0.97)
        assert result.ad_probability_percent == pytest.approx(97.0)
        assert result.proba == pytest.approx([0.03, 0.97])
        assert result.failed_safe is False
        assert len(result.features) == 7

    def test_not_ad(self, classifier_factory, oracle_factory, cookie_factory):
        result = classifier_factory(oracle_factory([0.9, 0.1])).classify(cookie_factory())
        assert result.label == 0
        assert result.ad_probability == pytest.approx(0.1)

    def test_no_oracle_fails_safe(self, classifier_factory, cookie_factory):
        classifier = classifier_factory(None)
        result = classifier.classify(cookie_factory())

        assert classifier.available is False
        assert result.failed_safe
        assert result.label == 0
        assert result.ad_probability == 0.0

    def test_oracle_exception_fails_safe(self, classifier_factory, failing_oracle, cookie_factory):
        result = classifier_factory(failing_oracle).classify(cookie_factory())
        assert result.failed_safe
        assert result.label == 0

    @pytest.mark.parametrize("proba", [
        [0.5],
        [0.1, 0.2, 0.7],
        [math.nan, 0.99],
        [0.01, math.inf],
        [-0.1, 1.1],
        "0.1,0.9",
        None,
    ])
    def test_unusable_probabilities_fail_safe(self, classifier_factory, oracle_factory, cookie_factory, proba):
        oracle = oracle_factory(proba)
        oracle.predict_percent = lambda vector: 50.0
        result = classifier_factory(oracle).classify(cookie_factory())

        assert result.failed_safe
        assert result.label == 0
        assert result.ad_probability == 0.0

    def test_percent_is_clamped(self, classifier_factory, oracle_factory, cookie_factory):
        oracle = oracle_factory([0.0, 1.0])
        oracle.predict_percent = lambda vector: 250.0
        result = classifier_factory(oracle).classify(cookie_factory())
        assert result.ad_probability_percent == 100.0

    def test_batch_preserves_order(self, classifier_factory, oracle_factory, cookie_factory):
        oracle = oracle_factory(lambda features: [0.1, 0.9] if features[0] > 3 else [0.9, 0.1])
        results = classifier_factory(oracle).classify_batch([
            cookie_factory(name="long_name"),
            cookie_factory(name="ab"),
        ])
        assert [r.label for r in results] == [1, 0]

    @pytest.mark.parametrize("probability,level", [(0.95, "High"), (0.7, "Medium"), (0.2, "Low")])
    def test_confidence_level(self, probability, level):
        assert RiskClassifier.get_confidence_level(probability) == level

    def test_fake_oracle_satisfies_protocol(self, ad_oracle):
        assert isinstance(ad_oracle, ClassifierOracle)


class TestClassifyAsync:

    async def test_returns_result(self, classifier_factory, ad_oracle, cookie_factory):
        result = await classifier_factory(ad_oracle).classify_async(cookie_factory(), timeout=2.0)
        assert result.is_ad

    async def test_timeout_fails_safe(self, classifier_factory, oracle_factory, cookie_factory):
        def slow(features):
            time.sleep(0.5)
            return [0.0, 1.0]

        result = await classifier_factory(oracle_factory(slow)).classify_async(cookie_factory(), timeout=0.05)
        assert result.failed_safe
        assert result.label == 0


class ReversedClassesEstimator:
    classes_ = np.array([1, 0])

    def predict_proba(self, matrix):
        return np.array([[0.8, 0.2]])

    def predict(self, matrix):
        return np.array([1])


class TestJoblibOracle:

    @pytest.fixture
    def model_path(self, tmp_path):
        # value_length separates the classes
        rows, labels = [], []
        for i in range(20):
            rows.append([3, 5 + i % 3, 1.5, 0.0, 0, 1, 0.0])
            labels.append(0)
            rows.append([4, 80 + i % 5, 4.5, 0.4, 1, 0, 9000.0])
            labels.append(1)
        estimator = LogisticRegression(max_iter=1000).fit(np.array(rows, dtype=float), labels)

        path = tmp_path / "model.joblib"
        joblib.dump(estimator, path)
        return path

    def test_load_and_classify(self, model_path, cookie_factory):
        oracle = JoblibOracle.load(model_path)
        vector = [4, 82, 4.5, 0.4, 1, 0, 9000.0]

        proba = oracle.predict_proba(vector)
        assert len(proba) == 2
        assert sum(proba) == pytest.approx(1.0)
        assert proba[1] > proba[0]
        assert oracle.predict_percent(vector) == pytest.approx(round(proba[1] * 100, 2))
        assert isinstance(oracle.predict(vector), float)

    def test_classifier_over_loaded_model(self, model_path, cookie_factory):
        classifier = RiskClassifier(oracle=JoblibOracle.load(model_path))
        result = classifier.classify(cookie_factory(value="s"))
        assert isinstance(result, ClassificationResult)
        assert 0.0 <= result.ad_probability <= 1.0

    def test_missing_model(self, tmp_path):
        with pytest.raises(ModelNotFoundError):
            JoblibOracle.load(tmp_path / "absent.joblib")

    def test_reordered_classes(self):
        oracle = JoblibOracle(ReversedClassesEstimator())
        assert oracle.predict_proba([0] * 7) == pytest.approx([0.2, 0.8])

    def test_estimator_without_proba(self):
        with pytest.raises(OracleError):
            JoblibOracle(object())

    def test_wrong_feature_count(self):
        oracle = JoblibOracle(ReversedClassesEstimator())
        with pytest.raises(OracleError):
            oracle.predict_proba([0, 1, 2])
