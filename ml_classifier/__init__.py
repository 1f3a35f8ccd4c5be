"""
ML-based Cookie Risk Classification Module

Adapts an external ad/tracking classifier ("oracle") to cookies:

- FeatureExtractor: 7-feature numeric vector per cookie
- ClassifierOracle / JoblibOracle: oracle call contract and a joblib-backed implementation
- RiskClassifier: validated, fail-safe ad decision with timeout support
"""

__version__ = "1.0.0"

from .feature_extractor import FeatureExtractor, shannon_entropy, digit_ratio
from .oracle import ClassifierOracle, JoblibOracle
from .classifier import ClassificationResult, RiskClassifier, label_from_proba

__all__ = [
    "FeatureExtractor",
    "shannon_entropy",
    "digit_ratio",
    "ClassifierOracle",
    "JoblibOracle",
    "ClassificationResult",
    "RiskClassifier",
    "label_from_proba",
]
