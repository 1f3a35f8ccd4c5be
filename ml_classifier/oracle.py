"""
Classifier Oracle

The oracle is the external ad/tracking model. Only its call contract matters
here; `JoblibOracle` adapts any scikit-learn style binary estimator persisted
with joblib to that contract.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import joblib
import numpy as np

from core.exceptions import ModelNotFoundError, OracleError
from .config import AD_LABEL, EXPECTED_FEATURE_COUNT, METADATA_FILE, MODEL_FILE

logger = logging.getLogger(__name__)


@runtime_checkable
class ClassifierOracle(Protocol):
    """Call contract of the external classifier."""

    def predict(self, vector: Sequence[float]) -> float:
        """Raw score of the positive (ad) class decision."""
        ...

    def predict_proba(self, vector: Sequence[float]) -> Sequence[float]:
        """Two-class probability pair [p(not ad), p(ad)]."""
        ...

    def predict_percent(self, vector: Sequence[float]) -> float:
        """Ad probability as a percentage in [0, 100]."""
        ...


class JoblibOracle:
    """
    Oracle backed by a joblib-persisted scikit-learn estimator.

    The estimator must expose `predict_proba`; class columns are reordered so
    the pair is always [p(not ad), p(ad)] regardless of `classes_` order.
    """

    def __init__(self, estimator: Any, metadata: Optional[Dict[str, Any]] = None):
        if not hasattr(estimator, "predict_proba"):
            raise OracleError(
                "Estimator does not support predict_proba",
                details={"estimator": type(estimator).__name__},
            )
        self.estimator = estimator
        self.metadata = metadata or {}
        self.model_version = self.metadata.get("model_version", "unknown")
        self._ad_column = self._resolve_ad_column(estimator)

    @classmethod
    def load(cls, model_path: Optional[Path] = None, metadata_path: Optional[Path] = None) -> "JoblibOracle":
        """
        Load the estimator and its optional metadata.

        Raises:
            ModelNotFoundError: If the model file does not exist
        """
        model_path = Path(model_path or MODEL_FILE)
        if not model_path.exists():
            raise ModelNotFoundError(str(model_path))

        estimator = joblib.load(model_path)

        metadata_path = Path(metadata_path or model_path.with_name(METADATA_FILE.name))
        metadata: Dict[str, Any] = {}
        if metadata_path.exists():
            with open(metadata_path) as f:
                metadata = json.load(f)

        oracle = cls(estimator, metadata)
        logger.info(f"Loaded classifier oracle {type(estimator).__name__} v{oracle.model_version} from {model_path}")
        return oracle

    @staticmethod
    def _resolve_ad_column(estimator: Any) -> int:
        classes = list(getattr(estimator, "classes_", [0, 1]))
        if len(classes) != 2:
            raise OracleError(
                f"Expected a binary estimator, got {len(classes)} classes",
                details={"classes": [str(c) for c in classes]},
            )
        for index, cls_label in enumerate(classes):
            if cls_label == AD_LABEL or str(cls_label) == str(AD_LABEL):
                return index
        return 1

    def _as_matrix(self, vector: Sequence[float]) -> np.ndarray:
        matrix = np.asarray([list(vector)], dtype=float)
        if matrix.shape[1] != EXPECTED_FEATURE_COUNT:
            raise OracleError(
                f"Expected {EXPECTED_FEATURE_COUNT} features, got {matrix.shape[1]}"
            )
        return matrix

    def predict(self, vector: Sequence[float]) -> float:
        matrix = self._as_matrix(vector)
        if hasattr(self.estimator, "decision_function"):
            return float(np.ravel(self.estimator.decision_function(matrix))[0])
        return float(np.ravel(self.estimator.predict(matrix))[0])

    def predict_proba(self, vector: Sequence[float]) -> List[float]:
        probabilities = self.estimator.predict_proba(self._as_matrix(vector))[0]
        p_ad = float(probabilities[self._ad_column])
        p_not_ad = float(probabilities[1 - self._ad_column])
        return [p_not_ad, p_ad]

    def predict_percent(self, vector: Sequence[float]) -> float:
        return round(self.predict_proba(vector)[1] * 100, 2)
