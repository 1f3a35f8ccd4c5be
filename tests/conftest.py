"""
Shared fixtures.

Everything runs against in-memory stores, fake oracles and a controllable
clock; nothing touches Redis or a real model file.
"""

import os
import random
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

os.environ['ENVIRONMENT'] = 'test'

from core.config import Config
from ml_classifier.classifier import RiskClassifier
from models.cookie import Cookie
from services.notification_surface import InMemoryNotificationSurface
from services.options_service import OptionsService
from storage.cookie_store import InMemoryCookieStore
from storage.kv_store import InMemoryKeyValueStore

NOW = 1_750_000_000.0


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = NOW):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeOracle:
    """
    Oracle returning a probability pair computed from the feature vector.

    Args:
        proba: Fixed [p_not_ad, p_ad] pair, or a function of the features
    """

    def __init__(self, proba):
        self._proba = proba
        self.calls: List[List[float]] = []

    def _pair(self, vector: Sequence[float]):
        return self._proba(vector) if callable(self._proba) else self._proba

    def predict(self, vector):
        self.calls.append(list(vector))
        return 1.0

    def predict_proba(self, vector):
        return self._pair(vector)

    def predict_percent(self, vector):
        pair = self._pair(vector)
        return float(pair[1]) * 100


class FailingOracle:
    """Oracle whose every call raises."""

    def predict(self, vector):
        raise RuntimeError("model crashed")

    def predict_proba(self, vector):
        raise RuntimeError("model crashed")

    def predict_percent(self, vector):
        raise RuntimeError("model crashed")


def make_cookie(
    name: str = "tracker",
    value: str = "AbC-123_xyz",
    domain: str = ".ads.example.com",
    path: str = "/",
    secure: bool = True,
    expiration_date: Optional[float] = NOW + 86400 * 30,
    **kwargs,
) -> Cookie:
    return Cookie(
        name=name,
        value=value,
        domain=domain,
        path=path,
        secure=secure,
        expiration_date=expiration_date,
        **kwargs,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def config() -> Config:
    return Config(_env_file=None)


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def cookie_store() -> InMemoryCookieStore:
    return InMemoryCookieStore()


@pytest.fixture
def surface() -> InMemoryNotificationSurface:
    return InMemoryNotificationSurface()


@pytest.fixture
def options_service(kv_store, config) -> OptionsService:
    return OptionsService(kv_store, config, cache_seconds=0)


@pytest.fixture
def ad_oracle() -> FakeOracle:
    """Confident ad classification for every cookie."""
    return FakeOracle([0.01, 0.99])


@pytest.fixture
def classifier_factory() -> Callable[..., RiskClassifier]:
    def factory(oracle=None) -> RiskClassifier:
        return RiskClassifier(oracle=oracle)
    return factory


@pytest.fixture
def cookie_factory() -> Callable[..., Cookie]:
    return make_cookie


@pytest.fixture
def oracle_factory() -> Callable[..., FakeOracle]:
    return FakeOracle


@pytest.fixture
def failing_oracle() -> FailingOracle:
    return FailingOracle()
