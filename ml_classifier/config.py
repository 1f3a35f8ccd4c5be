"""
ML Classifier Configuration

Constants shared by the feature extractor and the risk classifier adapter.
"""

from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
ARTIFACTS_DIR = BASE_DIR / "artifacts"

# Model files
MODEL_FILE = ARTIFACTS_DIR / "cookie_ad_classifier.joblib"
METADATA_FILE = ARTIFACTS_DIR / "metadata.json"

# Temporal anchor the oracle was calibrated against (epoch seconds).
# TTL features are expressed in hours relative to this instant.
TRAINING_BASE_TIMESTAMP = 1707145200

# Labels
NOT_AD_LABEL = 0
AD_LABEL = 1

# Confidence thresholds (ad probability)
DEFAULT_AD_THRESHOLD = 0.95
HIGH_CONFIDENCE_THRESHOLD = 0.90
MEDIUM_CONFIDENCE_THRESHOLD = 0.60

# Upper bound for a single oracle call (seconds)
DEFAULT_CLASSIFICATION_TIMEOUT = 2.0

# Feature names, in vector order
FEATURE_NAMES = [
    "name_length",
    "value_length",
    "value_entropy",
    "value_digit_ratio",
    "secure",
    "http_only",
    "ttl_hours",
]

# Expected feature count
EXPECTED_FEATURE_COUNT = len(FEATURE_NAMES)
