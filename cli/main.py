"""
Cookie Guard command line.

Usage:
    cookie-guard [--config YAML] scan VALUE [--mode simple|decode_base64] [--notify]
    cookie-guard features COOKIE_JSON
    cookie-guard classify COOKIE_JSON [--model PATH]
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from core.config import Config, init_config
from core.exceptions import CookieGuardError
from core.logging_config import configure_structlog
from ml_classifier.classifier import RiskClassifier
from ml_classifier.config import FEATURE_NAMES
from ml_classifier.feature_extractor import FeatureExtractor
from ml_classifier.oracle import JoblibOracle
from models.cookie import Cookie
from models.pii import ScanMode
from scanners.pii_scanner import scan_cookie_value_for_pii, sort_findings_by_severity
from services.notification_dedup import PIINotifier
from services.notification_surface import InMemoryNotificationSurface
from services.options_service import OptionsService
from storage.kv_store import InMemoryKeyValueStore


def _load_cookie(raw: str) -> Cookie:
    """Parse a cookie from inline JSON or from a path to a JSON file."""
    if not raw.lstrip().startswith("{"):
        try:
            path = Path(raw)
            if path.is_file():
                raw = path.read_text()
        except OSError as e:
            raise ValueError(f"cannot read cookie file: {e}") from e
    return Cookie.model_validate(json.loads(raw))


def _print(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


async def _notify_dry_run(value: str, mode: ScanMode, config: Config) -> list:
    kv_store = InMemoryKeyValueStore({"all_options": {"piiScanMode": mode.value}})
    options_service = OptionsService(kv_store, config)
    surface = InMemoryNotificationSurface()
    notifier = PIINotifier(options_service, surface)
    await notifier.maybe_notify(Cookie(name="cli", domain="localhost", value=value))
    return surface.notifications


def cmd_scan(args: argparse.Namespace) -> int:
    mode = ScanMode(args.mode)
    result = scan_cookie_value_for_pii(args.value, mode)
    payload = result.model_dump(mode="json")
    payload["found_pii"] = [
        finding.model_dump(mode="json") for finding in sort_findings_by_severity(result.found_pii)
    ]
    if args.notify:
        payload["notifications"] = asyncio.run(_notify_dry_run(args.value, mode, args.settings))
    _print(payload)
    return 0


def cmd_features(args: argparse.Namespace) -> int:
    cookie = _load_cookie(args.cookie)
    vector = FeatureExtractor().extract(cookie)
    _print(dict(zip(FEATURE_NAMES, vector)))
    return 0


def cmd_classify(args: argparse.Namespace) -> int:
    cookie = _load_cookie(args.cookie)
    model_path = args.model or args.settings.model.path
    if model_path is None:
        raise ValueError("no model given; pass --model or set MODEL_PATH")
    classifier = RiskClassifier(oracle=JoblibOracle.load(Path(model_path)))
    result = classifier.classify(cookie)
    _print({
        "cookie": cookie.key,
        "label": result.label,
        "is_ad": result.is_ad,
        "ad_probability": result.ad_probability,
        "ad_probability_percent": result.ad_probability_percent,
        "confidence": RiskClassifier.get_confidence_level(result.ad_probability),
        "failed_safe": result.failed_safe,
    })
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cookie-guard", description="Cookie PII scanning and ad classification")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    parser.add_argument("--config", type=Path, help="YAML config file (defaults to $COOKIE_GUARD_CONFIG)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Scan a cookie value for PII")
    scan.add_argument("value", help="Cookie value")
    scan.add_argument(
        "--mode",
        choices=[ScanMode.SIMPLE.value, ScanMode.DECODE_BASE64.value],
        default=ScanMode.SIMPLE.value,
        help="Scan mode",
    )
    scan.add_argument("--notify", action="store_true", help="Also show the notification that would be emitted")
    scan.set_defaults(func=cmd_scan)

    features = subparsers.add_parser("features", help="Print the classifier feature vector of a cookie")
    features.add_argument("cookie", help="Cookie JSON (inline or file path)")
    features.set_defaults(func=cmd_features)

    classify = subparsers.add_parser("classify", help="Classify a cookie as ad/tracking or not")
    classify.add_argument("cookie", help="Cookie JSON (inline or file path)")
    classify.add_argument("--model", help="Path to the joblib model file (defaults to MODEL_PATH)")
    classify.set_defaults(func=cmd_classify)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_structlog(log_level=args.log_level, json_logs=False, stream=sys.stderr)

    try:
        args.settings = init_config(yaml_config_path=args.config)
        return args.func(args)
    except (ValueError, ValidationError) as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 2
    except CookieGuardError as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
