"""
Structured logging configuration using structlog.

Every service module logs snake_case events with key/value context. Cookie
values are personal data, so any event field that carries one is masked
before rendering; the chameleon tick binds its id into the context so all
events of one pass can be correlated.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional, TextIO

import structlog
from structlog.types import EventDict, Processor

APP_NAME = 'cookie-guard'
APP_VERSION = '1.0.0'

# Event fields that may hold raw cookie content
REDACTED_FIELDS = frozenset({'value', 'cookie_value', 'original_text', 'decoded_text', 'new_value'})


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp the service name and version on each entry."""
    event_dict['app'] = APP_NAME
    event_dict['version'] = APP_VERSION
    return event_dict


def normalize_log_level(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    # 'warn' is an alias; report it as 'warning'
    event_dict['level'] = 'warning' if method_name == 'warn' else method_name
    return event_dict


def redact_cookie_values(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Mask raw cookie content.

    Strings are replaced by their length so entries stay useful for
    debugging without carrying the value itself.
    """
    for key in REDACTED_FIELDS.intersection(event_dict):
        raw = event_dict[key]
        if isinstance(raw, str):
            event_dict[key] = f'<redacted {len(raw)} chars>'
        elif raw is not None:
            event_dict[key] = '<redacted>'
    return event_dict


def build_processors(json_logs: bool, development_mode: bool) -> list:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        normalize_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        redact_cookie_values,
        structlog.processors.CallsiteParameterAdder(
            [
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if development_mode or not json_logs:
        processors.append(structlog.dev.ConsoleRenderer(colors=development_mode))
    else:
        processors.append(structlog.processors.JSONRenderer())
    return processors


def configure_structlog(
    log_level: str = 'INFO',
    json_logs: bool = True,
    development_mode: bool = False,
    stream: Optional[TextIO] = None
) -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines instead of console output
        development_mode: Colored console output
        stream: Output stream (stdout by default; the CLI logs to stderr)
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    stream = stream or sys.stdout

    # config, storage, scanners and the classifier log through the stdlib
    logging.basicConfig(format="%(levelname)s %(name)s: %(message)s", stream=stream, level=numeric_level)

    structlog.configure(
        processors=build_processors(json_logs, development_mode),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Structured logger, typically `get_logger(__name__)`."""
    if name:
        return structlog.get_logger(name)
    return structlog.get_logger()


@contextmanager
def bound_context(**kwargs: Any) -> Iterator[None]:
    """
    Bind fields for the duration of a block, e.g. one chameleon tick.

    Previously bound values of the same keys are restored on exit.
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
