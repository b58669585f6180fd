import logging
import os
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

from ..exceptions import DomainException

logger = logging.getLogger(__name__)


def _env(name: str) -> str | None:
    value = (os.getenv(name) or "").strip()
    return value or None


def _rate(name: str) -> float:
    raw = _env(name)
    if raw is None:
        return 0.0
    try:
        rate = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", name, raw)
        return 0.0
    if rate < 0 or rate > 1:
        logger.warning("Ignoring %s=%r: outside [0, 1]", name, raw)
        return 0.0
    return rate


def drop_expected_errors(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """Keep rejected votes, bad payloads and other 4xx outcomes out of Sentry."""

    exc_info = hint.get("exc_info")
    if exc_info and isinstance(exc_info[1], DomainException):
        return None
    return event


def sentry_options() -> dict[str, Any] | None:
    dsn = _env("SENTRY_DSN")
    if dsn is None:
        return None
    return {
        "dsn": dsn,
        "integrations": [FastApiIntegration()],
        "environment": _env("SENTRY_ENVIRONMENT"),
        "release": _env("SENTRY_RELEASE"),
        "traces_sample_rate": _rate("SENTRY_TRACES_SAMPLE_RATE"),
        "profiles_sample_rate": _rate("SENTRY_PROFILES_SAMPLE_RATE"),
        "before_send": drop_expected_errors,
    }


def sentry_enabled() -> bool:
    return _env("SENTRY_DSN") is not None


def init_sentry() -> bool:
    options = sentry_options()
    if options is None:
        logger.info("SENTRY_DSN not provided; error reporting disabled.")
        return False
    sentry_sdk.init(**options)
    logger.info(
        "Error reporting enabled (environment=%s, release=%s)",
        options["environment"],
        options["release"],
    )
    return True
