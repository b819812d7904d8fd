"""Sentry error tracking for the intake service.

Initialised once at startup by the CLI. When no DSN is configured every
helper here is a no-op, so callers never need to check first.

Usage:
    from tanggap.sentry import capture_exception
    try:
        await processor.process(message)
    except Exception as e:
        capture_exception(e)
        raise
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, cast

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

if TYPE_CHECKING:
    from sentry_sdk._types import Event, Hint

logger = logging.getLogger(__name__)

_initialized = False

SENSITIVE_KEYS = {
    "token",
    "access_token",
    "api_key",
    "apikey",
    "x-api-key",
    "secret",
    "password",
    "authorization",
    "bearer",
    "jwt_secret",
    "admin_password",
    "whatsapp_access_token",
    "whatsapp_app_secret",
    "telegram_bot_token",
    "sentry_dsn",
}


def init_sentry(
    dsn: str | None = None,
    environment: str = "production",
    release: str | None = None,
    traces_sample_rate: float = 0.1,
) -> bool:
    """Initialise the Sentry SDK.

    Args:
        dsn: Sentry DSN. Empty or None disables error tracking.
        environment: Environment name reported with every event.
        release: Release string. Defaults to the installed package version.
        traces_sample_rate: Sample rate for performance tracing (0.0-1.0).

    Returns:
        True if Sentry was initialised, False if skipped.
    """
    global _initialized

    if _initialized:
        return True

    if not dsn:
        logger.info("No SENTRY_DSN configured, error tracking disabled")
        return False

    if release is None:
        from importlib.metadata import PackageNotFoundError, version

        try:
            release = f"tanggap-darurat@{version('tanggap-darurat')}"
        except PackageNotFoundError:
            release = "tanggap-darurat@unknown"

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=release,
        traces_sample_rate=traces_sample_rate,
        integrations=[
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        # Reporter phone numbers are personal data
        send_default_pii=False,
        attach_stacktrace=True,
        before_send=_before_send,
    )

    _initialized = True
    logger.info(f"Sentry initialized: environment={environment}, release={release}")
    return True


def _before_send(event: Event, hint: Hint) -> Event | None:
    """Drop expected network noise and scrub credentials before sending."""
    if "exc_info" in hint:
        exc_type, _, _ = hint["exc_info"]
        if exc_type.__name__ in ("TimeoutError", "ConnectTimeout", "ReadTimeout"):
            return None

    if "request" in event:
        _scrub_dict(cast(dict[str, Any], event["request"]))

    if "breadcrumbs" in event:
        breadcrumbs = cast(dict[str, Any], event["breadcrumbs"])
        for breadcrumb in breadcrumbs.get("values", []):
            if "data" in breadcrumb:
                _scrub_dict(breadcrumb["data"])

    return event


def _scrub_dict(data: dict[str, Any]) -> None:
    """Replace sensitive values in-place, recursing into nested dicts."""
    for key in list(data.keys()):
        if key.lower() in SENSITIVE_KEYS:
            data[key] = "[REDACTED]"
        elif isinstance(data[key], dict):
            _scrub_dict(data[key])


def set_user_context(user_id: str | None = None, role: str | None = None) -> None:
    """Attach the acting user to the current scope (never the phone number)."""
    if not _initialized:
        return

    user_data: dict[str, Any] = {}
    if user_id is not None:
        user_data["id"] = str(user_id)
    if role is not None:
        user_data["role"] = role

    if user_data:
        sentry_sdk.set_user(user_data)


def set_tag(key: str, value: str) -> None:
    if not _initialized:
        return
    sentry_sdk.set_tag(key, value)


def capture_exception(exception: BaseException | None = None) -> str | None:
    """Capture an exception. Returns the event ID, or None when disabled."""
    if not _initialized:
        return None
    return sentry_sdk.capture_exception(exception)


def flush(timeout: float = 2.0) -> None:
    if not _initialized:
        return
    sentry_sdk.flush(timeout=timeout)


def is_enabled() -> bool:
    return _initialized
