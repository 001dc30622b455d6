"""
Centralised error types for SMS dispatch.

Provides:
    • Domain-specific exception classes
    • A machine-readable error code and details dict on every error

Only ConfigurationError is meant to leave the dispatch layer.  Transport
and retry errors are raised inside a channel attempt and converted to a
failed DeliveryAttempt by the channel itself; an unusable recipient is
not an error at all.

Usage:
    from backend.app.core.errors import (
        SmsDispatchError,
        ConfigurationError,
        ChannelTransportError,
        RetryExhaustedError,
    )

    raise ConfigurationError("TWILIO_AUTH_TOKEN")
"""

from __future__ import annotations

from typing import Any, Dict, Optional


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class SmsDispatchError(Exception):
    """Base exception for all dispatch errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(SmsDispatchError):
    """A channel was asked to work without the settings it requires."""

    def __init__(self, setting: str, message: str = ""):
        super().__init__(
            message=f"Setting '{setting}' is not configured"
            + (f": {message}" if message else ""),
            error_code="CONFIGURATION_ERROR",
            details={"setting": setting},
        )


class ChannelTransportError(SmsDispatchError):
    """A gateway call failed (network, HTTP status, provider rejection)."""

    def __init__(self, channel: str, message: str = "", **details: Any):
        super().__init__(
            message=f"Channel '{channel}' transport failed: {message}",
            error_code="CHANNEL_TRANSPORT_ERROR",
            details={"channel": channel, **details},
        )


class RetryExhaustedError(SmsDispatchError):
    """Every allowed attempt on a retrying channel failed."""

    def __init__(self, channel: str, attempts: int, last_error: str = ""):
        super().__init__(
            message=f"Channel '{channel}' gave up after {attempts} attempts"
            + (f": {last_error}" if last_error else ""),
            error_code="RETRY_EXHAUSTED",
            details={"channel": channel, "attempts": attempts},
        )
        self.attempts = attempts
