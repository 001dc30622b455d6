"""
media_server.py — HTTP SMS channel through the clinic media server.

Delivery mechanism:
    App  →  POST {MEDIA_SERVER_URL}/api/sms/send  →  media server  →  GSM line

    Request  (JSON): {"token": ..., "phone": "+48…", "message": ..., "type": ...}
    Response (JSON): {"status": ..., "line": ..., "message": ...}

═══════════════════════════════════════════════════════════════════════════
RETRY POLICY
═══════════════════════════════════════════════════════════════════════════

    A reply is a success only when its "message" carries no ERROR marker
    (matched case-sensitively, so "no errors" is a success).
    Everything else is a retryable failure:

        • reply message containing ERROR
        • non-2xx HTTP status
        • network error or per-attempt timeout
        • body that is not a valid SendSmsResponse

    Attempts are strictly sequential, each waiting for the previous one.
    The full HTTP call is re-issued every time, up to MAX_RETRY_NUMBER
    attempts in total.  An optional linear delay (delay × attempt) sits
    between attempts.  The first success returns immediately.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from backend.app.core.config import settings
from backend.app.core.errors import (
    ChannelTransportError,
    ConfigurationError,
    RetryExhaustedError,
)
from backend.app.core.logging_config import mask_phone
from backend.app.sms.channels.base import begin_attempt
from backend.app.sms.models import (
    DeliveryAttempt,
    DeliveryStatus,
    SendRequest,
    SendSmsResponse,
    SmsChannelName,
    SmsType,
)

logger = logging.getLogger(__name__)

MAX_RETRY_NUMBER = 3
ERROR_MARKER = "ERROR"
SEND_PATH = "/api/sms/send"


def is_error_response(response: SendSmsResponse) -> bool:
    return ERROR_MARKER in response.message


class MediaServerChannel:
    """
    Media-server channel with bounded retry.

    Parameters
    ----------
    http_client : httpx.Client | None
        Transport.  Created lazily with the per-attempt timeout when omitted.
    base_url, token : str | None
        Media-server endpoint and API token (default: settings).
    max_retries : int
        Total attempts allowed (default: MAX_RETRY_NUMBER).
    retry_delay_seconds : float
        Linear delay base between attempts; 0 disables waiting.
    timeout_seconds : float
        Per-attempt HTTP timeout.
    """

    name = SmsChannelName.MEDIA_SERVER

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        *,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        max_retries: int = MAX_RETRY_NUMBER,
        retry_delay_seconds: float = 0.0,
        timeout_seconds: Optional[float] = None,
        default_region: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")

        self._http_client = http_client
        self.base_url = (base_url or settings.MEDIA_SERVER_URL).rstrip("/")
        self.token = token if token is not None else settings.MEDIA_SERVER_TOKEN
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else settings.MEDIA_SERVER_TIMEOUT_SECONDS
        )
        self.default_region = default_region
        self._sleep = sleep

    def _get_client(self) -> httpx.Client:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.Client(timeout=self.timeout_seconds)
        return self._http_client

    def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            self._http_client.close()

    def send(self, request: SendRequest) -> DeliveryAttempt:
        return self._deliver(request.recipient, request.body, request.sms_type)

    def send_sms(
        self,
        recipient: Any,
        body: str,
        sms_type: SmsType = SmsType.OTHER,
    ) -> bool:
        """True when delivered; False once retries are exhausted."""
        return self._deliver(recipient, body, sms_type).succeeded

    # ── internals ──

    def _deliver(
        self,
        recipient: Any,
        body: str,
        sms_type: SmsType,
    ) -> DeliveryAttempt:
        attempt, number = begin_attempt(
            self.name, recipient, logger, self.default_region
        )
        if number is None:
            return attempt

        if not self.token:
            raise ConfigurationError("MEDIA_SERVER_TOKEN")

        payload = {
            "token": self.token,
            "phone": number.e164,
            "message": body,
            "type": sms_type.value,
        }

        try:
            response = self._send_with_retry(payload, attempt)
        except RetryExhaustedError as exc:
            logger.error(
                "[SMS/MediaServer] %s (recipient %s)",
                exc.message,
                mask_phone(number.e164),
                extra={
                    "channel": self.name.value,
                    "sms_type": sms_type.value,
                    "max_attempts": self.max_retries,
                },
            )
            return attempt.finish(
                DeliveryStatus.RETRY_EXHAUSTED,
                error_message=exc.message,
                provider_response={"attempts": exc.attempts},
            )

        logger.info(
            "[SMS/MediaServer] Sent %s SMS to %s via line %s",
            sms_type.value,
            mask_phone(number.e164),
            response.line,
            extra={"channel": self.name.value, "sms_type": sms_type.value},
        )
        return attempt.finish(
            DeliveryStatus.DELIVERED,
            provider_response={
                **response.model_dump(),
                "attempts": attempt.retry_count + 1,
            },
        )

    def _send_with_retry(
        self,
        payload: Dict[str, Any],
        attempt: DeliveryAttempt,
    ) -> SendSmsResponse:
        last_error = ""

        for attempt_num in range(1, self.max_retries + 1):
            attempt.retry_count = attempt_num - 1
            log_extra = {
                "channel": self.name.value,
                "attempt": attempt_num,
                "max_attempts": self.max_retries,
            }

            try:
                response = self._post(payload)
            except ChannelTransportError as exc:
                last_error = exc.message
                logger.warning(
                    "[SMS/MediaServer] Attempt %d/%d failed: %s",
                    attempt_num, self.max_retries, exc.message,
                    exc_info=exc,
                    extra={**log_extra, **exc.details},
                )
            else:
                if not is_error_response(response):
                    return response
                last_error = response.message
                logger.warning(
                    "[SMS/MediaServer] Attempt %d/%d rejected (status=%s): %s",
                    attempt_num, self.max_retries,
                    response.status, response.message,
                    extra=log_extra,
                )

            if attempt_num < self.max_retries and self.retry_delay_seconds > 0:
                self._sleep(self.retry_delay_seconds * attempt_num)

        raise RetryExhaustedError(self.name.value, self.max_retries, last_error)

    def _post(self, payload: Dict[str, Any]) -> SendSmsResponse:
        """One HTTP round trip; every failure surfaces as ChannelTransportError."""
        url = f"{self.base_url}{SEND_PATH}"
        start = time.monotonic()

        try:
            response = self._get_client().post(
                url, json=payload, timeout=self.timeout_seconds
            )
            response.raise_for_status()
            data = response.json()
            return SendSmsResponse.model_validate(data)
        except httpx.HTTPStatusError as exc:
            raise ChannelTransportError(
                self.name.value,
                f"HTTP {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise ChannelTransportError(self.name.value, str(exc)) from exc
        except ValueError as exc:
            # json.JSONDecodeError and pydantic.ValidationError
            raise ChannelTransportError(
                self.name.value, f"malformed response: {exc}"
            ) from exc
        finally:
            logger.debug(
                "[SMS/MediaServer] POST %s took %.0f ms",
                url, (time.monotonic() - start) * 1000,
                extra={"duration_ms": round((time.monotonic() - start) * 1000)},
            )
