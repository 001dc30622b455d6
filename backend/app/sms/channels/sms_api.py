"""
sms_api.py — SMS-aggregator channel (SMSAPI REST gateway).

Used directly when the clinic does not send from a media server, for
foreign numbers, and as the one-hop fallback when the media server
gives up on a domestic number.

Delivery mechanism:
    App  →  POST {SMSAPI_URL}/sms.do  (Bearer token, form-encoded)  →  Carrier

    Form fields:
        to        digits only, country code included ("48500625383")
        message   body as given
        from      sender name / number
        format    "json"
        encoding  "utf-8"

    Reply: {"count": 1, "list": [...]} on success,
           {"error": <code>, "message": "..."} on rejection.

Sender selection:
    • is_sms_with_answer → SMSAPI_2WAY_NUMBER, so replies come back
    • otherwise          → caller sender, else SMS_SENDER

The channel only texts mobile numbers on its own; force_sms_api lifts
that check for callers who know the number can take SMS.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from backend.app.core.config import settings
from backend.app.core.errors import ConfigurationError
from backend.app.core.logging_config import mask_phone
from backend.app.sms.channels.base import begin_attempt
from backend.app.sms.models import (
    DeliveryAttempt,
    DeliveryStatus,
    SendRequest,
    SmsChannelName,
    SmsType,
)

logger = logging.getLogger(__name__)

SEND_PATH = "/sms.do"


class SmsApiChannel:
    """Best-effort aggregator channel; never raises for gateway failures."""

    name = SmsChannelName.SMS_API

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        *,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        two_way_number: Optional[str] = None,
        default_sender: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        default_region: Optional[str] = None,
    ):
        self._http_client = http_client
        self.base_url = (base_url or settings.SMSAPI_URL).rstrip("/")
        self.token = token if token is not None else settings.SMSAPI_TOKEN
        self.two_way_number = (
            two_way_number if two_way_number is not None
            else settings.SMSAPI_2WAY_NUMBER
        )
        self.default_sender = default_sender or settings.SMS_SENDER
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else settings.SMSAPI_TIMEOUT_SECONDS
        )
        self.default_region = default_region

    def _get_client(self) -> httpx.Client:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.Client(timeout=self.timeout_seconds)
        return self._http_client

    def close(self) -> None:
        if self._http_client and not self._http_client.is_closed:
            self._http_client.close()

    def send(self, request: SendRequest) -> DeliveryAttempt:
        return self._deliver(
            request.recipient,
            request.body,
            request.from_,
            request.is_sms_with_answer,
            request.force_sms_api,
            request.sms_type,
        )

    def send_sms_api_sms(
        self,
        recipient: Any,
        body: str,
        from_: Optional[str] = None,
        is_sms_with_answer: bool = False,
        force_sms_api: bool = False,
        sms_type: SmsType = SmsType.OTHER,
    ) -> bool:
        return self._deliver(
            recipient, body, from_, is_sms_with_answer, force_sms_api, sms_type
        ).succeeded

    # ── internals ──

    def _sender_for(self, from_: Optional[str], is_sms_with_answer: bool) -> str:
        if is_sms_with_answer:
            if not self.two_way_number:
                raise ConfigurationError(
                    "SMSAPI_2WAY_NUMBER", "required for SMS with answer"
                )
            return self.two_way_number
        return from_ or self.default_sender

    def _deliver(
        self,
        recipient: Any,
        body: str,
        from_: Optional[str],
        is_sms_with_answer: bool,
        force_sms_api: bool,
        sms_type: SmsType,
    ) -> DeliveryAttempt:
        attempt, number = begin_attempt(
            self.name, recipient, logger, self.default_region
        )
        if number is None:
            return attempt

        if not number.is_mobile and not force_sms_api:
            logger.warning(
                "[SMS/SMSAPI] %s is not a mobile number, not sending",
                mask_phone(number.e164),
                extra={"channel": self.name.value},
            )
            return attempt.finish(
                DeliveryStatus.SKIPPED, error_message="Not a mobile number"
            )

        if not self.token:
            raise ConfigurationError("SMSAPI_TOKEN")
        sender = self._sender_for(from_, is_sms_with_answer)

        form = {
            "to": number.e164.lstrip("+"),
            "message": body,
            "from": sender,
            "format": "json",
            "encoding": "utf-8",
        }

        try:
            response = self._get_client().post(
                f"{self.base_url}{SEND_PATH}",
                data=form,
                headers={"Authorization": f"Bearer {self.token}"},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "[SMS/SMSAPI] Failed for %s: %s",
                mask_phone(number.e164),
                exc,
                exc_info=exc,
                extra={"channel": self.name.value, "sms_type": sms_type.value},
            )
            return attempt.finish(DeliveryStatus.FAILED, error_message=str(exc))

        if not isinstance(data, dict) or "error" in data:
            error = data.get("message", "") if isinstance(data, dict) else data
            logger.error(
                "[SMS/SMSAPI] Rejected for %s: %s",
                mask_phone(number.e164),
                error,
                extra={"channel": self.name.value, "sms_type": sms_type.value},
            )
            return attempt.finish(
                DeliveryStatus.FAILED,
                error_message=f"SMSAPI rejected message: {error}",
                provider_response=data if isinstance(data, dict) else None,
            )

        logger.info(
            "[SMS/SMSAPI] Sent %s SMS to %s from %s",
            sms_type.value,
            mask_phone(number.e164),
            sender,
            extra={"channel": self.name.value, "sms_type": sms_type.value},
        )
        return attempt.finish(DeliveryStatus.DELIVERED, provider_response=data)
