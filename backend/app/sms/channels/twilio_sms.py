"""
twilio_sms.py — Carrier SMS channel via the Twilio REST API.

Delivery mechanism:
    App  →  twilio.rest.Client.messages.create(to, from_, body)  →  Carrier

Sender selection (first match wins):
    1. The clinic's own Twilio number, when local SMS is enabled for it
    2. The caller-supplied sender
    3. TWILIO_SMS_NUMBER_US for +1 destinations, when configured
    4. TWILIO_SMS_NUMBER

Body rules:
    • always trimmed of leading / trailing whitespace
    • prefixed with "<clinic name>: " when the recipient is a known User
      (bare phone strings and PhoneNumber objects are sent unmodified)

The clinic is the recipient user's own clinic when it has one, otherwise
the current clinic from the clinic provider.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from twilio.rest import Client

from backend.app.core.config import Settings, settings
from backend.app.core.errors import ConfigurationError
from backend.app.core.logging_config import mask_phone
from backend.app.sms.channels.base import begin_attempt
from backend.app.sms.models import (
    Clinic,
    DeliveryAttempt,
    DeliveryStatus,
    SendRequest,
    SmsChannelName,
    SmsType,
)
from backend.app.sms.phone_numbers import CanonicalNumber, Recipient

logger = logging.getLogger(__name__)

_NANP_COUNTRY_CODE = 1


def get_twilio_client(app_settings: Optional[Settings] = None) -> Client:
    app_settings = app_settings or settings

    if not app_settings.TWILIO_ACCOUNT_SID:
        raise ConfigurationError("TWILIO_ACCOUNT_SID")
    if not app_settings.TWILIO_AUTH_TOKEN:
        raise ConfigurationError("TWILIO_AUTH_TOKEN")

    return Client(app_settings.TWILIO_ACCOUNT_SID, app_settings.TWILIO_AUTH_TOKEN)


class TwilioSmsChannel:
    """
    Best-effort carrier channel.

    Parameters
    ----------
    clinic_provider
        Supplies the current clinic (``get_current_clinic()``).
    client : twilio.rest.Client | None
        Any object with ``messages.create``.  Created from settings on
        first use when omitted.
    default_sender, us_sender : str | None
        Fallback senders; see module docstring for precedence.
    """

    name = SmsChannelName.TWILIO

    def __init__(
        self,
        clinic_provider: Any,
        client: Optional[Any] = None,
        *,
        default_sender: Optional[str] = None,
        us_sender: Optional[str] = None,
        default_region: Optional[str] = None,
        app_settings: Optional[Settings] = None,
    ):
        self.clinic_provider = clinic_provider
        self._client = client
        self.app_settings = app_settings
        self.default_sender = default_sender
        self.us_sender = us_sender
        self.default_region = default_region

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_twilio_client(self.app_settings)
        return self._client

    def send(self, request: SendRequest) -> DeliveryAttempt:
        return self._deliver(
            request.recipient,
            request.body,
            request.from_,
            request.is_sms_with_answer,
            request.sms_type,
        )

    def send_twilio_sms(
        self,
        recipient: Any,
        body: str,
        from_: Optional[str] = None,
        is_sms_with_answer: bool = False,
        sms_type: SmsType = SmsType.OTHER,
    ) -> bool:
        """Send one SMS; True when Twilio accepted it."""
        return self._deliver(
            recipient, body, from_, is_sms_with_answer, sms_type
        ).succeeded

    # ── internals ──

    def _clinic_for(self, recipient: Optional[Recipient]) -> Optional[Clinic]:
        user = recipient.user if recipient else None
        if user is not None and user.clinic is not None:
            return user.clinic
        return self.clinic_provider.get_current_clinic()

    def _sender_for(
        self,
        clinic: Optional[Clinic],
        from_: Optional[str],
        number: CanonicalNumber,
    ) -> str:
        if clinic is not None and clinic.local_sender:
            return clinic.local_sender
        if from_:
            return from_
        if number.country_code == _NANP_COUNTRY_CODE and self.us_sender:
            return self.us_sender
        if self.default_sender:
            return self.default_sender
        raise ConfigurationError("TWILIO_SMS_NUMBER", "no sender for carrier SMS")

    def _deliver(
        self,
        recipient: Any,
        body: str,
        from_: Optional[str],
        is_sms_with_answer: bool,
        sms_type: SmsType,
    ) -> DeliveryAttempt:
        attempt, number = begin_attempt(
            self.name, recipient, logger, self.default_region
        )
        if number is None:
            return attempt

        tagged = Recipient.of(recipient)
        clinic = self._clinic_for(tagged)
        sender = self._sender_for(clinic, from_, number)
        client = self.client

        text = body.strip()
        if tagged is not None and tagged.user is not None and clinic and clinic.name:
            text = f"{clinic.name}: {text}"

        try:
            message = client.messages.create(
                to=number.e164,
                from_=sender,
                body=text,
            )
        except Exception as exc:
            logger.error(
                "[SMS/Twilio] Failed for %s: %s",
                mask_phone(number.e164),
                exc,
                exc_info=exc,
                extra={"channel": self.name.value, "sms_type": sms_type.value},
            )
            return attempt.finish(DeliveryStatus.FAILED, error_message=str(exc))

        logger.info(
            "[SMS/Twilio] Sent %s SMS to %s from %s (%d chars, answer=%s)",
            sms_type.value,
            mask_phone(number.e164),
            sender,
            len(text),
            is_sms_with_answer,
            extra={"channel": self.name.value, "sms_type": sms_type.value},
        )
        return attempt.finish(
            DeliveryStatus.DELIVERED,
            provider_response={
                "sid": getattr(message, "sid", None),
                "to": number.e164,
                "from": sender,
            },
        )
