"""
base.py — The contract every SMS channel satisfies.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, Tuple

from backend.app.core.logging_config import mask_phone
from backend.app.sms.models import (
    DeliveryAttempt,
    DeliveryStatus,
    SendRequest,
    SmsChannelName,
)
from backend.app.sms.phone_numbers import CanonicalNumber, resolve_number


class SmsChannel(Protocol):
    """Anything the dispatcher can route a request to."""

    name: SmsChannelName

    def send(self, request: SendRequest) -> DeliveryAttempt:
        ...


def begin_attempt(
    channel: SmsChannelName,
    recipient: Any,
    logger: logging.Logger,
    default_region: Optional[str] = None,
) -> Tuple[DeliveryAttempt, Optional[CanonicalNumber]]:
    """
    Open a SENDING attempt and resolve the target number.

    When the recipient cannot be resolved the attempt is already
    finished as SKIPPED and the number is None.
    """
    attempt = DeliveryAttempt(channel=channel, status=DeliveryStatus.SENDING)
    number = resolve_number(recipient, default_region)
    if number is None:
        logger.warning(
            "[SMS/%s] Recipient has no usable phone number, not sending",
            channel.value,
            extra={"channel": channel.value},
        )
        attempt.finish(
            DeliveryStatus.SKIPPED,
            error_message="No valid phone number for recipient",
        )
        return attempt, None

    attempt.recipient = number.e164
    logger.debug(
        "[SMS/%s] Sending to %s",
        channel.value,
        mask_phone(number.e164),
        extra={"channel": channel.value, "recipient": mask_phone(number.e164)},
    )
    return attempt, number
