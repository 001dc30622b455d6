"""
dispatcher.py — Top-level SMS dispatch: gate, channel selection, fallback.

═══════════════════════════════════════════════════════════════════════════
DISPATCH FLOW
═══════════════════════════════════════════════════════════════════════════

    ┌─────────────────────┐
    │  1. Gate check      │  clinic switch, mobile recipient, body
    └─────────┬───────────┘
              │ refused → DONE (no channel touched)
              ▼
    ┌─────────────────────┐
    │  2. Channel select  │
    └─────────┬───────────┘
              │
              ├── use_twilio ─────────────────────► TWILIO            → DONE
              │
              ├── clinic sends from media server
              │       ├── foreign number ─────────► SMS_API           → DONE
              │       └── domestic number ────────► MEDIA_SERVER
              │                                        │ failed
              │                                        ▼
              │                                     SMS_API (fallback) → DONE
              │
              └── otherwise ──────────────────────► SMS_API           → DONE

Every request touches exactly one channel, or two when the single
media-server → SMS_API fallback hop is taken.  Nothing here raises for
recipient or gateway problems; ConfigurationError is the only exception
that escapes.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

from backend.app.core.config import settings
from backend.app.core.errors import ConfigurationError
from backend.app.core.logging_config import (
    reset_dispatch_context,
    set_dispatch_context,
)
from backend.app.sms.channels.base import SmsChannel
from backend.app.sms.gate import refusal_reason
from backend.app.sms.models import (
    Clinic,
    DeliveryAttempt,
    DeliveryOutcome,
    DeliveryStatus,
    Language,
    SendRequest,
    SmsType,
)
from backend.app.sms.phone_numbers import is_foreign_number

logger = logging.getLogger(__name__)


class ClinicProvider(Protocol):
    def get_current_clinic(self) -> Clinic:
        ...


class StaticClinicProvider:
    """Serves one fixed clinic snapshot."""

    def __init__(self, clinic: Clinic):
        self.clinic = clinic

    def get_current_clinic(self) -> Clinic:
        return self.clinic


class SmsDispatcher:
    """
    Chooses and invokes SMS channels for one request at a time.

    Channels are injected, so tests and alternative gateways plug in
    anything satisfying the SmsChannel protocol.
    """

    def __init__(
        self,
        clinic_provider: ClinicProvider,
        twilio_channel: SmsChannel,
        media_server_channel: SmsChannel,
        sms_api_channel: SmsChannel,
        *,
        default_region: Optional[str] = None,
        reject_empty_body: Optional[bool] = None,
    ):
        self.clinic_provider = clinic_provider
        self.twilio_channel = twilio_channel
        self.media_server_channel = media_server_channel
        self.sms_api_channel = sms_api_channel
        self.default_region = default_region or settings.SMS_DEFAULT_REGION
        self.reject_empty_body = (
            reject_empty_body
            if reject_empty_body is not None
            else settings.SMS_REJECT_EMPTY_BODY
        )

    def send_sms(
        self,
        recipient: Any,
        body: str,
        *,
        from_: Optional[str] = None,
        use_twilio: bool = False,
        is_sms_with_answer: bool = False,
        language: Language = Language.PL,
        check_send_sms: bool = True,
        sms_type: SmsType = SmsType.OTHER,
        consultation: Optional[Any] = None,
        force_sms_api: bool = False,
    ) -> DeliveryOutcome:
        """
        Send one SMS through the appropriate channel.

        Parameters
        ----------
        recipient : str | phonenumbers.PhoneNumber | User
            Anything else fails the gate when check_send_sms is set.
        body : str
            Message text.
        from_ : str | None
            Sender; each channel picks its own default when None.
        use_twilio : bool
            Force the carrier channel, with no fallback.
        check_send_sms : bool
            False skips the gate; the caller vouches for the send.

        Returns
        -------
        DeliveryOutcome
        """
        return self.send(SendRequest(
            recipient=recipient,
            body=body,
            from_=from_,
            use_twilio=use_twilio,
            is_sms_with_answer=is_sms_with_answer,
            language=language,
            check_send_sms=check_send_sms,
            sms_type=sms_type,
            consultation=consultation,
            force_sms_api=force_sms_api,
        ))

    def send(self, request: SendRequest) -> DeliveryOutcome:
        token = set_dispatch_context(
            dispatch_id=request.dispatch_id,
            sms_type=request.sms_type.value,
            language=request.language.value,
        )
        try:
            outcome = self._dispatch(request)
            logger.debug("SMS %s outcome: %s", request.dispatch_id, outcome.to_dict())
            return outcome
        finally:
            reset_dispatch_context(token)

    def close(self) -> None:
        """Close the HTTP clients held by the channels."""
        for channel in (
            self.twilio_channel,
            self.media_server_channel,
            self.sms_api_channel,
        ):
            close = getattr(channel, "close", None)
            if close is not None:
                close()

    # ── state machine ──

    def _dispatch(self, request: SendRequest) -> DeliveryOutcome:
        outcome = DeliveryOutcome()
        clinic = self.clinic_provider.get_current_clinic()

        # ── GATE_CHECK ──
        reason = refusal_reason(
            clinic,
            request.recipient,
            request.check_send_sms,
            body=request.body,
            reject_empty_body=self.reject_empty_body,
            default_region=self.default_region,
        )
        if reason is not None:
            logger.debug("SMS %s not sent: %s", request.dispatch_id, reason)
            outcome.skipped_reason = reason
            return outcome

        # ── CHANNEL_SELECT ──
        if request.use_twilio:
            outcome.record(self._invoke(self.twilio_channel, request))
            return outcome

        if clinic.send_sms_from_media_server:
            if is_foreign_number(request.recipient, self.default_region):
                logger.info(
                    "SMS %s: foreign number, bypassing media server",
                    request.dispatch_id,
                )
                outcome.record(self._invoke(self.sms_api_channel, request))
                return outcome

            primary = self._invoke(self.media_server_channel, request)
            outcome.record(primary)
            if primary.succeeded:
                return outcome

            # ── FALLBACK ──
            logger.info(
                "SMS %s: media server %s, falling back to %s",
                request.dispatch_id,
                primary.status.value,
                self.sms_api_channel.name.value,
            )
            outcome.fallback_used = True
            outcome.record(self._invoke(self.sms_api_channel, request))
            return outcome

        outcome.record(self._invoke(self.sms_api_channel, request))
        return outcome

    def _invoke(self, channel: SmsChannel, request: SendRequest) -> DeliveryAttempt:
        """Run one channel send, turning unexpected errors into a failed attempt."""
        try:
            return channel.send(request)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.error(
                "SMS %s: channel %s raised unexpectedly: %s",
                request.dispatch_id,
                channel.name.value,
                exc,
                exc_info=exc,
                extra={"channel": channel.name.value},
            )
            return DeliveryAttempt(channel=channel.name).finish(
                DeliveryStatus.FAILED, error_message=str(exc)
            )
