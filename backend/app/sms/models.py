"""
models.py — Shared data structures for SMS dispatch.

Defines:
    • SmsType         — why the SMS is being sent
    • Language        — recipient language carried with a request
    • SmsChannelName  — delivery channel enum
    • DeliveryStatus  — per-attempt delivery state
    • Clinic / User   — read-only collaborator records
    • SendRequest     — one dispatch request
    • DeliveryAttempt — single channel send record
    • DeliveryOutcome — what the dispatcher did for one request
    • SendSmsResponse — media-server JSON reply

═══════════════════════════════════════════════════════════════════════════
CHANNEL SELECTION
═══════════════════════════════════════════════════════════════════════════

    Condition                               Channel(s)
    ─────────────────────────────────────   ─────────────────────────────
    gate refuses                            none
    use_twilio                              TWILIO
    clinic sends from media server,         MEDIA_SERVER → SMS_API on fail
      domestic number
    clinic sends from media server,         SMS_API
      foreign number
    otherwise                               SMS_API

At most one fallback hop is ever taken, so a request touches one channel,
or two when the media server fails for a domestic number.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from phonenumbers import PhoneNumber, PhoneNumberFormat, format_number
from pydantic import BaseModel


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class SmsType(str, Enum):
    """Business reason for an SMS, forwarded to the gateways."""
    OTHER              = "other"
    PING_DOCTOR_BY_SMS = "ping_doctor_by_sms"
    SEND_CABIN_SMS     = "send_cabin_sms"


class Language(str, Enum):
    PL      = "pl"
    DEFAULT = "default"
    EN      = "en"
    RU      = "ru"


class SmsChannelName(str, Enum):
    """Available SMS channels."""
    NONE         = "none"
    TWILIO       = "twilio"
    MEDIA_SERVER = "media_server"
    SMS_API      = "sms_api"


class DeliveryStatus(str, Enum):
    """Delivery state of one channel attempt."""
    PENDING         = "pending"          # built, not yet sent
    SENDING         = "sending"          # gateway call in progress
    DELIVERED       = "delivered"        # gateway accepted the message
    FAILED          = "failed"           # gateway or transport rejected it
    RETRY_EXHAUSTED = "retry_exhausted"  # every allowed attempt failed
    SKIPPED         = "skipped"          # recipient not usable on this channel

    @property
    def is_success(self) -> bool:
        return self is DeliveryStatus.DELIVERED


# ═══════════════════════════════════════════════════════════════════════════
# Collaborator Records
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Clinic:
    """
    Dispatch-relevant clinic configuration (owned by clinic management).

    Attributes
    ----------
    name : str
        Prefixed to carrier SMS bodies sent to known users.
    send_sms_enabled : bool
        Master switch checked by the delivery gate.
    send_sms_from_media_server : bool
        Route domestic SMS through the clinic's media server first.
    local_twilio_sms_enabled : bool
        Use the clinic's own Twilio number as the carrier sender.
    local_twilio_sms_number : str | None
        The clinic's own Twilio number.
    """
    name: str = ""
    send_sms_enabled: bool = True
    send_sms_from_media_server: bool = False
    local_twilio_sms_enabled: bool = False
    local_twilio_sms_number: Optional[str] = None

    @property
    def local_sender(self) -> Optional[str]:
        """The clinic-local carrier sender, when enabled and set."""
        if self.local_twilio_sms_enabled and self.local_twilio_sms_number:
            return self.local_twilio_sms_number
        return None


@dataclass
class User:
    """A known user of the application who can receive SMS."""
    user_id: str = ""
    phone_number: Optional[PhoneNumber] = None
    clinic: Optional[Clinic] = None

    @property
    def readable_phone_number(self) -> Optional[str]:
        if self.phone_number is None:
            return None
        return format_number(self.phone_number, PhoneNumberFormat.E164)


# ═══════════════════════════════════════════════════════════════════════════
# Request / Result Structures
# ═══════════════════════════════════════════════════════════════════════════

def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SendRequest:
    """
    One SMS dispatch request.  Built per call and never persisted.

    recipient may be a raw phone string, a phonenumbers.PhoneNumber or a
    User; anything else is unresolvable and fails the gate.
    """
    recipient: Any
    body: str
    from_: Optional[str] = None  # None lets each channel pick its sender
    use_twilio: bool = False
    is_sms_with_answer: bool = False
    language: Language = Language.PL
    check_send_sms: bool = True
    sms_type: SmsType = SmsType.OTHER
    consultation: Optional[Any] = None
    force_sms_api: bool = False
    dispatch_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])


@dataclass
class DeliveryAttempt:
    """Record of one send on one channel (retries included)."""
    attempt_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    channel: SmsChannelName = SmsChannelName.NONE
    recipient: Optional[str] = None  # E.164, when it could be resolved
    status: DeliveryStatus = DeliveryStatus.PENDING
    attempted_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    retry_count: int = 0
    error_message: Optional[str] = None
    provider_response: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.status.is_success

    def finish(
        self,
        status: DeliveryStatus,
        *,
        error_message: Optional[str] = None,
        provider_response: Optional[Dict[str, Any]] = None,
    ) -> "DeliveryAttempt":
        self.status = status
        self.completed_at = _now()
        if error_message is not None:
            self.error_message = error_message
        if provider_response is not None:
            self.provider_response = provider_response
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "channel": self.channel.value,
            "status": self.status.value,
            "attempted_at": self.attempted_at.isoformat(),
            "completed_at": (
                self.completed_at.isoformat() if self.completed_at else None
            ),
            "retry_count": self.retry_count,
            "error_message": self.error_message,
        }


@dataclass
class DeliveryOutcome:
    """What the dispatcher did for one request."""
    attempted: bool = False
    channel_used: SmsChannelName = SmsChannelName.NONE
    succeeded: bool = False
    fallback_used: bool = False
    skipped_reason: Optional[str] = None
    attempts: List[DeliveryAttempt] = field(default_factory=list)

    @property
    def channels_invoked(self) -> List[SmsChannelName]:
        return [a.channel for a in self.attempts]

    def record(self, attempt: DeliveryAttempt) -> None:
        """Register a channel attempt; the latest one decides the outcome."""
        self.attempts.append(attempt)
        self.attempted = True
        self.channel_used = attempt.channel
        self.succeeded = attempt.succeeded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "channel_used": self.channel_used.value,
            "succeeded": self.succeeded,
            "fallback_used": self.fallback_used,
            "skipped_reason": self.skipped_reason,
            "attempts": [a.to_dict() for a in self.attempts],
        }


class SendSmsResponse(BaseModel):
    """Media-server reply to a send request."""
    status: str
    line: str
    message: str
