"""
test_twilio_channel.py — Tests for the Twilio carrier channel.

Covers:
    • Client construction from settings
    • Body trimming and the clinic-name prefix for known users
    • Sender precedence (clinic-local number, caller, +1 number, default)
    • Failures logged and reported, never raised

Run with:
    pytest tests/test_twilio_channel.py -v
"""

from __future__ import annotations

import logging
from typing import Optional
from unittest.mock import MagicMock

import phonenumbers
import pytest

from backend.app.core.config import Settings
from backend.app.core.errors import ConfigurationError
from backend.app.sms.channels.twilio_sms import TwilioSmsChannel, get_twilio_client
from backend.app.sms.models import (
    Clinic,
    DeliveryStatus,
    SendRequest,
    SmsChannelName,
    User,
)


# ═══════════════════════════════════════════════════════════════════════════
# Test Fixtures
# ═══════════════════════════════════════════════════════════════════════════

MOBILE = "+48500625383"
USER_NUMBER = "+48501635383"
DEFAULT_SENDER = "+48222000111"
US_SENDER = "+12025550000"


def _make_clinic(
    name: str = "Test123",
    local_enabled: bool = False,
    local_number: Optional[str] = None,
) -> Clinic:
    return Clinic(
        name=name,
        local_twilio_sms_enabled=local_enabled,
        local_twilio_sms_number=local_number,
    )


def _make_user(clinic: Optional[Clinic] = None) -> User:
    return User(
        user_id="u-1",
        phone_number=phonenumbers.parse(USER_NUMBER),
        clinic=clinic,
    )


def _make_channel(
    clinic: Optional[Clinic] = None,
    client: Optional[MagicMock] = None,
    default_sender: Optional[str] = DEFAULT_SENDER,
    us_sender: Optional[str] = US_SENDER,
) -> TwilioSmsChannel:
    provider = MagicMock()
    provider.get_current_clinic.return_value = clinic or _make_clinic()
    if client is None:
        client = MagicMock()
        client.messages.create.return_value = MagicMock(sid="SM123")
    return TwilioSmsChannel(
        provider,
        client,
        default_sender=default_sender,
        us_sender=us_sender,
        default_region="PL",
    )


def _sent(channel: TwilioSmsChannel) -> dict:
    """Keyword arguments of the single messages.create call."""
    channel.client.messages.create.assert_called_once()
    return channel.client.messages.create.call_args.kwargs


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Client Construction
# ═══════════════════════════════════════════════════════════════════════════

class TestGetTwilioClient:
    """Test building the REST client from settings."""

    def test_missing_sid(self):
        cfg = Settings(_env_file=None, TWILIO_AUTH_TOKEN="token")
        with pytest.raises(ConfigurationError) as exc_info:
            get_twilio_client(cfg)
        assert exc_info.value.details["setting"] == "TWILIO_ACCOUNT_SID"

    def test_missing_token(self):
        cfg = Settings(_env_file=None, TWILIO_ACCOUNT_SID="AC123")
        with pytest.raises(ConfigurationError) as exc_info:
            get_twilio_client(cfg)
        assert exc_info.value.details["setting"] == "TWILIO_AUTH_TOKEN"

    def test_lazy_client_needs_credentials(self):
        provider = MagicMock()
        provider.get_current_clinic.return_value = _make_clinic()
        channel = TwilioSmsChannel(
            provider, app_settings=Settings(_env_file=None)
        )
        with pytest.raises(ConfigurationError):
            channel.send_twilio_sms(MOBILE, "Hi", from_=DEFAULT_SENDER)


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Body
# ═══════════════════════════════════════════════════════════════════════════

class TestTwilioBody:
    """Test trimming and the clinic-name prefix."""

    def test_raw_number_body_trimmed_without_prefix(self):
        channel = _make_channel()
        assert channel.send_twilio_sms(MOBILE, "  Hello  \n") is True
        assert _sent(channel)["body"] == "Hello"

    def test_phone_number_object_without_prefix(self):
        channel = _make_channel()
        channel.send_twilio_sms(phonenumbers.parse(MOBILE), "Hello")
        assert _sent(channel)["body"] == "Hello"

    def test_user_gets_current_clinic_prefix(self):
        channel = _make_channel(clinic=_make_clinic(name="Test123"))
        channel.send_twilio_sms(_make_user(), " Hello ")
        assert _sent(channel)["body"] == "Test123: Hello"

    def test_user_own_clinic_wins(self):
        channel = _make_channel(clinic=_make_clinic(name="Current"))
        user = _make_user(clinic=_make_clinic(name="#4!$$%\nTest7"))
        channel.send_twilio_sms(user, "Hello")
        assert _sent(channel)["body"] == "#4!$$%\nTest7: Hello"

    def test_user_number_sent_in_e164(self):
        channel = _make_channel()
        channel.send_twilio_sms(_make_user(), "Hello")
        assert _sent(channel)["to"] == USER_NUMBER

    @pytest.mark.parametrize("raw", ["500625383", "+48 500 625 383", "500-625-383"])
    def test_raw_numbers_normalised(self, raw):
        channel = _make_channel()
        channel.send_twilio_sms(raw, "Hello")
        assert _sent(channel)["to"] == MOBILE


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Sender Selection
# ═══════════════════════════════════════════════════════════════════════════

class TestTwilioSender:
    """Test sender precedence."""

    def test_default_sender(self):
        channel = _make_channel()
        channel.send_twilio_sms(MOBILE, "Hi")
        assert _sent(channel)["from_"] == DEFAULT_SENDER

    def test_caller_sender(self):
        channel = _make_channel()
        channel.send_twilio_sms(MOBILE, "Hi", from_="+48999888777")
        assert _sent(channel)["from_"] == "+48999888777"

    def test_clinic_local_number_overrides_caller(self):
        clinic = _make_clinic(local_enabled=True, local_number="123456789")
        channel = _make_channel(clinic=clinic)
        channel.send_twilio_sms(MOBILE, "Hi", from_="+48999888777")
        assert _sent(channel)["from_"] == "123456789"

    def test_user_clinic_local_number(self):
        clinic = _make_clinic(local_enabled=True, local_number="123456789")
        channel = _make_channel()
        channel.send_twilio_sms(_make_user(clinic=clinic), "Hi")
        assert _sent(channel)["from_"] == "123456789"

    def test_local_number_ignored_when_disabled(self):
        clinic = _make_clinic(local_enabled=False, local_number="123456789")
        channel = _make_channel(clinic=clinic)
        channel.send_twilio_sms(MOBILE, "Hi")
        assert _sent(channel)["from_"] == DEFAULT_SENDER

    def test_local_enabled_without_number(self):
        clinic = _make_clinic(local_enabled=True, local_number=None)
        channel = _make_channel(clinic=clinic)
        channel.send_twilio_sms(MOBILE, "Hi")
        assert _sent(channel)["from_"] == DEFAULT_SENDER

    def test_us_destination_uses_us_sender(self):
        channel = _make_channel()
        channel.send_twilio_sms("+12015550123", "Hi")
        assert _sent(channel)["from_"] == US_SENDER

    def test_us_destination_without_us_sender(self):
        channel = _make_channel(us_sender=None)
        channel.send_twilio_sms("+12015550123", "Hi")
        assert _sent(channel)["from_"] == DEFAULT_SENDER

    def test_no_sender_configured(self):
        channel = _make_channel(default_sender=None, us_sender=None)
        with pytest.raises(ConfigurationError):
            channel.send_twilio_sms(MOBILE, "Hi")


# ═══════════════════════════════════════════════════════════════════════════
# Section 4: Outcome
# ═══════════════════════════════════════════════════════════════════════════

class TestTwilioOutcome:
    """Test attempt records and failure handling."""

    def test_delivered_attempt(self):
        channel = _make_channel()
        attempt = channel.send(SendRequest(recipient=MOBILE, body="Hi"))

        assert attempt.channel == SmsChannelName.TWILIO
        assert attempt.status == DeliveryStatus.DELIVERED
        assert attempt.provider_response == {
            "sid": "SM123", "to": MOBILE, "from": DEFAULT_SENDER,
        }

    def test_provider_failure_logged_not_raised(self, caplog):
        client = MagicMock()
        client.messages.create.side_effect = RuntimeError("carrier down")
        channel = _make_channel(client=client)

        with caplog.at_level(logging.ERROR):
            assert channel.send_twilio_sms(MOBILE, "Hi") is False

        assert "carrier down" in caplog.text
        assert any(r.levelno == logging.ERROR for r in caplog.records)

    def test_failed_attempt_record(self):
        client = MagicMock()
        client.messages.create.side_effect = RuntimeError("carrier down")
        channel = _make_channel(client=client)

        attempt = channel.send(SendRequest(recipient=MOBILE, body="Hi"))
        assert attempt.status == DeliveryStatus.FAILED
        assert attempt.error_message == "carrier down"

    @pytest.mark.parametrize("value", [None, 12345, False, "not a number"])
    def test_unresolvable_recipient_not_sent(self, value):
        channel = _make_channel()
        assert channel.send_twilio_sms(value, "Hi") is False
        channel.client.messages.create.assert_not_called()

    def test_user_without_number_not_sent(self):
        channel = _make_channel()
        assert channel.send_twilio_sms(User(user_id="u-2"), "Hi") is False
        channel.client.messages.create.assert_not_called()
