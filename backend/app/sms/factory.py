"""
factory.py — Wires the three channels and the dispatcher from settings.

Usage:
    from backend.app.sms.dispatcher import StaticClinicProvider
    from backend.app.sms.factory import build_dispatcher

    dispatcher = build_dispatcher(StaticClinicProvider(clinic))
    outcome = dispatcher.send_sms("+48500625383", "Your visit starts at 10:00")
    dispatcher.close()

dispatcher.close() closes the HTTP clients of both HTTP channels, including
a shared http_client passed in here.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from backend.app.core.config import Settings, settings
from backend.app.sms.channels.media_server import MediaServerChannel
from backend.app.sms.channels.sms_api import SmsApiChannel
from backend.app.sms.channels.twilio_sms import TwilioSmsChannel
from backend.app.sms.dispatcher import ClinicProvider, SmsDispatcher


def build_dispatcher(
    clinic_provider: ClinicProvider,
    app_settings: Optional[Settings] = None,
    *,
    twilio_client: Optional[Any] = None,
    http_client: Optional[httpx.Client] = None,
) -> SmsDispatcher:
    """
    Build a ready-to-use dispatcher.

    The Twilio client is created on first carrier send when not given,
    so missing Twilio credentials only matter to use_twilio requests.
    One httpx client may be shared by both HTTP channels.
    """
    cfg = app_settings or settings
    region = cfg.SMS_DEFAULT_REGION

    twilio = TwilioSmsChannel(
        clinic_provider,
        twilio_client,
        default_sender=cfg.TWILIO_SMS_NUMBER,
        us_sender=cfg.TWILIO_SMS_NUMBER_US,
        default_region=region,
        app_settings=cfg,
    )

    media_server = MediaServerChannel(
        http_client,
        base_url=cfg.MEDIA_SERVER_URL,
        token=cfg.MEDIA_SERVER_TOKEN,
        max_retries=cfg.MEDIA_SERVER_MAX_RETRIES,
        retry_delay_seconds=cfg.MEDIA_SERVER_RETRY_DELAY_SECONDS,
        timeout_seconds=cfg.MEDIA_SERVER_TIMEOUT_SECONDS,
        default_region=region,
    )
    sms_api = SmsApiChannel(
        http_client,
        base_url=cfg.SMSAPI_URL,
        token=cfg.SMSAPI_TOKEN,
        two_way_number=cfg.SMSAPI_2WAY_NUMBER,
        default_sender=cfg.SMS_SENDER,
        timeout_seconds=cfg.SMSAPI_TIMEOUT_SECONDS,
        default_region=region,
    )

    return SmsDispatcher(
        clinic_provider,
        twilio,
        media_server,
        sms_api,
        default_region=region,
        reject_empty_body=cfg.SMS_REJECT_EMPTY_BODY,
    )
