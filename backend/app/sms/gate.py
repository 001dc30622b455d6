"""
gate.py — Go / no-go decision taken before any channel is touched.

    check_send_sms   clinic.send_sms_enabled   mobile recipient   → send?
    ──────────────   ───────────────────────   ────────────────     ─────
    False            (ignored)                 (ignored)            yes
    True             False                     (ignored)            no
    True             True                      no / unresolvable    no
    True             True                      yes                  yes

A blank body (after trimming) is also refused while checking, unless
reject_empty_body is turned off.  Refusal is a normal outcome: nothing
is raised and nothing is logged above DEBUG.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from backend.app.core.config import settings
from backend.app.sms.models import Clinic
from backend.app.sms.phone_numbers import classify

logger = logging.getLogger(__name__)


def refusal_reason(
    clinic: Clinic,
    recipient: Any,
    check_send_sms: bool,
    *,
    body: Optional[str] = None,
    reject_empty_body: Optional[bool] = None,
    default_region: Optional[str] = None,
) -> Optional[str]:
    """Why the gate refuses this send, or None when it may proceed."""
    if not check_send_sms:
        return None

    if not clinic.send_sms_enabled:
        return "clinic_sms_disabled"

    if reject_empty_body is None:
        reject_empty_body = settings.SMS_REJECT_EMPTY_BODY
    if reject_empty_body and body is not None and not body.strip():
        return "empty_body"

    classified = classify(recipient, default_region)
    if classified is None:
        return "invalid_recipient"
    if not classified.is_mobile:
        return "not_mobile"

    return None


def should_send(
    clinic: Clinic,
    recipient: Any,
    check_send_sms: bool,
    **kwargs: Any,
) -> bool:
    reason = refusal_reason(clinic, recipient, check_send_sms, **kwargs)
    if reason is not None:
        logger.debug("SMS gate refused: %s", reason)
    return reason is None
