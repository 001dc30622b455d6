"""
phone_numbers.py — Recipient resolution and phone number classification.

A recipient arrives in one of three shapes:

    Shape                       Kind     Number source
    ─────────────────────────   ──────   ─────────────────────────────────
    "500 625 383", "+48-500…"   RAW      parsed with the domestic region
    phonenumbers.PhoneNumber    NUMBER   used as-is
    User                        USER     user.phone_number

Recipient.of() tags the value once at the boundary; everything below
works on the tag.  Any other value (None, int, bool, arbitrary objects)
is unresolvable.

═══════════════════════════════════════════════════════════════════════════
RAW STRING RULES
═══════════════════════════════════════════════════════════════════════════

    1. Strip spaces, dashes, dots and parentheses.
    2. What is left must be digits with at most one leading '+'.
       Letters are rejected outright (no vanity-number conversion).
    3. Without '+', the domestic region (SMS_DEFAULT_REGION) applies.
    4. The parsed number must be valid for its region, which rejects
       too-short and too-long inputs.

A valid number is mobile only when libphonenumber types it as MOBILE
(or FIXED_LINE_OR_MOBILE, for plans such as +1 that do not separate
the two).  Fixed-line and unknown-type numbers never receive SMS.

All functions here are pure: the same input always yields the same
canonical number and classification.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumber, PhoneNumberType

from backend.app.core.config import settings
from backend.app.sms.models import User

_FORMATTING_CHARS = re.compile(r"[\s\-.()]")
_DIALABLE = re.compile(r"^\+?\d+$")

MOBILE_NUMBER_TYPES = frozenset({
    PhoneNumberType.MOBILE,
    PhoneNumberType.FIXED_LINE_OR_MOBILE,
})


class RecipientKind(str, Enum):
    RAW    = "raw"
    NUMBER = "number"
    USER   = "user"


@dataclass(frozen=True)
class Recipient:
    """A recipient tagged with the shape it arrived in."""
    kind: RecipientKind
    value: Any

    @classmethod
    def of(cls, value: Any) -> Optional["Recipient"]:
        """Tag a raw recipient value; None when the shape is unsupported."""
        if isinstance(value, Recipient):
            return value
        if isinstance(value, str):
            return cls(RecipientKind.RAW, value)
        if isinstance(value, PhoneNumber):
            return cls(RecipientKind.NUMBER, value)
        if isinstance(value, User):
            return cls(RecipientKind.USER, value)
        return None

    @property
    def user(self) -> Optional[User]:
        return self.value if self.kind is RecipientKind.USER else None


@dataclass(frozen=True)
class CanonicalNumber:
    """A parsed, valid phone number in canonical form."""
    e164: str
    country_code: int
    national_number: int
    number_type: int  # a phonenumbers.PhoneNumberType value

    @classmethod
    def from_phone_number(cls, number: PhoneNumber) -> "CanonicalNumber":
        return cls(
            e164=phonenumbers.format_number(
                number, phonenumbers.PhoneNumberFormat.E164
            ),
            country_code=number.country_code,
            national_number=number.national_number,
            number_type=phonenumbers.number_type(number),
        )

    @property
    def is_mobile(self) -> bool:
        return self.number_type in MOBILE_NUMBER_TYPES


@dataclass(frozen=True)
class ClassifiedNumber:
    number: CanonicalNumber
    is_mobile: bool


# ═══════════════════════════════════════════════════════════════════════════
# Parsing
# ═══════════════════════════════════════════════════════════════════════════

def parse_phone_number(
    raw: str,
    default_region: Optional[str] = None,
) -> Optional[PhoneNumber]:
    """
    Parse a formatted phone string into a valid PhoneNumber.

    Returns None when the string is not dialable, cannot be parsed,
    or does not form a valid number.
    """
    region = default_region or settings.SMS_DEFAULT_REGION
    stripped = _FORMATTING_CHARS.sub("", raw)
    if not _DIALABLE.match(stripped):
        return None

    try:
        number = phonenumbers.parse(stripped, region)
    except NumberParseException:
        return None

    if not phonenumbers.is_valid_number(number):
        return None
    return number


def resolve_number(
    recipient: Any,
    default_region: Optional[str] = None,
) -> Optional[CanonicalNumber]:
    """
    Resolve any supported recipient shape to a canonical number.

    Returns None for unsupported shapes, users without a number and
    invalid numbers.
    """
    tagged = Recipient.of(recipient)
    if tagged is None:
        return None

    if tagged.kind is RecipientKind.RAW:
        number = parse_phone_number(tagged.value, default_region)
    elif tagged.kind is RecipientKind.NUMBER:
        number = tagged.value
    else:
        number = tagged.value.phone_number

    if not isinstance(number, PhoneNumber) or not phonenumbers.is_valid_number(number):
        return None
    return CanonicalNumber.from_phone_number(number)


# ═══════════════════════════════════════════════════════════════════════════
# Classification
# ═══════════════════════════════════════════════════════════════════════════

def classify(
    recipient: Any,
    default_region: Optional[str] = None,
) -> Optional[ClassifiedNumber]:
    """Resolve a recipient and classify it; None means Invalid."""
    number = resolve_number(recipient, default_region)
    if number is None:
        return None
    return ClassifiedNumber(number=number, is_mobile=number.is_mobile)


def is_mobile_phone_number(
    recipient: Any,
    default_region: Optional[str] = None,
) -> bool:
    classified = classify(recipient, default_region)
    return classified is not None and classified.is_mobile


def is_foreign_number(
    recipient: Any,
    default_region: Optional[str] = None,
) -> bool:
    """
    True when the recipient's country code is not the domestic one.

    Unresolvable recipients are not foreign; they never reach a channel.
    """
    region = default_region or settings.SMS_DEFAULT_REGION
    number = resolve_number(recipient, region)
    if number is None:
        return False
    return number.country_code != phonenumbers.country_code_for_region(region)
