"""
Phone number validation, operator detection and formatting utilities.

Numbers are Ivorian mobile numbers: a 10-digit national number starting
with 0, reachable internationally as +225 followed by those 10 digits.
"""
import re
from enum import Enum
from typing import Optional
import logging

import phonenumbers
from phonenumbers import NumberParseException, PhoneNumberFormat

from smsgateway.core.exceptions import InvalidPhoneNumberError

logger = logging.getLogger("smsgateway.phone")

COUNTRY_CODE = "225"
REGION = "CI"

# Accepted shapes, checked after cleanup
_SHAPES = [
    re.compile(r"^\+225(0\d{9})$"),  # +225 0XXXXXXXXX (international)
    re.compile(r"^225(0\d{9})$"),    # 225 0XXXXXXXXX (country code)
    re.compile(r"^(0\d{9})$"),       # 0XXXXXXXXX (local, leading zero)
    re.compile(r"^(\d{9})$"),        # XXXXXXXXX (bare local)
]


class Operator(str, Enum):
    """Ivorian mobile operators."""
    ORANGE = "ORANGE"
    MTN = "MTN"
    MOOV = "MOOV"
    UNKNOWN = "UNKNOWN"


_OPERATOR_PREFIXES = {
    "07": Operator.ORANGE,
    "05": Operator.MTN,
    "01": Operator.MOOV,
}


def cleanup_phone_number(raw: str) -> str:
    """
    Remove common formatting characters: spaces, dashes, dots, parentheses.

    Args:
        raw: The raw phone number input.

    Returns:
        str: The cleaned phone number.
    """
    if not isinstance(raw, str):
        return ""
    return re.sub(r'[\s\-\.\(\)]', '', raw)


def _national_number(number: str) -> Optional[str]:
    """Return the 10-digit national number, or None if no shape matches."""
    cleaned = cleanup_phone_number(number)
    for index, shape in enumerate(_SHAPES):
        match = shape.match(cleaned)
        if match:
            national = match.group(1)
            # Bare local numbers drop the leading zero
            return national if index < 3 else "0" + national
    return None


def validate_phone(number: str) -> bool:
    """
    Check that a phone number matches one of the accepted shapes.

    Args:
        number: Phone number to validate

    Returns:
        bool: True if valid, False otherwise
    """
    return _national_number(number) is not None


def detect_operator(number: str) -> Operator:
    """
    Detect the mobile operator from the national number prefix.

    Args:
        number: Phone number in any accepted shape

    Returns:
        Operator: Detected operator, UNKNOWN when no prefix matches
    """
    national = _national_number(number)
    if not national:
        return Operator.UNKNOWN
    return _OPERATOR_PREFIXES.get(national[:2], Operator.UNKNOWN)


def normalize_phone(number: str) -> str:
    """
    Format a phone number in E.164 format (+225XXXXXXXXXX).

    Args:
        number: Phone number in any accepted shape

    Returns:
        str: Normalized phone number

    Raises:
        InvalidPhoneNumberError: If the phone number is invalid
    """
    national = _national_number(number)
    if not national:
        raise InvalidPhoneNumberError(details={"number": mask_phone(number)})

    try:
        parsed = phonenumbers.parse(f"+{COUNTRY_CODE}{national}", None)
    except NumberParseException as e:
        raise InvalidPhoneNumberError(
            message=f"Invalid phone number: {e}",
            details={"number": mask_phone(number)},
        )
    return phonenumbers.format_number(parsed, PhoneNumberFormat.E164)


def mask_phone(number: Optional[str]) -> str:
    """
    Mask a phone number for logs and events.

    Keeps the first and last three characters visible.
    """
    if not number:
        return "***"
    cleaned = cleanup_phone_number(number)
    if len(cleaned) < 7:
        return "***"
    return cleaned[:3] + "*" * (len(cleaned) - 6) + cleaned[-3:]
