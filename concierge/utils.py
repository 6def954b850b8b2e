"""Phone number normalization shared by research, dispatch and the CLI."""

import re
from dataclasses import dataclass
from typing import Optional

from concierge.errors import InvalidPhoneFormat

DEFAULT_COUNTRY_CODE = "1"
NATIONAL_NUMBER_DIGITS = 10
MIN_E164_DIGITS = 10
MAX_E164_DIGITS = 15

_E164_PATTERN = re.compile(r"^\+[1-9]\d{%d,%d}$" % (MIN_E164_DIGITS - 1, MAX_E164_DIGITS - 1))


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("(864) 555-1234")
        '8645551234'
        >>> normalize_phone("+1 (864) 555-1234")
        '+18645551234'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def to_e164(value: Optional[str], country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Best-effort conversion of free-form input into an E.164-shaped string.

    Without a leading ``+``, a ten-digit national number gets
    ``country_code`` prepended; any other digit string is assumed to carry
    its own country code already. The result is not guaranteed valid; check
    it with :func:`is_valid_e164`.

    Examples:
        >>> to_e164("864.555.1234")
        '+18645551234'
        >>> to_e164("1-864-555-1234")
        '+18645551234'
        >>> to_e164("+18645551234")
        '+18645551234'
    """
    if not value:
        return ""
    cleaned = normalize_phone(value)
    if cleaned.startswith("+"):
        return cleaned if len(cleaned) > 1 else ""
    if not cleaned:
        return ""
    if len(cleaned) == NATIONAL_NUMBER_DIGITS:
        return f"+{country_code}{cleaned}"
    return f"+{cleaned}"


def is_valid_e164(value: str) -> bool:
    """True when ``value`` is ``+`` followed by 10-15 digits (no leading zero)."""
    return bool(_E164_PATTERN.match(value or ""))


@dataclass(frozen=True)
class PhoneCheck:
    """Outcome of validating a phone number; never raised, always returned."""

    ok: bool
    normalized: str
    raw: str
    reason: str = ""

    def to_error(self) -> InvalidPhoneFormat:
        """The rejection as an error value, for logging or re-raising by callers."""
        return InvalidPhoneFormat(self.raw, self.reason)


def check_phone(value: Optional[str], country_code: str = DEFAULT_COUNTRY_CODE) -> PhoneCheck:
    """Normalize and validate ``value`` without raising on malformed input."""
    raw = value or ""
    normalized = to_e164(raw, country_code)
    if not normalized:
        return PhoneCheck(ok=False, normalized="", raw=raw, reason="no digits found")
    if not is_valid_e164(normalized):
        digit_count = len(normalized) - 1
        return PhoneCheck(
            ok=False,
            normalized=normalized,
            raw=raw,
            reason=(
                f"expected {MIN_E164_DIGITS}-{MAX_E164_DIGITS} digits "
                f"including country code, got {digit_count}"
            ),
        )
    return PhoneCheck(ok=True, normalized=normalized, raw=raw)
