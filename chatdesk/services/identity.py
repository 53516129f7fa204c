"""Phone identity normalization.

Every lookup of a conversation goes through ``normalize`` so that the loosely
formatted numbers the provider, the dashboard and operators send all land on
one canonical key. The default rule only rewrites prefixes; the strict rule
additionally validates the number with ``phonenumbers``. Pick one per store:
the two rules are not numerically equivalent.
"""

import re
from typing import Optional

import phonenumbers

from chatdesk.exceptions import InvalidIdentity

INTERNATIONAL_PREFIX = "+"
TRUNK_PREFIX = "0"

_SEPARATORS = re.compile(r"[\s\-.()]")
_CANONICAL = re.compile(r"^\+\d{4,15}$")


def normalize(raw: Optional[str], *, country_code: str = "233", strict: bool = False) -> str:
    """Map a raw phone identifier to its canonical ``+<cc><number>`` form.

    Raises InvalidIdentity when the input is empty or is not a phone number.
    """
    if raw is None:
        raise InvalidIdentity(raw, "missing")

    phone = _SEPARATORS.sub("", str(raw).strip())
    if not phone:
        raise InvalidIdentity(raw, "empty")

    if phone.startswith(INTERNATIONAL_PREFIX):
        candidate = phone
    elif phone.startswith(country_code):
        candidate = INTERNATIONAL_PREFIX + phone
    elif phone.startswith(TRUNK_PREFIX):
        candidate = INTERNATIONAL_PREFIX + country_code + phone[len(TRUNK_PREFIX):]
    else:
        candidate = INTERNATIONAL_PREFIX + country_code + phone

    if not _CANONICAL.match(candidate):
        raise InvalidIdentity(raw, "not a phone number")

    if strict:
        return _validate_e164(raw, candidate)
    return candidate


def _validate_e164(raw: Optional[str], candidate: str) -> str:
    try:
        parsed = phonenumbers.parse(candidate, None)
    except phonenumbers.NumberParseException as e:
        raise InvalidIdentity(raw, str(e)) from e

    if not phonenumbers.is_valid_number(parsed):
        raise InvalidIdentity(raw, "not a valid number for any region")

    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.E164)


def normalizer_for(settings):
    """Bind ``normalize`` to a deployment's identity rule."""

    def _normalize(raw: Optional[str]) -> str:
        return normalize(raw, country_code=settings.default_country_code, strict=settings.identity_strict)

    return _normalize
