"""National ID (MyKad) parsing.

A MyKad number is YYMMDD-SS-NNNN: date of birth, place-of-birth code and a
serial whose last digit encodes gender. Anything that does not look like one
is treated as a passport.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date

from hrms_kernel.calculators.types import Gender
from hrms_kernel.exceptions import InvalidIdentityError

logger = logging.getLogger(__name__)

DEFAULT_PASSPORT_AGE = 30

_IC_PATTERN = re.compile(r"^(\d{2})(\d{2})(\d{2})-?(\d{2})-?(\d{4})$")

# Place-of-birth codes issued by JPN: states, then foreign-born region codes.
STATE_CODES: frozenset[str] = frozenset(
    f"{code:02d}"
    for code in [
        *range(1, 17),
        *range(21, 60),
        *range(60, 69),
        71,
        72,
        *range(74, 80),
        *range(82, 94),
        98,
        99,
    ]
)


@dataclass(frozen=True)
class IdentityInfo:
    """Result of parsing an ID string."""

    raw: str
    is_passport: bool
    normalized: str | None = None
    date_of_birth: date | None = None
    state_code: str | None = None
    gender: Gender | None = None
    age: int = DEFAULT_PASSPORT_AGE
    age_is_default: bool = False


def age_on(birth: date, as_of: date) -> int:
    """Full years between ``birth`` and ``as_of``."""
    years = as_of.year - birth.year
    if (as_of.month, as_of.day) < (birth.month, birth.day):
        years -= 1
    return years


def _resolve_birth_date(yy: int, mm: int, dd: int, raw: str, as_of: date) -> date:
    if not 1 <= mm <= 12:
        raise InvalidIdentityError(raw, f"month {mm:02d} out of range")
    if not 1 <= dd <= 31:
        raise InvalidIdentityError(raw, f"day {dd:02d} out of range")
    century = 2000 if yy <= as_of.year % 100 else 1900
    try:
        return date(century + yy, mm, dd)
    except ValueError:
        raise InvalidIdentityError(raw, f"no such date {yy:02d}{mm:02d}{dd:02d}") from None


def parse_identity(
    raw: str | None,
    date_of_birth: date | None = None,
    as_of: date | None = None,
) -> IdentityInfo:
    """Parse a national ID, falling back to passport handling.

    Strings that match the 12-digit shape but carry an impossible date or an
    unknown state code raise ``InvalidIdentityError``. Passports take their age
    from ``date_of_birth`` if given, otherwise ``DEFAULT_PASSPORT_AGE``.
    """
    as_of = as_of or date.today()
    text = (raw or "").strip()
    match = _IC_PATTERN.match(text)

    if match is None:
        if date_of_birth is not None:
            return IdentityInfo(
                raw=text,
                is_passport=True,
                date_of_birth=date_of_birth,
                age=age_on(date_of_birth, as_of),
            )
        logger.debug("No date of birth for passport holder, assuming age %d", DEFAULT_PASSPORT_AGE)
        return IdentityInfo(raw=text, is_passport=True, age_is_default=True)

    yy, mm, dd, state, serial = match.groups()
    if state not in STATE_CODES:
        raise InvalidIdentityError(text, f"unknown state code {state}")
    birth = _resolve_birth_date(int(yy), int(mm), int(dd), text, as_of)

    return IdentityInfo(
        raw=text,
        is_passport=False,
        normalized=f"{yy}{mm}{dd}{state}{serial}",
        date_of_birth=birth,
        state_code=state,
        gender=Gender.MALE if int(serial[-1]) % 2 == 1 else Gender.FEMALE,
        age=age_on(birth, as_of),
    )


def age_from_identity(
    raw: str | None,
    date_of_birth: date | None = None,
    as_of: date | None = None,
) -> int:
    return parse_identity(raw, date_of_birth, as_of).age
