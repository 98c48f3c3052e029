"""
Birthday matching.

The directory stores a JSON document in a custom attribute, for example
``{"DOB": "04/07/1990"}``. Exactly one date format is accepted per run
(``day/month/year`` unless configured otherwise); anything else counts as
"no birthday" rather than an error.
"""

import calendar
import json
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Iterator, Optional

from birthday_mailer.models import UserRecord
from birthday_mailer.utils.logger import get_logger

logger = get_logger("birthdays")

DEFAULT_DATE_FORMAT = "%d/%m/%Y"
DOB_FIELD = "DOB"


def _extract_date_text(raw_attribute: Optional[str]) -> Optional[str]:
    if not raw_attribute or not raw_attribute.strip():
        return None

    try:
        data = json.loads(raw_attribute)
    except json.JSONDecodeError:
        logger.debug("birthdays.invalid_json: preview=%s", raw_attribute[:200])
        return None

    if not isinstance(data, dict):
        return None

    value = data.get(DOB_FIELD)
    if not isinstance(value, str):
        return None

    return value.strip()


def _parse_date_text(text: Optional[str], date_format: str) -> Optional[date]:
    if not text:
        return None
    try:
        return datetime.strptime(text, date_format).date()
    except ValueError:
        logger.debug("birthdays.unparseable_date: text=%s format=%s", text, date_format)
        return None


@dataclass(frozen=True)
class BirthdayRecord:
    raw_date_text: Optional[str]
    parsed_date: Optional[date]

    @classmethod
    def from_attribute(
        cls, raw_attribute: Optional[str], date_format: str = DEFAULT_DATE_FORMAT
    ) -> "BirthdayRecord":
        # Parsed once here; the record is immutable afterwards.
        text = _extract_date_text(raw_attribute)
        return cls(raw_date_text=text, parsed_date=_parse_date_text(text, date_format))


def parse_birth_date(
    raw_attribute: Optional[str], date_format: str = DEFAULT_DATE_FORMAT
) -> Optional[date]:
    """Return the birth date held in a raw attribute, or None. Never raises."""
    return BirthdayRecord.from_attribute(raw_attribute, date_format).parsed_date


def is_birthday(birth_date: Optional[date], today: date) -> bool:
    """
    True when ``birth_date`` falls on ``today``, ignoring the year.

    Feb 29 birthdays are celebrated on Feb 28 in non-leap years.
    """
    if birth_date is None:
        return False

    if birth_date.month == 2 and birth_date.day == 29 and not calendar.isleap(today.year):
        return today.month == 2 and today.day == 28

    return birth_date.month == today.month and birth_date.day == today.day


def find_celebrants(
    users: Iterable[UserRecord],
    today: date,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> Iterator[UserRecord]:
    """Yield the users whose birthday is ``today``, preserving input order."""
    for user in users:
        record = BirthdayRecord.from_attribute(user.birth_attribute, date_format)
        if is_birthday(record.parsed_date, today):
            yield user
