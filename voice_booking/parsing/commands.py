from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import ClassVar, Union

from ..config import today_in
from ..schemas import DialogueStep

logger = logging.getLogger(__name__)

CANCEL_WORDS = ("cancel", "stop", "never mind", "nevermind")
CONFIRM_WORDS = ("yes", "confirm", "book", "proceed")

# Iteration order decides ties when several words are spoken.
NUMBER_WORDS = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
}

DIGITS_RE = re.compile(r"\b(\d+)\b")
ISO_DATE_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
DMY_DATE_RE = re.compile(r"\b(\d{1,2})[/\-](\d{1,2})[/\-](\d{4})\b")
TIME_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b")


@dataclass(frozen=True)
class Cancellation:
    kind: ClassVar[str] = "cancellation"


@dataclass(frozen=True)
class Confirmation:
    kind: ClassVar[str] = "confirmation"


@dataclass(frozen=True)
class Number:
    value: int
    kind: ClassVar[str] = "number"


@dataclass(frozen=True)
class Date:
    value: date
    kind: ClassVar[str] = "date"


@dataclass(frozen=True)
class Time:
    value: str
    kind: ClassVar[str] = "time"


@dataclass(frozen=True)
class Unknown:
    kind: ClassVar[str] = "unknown"


Command = Union[Cancellation, Confirmation, Number, Date, Time, Unknown]


def format_date_for_input(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _structured_date(text: str) -> date | None:
    iso = ISO_DATE_RE.search(text)
    if iso:
        parsed = _safe_date(int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
        if parsed:
            return parsed
    # Day first: "10/03/2025" is the 10th of March.
    dmy = DMY_DATE_RE.search(text)
    if dmy:
        return _safe_date(int(dmy.group(3)), int(dmy.group(2)), int(dmy.group(1)))
    return None


def _relative_date(text: str, today: date) -> date | None:
    if "today" in text:
        return today
    if "tomorrow" in text:
        return today + timedelta(days=1)
    return None


def _structured_time(text: str) -> str | None:
    """First time expression with minutes or am/pm, as zero-padded HH:MM."""
    for match in TIME_RE.finditer(text):
        hour_text, minute_text, meridiem = match.groups()
        if minute_text is None and meridiem is None:
            continue
        hour = int(hour_text)
        minute = int(minute_text) if minute_text else 0
        if meridiem == "pm" and hour < 12:
            hour += 12
        if meridiem == "am" and hour == 12:
            hour = 0
        # Without a meridiem the hour is taken as a 24-hour value.
        if hour > 23 or minute > 59:
            continue
        return f"{hour:02d}:{minute:02d}"
    return None


def _spoken_number(text: str) -> int | None:
    digits = DIGITS_RE.search(text)
    if digits:
        return int(digits.group(1), 10)
    for word, value in NUMBER_WORDS.items():
        if word in text:
            return value
    return None


def parse(transcript: str, step: DialogueStep | str | None, today: date | None = None) -> Command:
    """Classify a final speech transcript into a booking command.

    Intent words win over anything number-like, so "cancel number 2" is a
    cancellation. Date and time expressions are only recognised at their own
    steps; a bare number is a ``Number`` at every step. Never raises.
    """
    text = (transcript or "").lower().strip()

    if any(word in text for word in CANCEL_WORDS):
        return Cancellation()
    if any(word in text for word in CONFIRM_WORDS):
        return Confirmation()

    if step == DialogueStep.DATE_SELECTION:
        parsed_date = _structured_date(text)
        if parsed_date:
            return Date(parsed_date)
    if step == DialogueStep.TIME_SELECTION:
        parsed_time = _structured_time(text)
        if parsed_time:
            return Time(parsed_time)

    number = _spoken_number(text)
    if number is not None:
        return Number(number)

    if step == DialogueStep.DATE_SELECTION:
        if today is None:
            today = today_in()
        relative = _relative_date(text, today)
        if relative:
            return Date(relative)

    logger.debug("Unrecognised voice command %r at step %s", text, step)
    return Unknown()
