from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

VOICE_LOCALES = {
    "en": "en-US",
    "hi": "hi-IN",
    "te": "te-IN",
    "ta": "ta-IN",
    "kn": "kn-IN",
    "ml": "ml-IN",
    "mr": "mr-IN",
    "gu": "gu-IN",
    "bn": "bn-IN",
    "pa": "pa-IN",
    "or": "or-IN",
    "as": "as-IN",
    "ur": "ur-IN",
}


def voice_locale(language: str | None) -> str:
    """Map a UI language code ("hi", "ta-IN") to a speech synthesis locale."""
    if not language:
        return "en-US"
    code = language.split("-")[0].lower()
    return VOICE_LOCALES.get(code, "en-US")


class Speaker(Protocol):
    async def say(self, text: str, locale: str) -> None:
        ...


class LoggingSpeaker:
    async def say(self, text: str, locale: str) -> None:
        logger.info("speak[%s]: %s", locale, text)


@dataclass
class RecordingSpeaker:
    spoken: list[tuple[str, str]] = field(default_factory=list)

    async def say(self, text: str, locale: str) -> None:
        self.spoken.append((text, locale))
