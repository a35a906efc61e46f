from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class ListenerState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING_FINAL = "processing_final"


class VoiceListener:
    """Speech capture lifecycle, fed by speech-to-text events.

    Final transcripts are handled one at a time. Finals that arrive while
    one is being processed are queued, and ``stop()`` never discards a
    transcript that was already received. After each final the listener
    resumes listening while ``keep_listening()`` holds (booking mode),
    otherwise it goes idle.
    """

    def __init__(
        self,
        on_final: Callable[[str], Awaitable[Any]],
        on_interim: Callable[[str], None] | None = None,
        on_idle: Callable[[], None] | None = None,
        keep_listening: Callable[[], bool] | None = None,
    ) -> None:
        self._on_final = on_final
        self._on_interim = on_interim
        self._on_idle = on_idle
        self._keep_listening = keep_listening or (lambda: False)
        self.state = ListenerState.IDLE
        self.interim = ""
        self._queue: deque[str] = deque()
        self._stop_requested = False
        self._resume = False

    @property
    def is_listening(self) -> bool:
        return self.state == ListenerState.LISTENING

    def start(self) -> None:
        if self.state == ListenerState.PROCESSING_FINAL:
            self._resume = True
            self._stop_requested = False
            return
        if self.state == ListenerState.LISTENING:
            return
        logger.debug("Voice capture started")
        self.interim = ""
        self.state = ListenerState.LISTENING

    def stop(self) -> None:
        if self.state == ListenerState.PROCESSING_FINAL:
            self._stop_requested = True
            return
        self._go_idle()

    def on_interim(self, text: str) -> None:
        if self.state != ListenerState.LISTENING:
            return
        self.interim = text
        if self._on_interim:
            self._on_interim(text)

    async def on_final(self, text: str) -> None:
        transcript = (text or "").strip()
        if not transcript:
            return
        if self.state == ListenerState.PROCESSING_FINAL:
            self._queue.append(transcript)
            return
        # A final can still arrive after stop(); it is handled, not dropped.
        self._resume = self.state == ListenerState.LISTENING
        self.state = ListenerState.PROCESSING_FINAL
        self.interim = ""
        self._queue.append(transcript)
        while self._queue:
            current = self._queue.popleft()
            try:
                await self._on_final(current)
            except Exception:
                logger.exception("Voice command handler failed for %r", current)

        if not self._resume or self._stop_requested or not self._keep_listening():
            self._go_idle()
        else:
            self.state = ListenerState.LISTENING

    def on_error(self, code: str) -> None:
        if code == "aborted":
            return
        logger.info("Voice capture error: %s", code)
        if self.state == ListenerState.PROCESSING_FINAL:
            self._stop_requested = True
            return
        self._go_idle()

    def on_end(self) -> None:
        if self.state == ListenerState.LISTENING:
            self._go_idle()

    def _go_idle(self) -> None:
        self.state = ListenerState.IDLE
        self.interim = ""
        self._stop_requested = False
        if self._on_idle:
            self._on_idle()
