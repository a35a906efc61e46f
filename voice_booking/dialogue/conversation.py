from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Awaitable, Callable

from ..clients.booking_session import BookingSession, BookingSessionError
from ..config import today_in
from ..parsing.commands import parse
from ..schemas import (
    AssistantTurn,
    BookingAction,
    BookingEvent,
    Decision,
    DialogueStep,
    PatientProfile,
    is_terminal_step,
)
from ..tools.events import action_event, pending_input_event, speech_event
from ..tools.speech import LoggingSpeaker, Speaker, voice_locale
from .driver import CANCELLED_MESSAGE, drive
from .listener import VoiceListener

logger = logging.getLogger(__name__)

LISTENING_MARKER = "[Listening...]"
_LISTENING_RE = re.compile(r"\[Listening\.\.\.\].*$")

EventSink = Callable[[BookingEvent], Awaitable[None]]


def strip_listening_marker(text: str) -> str:
    return _LISTENING_RE.sub("", text).strip()


class BookingConversation:
    """Voice side of one chat session.

    Holds the latest assistant turn and the booking step it put the user in.
    Each final transcript is classified against that snapshot; the resulting
    action goes to the booking session and its reply becomes the next turn.
    """

    def __init__(
        self,
        session: BookingSession,
        speaker: Speaker | None = None,
        profile: PatientProfile | None = None,
        language: str = "en",
        today: date | None = None,
        on_event: EventSink | None = None,
    ) -> None:
        self.session = session
        self.speaker = speaker or LoggingSpeaker()
        self.profile = profile
        self.language = language
        self.today = today
        self.on_event = on_event
        self.turn: AssistantTurn | None = None
        self.step: str | None = None
        self.session_id: str | None = None
        self.pending_input = ""
        self.booking_reason = ""
        self.last_voice_command = ""
        self.last_decision: Decision | None = None
        self.messages: list[dict] = []
        self.events: list[BookingEvent] = []

    @property
    def booking_active(self) -> bool:
        return self.step is not None and not is_terminal_step(self.step)

    def apply_turn(self, turn: AssistantTurn) -> None:
        self.turn = turn
        self.messages.append(
            {"role": "bot", "content": turn.message, "at": datetime.utcnow().isoformat()}
        )
        if turn.session_id:
            self.session_id = turn.session_id
        if turn.step:
            self.step = turn.step
        if turn.step == DialogueStep.BOOKING_CONFIRMED:
            self.booking_reason = ""
            self.session_id = None

    def listener(self) -> VoiceListener:
        return VoiceListener(
            on_final=self.handle_transcript,
            on_interim=self.show_interim,
            on_idle=self.clear_listening_indicator,
            keep_listening=lambda: self.booking_active,
        )

    def show_interim(self, text: str) -> None:
        if self.booking_active:
            return
        base = strip_listening_marker(self.pending_input)
        self.pending_input = f"{base}{' ' if base else ''}{LISTENING_MARKER} {text}"

    def clear_listening_indicator(self) -> None:
        if not self.booking_active:
            self.pending_input = strip_listening_marker(self.pending_input)

    def append_pending_input(self, text: str) -> None:
        base = strip_listening_marker(self.pending_input)
        self.pending_input = f"{base} {text}" if base else text

    def take_pending_input(self) -> str:
        text = strip_listening_marker(self.pending_input)
        self.pending_input = ""
        return text

    async def handle_transcript(self, transcript: str) -> Decision | None:
        text = transcript.strip()
        if not text:
            return None
        self.last_decision = None
        if not self.booking_active:
            self.append_pending_input(text)
            await self._record(pending_input_event(text))
            return None

        self.last_voice_command = text
        today = self.today or today_in()
        command = parse(text, self.step, today=today)
        decision = drive(
            command,
            self.step,
            self.turn,
            profile=self.profile,
            reason=self.booking_reason,
            today=today,
        )
        self.last_decision = decision
        logger.debug("Voice command %r at %s -> %s", text, self.step, command.kind)
        if decision.is_noop:
            return decision

        if decision.clears_step:
            self.step = None
            self.turn = None
            self.messages.append(
                {"role": "bot", "content": CANCELLED_MESSAGE, "at": datetime.utcnow().isoformat()}
            )
        if decision.feedback:
            await self.speak(decision.feedback)
        if decision.action:
            await self.dispatch(decision.action)
        return decision

    async def speak(self, text: str) -> None:
        try:
            await self.speaker.say(text, voice_locale(self.language))
        except Exception:
            # Feedback is best effort; the booking action still goes out.
            logger.exception("Speaking feedback %r failed", text)
            await self._record(speech_event(text, status="failed"))
            return
        await self._record(speech_event(text))

    async def dispatch(self, action: BookingAction) -> None:
        if action.name == "cancel_booking":
            if self.session_id:
                await self.session.cancel_booking(self.session_id)
            await self._record(action_event(action))
            return
        if not self.session_id:
            logger.error("No active booking session; %s withheld", action.name)
            await self._record(action_event(action, status="skipped", detail="No active session"))
            return

        try:
            turn = await self._call(action)
        except BookingSessionError as exc:
            logger.warning("Booking action %s failed: %s", action.name, exc)
            self.messages.append(
                {"role": "bot", "content": str(exc), "at": datetime.utcnow().isoformat()}
            )
            await self._record(action_event(action, status="failed", detail=str(exc)))
            return

        logger.info("Dispatched %s for session %s", action.name, self.session_id)
        await self._record(action_event(action))
        if turn is not None:
            self.apply_turn(turn)

    async def _call(self, action: BookingAction) -> AssistantTurn | None:
        session_id = self.session_id
        if action.name == "select_hospital":
            return await self.session.select_hospital(session_id, action.value)
        if action.name == "select_doctor":
            return await self.session.select_doctor(session_id, action.value)
        if action.name == "select_date":
            return await self.session.select_date(session_id, action.value)
        if action.name == "select_time":
            return await self.session.select_time(session_id, action.value)
        if action.name == "confirm_booking":
            return await self.session.confirm_booking(session_id, action.value, action.details)
        raise ValueError(f"Unsupported booking action {action.name!r}")

    async def _record(self, event: BookingEvent) -> None:
        self.events.append(event)
        if self.on_event:
            await self.on_event(event)
