from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List

from .dialogue.conversation import BookingConversation
from .dialogue.listener import VoiceListener
from .schemas import BookingEvent

ConversationFactory = Callable[[str], BookingConversation]


@dataclass
class SessionState:
    session_id: str
    conversation: BookingConversation
    listener: VoiceListener
    started_at: datetime = field(default_factory=datetime.utcnow)


class InMemoryStore:
    def __init__(self, conversation_factory: ConversationFactory) -> None:
        self.conversation_factory = conversation_factory
        self.sessions: Dict[str, SessionState] = {}

    def _new_session(self, session_id: str) -> SessionState:
        conversation = self.conversation_factory(session_id)
        session = SessionState(
            session_id=session_id,
            conversation=conversation,
            listener=conversation.listener(),
        )
        self.sessions[session_id] = session
        return session

    def create_session(self) -> SessionState:
        return self._new_session(uuid.uuid4().hex)

    def get_or_create_session(self, session_id: str) -> SessionState:
        if session_id in self.sessions:
            return self.sessions[session_id]
        return self._new_session(session_id)

    def list_events(self, session_id: str) -> List[BookingEvent]:
        session = self.sessions.get(session_id)
        return list(session.conversation.events) if session else []

    def drop_session(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)
