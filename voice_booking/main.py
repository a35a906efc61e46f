from __future__ import annotations

import logging
from datetime import datetime
from functools import partial
from typing import Dict, List

from dotenv import load_dotenv

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from .clients.booking_session import HttpBookingSession
from .config import configure_logging, settings
from .dialogue.conversation import BookingConversation
from .dialogue.listener import ListenerState
from .schemas import (
    AssistantTurn,
    BookingEvent,
    PatientProfile,
    SessionStartResponse,
    TranscriptRequest,
    TranscriptResponse,
)
from .store import InMemoryStore
from .tools.events import build_event

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Voice Booking API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class ConnectionManager:
    def __init__(self) -> None:
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, session_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.setdefault(session_id, []).append(websocket)

    def disconnect(self, session_id: str, websocket: WebSocket) -> None:
        connections = self.active_connections.get(session_id, [])
        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            self.active_connections.pop(session_id, None)

    async def broadcast(self, session_id: str, payload: dict) -> None:
        for websocket in list(self.active_connections.get(session_id, [])):
            try:
                await websocket.send_json(payload)
            except Exception:
                logger.warning("Dropping websocket for session %s after a failed send", session_id, exc_info=True)
                self.disconnect(session_id, websocket)


manager = ConnectionManager()


class BroadcastSpeaker:
    """Sends spoken feedback to the session's clients for text-to-speech."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id

    async def say(self, text: str, locale: str) -> None:
        await manager.broadcast(
            self.session_id, {"type": "speech", "payload": {"text": text, "locale": locale}}
        )


async def _broadcast_event(session_id: str, event: BookingEvent) -> None:
    await manager.broadcast(session_id, {"type": "event", "payload": event.model_dump(mode="json")})


def build_conversation(session_id: str) -> BookingConversation:
    return BookingConversation(
        session=HttpBookingSession(
            settings.booking_api_base_url,
            timeout=settings.booking_api_timeout,
        ),
        speaker=BroadcastSpeaker(session_id),
        language=settings.default_language,
        on_event=partial(_broadcast_event, session_id),
    )


store = InMemoryStore(build_conversation)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.post("/session/start", response_model=SessionStartResponse)
async def start_session() -> SessionStartResponse:
    session = store.create_session()
    return SessionStartResponse(
        session_id=session.session_id,
        ws_url=f"{settings.ws_base_url}/session/{session.session_id}/events",
    )


@app.post("/session/{session_id}/turn")
async def push_turn(session_id: str, turn: AssistantTurn) -> dict:
    session = store.get_or_create_session(session_id)
    conversation = session.conversation
    conversation.apply_turn(turn)
    if conversation.booking_active:
        session.listener.start()
    await manager.broadcast(session_id, {"type": "turn", "payload": turn.model_dump(mode="json")})
    return {
        "step": conversation.step,
        "booking_active": conversation.booking_active,
        "listening": session.listener.state.value,
    }


@app.post("/session/{session_id}/profile")
async def set_profile(session_id: str, profile: PatientProfile) -> dict:
    conversation = store.get_or_create_session(session_id).conversation
    conversation.profile = profile
    return {"complete": profile.is_complete}


@app.post("/session/{session_id}/listener")
async def listener_event(session_id: str, payload: dict) -> dict:
    listener = store.get_or_create_session(session_id).listener
    event = payload.get("event")
    if event == "start":
        listener.start()
    elif event == "stop":
        listener.stop()
    elif event == "end":
        listener.on_end()
    elif event == "error":
        listener.on_error(payload.get("code") or "unknown")
    else:
        raise HTTPException(status_code=400, detail=f"Unknown listener event {event!r}")
    return {"listening": listener.state.value}


@app.post("/session/{session_id}/transcript", response_model=TranscriptResponse)
async def post_transcript(session_id: str, request: TranscriptRequest) -> TranscriptResponse:
    session = store.get_or_create_session(session_id)
    conversation = session.conversation
    if request.reason is not None:
        conversation.booking_reason = request.reason
    if request.language:
        conversation.language = request.language
    if not request.final:
        session.listener.on_interim(request.transcript)
        return TranscriptResponse(step=conversation.step, pending_input=conversation.pending_input)
    # A final arriving while another is handled is queued and answered later.
    queued = bool(request.transcript.strip()) and session.listener.state == ListenerState.PROCESSING_FINAL
    await session.listener.on_final(request.transcript)
    if queued:
        return TranscriptResponse(queued=True, step=conversation.step, pending_input=conversation.pending_input)
    return TranscriptResponse(
        decision=conversation.last_decision,
        step=conversation.step,
        pending_input=conversation.pending_input,
    )


@app.post("/session/{session_id}/input/take")
async def take_pending_input(session_id: str) -> dict:
    conversation = store.get_or_create_session(session_id).conversation
    return {"text": conversation.take_pending_input()}


@app.get("/session/{session_id}/events", response_model=list[BookingEvent])
async def get_events(session_id: str) -> list[BookingEvent]:
    return store.list_events(session_id)


@app.post("/session/{session_id}/end")
async def end_session(session_id: str) -> dict:
    event = build_event("end_session", "Voice session ended")
    store.drop_session(session_id)
    await _broadcast_event(session_id, event)
    await manager.broadcast(
        session_id, {"type": "session_closed", "payload": {"session_id": session_id}}
    )
    return {"event": event.model_dump(mode="json")}


@app.websocket("/session/{session_id}/events")
async def session_events(session_id: str, websocket: WebSocket) -> None:
    await manager.connect(session_id, websocket)
    await manager.broadcast(
        session_id,
        {
            "type": "status",
            "payload": {"session_id": session_id, "state": "connected"},
        },
    )
    try:
        while True:
            message = await websocket.receive_json()
            if isinstance(message, dict) and message.get("type") == "ping":
                await websocket.send_json({"type": "pong", "payload": {"at": datetime.utcnow().isoformat()}})
    except WebSocketDisconnect:
        pass
    except ValueError:
        logger.warning("Closing websocket for session %s after an undecodable message", session_id)
        await websocket.close(code=1003)
    finally:
        manager.disconnect(session_id, websocket)
