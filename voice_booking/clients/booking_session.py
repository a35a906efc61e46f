from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from ..schemas import AssistantTurn, BookingDetails

logger = logging.getLogger(__name__)

FAILED_MESSAGE = "Failed to process your selection."


class BookingSessionError(Exception):
    """The chat backend refused or failed a booking action."""


class BookingSession(Protocol):
    async def select_hospital(self, session_id: str, hospital_id: str) -> AssistantTurn | None:
        ...

    async def select_doctor(self, session_id: str, doctor_id: str) -> AssistantTurn | None:
        ...

    async def select_date(self, session_id: str, iso_date: str) -> AssistantTurn | None:
        ...

    async def select_time(self, session_id: str, slot: str) -> AssistantTurn | None:
        ...

    async def confirm_booking(
        self, session_id: str, user_id: str, details: BookingDetails
    ) -> AssistantTurn | None:
        ...

    async def cancel_booking(self, session_id: str) -> AssistantTurn | None:
        ...


class HttpBookingSession:
    """Booking actions against the chat backend's ``/api/chat/action`` endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def _post(self, session_id: str, action: str, value: str, extra: dict | None = None) -> AssistantTurn:
        payload = {"sessionId": session_id, "action": action, "value": value, **(extra or {})}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.base_url}/api/chat/action", json=payload)
                response.raise_for_status()
                turn = AssistantTurn.model_validate(response.json())
        except httpx.HTTPStatusError as exc:
            raise BookingSessionError(_error_message(exc.response)) from exc
        except httpx.HTTPError as exc:
            logger.warning("Booking action %s failed: %s", action, exc)
            raise BookingSessionError(FAILED_MESSAGE) from exc
        except ValueError as exc:
            # Undecodable body or a payload that is not an assistant turn.
            logger.warning("Booking action %s returned an unusable reply: %s", action, exc)
            raise BookingSessionError(FAILED_MESSAGE) from exc
        if turn.session_id is None:
            turn.session_id = session_id
        return turn

    async def select_hospital(self, session_id: str, hospital_id: str) -> AssistantTurn:
        return await self._post(session_id, "select_hospital", hospital_id)

    async def select_doctor(self, session_id: str, doctor_id: str) -> AssistantTurn:
        return await self._post(session_id, "select_doctor", doctor_id)

    async def select_date(self, session_id: str, iso_date: str) -> AssistantTurn:
        return await self._post(session_id, "select_date", iso_date)

    async def select_time(self, session_id: str, slot: str) -> AssistantTurn:
        return await self._post(session_id, "select_time", slot)

    async def confirm_booking(self, session_id: str, user_id: str, details: BookingDetails) -> AssistantTurn:
        return await self._post(session_id, "confirm_booking", user_id, details.model_dump(by_alias=True))

    async def cancel_booking(self, session_id: str) -> None:
        # The backend has no cancel action; the session is abandoned client side.
        logger.info("Abandoning booking session %s", session_id)
        return None


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        message = body.get("error") or body.get("message")
        if message:
            return str(message)
    return f"Booking service returned {response.status_code}."


@dataclass
class InMemoryBookingSession:
    replies: dict[str, AssistantTurn] = field(default_factory=dict)
    calls: list[tuple[str, str, str, dict[str, Any]]] = field(default_factory=list)
    error: str | None = None

    def _record(self, session_id: str, action: str, value: str, extra: dict | None = None) -> AssistantTurn | None:
        self.calls.append((session_id, action, value, extra or {}))
        if self.error:
            raise BookingSessionError(self.error)
        return self.replies.get(action)

    async def select_hospital(self, session_id: str, hospital_id: str) -> AssistantTurn | None:
        return self._record(session_id, "select_hospital", hospital_id)

    async def select_doctor(self, session_id: str, doctor_id: str) -> AssistantTurn | None:
        return self._record(session_id, "select_doctor", doctor_id)

    async def select_date(self, session_id: str, iso_date: str) -> AssistantTurn | None:
        return self._record(session_id, "select_date", iso_date)

    async def select_time(self, session_id: str, slot: str) -> AssistantTurn | None:
        return self._record(session_id, "select_time", slot)

    async def confirm_booking(self, session_id: str, user_id: str, details: BookingDetails) -> AssistantTurn | None:
        return self._record(session_id, "confirm_booking", user_id, details.model_dump(by_alias=True))

    async def cancel_booking(self, session_id: str) -> AssistantTurn | None:
        self.calls.append((session_id, "cancel_booking", "", {}))
        return None
