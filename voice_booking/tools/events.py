from __future__ import annotations

import uuid
from datetime import datetime

from ..schemas import BookingAction, BookingEvent


def build_event(name: str, detail: str, status: str = "completed") -> BookingEvent:
    return BookingEvent(
        id=uuid.uuid4().hex,
        name=name,
        status=status,
        detail=detail,
        timestamp=datetime.utcnow(),
    )


def _mask_contact(contact_number: str) -> str:
    digits = "".join(ch for ch in contact_number if ch.isdigit())
    if len(digits) < 4:
        return contact_number
    return f"***{digits[-4:]}"


def describe_action(action: BookingAction) -> str:
    if action.name == "select_hospital":
        return f"Selected hospital {action.value}"
    if action.name == "select_doctor":
        return f"Selected doctor {action.value}"
    if action.name == "select_date":
        return f"Selected date {action.value}"
    if action.name == "select_time":
        return f"Selected time {action.value}"
    if action.name == "confirm_booking":
        details = action.details
        phone = f" ({_mask_contact(details.patient_phone)})" if details and details.patient_phone else ""
        reason = f" for {details.reason}" if details else ""
        return f"Confirmed booking{reason}{phone}"
    if action.name == "cancel_booking":
        return "Booking cancelled"
    return action.name


def action_event(action: BookingAction, status: str = "completed", detail: str | None = None) -> BookingEvent:
    return build_event(action.name, detail or describe_action(action), status=status)


def speech_event(text: str, status: str = "completed") -> BookingEvent:
    return build_event("speak", text, status=status)


def pending_input_event(transcript: str) -> BookingEvent:
    return build_event("pending_input", f"Added {len(transcript.split())} words to chat input")
