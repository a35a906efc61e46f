from datetime import date

import pytest

from voice_booking.clients.booking_session import InMemoryBookingSession
from voice_booking.dialogue.conversation import BookingConversation
from voice_booking.schemas import AssistantTurn, Doctor, Hospital, PatientProfile
from voice_booking.tools.speech import RecordingSpeaker

TODAY = date(2025, 3, 10)


def hospital_turn(count: int = 3, session_id: str = "chat-1") -> AssistantTurn:
    return AssistantTurn(
        message="Here are some hospitals near you.",
        step="hospital_selection",
        session_id=session_id,
        hospitals=[Hospital(id=f"h{i}", name=f"Hospital {i}") for i in range(1, count + 1)],
    )


def doctor_turn(session_id: str = "chat-1") -> AssistantTurn:
    return AssistantTurn(
        message="Choose a doctor.",
        step="doctor_selection",
        session_id=session_id,
        doctors=[
            Doctor(id="d1", name="Asha Rao", specialization="Cardiology"),
            Doctor(id="d2", name="Vikram Shah", specialization="Dermatology"),
        ],
    )


def time_turn(slots=("09:00 AM", "02:00 PM"), session_id: str = "chat-1") -> AssistantTurn:
    return AssistantTurn(
        message="Pick a time.",
        step="time_selection",
        session_id=session_id,
        available_slots=list(slots),
    )


@pytest.fixture
def profile():
    return PatientProfile(
        id="user-42",
        name="Jane Example",
        age=34,
        gender="female",
        phone="+91 98765 43210",
        email="jane@example.com",
    )


@pytest.fixture
def booking_session():
    return InMemoryBookingSession()


@pytest.fixture
def speaker():
    return RecordingSpeaker()


@pytest.fixture
def conversation(booking_session, speaker):
    return BookingConversation(session=booking_session, speaker=speaker, today=TODAY)
