from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Sequence

from ..config import today_in
from ..parsing.commands import (
    Cancellation,
    Command,
    Confirmation,
    Date,
    Number,
    Time,
    format_date_for_input,
)
from ..schemas import (
    AssistantTurn,
    BookingAction,
    BookingDetails,
    Decision,
    DialogueStep,
    PatientProfile,
)

logger = logging.getLogger(__name__)

DEFAULT_REASON = "General consultation"
CANCELLED_MESSAGE = "Booking cancelled. How else can I help you?"
TIME_UNAVAILABLE_MESSAGE = "Time not available. Please choose from the available slots."
SIGN_IN_MESSAGE = "Please sign in to confirm your booking."
DATE_OUT_OF_RANGE_MESSAGE = "Please say a date."

NO_DECISION = Decision()


def invalid_choice_message(count: int) -> str:
    return f"Invalid choice. Please say a number between 1 and {count}"


def _pick(options: Sequence, position: int):
    index = position - 1
    if 0 <= index < len(options):
        return options[index]
    return None


def _select_hospital(command: Command, turn: AssistantTurn) -> Decision:
    if not isinstance(command, Number) or turn.hospitals is None:
        return NO_DECISION
    hospital = _pick(turn.hospitals, command.value)
    if hospital is None:
        return Decision(feedback=invalid_choice_message(len(turn.hospitals)))
    if not hospital.selection_id:
        logger.warning("Hospital %r has no id or clinicId; selection withheld", hospital.name)
        return Decision(feedback=invalid_choice_message(len(turn.hospitals)))
    return Decision(
        action=BookingAction(name="select_hospital", value=hospital.selection_id),
        feedback=f"Selecting {hospital.name}",
    )


def _select_doctor(command: Command, turn: AssistantTurn) -> Decision:
    if not isinstance(command, Number) or turn.doctors is None:
        return NO_DECISION
    doctor = _pick(turn.doctors, command.value)
    if doctor is None:
        return Decision(feedback=invalid_choice_message(len(turn.doctors)))
    return Decision(
        action=BookingAction(name="select_doctor", value=doctor.id),
        feedback=f"Selecting Dr. {doctor.name}",
    )


def _select_date(command: Command, today: date) -> Decision:
    if isinstance(command, Date):
        spoken = f"{command.value:%B} {command.value.day}, {command.value.year}"
        return Decision(
            action=BookingAction(name="select_date", value=format_date_for_input(command.value)),
            feedback=f"Selecting date {spoken}",
        )
    if isinstance(command, Number):
        try:
            target = today + timedelta(days=command.value)
        except OverflowError:
            return Decision(feedback=DATE_OUT_OF_RANGE_MESSAGE)
        return Decision(
            action=BookingAction(name="select_date", value=format_date_for_input(target)),
            feedback=f"Selecting {command.value} days from today",
        )
    return NO_DECISION


def _select_time(command: Command, turn: AssistantTurn) -> Decision:
    slots = turn.available_slots
    if slots is None:
        return NO_DECISION
    if isinstance(command, Number):
        slot = _pick(slots, command.value)
        if slot is None:
            return Decision(feedback=invalid_choice_message(len(slots)))
    elif isinstance(command, Time):
        wanted = command.value.lower()
        slot = next((s for s in slots if wanted in s.lower()), None)
        if slot is None:
            return Decision(feedback=TIME_UNAVAILABLE_MESSAGE)
    else:
        return NO_DECISION
    return Decision(
        action=BookingAction(name="select_time", value=slot),
        feedback=f"Selecting {slot}",
    )


def _confirm_booking(command: Command, profile: PatientProfile | None, reason: str) -> Decision:
    if not isinstance(command, Confirmation):
        return NO_DECISION
    if profile is None or not profile.is_complete:
        logger.warning("Confirmation withheld: no authenticated patient profile")
        return Decision(feedback=SIGN_IN_MESSAGE)
    details = BookingDetails(
        patient_name=profile.name,
        patient_age=profile.age,
        patient_gender=profile.gender,
        patient_phone=profile.phone,
        patient_email=profile.email,
        reason=reason.strip() or DEFAULT_REASON,
    )
    return Decision(
        action=BookingAction(name="confirm_booking", value=str(profile.id), details=details),
        feedback="Confirming your booking",
    )


def drive(
    command: Command,
    step: DialogueStep | str | None,
    turn: AssistantTurn | None,
    profile: PatientProfile | None = None,
    reason: str = "",
    today: date | None = None,
) -> Decision:
    """Decide what a classified voice command does at the current step.

    ``turn`` is the latest assistant turn; its hospital, doctor and slot lists
    are the options the user is choosing from. Spoken positions are 1-based.
    Commands that do not fit the step produce an empty decision.
    """
    if isinstance(command, Cancellation):
        return Decision(
            action=BookingAction(name="cancel_booking"),
            feedback=CANCELLED_MESSAGE,
            clears_step=True,
        )
    if step is None:
        return NO_DECISION

    turn = turn or AssistantTurn()
    if step == DialogueStep.HOSPITAL_SELECTION:
        return _select_hospital(command, turn)
    if step == DialogueStep.DOCTOR_SELECTION:
        return _select_doctor(command, turn)
    if step == DialogueStep.DATE_SELECTION:
        return _select_date(command, today or today_in())
    if step == DialogueStep.TIME_SELECTION:
        return _select_time(command, turn)
    if step == DialogueStep.PATIENT_DETAILS:
        return _confirm_booking(command, profile, reason)
    return NO_DECISION
