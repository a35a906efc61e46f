from datetime import datetime
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class DialogueStep(str, Enum):
    """Booking flow steps as reported by the chat backend."""
    SYMPTOM_EXPLANATION = "symptom_explanation"
    HOSPITAL_SELECTION = "hospital_selection"
    DOCTOR_SELECTION = "doctor_selection"
    DATE_SELECTION = "date_selection"
    TIME_SELECTION = "time_selection"
    PATIENT_DETAILS = "patient_details"
    BOOKING_CONFIRMED = "booking_confirmed"


TERMINAL_STEPS = (DialogueStep.BOOKING_CONFIRMED,)


def is_terminal_step(step: str | None) -> bool:
    return any(step == terminal for terminal in TERMINAL_STEPS)


class _CamelModel(BaseModel):
    # Backends send numeric ids; they are kept as strings.
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)


class Hospital(_CamelModel):
    id: str | None = None
    clinic_id: str | None = Field(default=None, alias="clinicId")
    name: str
    latitude: float | None = None
    longitude: float | None = None
    address: str | None = None
    phone: str | None = None
    distance: float | None = None
    specializations: list[str] = Field(default_factory=list)

    @property
    def selection_id(self) -> str | None:
        return self.id or self.clinic_id


class Doctor(_CamelModel):
    id: str
    name: str
    specialization: str | None = None
    qualifications: str | None = None
    experience: str | None = None
    image_url: str | None = Field(default=None, alias="imageUrl")


class AppointmentDetails(_CamelModel):
    hospital: str | None = None
    doctor: str | None = None
    date: str | None = None
    time: str | None = None
    patient: str | None = None


class AssistantTurn(_CamelModel):
    message: str = Field(default="", validation_alias=AliasChoices("message", "reply", "content"))
    step: str | None = None
    session_id: str | None = Field(default=None, validation_alias=AliasChoices("sessionId", "session_id"))
    hospitals: list[Hospital] | None = None
    doctors: list[Doctor] | None = None
    available_slots: list[str] | None = Field(
        default=None, validation_alias=AliasChoices("availableSlots", "available_slots")
    )
    appointment_details: AppointmentDetails | None = Field(
        default=None,
        validation_alias=AliasChoices("appointmentDetails", "appointment_details", "details"),
    )


class PatientProfile(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: str | None = None
    name: str | None = None
    age: int | str | None = None
    gender: str | None = None
    phone: str | None = None
    email: str | None = None

    @property
    def is_complete(self) -> bool:
        return bool(self.id and str(self.id).strip())


class BookingDetails(_CamelModel):
    patient_name: str | None = Field(default=None, alias="patientName")
    patient_age: int | str | None = Field(default=None, alias="patientAge")
    patient_gender: str | None = Field(default=None, alias="patientGender")
    patient_phone: str | None = Field(default=None, alias="patientPhone")
    patient_email: str | None = Field(default=None, alias="patientEmail")
    reason: str = "General consultation"


class BookingAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: str = ""
    details: BookingDetails | None = None


class Decision(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: BookingAction | None = None
    feedback: str | None = None
    clears_step: bool = False

    @property
    def is_noop(self) -> bool:
        return self.action is None and self.feedback is None


class BookingEvent(BaseModel):
    id: str
    name: str
    status: str
    detail: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class SessionStartResponse(BaseModel):
    session_id: str
    ws_url: str


class TranscriptRequest(BaseModel):
    transcript: str
    final: bool = True
    reason: str | None = None
    language: str | None = None


class TranscriptResponse(BaseModel):
    decision: Decision | None = None
    step: str | None = None
    pending_input: str = ""
    queued: bool = False
