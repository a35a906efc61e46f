import asyncio

from conftest import TODAY, doctor_turn, hospital_turn, time_turn
from voice_booking.dialogue.conversation import BookingConversation
from voice_booking.dialogue.driver import CANCELLED_MESSAGE, DATE_OUT_OF_RANGE_MESSAGE, SIGN_IN_MESSAGE
from voice_booking.dialogue.listener import ListenerState
from voice_booking.schemas import AssistantTurn


def say(conversation, text):
    return asyncio.run(conversation.handle_transcript(text))


def test_idle_speech_becomes_chat_input(conversation, booking_session):
    assert not conversation.booking_active
    assert say(conversation, "I have a headache") is None
    say(conversation, "since yesterday")
    assert conversation.pending_input == "I have a headache since yesterday"
    assert booking_session.calls == []
    assert conversation.events[-1].name == "pending_input"


def test_interim_indicator_in_idle_mode(conversation):
    conversation.pending_input = "hello"
    conversation.show_interim("I ne")
    assert conversation.pending_input == "hello [Listening...] I ne"
    conversation.show_interim("I need")
    assert conversation.pending_input == "hello [Listening...] I need"
    conversation.clear_listening_indicator()
    assert conversation.pending_input == "hello"


def test_final_replaces_interim_indicator(conversation):
    conversation.show_interim("fev")
    say(conversation, "fever")
    assert conversation.take_pending_input() == "fever"
    assert conversation.pending_input == ""


def test_interim_ignored_during_booking(conversation):
    conversation.apply_turn(hospital_turn())
    conversation.show_interim("two")
    assert conversation.pending_input == ""


def test_hospital_selection_advances_to_doctor(conversation, booking_session, speaker):
    booking_session.replies["select_hospital"] = doctor_turn()
    conversation.apply_turn(hospital_turn())
    assert conversation.step == "hospital_selection"

    decision = say(conversation, "number two")

    assert decision.action.value == "h2"
    assert booking_session.calls == [("chat-1", "select_hospital", "h2", {})]
    assert speaker.spoken == [("Selecting Hospital 2", "en-US")]
    assert conversation.step == "doctor_selection"
    assert conversation.turn.doctors[0].id == "d1"


def test_invalid_choice_is_spoken_and_step_kept(conversation, booking_session, speaker):
    conversation.apply_turn(hospital_turn(3))
    say(conversation, "five")
    assert booking_session.calls == []
    assert speaker.spoken == [("Invalid choice. Please say a number between 1 and 3", "en-US")]
    assert conversation.step == "hospital_selection"


def test_unknown_command_does_nothing(conversation, booking_session, speaker):
    conversation.apply_turn(time_turn())
    decision = say(conversation, "what's up")
    assert decision.is_noop
    assert conversation.last_decision is decision
    assert booking_session.calls == []
    assert speaker.spoken == []


def test_time_selection_by_spoken_time(conversation, booking_session):
    conversation.apply_turn(time_turn())
    say(conversation, "2 pm")
    assert booking_session.calls == []
    say(conversation, "2:00")
    assert booking_session.calls == [("chat-1", "select_time", "02:00 PM", {})]


def test_cancellation_clears_step(conversation, booking_session):
    conversation.apply_turn(hospital_turn())
    decision = say(conversation, "never mind")
    assert decision.clears_step
    assert conversation.step is None
    assert conversation.turn is None
    assert not conversation.booking_active
    assert conversation.messages[-1]["content"] == CANCELLED_MESSAGE
    assert booking_session.calls == [("chat-1", "cancel_booking", "", {})]

    say(conversation, "I also have a cough")
    assert conversation.pending_input == "I also have a cough"


def test_confirmation_books_with_profile(conversation, booking_session, profile):
    booking_session.replies["confirm_booking"] = AssistantTurn(
        message="Your appointment is booked.", step="booking_confirmed"
    )
    conversation.profile = profile
    conversation.apply_turn(AssistantTurn(step="patient_details", session_id="chat-1"))

    say(conversation, "yes, book it")

    session_id, action, value, extra = booking_session.calls[0]
    assert (session_id, action, value) == ("chat-1", "confirm_booking", "user-42")
    assert extra["patientName"] == "Jane Example"
    assert extra["patientPhone"] == "+91 98765 43210"
    assert extra["reason"] == "General consultation"
    assert conversation.step == "booking_confirmed"
    assert conversation.session_id is None
    assert not conversation.booking_active
    assert "***3210" in conversation.events[-1].detail


def test_confirmation_without_profile_is_withheld(conversation, booking_session, speaker):
    conversation.apply_turn(AssistantTurn(step="patient_details", session_id="chat-1"))
    say(conversation, "confirm")
    assert booking_session.calls == []
    assert speaker.spoken == [(SIGN_IN_MESSAGE, "en-US")]


def test_action_without_session_is_skipped(conversation, booking_session):
    conversation.apply_turn(hospital_turn(session_id=None))
    say(conversation, "1")
    assert booking_session.calls == []
    assert conversation.events[-1].status == "skipped"


def test_backend_failure_is_reported(conversation, booking_session):
    booking_session.error = "Slot already booked"
    conversation.apply_turn(time_turn())
    say(conversation, "1")
    assert conversation.messages[-1]["content"] == "Slot already booked"
    assert conversation.events[-1].status == "failed"
    assert conversation.step == "time_selection"


def test_feedback_uses_language_locale(conversation, speaker):
    conversation.language = "hi"
    conversation.apply_turn(hospital_turn(2))
    say(conversation, "9")
    assert speaker.spoken[-1][1] == "hi-IN"


def test_listener_drives_conversation(conversation, booking_session):
    booking_session.replies["select_hospital"] = doctor_turn()
    conversation.apply_turn(hospital_turn())
    listener = conversation.listener()
    listener.start()

    asyncio.run(listener.on_final("3"))

    assert booking_session.calls == [("chat-1", "select_hospital", "h3", {})]
    assert listener.state == ListenerState.LISTENING


def test_listener_goes_idle_outside_booking(conversation):
    listener = conversation.listener()
    listener.start()
    listener.on_interim("chest")
    assert conversation.pending_input == "[Listening...] chest"
    asyncio.run(listener.on_final("chest pain"))
    assert conversation.pending_input == "chest pain"
    assert listener.state == ListenerState.IDLE


class BrokenSpeaker:
    async def say(self, text, locale):
        raise RuntimeError("speech channel closed")


def test_speech_failure_does_not_block_booking(booking_session):
    booking_session.replies["select_hospital"] = doctor_turn()
    conversation = BookingConversation(session=booking_session, speaker=BrokenSpeaker(), today=TODAY)
    conversation.apply_turn(hospital_turn())

    decision = say(conversation, "number two")

    assert decision.action.value == "h2"
    assert booking_session.calls == [("chat-1", "select_hospital", "h2", {})]
    assert conversation.step == "doctor_selection"
    assert [(event.name, event.status) for event in conversation.events] == [
        ("speak", "failed"),
        ("select_hospital", "completed"),
    ]


def test_huge_day_offset_is_spoken_not_raised(conversation, booking_session, speaker):
    conversation.apply_turn(AssistantTurn(step="date_selection", session_id="chat-1"))
    decision = say(conversation, "99999999")
    assert decision.action is None
    assert speaker.spoken == [(DATE_OUT_OF_RANGE_MESSAGE, "en-US")]
    assert booking_session.calls == []
    assert conversation.step == "date_selection"
