import pytest
from pydantic import ValidationError

from conftest import START
from crosstalk.core.errors import InvalidInputError
from crosstalk.core.roles import Role
from crosstalk.core.schemas import (
    Answer,
    JoinRequest,
    MessageCreate,
    Participant,
    Session,
    SessionCreate,
    SessionStatus,
    clean_name,
    normalize_pin,
    replace,
    validate_record,
)


def test_session_defaults_and_pin_casing():
    session = Session(game_pin="ab12cd")
    assert session.game_pin == "AB12CD"
    assert session.status == SessionStatus.WAITING
    assert session.timer_duration == 900
    assert session.started_at is None and session.ended_at is None


@pytest.mark.parametrize("pin", ["ABC12", "ABC1234", "ABC-12", ""])
def test_session_rejects_malformed_pins(pin):
    with pytest.raises(ValidationError):
        Session(game_pin=pin)


def test_session_timestamps_follow_status():
    with pytest.raises(ValidationError):
        Session(game_pin="ABC123", status=SessionStatus.IN_PROGRESS)
    with pytest.raises(ValidationError):
        Session(game_pin="ABC123", status=SessionStatus.COMPLETED, started_at=START)
    with pytest.raises(ValidationError):
        Session(game_pin="ABC123", started_at=START)
    Session(game_pin="ABC123", status=SessionStatus.COMPLETED, started_at=START, ended_at=START)


def test_participant_role_and_fluency_are_set_together():
    with pytest.raises(ValidationError):
        Participant(session_id="s", name="Ada", role=Role.CEO)
    with pytest.raises(ValidationError):
        Participant(session_id="s", name="Ada", is_native_speaker=False)
    participant = Participant(session_id="s", name="  Ada  ", role="VP_Finance", is_native_speaker=False)
    assert participant.name == "Ada"
    assert participant.role is Role.VP_FINANCE
    assert participant.is_assigned


def test_participant_name_must_not_be_blank():
    with pytest.raises(ValidationError):
        Participant(session_id="s", name="   ")


def test_answer_slots():
    with pytest.raises(ValidationError):
        Answer(session_id="s", team_id="t", question_number=5, submitted_by="p")
    with pytest.raises(ValidationError):
        Answer(session_id="s", team_id="t", question_number=0, submitted_by="p")


def test_validate_record_wraps_validation_errors():
    with pytest.raises(InvalidInputError, match="Invalid session"):
        validate_record(Session, {"game_pin": "nope"})


def test_replace_returns_a_validated_copy():
    session = Session(game_pin="ABC123")
    started = replace(session, status=SessionStatus.IN_PROGRESS, started_at=START)
    assert started.id == session.id
    assert session.status == SessionStatus.WAITING
    with pytest.raises(InvalidInputError):
        replace(session, status=SessionStatus.IN_PROGRESS)


def test_pin_and_name_normalization():
    assert normalize_pin(" xy98zz ") == "XY98ZZ"
    with pytest.raises(InvalidInputError):
        normalize_pin("XY98")
    with pytest.raises(InvalidInputError):
        normalize_pin(None)
    assert clean_name("  Bo ") == "Bo"
    with pytest.raises(InvalidInputError):
        clean_name("")


def test_request_payload_aliases():
    assert JoinRequest.model_validate({"gamePin": "abc123", "name": "Ada"}).pin == "abc123"
    assert MessageCreate.model_validate({"content": "hi", "isCodeSwitched": True}).is_code_switched
    assert SessionCreate.model_validate({"timerDuration": 600}).timer_duration == 600
    assert SessionCreate.model_validate({}).timer_duration is None
    with pytest.raises(ValidationError):
        SessionCreate.model_validate({"timerDuration": 0})
