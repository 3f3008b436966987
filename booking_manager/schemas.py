from uuid import UUID, uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator

NAME_MAX_LENGTH = 20
NOTES_MAX_LENGTH = 60

NAME_EXTRA_CHARS = " .!?-@_"
NOTES_EXTRA_CHARS = " .!?@_#%*-()+=:~\n£€¥$¢"


class Timeslot(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    datetime: AwareDatetime
    available: bool = True
    booker_name: str = ""
    notes: str = ""


def _allowed_chars(value: str, extra: str) -> bool:
    return all(ch.isalpha() or ch in "0123456789" or ch in extra for ch in value)


class BookingRequest(BaseModel):
    id: UUID
    client_name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)

    @field_validator("client_name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        if not _allowed_chars(value, NAME_EXTRA_CHARS):
            raise ValueError("Invalid characters in name")
        return value


class AddTimeslotRequest(BaseModel):
    datetime: AwareDatetime
    notes: str = Field(default="", max_length=NOTES_MAX_LENGTH)

    @field_validator("notes")
    @classmethod
    def _check_notes(cls, value: str) -> str:
        if not _allowed_chars(value, NOTES_EXTRA_CHARS):
            raise ValueError("Invalid characters in notes")
        return value


class DeleteTimeslotRequest(BaseModel):
    id: UUID


class MessageResponse(BaseModel):
    message: str
