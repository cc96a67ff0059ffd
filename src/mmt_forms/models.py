"""Pydantic models for participants, classes and attendance.

All data structures use Pydantic v2 for validation, serialization, and type safety.
Attributes are snake_case; every model also accepts and emits the camelCase
keys of the stored JSON documents (``firstName``, ``participantIds`` ...).
"""

import base64
import binascii
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from mmt_forms.codes import DEFAULT_CODE

WEEKDAYS = (1, 2, 3, 4, 5)  # Monday..Friday, isoweekday numbering
PERIODS = ("am", "pm")


def _full_schedule() -> dict[str, bool]:
    return {f"{day}-{period}": True for day in WEEKDAYS for period in PERIODS}


class StoredModel(BaseModel):
    """Base for records persisted as camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self) -> dict:
        """Serialize with camelCase keys, ready for a JSON document."""
        return self.model_dump(mode="json", by_alias=True)


class Participant(StoredModel):
    """A person enrolled in an MMT measure.

    Seeded from an uploaded form (see ``ParsedFormData.to_participant``) and
    completed by hand. The uploaded PDF is kept as the generation template.
    """

    id: str = ""
    first_name: str = ""
    last_name: str = ""
    course_type: str = ""  # Measure code, e.g. "MARKET0625"
    date_start: str = ""  # ISO date
    date_end: str = ""  # ISO date
    work_percent: int = 100
    avs_number: str = ""  # Swiss social security number (756.xxxx.xxxx.xx)
    birth_date: str = ""
    decision_number: str = ""
    unemployment_office: str = ""  # Caisse de chômage, used to group exports
    execution_place: str = ""
    interruption_mmt: bool = Field(default=False, alias="interruptionMMT")
    interruption_date: str = ""  # ISO date, only meaningful with interruption_mmt
    schedule: dict[str, bool] = Field(default_factory=_full_schedule)  # "3-pm" -> attends
    original_pdf: bytes | None = Field(default=None, alias="originalPdfBase64")

    @field_validator("original_pdf", mode="before")
    @classmethod
    def _decode_pdf(cls, value):
        if isinstance(value, str):
            if not value:
                return None
            if value.startswith("data:"):
                value = value.split(",", 1)[-1]
            try:
                return base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError) as e:
                raise ValueError(f"originalPdfBase64 is not valid base64: {e}") from e
        return value

    @field_serializer("original_pdf", when_used="json")
    def _encode_pdf(self, value: bytes | None) -> str | None:
        if value is None:
            return None
        return base64.b64encode(value).decode("ascii")

    @property
    def full_name(self) -> str:
        return f"{self.last_name} {self.first_name}".strip()


class SchoolClass(StoredModel):
    """A group of participants taking attendance together."""

    id: str = ""
    name: str
    description: str = ""
    participant_ids: list[str] = Field(default_factory=list)


class AttendanceRecord(StoredModel):
    """Morning and afternoon codes of one participant on one day, in one class."""

    date: str  # ISO date
    participant_id: str
    class_id: str
    morning_code: str = DEFAULT_CODE.value
    afternoon_code: str = DEFAULT_CODE.value
    comment: str = ""

    @property
    def record_id(self) -> str:
        """Composite identity: one record per (class, date, participant)."""
        return f"{self.class_id}_{self.date}_{self.participant_id}"


class AttendanceCheck(StoredModel):
    """Marks that a class's attendance for a date was reviewed and saved."""

    class_id: str
    date: str
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def check_id(self) -> str:
        return f"check_{self.class_id}_{self.date}"


class DayAttendance(BaseModel):
    """Raw codes of one day as printed on a form."""

    am: str = ""
    pm: str = ""


class ParsedFormData(BaseModel):
    """Everything the extractor recovers from one filled MMT form.

    Scalars are best-effort: an absent value is an empty string, never an
    error. Only ``last_name`` is mandatory (enforced by the extractor).
    """

    # Participant
    first_name: str = ""
    last_name: str = ""
    avs_number: str = ""
    birth_date: str = ""  # ISO after normalization
    month_year: str = ""  # As printed, e.g. "062025"

    # Measure
    course_type: str = ""
    date_start: str = ""
    date_end: str = ""
    work_percent: int = 100
    decision_number: str = ""
    unemployment_office: str = ""
    execution_place: str = ""

    # Organizer
    organizer_name: str = ""
    organizer_last_name: str = ""
    organizer_first_name: str = ""
    organizer_phone: str = ""
    organizer_email: str = ""

    # Flags and signature block
    no_participation: bool = False
    is_correction: bool = False
    was_interrupted: bool = False
    interruption_date: str = ""
    signature_place: str = ""
    signature_date: str = ""
    comments: str = ""

    attendance_by_day: dict[int, DayAttendance] = Field(default_factory=dict)

    def to_participant(self, original_pdf: bytes | None = None) -> Participant:
        """Seed a participant record from the extracted values."""
        return Participant(
            first_name=self.first_name,
            last_name=self.last_name,
            course_type=self.course_type,
            date_start=self.date_start,
            date_end=self.date_end,
            work_percent=self.work_percent,
            avs_number=self.avs_number,
            birth_date=self.birth_date,
            decision_number=self.decision_number,
            unemployment_office=self.unemployment_office,
            execution_place=self.execution_place,
            interruption_mmt=self.was_interrupted,
            interruption_date=self.interruption_date,
            original_pdf=original_pdf,
        )
