"""Persistence interface shared by every backend.

Three logical collections are stored: participants, classes and attendance
records (plus the per class/date "checked" markers). Backends are
interchangeable and chosen by configuration (see ``get_storage``).
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import Iterable

from mmt_forms.models import AttendanceCheck, AttendanceRecord, Participant, SchoolClass


def new_id() -> str:
    return str(uuid.uuid4())


class Storage(ABC):
    """CRUD over participants, classes and attendance records.

    ``save_*`` methods upsert: a record whose id is unknown (or empty) is
    created, otherwise the stored record is replaced. They return the saved
    record, carrying the id assigned by the backend.
    """

    # Participants

    @abstractmethod
    def get_participants(self) -> list[Participant]:
        """Active (non-archived) participants."""

    def get_participant(self, participant_id: str) -> Participant | None:
        return next((p for p in self.get_participants() if p.id == participant_id), None)

    @abstractmethod
    def save_participant(self, participant: Participant) -> Participant: ...

    @abstractmethod
    def delete_participant(self, participant_id: str) -> None: ...

    @abstractmethod
    def archive_participant(self, participant_id: str) -> None:
        """Remove a participant from the active list while keeping its data."""

    # Classes

    @abstractmethod
    def get_classes(self) -> list[SchoolClass]: ...

    def get_class(self, class_id: str) -> SchoolClass | None:
        return next((c for c in self.get_classes() if c.id == class_id), None)

    @abstractmethod
    def save_class(self, school_class: SchoolClass) -> SchoolClass: ...

    @abstractmethod
    def delete_class(self, class_id: str) -> None: ...

    # Attendance

    @abstractmethod
    def get_attendances(
        self, class_id: str | None = None, date: str | None = None
    ) -> list[AttendanceRecord]:
        """Attendance records, optionally restricted to a class and/or a date."""

    @abstractmethod
    def save_attendance(self, record: AttendanceRecord) -> AttendanceRecord: ...

    def save_attendances(self, records: Iterable[AttendanceRecord]) -> list[AttendanceRecord]:
        return [self.save_attendance(record) for record in records]

    @abstractmethod
    def get_check(self, class_id: str, date: str) -> AttendanceCheck | None: ...

    @abstractmethod
    def save_check(self, check: AttendanceCheck) -> AttendanceCheck: ...
