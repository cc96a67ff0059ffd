"""Backends that keep the whole database in one JSON document.

Document layout (camelCase, compatible with ``mmt_db.json``)::

    {
      "participants": [...],
      "archivedParticipants": [...],
      "classes": [...],
      "attendance": {"<classId>_<date>_<participantId>": {...}},
      "attendanceChecks": {"check_<classId>_<date>": {...}}
    }

Subclasses only implement ``_read`` and ``_write``. The document is read
once and cached; every mutation writes it back in full.
"""

from abc import abstractmethod

from pydantic import ValidationError as PydanticValidationError

from mmt_forms.errors import StorageError
from mmt_forms.logging import get_logger
from mmt_forms.models import AttendanceCheck, AttendanceRecord, Participant, SchoolClass
from mmt_forms.storage.base import Storage, new_id

log = get_logger(__name__)

COLLECTIONS = {
    "participants": list,
    "archivedParticipants": list,
    "classes": list,
    "attendance": dict,
    "attendanceChecks": dict,
}


def empty_document() -> dict:
    return {name: factory() for name, factory in COLLECTIONS.items()}


class DocumentStorage(Storage):
    """Storage over a single JSON document."""

    def __init__(self) -> None:
        self._doc: dict | None = None

    @abstractmethod
    def _read(self) -> dict | None:
        """Return the stored document, or None when nothing was stored yet."""

    @abstractmethod
    def _write(self, document: dict) -> None: ...

    @property
    def document(self) -> dict:
        if self._doc is None:
            loaded = self._read()
            if loaded is not None and not isinstance(loaded, dict):
                raise StorageError("database document must be a JSON object")
            doc = empty_document()
            for name, factory in COLLECTIONS.items():
                value = (loaded or {}).get(name)
                if isinstance(value, factory):
                    doc[name] = value
            self._doc = doc
        return self._doc

    def refresh(self) -> None:
        """Drop the cached document; the next access reads it again."""
        self._doc = None

    def _commit(self) -> None:
        self._write(self.document)

    def _parse(self, model, raw: dict):
        try:
            return model.model_validate(raw)
        except PydanticValidationError as e:
            raise StorageError(f"invalid {model.__name__} record: {e}") from e

    # Participants

    def get_participants(self) -> list[Participant]:
        return [self._parse(Participant, raw) for raw in self.document["participants"]]

    def get_archived_participants(self) -> list[Participant]:
        return [self._parse(Participant, raw) for raw in self.document["archivedParticipants"]]

    def save_participant(self, participant: Participant) -> Participant:
        if not participant.id:
            participant = participant.model_copy(update={"id": new_id()})
        items = self.document["participants"]
        _upsert(items, participant.id, participant.to_document())
        self._commit()
        return participant

    def delete_participant(self, participant_id: str) -> None:
        items = self.document["participants"]
        items[:] = [raw for raw in items if raw.get("id") != participant_id]
        for raw in self.document["classes"]:
            ids = raw.get("participantIds", [])
            if participant_id in ids:
                raw["participantIds"] = [i for i in ids if i != participant_id]
        self._commit()

    def archive_participant(self, participant_id: str) -> None:
        items = self.document["participants"]
        archived = [raw for raw in items if raw.get("id") == participant_id]
        if not archived:
            return
        items[:] = [raw for raw in items if raw.get("id") != participant_id]
        self.document["archivedParticipants"].extend(archived)
        self._commit()

    # Classes

    def get_classes(self) -> list[SchoolClass]:
        return [self._parse(SchoolClass, raw) for raw in self.document["classes"]]

    def save_class(self, school_class: SchoolClass) -> SchoolClass:
        if not school_class.id:
            school_class = school_class.model_copy(update={"id": new_id()})
        _upsert(self.document["classes"], school_class.id, school_class.to_document())
        self._commit()
        return school_class

    def delete_class(self, class_id: str) -> None:
        items = self.document["classes"]
        items[:] = [raw for raw in items if raw.get("id") != class_id]
        self._commit()

    # Attendance

    def get_attendances(
        self, class_id: str | None = None, date: str | None = None
    ) -> list[AttendanceRecord]:
        records = [
            self._parse(AttendanceRecord, raw) for raw in self.document["attendance"].values()
        ]
        return [
            r
            for r in records
            if (class_id is None or r.class_id == class_id) and (date is None or r.date == date)
        ]

    def save_attendance(self, record: AttendanceRecord) -> AttendanceRecord:
        self.document["attendance"][record.record_id] = record.to_document()
        self._commit()
        return record

    def save_attendances(self, records) -> list[AttendanceRecord]:
        records = list(records)
        for record in records:
            self.document["attendance"][record.record_id] = record.to_document()
        self._commit()
        return records

    def get_check(self, class_id: str, date: str) -> AttendanceCheck | None:
        raw = self.document["attendanceChecks"].get(f"check_{class_id}_{date}")
        return self._parse(AttendanceCheck, raw) if raw else None

    def save_check(self, check: AttendanceCheck) -> AttendanceCheck:
        self.document["attendanceChecks"][check.check_id] = check.to_document()
        self._commit()
        return check


def _upsert(items: list[dict], item_id: str, raw: dict) -> None:
    for position, existing in enumerate(items):
        if existing.get("id") == item_id:
            items[position] = raw
            return
    items.append(raw)
