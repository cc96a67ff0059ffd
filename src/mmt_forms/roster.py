"""Participants and classes.

There is no "current class" state: every operation that needs a class
receives its id explicitly.
"""

from collections.abc import Iterable
from datetime import date

from mmt_forms.logging import get_logger
from mmt_forms.models import ParsedFormData, Participant, SchoolClass
from mmt_forms.storage.base import Storage

log = get_logger(__name__)

UNASSIGNED_CLASS = "Sans classe"


def _same_person(participant: Participant, first_name: str, last_name: str) -> bool:
    if participant.last_name.strip().lower() != last_name.strip().lower():
        return False
    first, other = participant.first_name.strip().lower(), first_name.strip().lower()
    return first == other


class ParticipantService:
    """Participant CRUD, deduplication on import and archiving."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def list_participants(self) -> list[Participant]:
        return sorted(
            self.storage.get_participants(),
            key=lambda p: (p.last_name.lower(), p.first_name.lower()),
        )

    def get(self, participant_id: str) -> Participant | None:
        return self.storage.get_participant(participant_id)

    def add(self, participant: Participant) -> Participant:
        saved = self.storage.save_participant(participant.model_copy(update={"id": ""}))
        log.info("participant_added", participant_id=saved.id, last_name=saved.last_name)
        return saved

    def update(self, participant: Participant) -> Participant:
        return self.storage.save_participant(participant)

    def delete(self, participant_id: str) -> None:
        self.storage.delete_participant(participant_id)
        log.info("participant_deleted", participant_id=participant_id)

    def find_duplicate(self, first_name: str, last_name: str) -> Participant | None:
        """Existing participant with the same names, compared case-insensitively."""
        return next(
            (p for p in self.storage.get_participants() if _same_person(p, first_name, last_name)),
            None,
        )

    def upsert_from_form(
        self, parsed: ParsedFormData, original_pdf: bytes | None = None
    ) -> tuple[Participant, bool]:
        """Create or refresh a participant from an imported form.

        An existing participant with the same names keeps its id, schedule
        and any value the form leaves blank.

        Returns:
            (saved participant, True if it was created)
        """
        incoming = parsed.to_participant(original_pdf)
        existing = self.find_duplicate(incoming.first_name, incoming.last_name)
        if existing is None:
            return self.add(incoming), True

        updates = {
            name: value
            for name, value in incoming.model_dump(exclude={"id", "schedule"}).items()
            if value not in ("", None)
        }
        merged = existing.model_copy(update=updates)
        saved = self.storage.save_participant(merged)
        log.info("participant_updated_from_form", participant_id=saved.id)
        return saved, False

    def archive_expired(self, today: date | None = None) -> list[Participant]:
        """Archive participants whose measure ended before the current month.

        Returns:
            The archived participants.
        """
        today = today or date.today()
        month_start = today.replace(day=1).isoformat()
        expired = [
            p for p in self.storage.get_participants() if p.date_end and p.date_end < month_start
        ]
        for participant in expired:
            self.storage.archive_participant(participant.id)
        if expired:
            log.info("participants_archived", count=len(expired), before=month_start)
        return expired


class ClassService:
    """Class CRUD and membership."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def list_classes(self) -> list[SchoolClass]:
        return sorted(self.storage.get_classes(), key=lambda c: c.name.lower())

    def get(self, class_id: str) -> SchoolClass | None:
        return self.storage.get_class(class_id)

    def add(self, name: str, description: str = "") -> SchoolClass:
        saved = self.storage.save_class(SchoolClass(name=name, description=description))
        log.info("class_added", class_id=saved.id, name=name)
        return saved

    def update(self, school_class: SchoolClass) -> SchoolClass:
        return self.storage.save_class(school_class)

    def delete(self, class_id: str) -> None:
        self.storage.delete_class(class_id)

    def set_participants(self, class_id: str, participant_ids: Iterable[str]) -> SchoolClass:
        school_class = self._require(class_id)
        ids = list(dict.fromkeys(participant_ids))
        return self.storage.save_class(school_class.model_copy(update={"participant_ids": ids}))

    def add_participant(self, class_id: str, participant_id: str) -> SchoolClass:
        school_class = self._require(class_id)
        if participant_id in school_class.participant_ids:
            return school_class
        return self.set_participants(class_id, [*school_class.participant_ids, participant_id])

    def participants_of(self, class_id: str, participants: Iterable[Participant]) -> list[Participant]:
        school_class = self._require(class_id)
        members = set(school_class.participant_ids)
        return [p for p in participants if p.id in members]

    def group_by_class(self, participants: Iterable[Participant]) -> dict[str, list[Participant]]:
        """Class name -> members; participants in no class go under ``Sans classe``."""
        participants = list(participants)
        groups: dict[str, list[Participant]] = {}
        assigned: set[str] = set()
        for school_class in self.list_classes():
            members = self.participants_of(school_class.id, participants)
            groups[school_class.name] = members
            assigned.update(p.id for p in members)
        unassigned = [p for p in participants if p.id not in assigned]
        if unassigned:
            groups[UNASSIGNED_CLASS] = unassigned
        return groups

    def _require(self, class_id: str) -> SchoolClass:
        school_class = self.get(class_id)
        if school_class is None:
            raise KeyError(f"unknown class {class_id!r}")
        return school_class
