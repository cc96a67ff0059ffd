"""Attendance entry for a class on a given day.

The grid of a class and date is saved as a whole. Before anything is
stored, every record using code G (other justified absence) must carry a
comment; otherwise the save is rejected and the offending participants are
named. The PDF generator relies on this check and does not repeat it.
"""

from collections.abc import Iterable
from datetime import date

from mmt_forms.codes import display_code, requires_comment
from mmt_forms.dates import parse_month
from mmt_forms.errors import MissingCommentError
from mmt_forms.logging import get_logger
from mmt_forms.models import AttendanceCheck, AttendanceRecord
from mmt_forms.storage.base import Storage

log = get_logger(__name__)

# Hours credited for an on-site half-day
MORNING_HOURS = 4
AFTERNOON_HOURS = 2


def validate_records(
    records: Iterable[AttendanceRecord], names: dict[str, str] | None = None
) -> None:
    """Reject code G entries without a comment.

    Args:
        records: Records about to be saved.
        names: Participant id -> display name, used in the error message.

    Raises:
        MissingCommentError: Listing every participant with a G and no comment.
    """
    names = names or {}
    offenders: list[str] = []
    for record in records:
        uses_g = requires_comment(record.morning_code) or requires_comment(record.afternoon_code)
        if uses_g and not record.comment.strip():
            offenders.append(names.get(record.participant_id, record.participant_id))
    if offenders:
        raise MissingCommentError(offenders)


def total_hours(records: Iterable[AttendanceRecord]) -> int:
    """Hours of on-site presence: 4 per morning and 2 per afternoon coded X."""
    hours = 0
    for record in records:
        if display_code(record.morning_code) == "X":
            hours += MORNING_HOURS
        if display_code(record.afternoon_code) == "X":
            hours += AFTERNOON_HOURS
    return hours


class AttendanceService:
    """Reads and saves attendance grids through a storage backend."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def get_attendance(self, class_id: str, day: str) -> list[AttendanceRecord]:
        return self.storage.get_attendances(class_id=class_id, date=day)

    def save_attendance(
        self, records: Iterable[AttendanceRecord], names: dict[str, str] | None = None
    ) -> list[AttendanceRecord]:
        """Validate and store the grid of one class and date, then mark it checked.

        Raises:
            MissingCommentError: If a G code has no comment; nothing is stored.
        """
        records = [
            record.model_copy(update={"comment": record.comment.strip()}) for record in records
        ]
        validate_records(records, names)
        saved = self.storage.save_attendances(records)
        for class_id, day in sorted({(r.class_id, r.date) for r in saved}):
            self.mark_as_checked(class_id, day)
        log.info("attendance_saved", records=len(saved))
        return saved

    def mark_as_checked(self, class_id: str, day: str) -> AttendanceCheck:
        return self.storage.save_check(AttendanceCheck(class_id=class_id, date=day))

    def is_checked(self, class_id: str, day: str) -> bool:
        return self.storage.get_check(class_id, day) is not None

    def records_for_month(self, participant_id: str, month: str) -> list[AttendanceRecord]:
        """All records of a participant in ``YYYY-MM``, sorted by date."""
        year, month_number = parse_month(month)
        selected = []
        for record in self.storage.get_attendances():
            if record.participant_id != participant_id:
                continue
            try:
                day = date.fromisoformat(record.date)
            except ValueError:
                continue
            if (day.year, day.month) == (year, month_number):
                selected.append(record)
        return sorted(selected, key=lambda r: r.date)
