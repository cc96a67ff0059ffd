from io import BytesIO

import pytest
from pypdf import PdfReader
from pypdf.generic import ArrayObject, NameObject, NumberObject

from conftest import build_form, set_widget_entry
from mmt_forms.attendance import AttendanceService
from mmt_forms.batch import (
    BatchResult,
    export_filename,
    export_forms,
    export_order,
    import_forms,
)
from mmt_forms.errors import StorageError
from mmt_forms.models import AttendanceRecord, Participant
from mmt_forms.roster import ParticipantService


def test_import_forms_reports_each_file(storage, filled_form, blank_form):
    participants = ParticipantService(storage)
    result = import_forms(
        [
            ("dupont.pdf", filled_form),
            ("junk.pdf", b"not a pdf"),
            ("FORM_COACH0125_MullerAnna_202506.pdf", blank_form),
            ("scan.pdf", blank_form),
        ],
        participants,
    )

    assert result.succeeded == ["dupont.pdf", "FORM_COACH0125_MullerAnna_202506.pdf"]
    assert [f.item for f in result.failed] == ["junk.pdf", "scan.pdf"]
    assert not result.ok
    summary = result.summary().splitlines()
    assert summary[0] == "2 réussi(s), 2 échec(s)"
    assert summary[1].startswith("junk.pdf: ")

    saved = participants.list_participants()
    assert [p.full_name for p in saved] == ["Dupont Jean", "Muller Anna"]
    assert saved[0].original_pdf == filled_form


def test_import_same_form_twice_updates(storage, filled_form):
    participants = ParticipantService(storage)
    import_forms([("dupont.pdf", filled_form)], participants)
    result = import_forms([("dupont-bis.pdf", filled_form)], participants)

    assert result.ok
    assert len(participants.list_participants()) == 1


def test_export_order_and_filename():
    a = Participant(last_name="Zahn", unemployment_office="Caisse A")
    b = Participant(last_name="Abt", unemployment_office="Caisse B")
    c = Participant(last_name="Bern", first_name="Eva", unemployment_office=" caisse a")
    assert [p.last_name for p in sorted([a, b, c], key=export_order)] == ["Bern", "Zahn", "Abt"]
    assert export_filename(c, "2025-06") == "MMT_Bern_Eva_2025-06.pdf"


def test_export_forms(storage, blank_form):
    attendance = AttendanceService(storage)
    attendance.save_attendance(
        [AttendanceRecord(date="2025-06-03", participant_id="p1", class_id="c1")]
    )
    participants = [
        Participant(
            id="p1",
            last_name="Dupont",
            first_name="Jean",
            unemployment_office="Caisse Unia",
            original_pdf=blank_form,
        ),
        Participant(id="p2", last_name="Muller", first_name="Anna", unemployment_office="Caisse Unia"),
        Participant(id="p3", last_name="Martin", first_name="Luc", original_pdf=b"broken"),
    ]

    pdf, result = export_forms(participants, attendance, "2025-06", signature_date="30.06.2025")

    assert result.succeeded == ["Dupont Jean"]
    reasons = {f.item: f.reason for f in result.failed}
    assert reasons["Muller Anna"] == "aucun PDF original"
    assert "template" in reasons["Martin Luc"]

    reader = PdfReader(BytesIO(pdf))
    assert len(reader.pages) == 2
    summary = reader.pages[-1].extract_text()
    assert "Caisse Unia (1)" in summary
    assert "Dupont Jean" in summary


def test_export_uses_shared_template(storage):
    template = build_form()
    participants = [
        Participant(id="p1", last_name="Dupont", first_name="Jean"),
        Participant(id="p2", last_name="Muller", first_name="Anna"),
    ]
    pdf, result = export_forms(
        participants, AttendanceService(storage), "2025-06", template=template
    )

    assert result.ok
    assert result.succeeded == ["Dupont Jean", "Muller Anna"]
    assert len(PdfReader(BytesIO(pdf)).pages) == 3


def test_export_nothing_generated(storage):
    pdf, result = export_forms(
        [Participant(id="p1", last_name="Dupont")], AttendanceService(storage), "2025-06"
    )
    assert pdf is None
    assert result.summary() == "0 réussi(s), 1 échec(s)\nDupont: aucun PDF original"


def test_export_invalid_month(storage):
    with pytest.raises(ValueError):
        export_forms([], AttendanceService(storage), "June")


def test_export_collects_warnings(storage, blank_form):
    participants = [Participant(id="p1", last_name="Dupont", first_name="Jean", original_pdf=blank_form)]
    _, result = export_forms(
        participants, AttendanceService(storage), "2025-06", signature_image=b"not an image"
    )
    assert result.ok
    assert len(result.warnings) == 1
    assert result.warnings[0].startswith("Dupont Jean: ")


def test_batch_result_ok():
    result = BatchResult(succeeded=["a.pdf"])
    assert result.ok
    result.add_failure("b.pdf", "boom")
    assert not result.ok


class FailingAttendance(AttendanceService):
    """Attendance service whose reads fail for some participants."""

    def __init__(self, storage, failing: set[str]) -> None:
        super().__init__(storage)
        self.failing = failing

    def records_for_month(self, participant_id, month):
        if participant_id in self.failing:
            raise StorageError(f"cannot read attendances of {participant_id}")
        return super().records_for_month(participant_id, month)


def test_export_isolates_attendance_failures(storage, blank_form):
    participants = [
        Participant(id="p1", last_name="Dupont", first_name="Jean", original_pdf=blank_form),
        Participant(id="p2", last_name="Muller", first_name="Anna", original_pdf=blank_form),
    ]

    pdf, result = export_forms(participants, FailingAttendance(storage, {"p1"}), "2025-06")

    assert result.succeeded == ["Muller Anna"]
    assert [(f.item, f.reason) for f in result.failed] == [
        ("Dupont Jean", "cannot read attendances of p1")
    ]
    assert len(PdfReader(BytesIO(pdf)).pages) == 2


def test_export_survives_malformed_widget(storage, blank_form):
    broken_rect = ArrayObject([NameObject("/X"), NumberObject(0), NumberObject(10), NumberObject(10)])
    damaged = set_widget_entry(blank_form, "2.10146", "/Rect", broken_rect)
    participants = [
        Participant(id="p1", last_name="Abt", first_name="Eva", original_pdf=damaged),
        Participant(id="p2", last_name="Muller", first_name="Anna", original_pdf=blank_form),
    ]

    pdf, result = export_forms(participants, AttendanceService(storage), "2025-06")

    assert result.ok
    assert result.succeeded == ["Abt Eva", "Muller Anna"]
    assert len(PdfReader(BytesIO(pdf)).pages) == 3


def test_summary_groups_offices_case_insensitively(storage):
    participants = [
        Participant(id="p1", last_name="Zahn", unemployment_office="Caisse A"),
        Participant(id="p2", last_name="Bern", unemployment_office=" caisse a"),
        Participant(id="p3", last_name="Abt"),
    ]

    pdf, _ = export_forms(
        participants, AttendanceService(storage), "2025-06", template=build_form()
    )

    summary = PdfReader(BytesIO(pdf)).pages[-1].extract_text()
    assert "Caisse non renseign" in summary
    assert "caisse a (2)" in summary
    assert "Caisse A (1)" not in summary
