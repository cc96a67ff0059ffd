"""Shared fixtures: synthetic MMT forms drawn with reportlab, in-memory storage."""

import copy
import logging
from io import BytesIO

import pytest
import structlog
from pypdf import PdfReader, PdfWriter
from pypdf.generic import ArrayObject, NameObject
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from mmt_forms.layout import FORM_LAYOUT
from mmt_forms.models import Participant
from mmt_forms.storage.document import DocumentStorage

TEXT_FIELD_IDS = [
    *(field_id for ids in FORM_LAYOUT.scalar_fields.values() for field_id in ids),
    *(field_id for pair in FORM_LAYOUT.attendance_fields for field_id in pair),
]
CHECKBOX_IDS = ["Kontrollkästchen 6", "Kontrollkästchen 7"]
RADIO_GROUPS = {
    "Optionsfeld 6": ("Auswahl1", "Auswahl2"),
    "Optionsfeld 70": ("Auswahl1", "Auswahl2"),
}
SIGNATURE_ID = "5.25"


def build_form(
    values: dict[str, str] | None = None,
    *,
    omit: tuple[str, ...] = (),
    checked: tuple[str, ...] = (),
    selected: dict[str, str] | None = None,
    radios: dict[str, tuple[str, ...]] | None = None,
) -> bytes:
    """Draw a one-page form carrying every field id of the official template.

    Args:
        values: Initial text of text fields, by field id.
        omit: Field ids to leave out of the form.
        checked: Checkboxes drawn ticked.
        selected: Radio group id -> selected option.
        radios: Extra radio groups (id -> options) drawn after the standard ones.
    """
    values = values or {}
    selected = selected or {}
    buffer = BytesIO()
    page = canvas.Canvas(buffer, pagesize=A4)
    page.drawString(40, 815, "Liste de presence MMT")
    form = page.acroForm

    text_ids = [field_id for field_id in TEXT_FIELD_IDS if field_id not in omit]
    for position, field_id in enumerate(text_ids):
        column, row = divmod(position, 55)
        form.textfield(
            name=field_id,
            value=values.get(field_id, ""),
            x=40 + column * 130,
            y=790 - row * 14,
            width=110,
            height=12,
            maxlen=500,
            fontSize=8,
            borderWidth=0,
        )

    for position, field_id in enumerate(CHECKBOX_IDS):
        if field_id in omit:
            continue
        form.checkbox(
            name=field_id,
            checked=field_id in checked,
            x=340,
            y=790 - position * 20,
            size=12,
        )

    groups = {**RADIO_GROUPS, **(radios or {})}
    for position, (field_id, options) in enumerate(groups.items()):
        if field_id in omit and field_id not in (radios or {}):
            continue
        for offset, option in enumerate(options):
            form.radio(
                name=field_id,
                value=option,
                selected=selected.get(field_id) == option,
                x=340 + offset * 20,
                y=700 - position * 20,
                size=12,
            )

    if SIGNATURE_ID not in omit:
        form.textfield(
            name=SIGNATURE_ID,
            x=340,
            y=100,
            width=200,
            height=50,
            borderWidth=0,
        )

    page.showPage()
    page.save()
    return buffer.getvalue()


def build_plain_pdf() -> bytes:
    """A valid PDF without any interactive form."""
    buffer = BytesIO()
    page = canvas.Canvas(buffer, pagesize=A4)
    page.drawString(40, 800, "Scanned form")
    page.showPage()
    page.save()
    return buffer.getvalue()


def _rewrite(pdf: bytes, change) -> bytes:
    writer = PdfWriter(clone_from=PdfReader(BytesIO(pdf)))
    change(writer)
    output = BytesIO()
    writer.write(output)
    return output.getvalue()


def set_widget_entry(pdf: bytes, field_id: str, key: str, value) -> bytes:
    """Overwrite one entry of a field's widget, e.g. a malformed /Rect."""

    def change(writer):
        for ref in writer.pages[0]["/Annots"]:
            annotation = ref.get_object()
            if annotation.get("/T") == field_id:
                annotation[NameObject(key)] = value

    return _rewrite(pdf, change)


def detach_widget(pdf: bytes, field_id: str) -> bytes:
    """Remove a field's widget from the page; the field stays in /AcroForm."""

    def change(writer):
        page = writer.pages[0]
        kept = [ref for ref in page["/Annots"] if ref.get_object().get("/T") != field_id]
        page[NameObject("/Annots")] = ArrayObject(kept)

    return _rewrite(pdf, change)


class MemoryStorage(DocumentStorage):
    """Document backend kept in memory; ``saved`` holds the last write."""

    def __init__(self, document: dict | None = None) -> None:
        super().__init__()
        self.saved = document
        self.writes = 0

    def _read(self) -> dict | None:
        return copy.deepcopy(self.saved)

    def _write(self, document: dict) -> None:
        self.saved = copy.deepcopy(document)
        self.writes += 1


@pytest.fixture(autouse=True)
def quiet_logs():
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


@pytest.fixture
def blank_form() -> bytes:
    return build_form()


@pytest.fixture
def filled_form() -> bytes:
    return build_form(
        {
            "1.2": "Dupont",
            "1.3": "Jean",
            "Textfeld 43": "756.1234.5678.97",
            "Textfeld 42": "05.03.1980",
            "1.68": "MARKET0625",
            "1.49": "01/06/2025",
            "1.48": "30062025",
            "1.46": "80%",
            "1.141": "Caisse Unia",
            "1.67": "Porrentruy",
            "2.2031": "X",
            "2.2032": "G",
            "2.3013": "A",
        },
        checked=("Kontrollkästchen 7",),
        selected={"Optionsfeld 70": "Auswahl2"},
    )


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def participant() -> Participant:
    return Participant(
        id="p1",
        first_name="Jean",
        last_name="Dupont",
        course_type="MARKET0625",
        date_start="2025-06-01",
        date_end="2025-06-30",
        work_percent=80,
        avs_number="756.1234.5678.97",
        unemployment_office="Caisse Unia",
    )
