"""Fill the MMT attendance form for one participant and one month.

The template is usually the form the participant uploaded (identity and
measure fields already filled), or a blank copy of the official form. The
generator writes the month, the signature block, the correction and
interruption options and the 31-day attendance grid, optionally stamps a
signature image, and flattens the result.

Every field write is independent: a field missing from the template, or of
an unexpected type, produces a ``FieldWriteWarning`` and generation goes on.
"""

from collections.abc import Iterable
from datetime import date
from io import BytesIO

from pydantic import BaseModel, ConfigDict, Field
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from mmt_forms.codes import display_code
from mmt_forms.config import get_config
from mmt_forms.dates import (
    compact_date,
    current_month,
    days_in_month,
    format_swiss,
    normalize_date,
    parse_month,
    strip_separators,
)
from mmt_forms.errors import FormWarning, TemplateError
from mmt_forms.layout import FORM_LAYOUT, FieldLayout
from mmt_forms.logging import get_logger
from mmt_forms.models import AttendanceRecord, Participant
from mmt_forms.pdf.flatten import flatten_form
from mmt_forms.pdf.form import FormIndex, FormWriteBatch
from mmt_forms.pdf.signature import embed_signature

log = get_logger(__name__)

COMMENT_SEPARATOR = " / "

_PDF_ERRORS = (PyPdfError, ValueError, TypeError, KeyError, AttributeError, OSError)

# Participant attributes copied into the template when its field is blank
_IDENTITY_KEYS = (
    "last_name",
    "first_name",
    "avs_number",
    "birth_date",
    "course_type",
    "date_start",
    "date_end",
    "work_percent",
    "decision_number",
    "unemployment_office",
    "execution_place",
)
_IDENTITY_DATES = ("birth_date", "date_start", "date_end")


class GeneratedForm(BaseModel):
    """A generated document and the non-fatal problems met while filling it."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    pdf: bytes
    warnings: list[FormWarning] = Field(default_factory=list)


def open_template(template_bytes: bytes) -> PdfWriter:
    """Clone a template into a writer.

    Raises:
        TemplateError: If the bytes are not a PDF or the PDF has no form.
    """
    try:
        reader = PdfReader(BytesIO(template_bytes))
        if reader.is_encrypted:
            reader.decrypt("")
        writer = PdfWriter(clone_from=reader)
    except _PDF_ERRORS as e:
        raise TemplateError(f"cannot open template ({type(e).__name__}: {e})") from e
    if writer.get_fields() is None:
        raise TemplateError("template has no interactive form")
    return writer


def comment_entry(day: int, month: int, comment: str) -> str:
    """``DD.MM "<comment>"`` as printed in the remarks field."""
    return f'{day:02d}.{month:02d} "{comment}"'


def records_by_day(
    records: Iterable[AttendanceRecord], year: int, month: int
) -> dict[int, AttendanceRecord]:
    """Index the records of one month by day of month; other months are dropped."""
    by_day: dict[int, AttendanceRecord] = {}
    for record in records:
        try:
            day = date.fromisoformat(record.date)
        except ValueError:
            log.warning("attendance_date_invalid", date=record.date)
            continue
        if (day.year, day.month) != (year, month):
            log.debug("attendance_outside_month", date=record.date)
            continue
        by_day[day.day] = record
    return by_day


def _queue_identity(
    batch: FormWriteBatch, index: FormIndex, participant: Participant, layout: FieldLayout
) -> None:
    for key in _IDENTITY_KEYS:
        field_id = layout.resolve(key)
        entry = index.get(field_id) if field_id else None
        if entry is None:
            continue
        try:
            if entry.kind != "text" or entry.value():
                continue
        except _PDF_ERRORS as e:
            batch.warn(field_id, f"cannot read current value ({type(e).__name__}: {e})")
            continue
        value = getattr(participant, key)
        if key in _IDENTITY_DATES:
            iso = normalize_date(value)
            try:
                value = format_swiss(date.fromisoformat(iso))
            except ValueError:
                value = iso
        value = str(value) if value is not None else ""
        if value:
            batch.text(field_id, value)


def _queue_correction(batch: FormWriteBatch, index: FormIndex, layout: FieldLayout) -> None:
    field_id = layout.correction_field
    entry = index.get(field_id)
    if entry is None:
        batch.warn(field_id, "correction field not found in template")
        return
    if entry.kind == "checkbox":
        if not entry.states:
            batch.warn(field_id, "checkbox has no 'on' appearance")
            return
        batch.option(field_id, entry.states[0])
        return
    if entry.kind == "radio":
        for state in entry.states:
            if state.lstrip("/").lower() in layout.correction_yes_options:
                batch.option(field_id, state)
                return
        batch.warn(field_id, f"no 'yes' option among {', '.join(entry.states)}")
        return
    batch.warn(field_id, f"expected a checkbox or option group, found {entry.kind}")


def render(
    participant: Participant,
    attendance_records: Iterable[AttendanceRecord],
    template_bytes: bytes,
    signature_date: str | None = None,
    is_correction: bool = False,
    signature_image: bytes | str | None = None,
    *,
    month: str | None = None,
    location: str | None = None,
    flatten: bool | None = None,
    layout: FieldLayout = FORM_LAYOUT,
) -> GeneratedForm:
    """Fill the form and return it together with the collected warnings.

    Args:
        participant: Participant the form is for.
        attendance_records: Records of the participant; only those of the
            target month are used.
        template_bytes: Original uploaded form or a blank template.
        signature_date: ``DD.MM.YYYY``; defaults to today.
        is_correction: Tick the "corrected form" indicator.
        signature_image: PNG/JPEG bytes or a base64 data URL.
        month: Target month ``YYYY-MM``; defaults to the current month.
        location: Place written next to the signature; defaults to configuration.
        flatten: Flatten the result; defaults to configuration.
        layout: Field layout to write.

    Returns:
        GeneratedForm with the PDF bytes and the warnings.

    Raises:
        TemplateError: If the template cannot be opened as a form, or the
            filled form cannot be flattened or written.
        ValueError: If ``month`` is not ``YYYY-MM``.
    """
    config = get_config()
    year, month_number = parse_month(month or current_month())
    month_length = days_in_month(year, month_number)
    location = config.signature_location if location is None else location
    flatten = config.flatten_forms if flatten is None else flatten
    signature_date = signature_date or format_swiss(date.today())

    writer = open_template(template_bytes)
    try:
        index = FormIndex(writer)
    except _PDF_ERRORS as e:
        raise TemplateError(f"cannot index template fields ({type(e).__name__}: {e})") from e
    batch = FormWriteBatch()

    _queue_identity(batch, index, participant, layout)

    # Month and signature block
    batch.text(layout.resolve("month_year"), f"{month_number:02d}{year:04d}")
    batch.text(layout.resolve("signature_date"), strip_separators(signature_date))
    if is_correction:
        _queue_correction(batch, index, layout)
    batch.text(layout.resolve("signature_place"), location)
    batch.option(layout.presence_type.field_id, layout.presence_type.yes)

    # Interruption of the measure
    interruption = layout.interruption
    batch.option(
        interruption.field_id,
        interruption.yes if participant.interruption_mmt else interruption.no,
    )
    if participant.interruption_mmt and participant.interruption_date:
        batch.text(
            layout.resolve("interruption_date"),
            compact_date(normalize_date(participant.interruption_date)),
        )

    # Attendance grid; days past the end of the month keep their template value
    by_day = records_by_day(attendance_records, year, month_number)
    comments: list[str] = []
    for day in range(1, len(layout.attendance_fields) + 1):
        fields = layout.attendance_fields_for_day(day, month_length)
        if fields is None:
            continue
        am_field, pm_field = fields
        record = by_day.get(day)
        batch.text(am_field, display_code(record.morning_code) if record else "")
        batch.text(pm_field, display_code(record.afternoon_code) if record else "")
        if record and record.comment.strip():
            comments.append(comment_entry(day, month_number, record.comment.strip()))

    batch.text(layout.resolve("comments"), COMMENT_SEPARATOR.join(comments))

    warnings: list[FormWarning] = list(batch.apply(writer, index))

    if signature_image:
        warnings.extend(embed_signature(writer, index, signature_image, layout.signature_field))

    output = BytesIO()
    try:
        if flatten:
            flatten_form(writer, index)
        writer.write(output)
    except _PDF_ERRORS as e:
        raise TemplateError(f"cannot write filled form ({type(e).__name__}: {e})") from e
    log.info(
        "form_generated",
        participant_id=participant.id,
        month=f"{year:04d}-{month_number:02d}",
        days_filled=len(by_day),
        comments=len(comments),
        warnings=len(warnings),
        flattened=flatten,
    )
    return GeneratedForm(pdf=output.getvalue(), warnings=warnings)


def generate(
    participant: Participant,
    attendance_records: Iterable[AttendanceRecord],
    template_bytes: bytes,
    signature_date: str | None = None,
    is_correction: bool = False,
    signature_image: bytes | str | None = None,
    **options,
) -> bytes:
    """Same as ``render`` but returns only the PDF bytes (warnings are logged)."""
    return render(
        participant,
        attendance_records,
        template_bytes,
        signature_date,
        is_correction,
        signature_image,
        **options,
    ).pdf
