"""Read a filled MMT attendance form back into structured data.

Every field of the document is decoded, the fields known to ``FORM_LAYOUT``
are copied onto a ``ParsedFormData``, dates and the work percentage are
normalized, and, when the form does not name the participant, the identity
is recovered from the file name (``<prefix>_<course>_<LastFirst>_<YYYYMM>.pdf``).
"""

import re
from io import BytesIO
from pathlib import PurePath

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from mmt_forms.dates import month_bounds, normalize_date
from mmt_forms.errors import ExtractionError, MissingIdentityError
from mmt_forms.layout import DATE_KEYS, FORM_LAYOUT, FieldLayout
from mmt_forms.logging import get_logger
from mmt_forms.models import DayAttendance, ParsedFormData
from mmt_forms.pdf.form import FormIndex

log = get_logger(__name__)

DEFAULT_WORK_PERCENT = 100

_DIGITS_RE = re.compile(r"\d+")
_YEAR_MONTH_RE = re.compile(r"^(\d{4})(\d{2})")


def open_form(pdf_bytes: bytes, filename: str = "") -> FormIndex:
    """Open a PDF and index its interactive form.

    Raises:
        ExtractionError: If the bytes are not a readable PDF or carry no AcroForm.
    """
    try:
        reader = PdfReader(BytesIO(pdf_bytes))
        if reader.is_encrypted:
            reader.decrypt("")
        if reader.get_fields() is None:
            raise ExtractionError(f"{filename or '<unnamed>'}: document has no form", filename)
        index = FormIndex(reader)
    except (PyPdfError, ValueError, TypeError, KeyError, OSError) as e:
        raise ExtractionError(
            f"{filename or '<unnamed>'}: cannot read PDF ({type(e).__name__}: {e})", filename
        ) from e
    if not len(index):
        raise ExtractionError(f"{filename or '<unnamed>'}: form has no fields", filename)
    return index


def read_form_fields(pdf_bytes: bytes, filename: str = "") -> dict[str, str | bool]:
    """Decode every field of a form, keyed by qualified field name."""
    return open_form(pdf_bytes, filename).values()


def parse_work_percent(raw: str | None) -> int:
    """First run of digits in ``raw`` ("80%" -> 80); 100 when there is none."""
    match = _DIGITS_RE.search(raw or "")
    return int(match.group()) if match else DEFAULT_WORK_PERCENT


def split_full_name(value: str) -> tuple[str, str]:
    """Split a ``LastnameFirstname`` string at its last capital letter.

    With fewer than two capitals the whole string is the last name. Compound
    names ("DeLaCruzAna" -> "DeLaCruz", "Ana") are split the same way.

    Returns:
        (last_name, first_name)
    """
    capitals = [i for i, char in enumerate(value) if char.isupper()]
    if len(capitals) < 2:
        return value.strip(), ""
    boundary = capitals[-1]
    return value[:boundary].strip(), value[boundary:].strip()


def apply_filename_fallback(data: ParsedFormData, filename: str) -> None:
    """Fill still-empty identity fields from ``<prefix>_<course>_<Name>_<YYYYMM>.pdf``."""
    stem = PurePath(filename).name
    if stem.lower().endswith(".pdf"):
        stem = stem[:-4]
    parts = stem.split("_")
    if len(parts) < 4:
        log.debug("filename_fallback_skipped", filename=filename, segments=len(parts))
        return

    if not data.course_type:
        data.course_type = parts[1]

    last_name, first_name = split_full_name(parts[2])
    if not data.last_name:
        data.last_name = last_name
    if not data.first_name:
        data.first_name = first_name

    match = _YEAR_MONTH_RE.match(parts[3])
    if match and 1 <= int(match.group(2)) <= 12:
        first_day, last_day = month_bounds(int(match.group(1)), int(match.group(2)))
        if not data.date_start:
            data.date_start = first_day.isoformat()
        if not data.date_end:
            data.date_end = last_day.isoformat()

    log.info(
        "filename_fallback_applied",
        filename=filename,
        last_name=data.last_name,
        course_type=data.course_type,
    )


def _text(values: dict[str, str | bool], field_id: str) -> str:
    value = values.get(field_id)
    return value.strip() if isinstance(value, str) else ""


def _flag(values: dict[str, str | bool], field_id: str, yes: set[str] | None = None) -> bool:
    value = values.get(field_id)
    if isinstance(value, bool):
        return value
    if not value:
        return False
    return value.lower() in yes if yes is not None else True


def parse(
    pdf_bytes: bytes, filename: str = "", layout: FieldLayout = FORM_LAYOUT
) -> ParsedFormData:
    """Extract participant data and the attendance grid from a filled form.

    Args:
        pdf_bytes: The uploaded document.
        filename: Original file name, used for the fallback and in errors.
        layout: Field layout to read.

    Returns:
        ParsedFormData with every mapped value found.

    Raises:
        ExtractionError: If the document cannot be opened or has no form.
        MissingIdentityError: If no last name is found in the form or the file name.
    """
    index = open_form(pdf_bytes, filename)
    values = index.values()
    data = ParsedFormData()

    for key, field_ids in layout.scalar_fields.items():
        for field_id in field_ids:
            value = _text(values, field_id)
            if value:
                if key == "work_percent":
                    setattr(data, key, parse_work_percent(value))
                else:
                    setattr(data, key, value)
                break

    for key in (*DATE_KEYS, "interruption_date"):
        setattr(data, key, normalize_date(getattr(data, key)))

    data.no_participation = _flag(values, layout.flag_fields["no_participation"])
    data.is_correction = _flag(
        values, layout.flag_fields["is_correction"], set(layout.correction_yes_options)
    )
    data.was_interrupted = _flag(
        values, layout.flag_fields["was_interrupted"], {layout.interruption.yes.lower()}
    )

    for day in range(1, len(layout.attendance_fields) + 1):
        am_field, pm_field = layout.attendance_fields_for_day(day)
        am, pm = _text(values, am_field), _text(values, pm_field)
        if am or pm:
            data.attendance_by_day[day] = DayAttendance(am=am, pm=pm)

    unmapped = [name for name in values if layout.semantic_key(name) is None]
    for name in unmapped:
        log.debug("unmapped_field_ignored", field_id=name)

    if not data.first_name or not data.last_name:
        apply_filename_fallback(data, filename)

    if not data.last_name:
        raise MissingIdentityError(filename)

    log.info(
        "form_parsed",
        filename=filename,
        fields=len(values),
        unmapped=len(unmapped),
        days=len(data.attendance_by_day),
        last_name=data.last_name,
    )
    return data
