"""Batch import and export of MMT forms.

Each document is processed on its own: a file that cannot be parsed, or a
participant whose form cannot be generated, is recorded as a failure and
the batch moves on. ``BatchResult`` carries both outcomes so callers can
show how many items went through and why the others did not.
"""

from collections.abc import Iterable
from datetime import datetime
from io import BytesIO
from itertools import groupby

from pydantic import BaseModel, Field
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from mmt_forms.attendance import AttendanceService
from mmt_forms.dates import parse_month
from mmt_forms.errors import MMTFormsError
from mmt_forms.logging import get_logger
from mmt_forms.models import Participant
from mmt_forms.pdf.extractor import parse
from mmt_forms.pdf.generator import render
from mmt_forms.roster import ParticipantService

log = get_logger(__name__)

SUMMARY_TITLE = "Récapitulatif - Liste des Caisses de Chômage / MMT"
UNKNOWN_OFFICE = "Caisse non renseignée"


class BatchFailure(BaseModel):
    item: str  # File name or participant name
    reason: str


class BatchResult(BaseModel):
    """Per-item outcome of a batch."""

    succeeded: list[str] = Field(default_factory=list)
    failed: list[BatchFailure] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)  # Non-fatal, "item: message"

    def add_failure(self, item: str, reason: str) -> None:
        log.warning("batch_item_failed", item=item, reason=reason)
        self.failed.append(BatchFailure(item=item, reason=reason))

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> str:
        lines = [f"{len(self.succeeded)} réussi(s), {len(self.failed)} échec(s)"]
        lines.extend(f"{failure.item}: {failure.reason}" for failure in self.failed)
        return "\n".join(lines)


def import_forms(
    files: Iterable[tuple[str, bytes]], participants: ParticipantService
) -> BatchResult:
    """Parse uploaded forms and create or update their participants.

    Args:
        files: (file name, PDF bytes) pairs.
        participants: Service the participants are saved through.

    Returns:
        BatchResult listing imported file names and failed files.
    """
    result = BatchResult()
    for filename, pdf_bytes in files:
        try:
            parsed = parse(pdf_bytes, filename)
            saved, created = participants.upsert_from_form(parsed, original_pdf=pdf_bytes)
        except MMTFormsError as e:
            result.add_failure(filename, str(e))
            continue
        log.info(
            "form_imported",
            filename=filename,
            participant_id=saved.id,
            created=created,
        )
        result.succeeded.append(filename)
    log.info("import_finished", succeeded=len(result.succeeded), failed=len(result.failed))
    return result


def export_order(participant: Participant) -> tuple[str, str, str]:
    """Sort key: unemployment office, then last and first name."""
    return (
        participant.unemployment_office.strip().lower(),
        participant.last_name.lower(),
        participant.first_name.lower(),
    )


def export_filename(participant: Participant, month: str) -> str:
    return f"MMT_{participant.last_name}_{participant.first_name}_{month}.pdf"


def _summary_page(participants: list[Participant], generated_at: datetime) -> bytes:
    buffer = BytesIO()
    page = canvas.Canvas(buffer, pagesize=A4)
    _, height = A4
    margin = 50
    y = height - margin

    def new_page() -> float:
        page.showPage()
        return height - margin

    page.setFont("Helvetica-Bold", 14)
    page.drawString(margin, y, SUMMARY_TITLE)
    y -= 20
    page.setFont("Helvetica", 10)
    page.drawString(margin, y, f"Généré le: {generated_at.strftime('%d.%m.%Y %H:%M')}")
    y -= 30

    for _, members in groupby(participants, key=lambda p: export_order(p)[0]):
        members = list(members)
        office = members[0].unemployment_office.strip() or UNKNOWN_OFFICE
        if y < margin + 40:
            y = new_page()
        page.setFont("Helvetica-Bold", 11)
        page.drawString(margin, y, f"{office} ({len(members)})")
        y -= 16
        page.setFont("Helvetica", 10)
        for member in members:
            if y < margin:
                y = new_page()
                page.setFont("Helvetica", 10)
            page.drawString(margin + 15, y, f"- {member.last_name} {member.first_name}")
            y -= 14
        y -= 10

    page.showPage()
    page.save()
    return buffer.getvalue()


def export_forms(
    participants: Iterable[Participant],
    attendance: AttendanceService,
    month: str,
    signature_date: str | None = None,
    is_correction: bool = False,
    template: bytes | None = None,
    signature_image: bytes | str | None = None,
) -> tuple[bytes | None, BatchResult]:
    """Generate the forms of many participants into one document.

    Each participant's own uploaded form is the template unless ``template``
    is given. Participants without a template, or whose generation fails,
    are reported as failures. The merged document ends with a summary page
    grouping the exported participants by unemployment office.

    Returns:
        (merged PDF or None when nothing was generated, BatchResult)

    Raises:
        ValueError: If ``month`` is not ``YYYY-MM``.
    """
    parse_month(month)
    result = BatchResult()
    merged = PdfWriter()
    exported: list[Participant] = []

    for participant in sorted(participants, key=export_order):
        label = participant.full_name or participant.id
        template_bytes = template or participant.original_pdf
        if not template_bytes:
            result.add_failure(label, "aucun PDF original")
            continue
        try:
            records = attendance.records_for_month(participant.id, month)
            generated = render(
                participant,
                records,
                template_bytes,
                signature_date,
                is_correction,
                signature_image,
                month=month,
            )
            merged.append(PdfReader(BytesIO(generated.pdf)))
        except (MMTFormsError, PyPdfError, ValueError) as e:
            result.add_failure(label, str(e))
            continue
        exported.append(participant)
        result.succeeded.append(label)
        result.warnings.extend(f"{label}: {warning}" for warning in generated.warnings)

    if not exported:
        log.warning("export_empty", month=month, failed=len(result.failed))
        return None, result

    merged.append(PdfReader(BytesIO(_summary_page(exported, datetime.now()))))
    output = BytesIO()
    merged.write(output)
    log.info(
        "export_finished",
        month=month,
        succeeded=len(result.succeeded),
        failed=len(result.failed),
        warnings=len(result.warnings),
    )
    return output.getvalue(), result
