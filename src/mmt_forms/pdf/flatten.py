"""Form flattening.

Viewers render widget appearance streams with whatever font they pick, so
the same form can look different from one viewer to the next. Flattening
redraws every field value as page content in a single font (Helvetica),
then removes the widgets and the interactive form.
"""

from pypdf import PdfWriter
from pypdf.constants import FieldDictionaryAttributes as FA
from pypdf.generic import NameObject
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth

from mmt_forms.logging import get_logger
from mmt_forms.pdf.form import OFF_STATE, FormField, FormIndex, Widget, inherited
from mmt_forms.pdf.overlay import OVERLAY_FONT, stamp_page

log = get_logger(__name__)

FONT_SIZE = 10.0
MIN_FONT_SIZE = 6.0
PADDING = 2.0
CHECK_MARK = "X"


def _fit_font_size(text: str, width: float, height: float) -> float:
    size = min(FONT_SIZE, max(height - PADDING, MIN_FONT_SIZE))
    while size > MIN_FONT_SIZE and stringWidth(text, OVERLAY_FONT, size) > width - 2 * PADDING:
        size -= 0.5
    return size


def _draw_text(c, entry: FormField, widget: Widget, text: str) -> None:
    llx, lly, urx, ury = widget.rect
    width, height = urx - llx, ury - lly
    flags = entry.flags
    alignment = int(inherited(entry.field, "/Q", 0))
    max_length = int(inherited(entry.field, "/MaxLen", 0) or 0)

    if flags & FA.FfBits.Comb and max_length:
        # One character per box, as printed on the paper form
        size = min(FONT_SIZE, max(height - PADDING, MIN_FONT_SIZE))
        cell = width / max_length
        baseline = lly + (height - size) / 2 + 1
        c.setFont(OVERLAY_FONT, size)
        for position, char in enumerate(text[:max_length]):
            c.drawCentredString(llx + cell * (position + 0.5), baseline, char)
        return

    if flags & FA.FfBits.Multiline:
        size = min(FONT_SIZE, max(height - PADDING, MIN_FONT_SIZE))
        lines = simpleSplit(text, OVERLAY_FONT, size, width - 2 * PADDING)
        while size > MIN_FONT_SIZE and len(lines) * size * 1.15 > height:
            size -= 0.5
            lines = simpleSplit(text, OVERLAY_FONT, size, width - 2 * PADDING)
        c.setFont(OVERLAY_FONT, size)
        y = ury - PADDING - size
        for line in lines:
            if y < lly:
                log.warning("flatten_text_truncated", field_id=entry.name)
                break
            c.drawString(llx + PADDING, y, line)
            y -= size * 1.15
        return

    size = _fit_font_size(text, width, height)
    baseline = lly + (height - size) / 2 + size * 0.22
    c.setFont(OVERLAY_FONT, size)
    if alignment == 1:
        c.drawCentredString(llx + width / 2, baseline, text)
    elif alignment == 2:
        c.drawRightString(urx - PADDING, baseline, text)
    else:
        c.drawString(llx + PADDING, baseline, text)


def _draw_mark(c, widget: Widget) -> None:
    llx, lly, urx, ury = widget.rect
    width, height = urx - llx, ury - lly
    size = max(min(width, height) - PADDING, MIN_FONT_SIZE)
    c.setFont(OVERLAY_FONT, size)
    c.drawCentredString(llx + width / 2, lly + (height - size) / 2 + size * 0.15, CHECK_MARK)


def flatten_form(writer: PdfWriter, index: FormIndex) -> None:
    """Bake every field value into page content and drop the interactive form."""
    by_page: dict[int, list[tuple[FormField, Widget]]] = {}
    for entry in index.fields.values():
        for widget in entry.widgets:
            by_page.setdefault(widget.page_index, []).append((entry, widget))

    for page_index, widgets in by_page.items():

        def draw(c, widgets=widgets):
            for entry, widget in widgets:
                kind = entry.kind
                if kind in ("checkbox", "radio"):
                    if widget.active_state != OFF_STATE:
                        _draw_mark(c, widget)
                elif kind in ("text", "choice"):
                    text = entry.value()
                    if isinstance(text, str) and text:
                        _draw_text(c, entry, widget, text)

        stamp_page(writer.pages[page_index], draw)

    writer.remove_annotations(subtypes=("/Widget",))
    if "/AcroForm" in writer.root_object:
        del writer.root_object[NameObject("/AcroForm")]
    log.debug("form_flattened", pages=len(by_page), fields=len(index))
