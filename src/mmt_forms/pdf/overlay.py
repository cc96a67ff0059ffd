"""Draw on existing PDF pages through a reportlab overlay.

reportlab renders the drawing into a one-page document of the same size,
which pypdf then merges on top of the target page.
"""

from io import BytesIO
from typing import Callable

from pypdf import PageObject, PdfReader
from reportlab.pdfgen import canvas

OVERLAY_FONT = "Helvetica"


def stamp_page(page: PageObject, draw: Callable[[canvas.Canvas], None]) -> None:
    """Run ``draw`` on a canvas in page coordinates and merge the result onto ``page``.

    Args:
        page: Page of a PdfWriter; modified in place.
        draw: Callback receiving the canvas. Coordinates are PDF user space,
              so widget rectangles can be used as is.
    """
    box = page.mediabox
    buffer = BytesIO()
    overlay = canvas.Canvas(buffer, pagesize=(float(box.right), float(box.top)))
    overlay.setFont(OVERLAY_FONT, 10)
    draw(overlay)
    overlay.showPage()
    overlay.save()
    buffer.seek(0)
    page.merge_page(PdfReader(buffer).pages[0])
