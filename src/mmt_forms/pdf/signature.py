"""Signature image stamping.

The image is not a field value: it is drawn on the page, centered inside
the rectangle of the signature field and scaled down (never up) to fit it.
"""

import base64
import binascii
from io import BytesIO

from pypdf import PdfWriter
from reportlab.lib.utils import ImageReader

from mmt_forms.errors import ImageEmbedWarning
from mmt_forms.logging import get_logger
from mmt_forms.pdf.form import FormIndex
from mmt_forms.pdf.overlay import stamp_page

log = get_logger(__name__)

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
JPEG_MAGIC = b"\xff\xd8\xff"


def decode_image(image: bytes | str) -> bytes:
    """Return raw image bytes from bytes or a ``data:image/...;base64,`` URL.

    Raises:
        ValueError: If the data URL is malformed or the format is not PNG/JPEG.
    """
    if isinstance(image, str):
        payload = image.strip()
        if payload.startswith("data:"):
            header, _, payload = payload.partition(",")
            if ";base64" not in header:
                raise ValueError("signature data URL is not base64 encoded")
        try:
            data = base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            raise ValueError(f"signature is not valid base64: {e}") from e
    else:
        data = bytes(image)

    if not (data.startswith(PNG_MAGIC) or data.startswith(JPEG_MAGIC)):
        raise ValueError("unsupported signature image format (PNG or JPEG expected)")
    return data


def fit_in_rect(
    image_size: tuple[float, float], rect: tuple[float, float, float, float]
) -> tuple[float, float, float, float]:
    """Scale an image uniformly into a rectangle and center it.

    Args:
        image_size: Image width and height.
        rect: Target (llx, lly, urx, ury).

    Returns:
        (x, y, width, height) of the drawn image. The scale factor is capped
        at 1 so small images keep their size.
    """
    image_width, image_height = image_size
    llx, lly, urx, ury = rect
    box_width, box_height = abs(urx - llx), abs(ury - lly)
    scale = min(box_width / image_width, box_height / image_height, 1.0)
    width, height = image_width * scale, image_height * scale
    x = min(llx, urx) + (box_width - width) / 2
    y = min(lly, ury) + (box_height - height) / 2
    return x, y, width, height


def embed_signature(
    writer: PdfWriter, index: FormIndex, image: bytes | str, field_id: str
) -> list[ImageEmbedWarning]:
    """Draw ``image`` over the first widget of ``field_id``.

    Returns:
        An empty list on success, otherwise a single ImageEmbedWarning. The
        document is left untouched when a warning is returned.
    """
    try:
        data = decode_image(image)
        reader = ImageReader(BytesIO(data))
        image_size = reader.getSize()
        # Decodes the pixels, so truncated files fail here and not mid-stamp
        reader.getRGBData()
    except (OSError, ValueError, SyntaxError) as e:
        log.warning("signature_image_rejected", reason=str(e))
        return [ImageEmbedWarning(f"signature image unusable: {e}")]

    if not image_size[0] or not image_size[1]:
        return [ImageEmbedWarning("signature image has no pixels")]

    entry = index.get(field_id)
    if entry is None or not entry.widgets:
        log.warning("signature_field_missing", field_id=field_id)
        return [ImageEmbedWarning(f"signature field {field_id!r} not found in template")]

    widget = entry.widgets[0]
    x, y, width, height = fit_in_rect(image_size, widget.rect)
    stamp_page(
        writer.pages[widget.page_index],
        lambda c: c.drawImage(reader, x, y, width=width, height=height, mask="auto"),
    )
    log.info(
        "signature_embedded",
        field_id=field_id,
        page=widget.page_index,
        width=round(width, 1),
        height=round(height, 1),
    )
    return []
