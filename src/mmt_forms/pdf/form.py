"""AcroForm access on top of pypdf.

``FormIndex`` walks the widget annotations of a document once and groups
them by fully qualified field name, so callers can ask what a field is,
where it is drawn and what it currently holds. ``FormWriteBatch`` applies a
list of (field, value) writes independently: a write that fails becomes a
``FieldWriteWarning`` and the remaining writes still go through.
"""

from pydantic import BaseModel, ConfigDict, Field
from pypdf import PdfWriter
from pypdf.constants import FieldDictionaryAttributes as FA
from pypdf.errors import PyPdfError
from pypdf.generic import DictionaryObject, NameObject, TextStringObject

from mmt_forms.errors import FieldWriteWarning
from mmt_forms.logging import get_logger

log = get_logger(__name__)

# Every text field we write is rendered with this default appearance
DEFAULT_APPEARANCE = "/Helvetica 10 Tf 0 g"

OFF_STATE = "/Off"


def inherited(field: DictionaryObject, key: str, default=None):
    """Look ``key`` up on a field and then on its ancestors."""
    node = field
    while node is not None:
        if key in node:
            return node[key]
        parent = node.get("/Parent")
        node = parent.get_object() if parent is not None else None
    return default


def qualified_name(field: DictionaryObject) -> str:
    """Join the partial names (/T) of a field and its ancestors with dots."""
    parts: list[str] = []
    node = field
    while node is not None:
        if "/T" in node:
            parts.append(str(node["/T"]))
        parent = node.get("/Parent")
        node = parent.get_object() if parent is not None else None
    return ".".join(reversed(parts))


def option_name(value) -> str:
    """Export value of a button state without the leading slash ('' when off)."""
    if value is None:
        return ""
    name = str(value).lstrip("/")
    return "" if name == "Off" else name


class Widget(BaseModel):
    """One visual occurrence of a field on a page."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    page_index: int
    annotation: DictionaryObject
    rect: tuple[float, float, float, float]  # llx, lly, urx, ury

    @property
    def states(self) -> list[str]:
        """Appearance states this widget can show, excluding /Off."""
        ap = self.annotation.get("/AP")
        if ap is None:
            return []
        normal = ap.get_object().get("/N")
        if not isinstance(normal, DictionaryObject):
            normal = normal.get_object() if normal is not None else None
        if not isinstance(normal, DictionaryObject) or "/BBox" in normal:
            return []
        return [str(key) for key in normal.keys() if key != OFF_STATE]

    @property
    def active_state(self) -> str:
        return str(self.annotation.get("/AS", OFF_STATE))


class FormField(BaseModel):
    """A terminal field and all its widgets."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    field: DictionaryObject
    widgets: list[Widget] = Field(default_factory=list)

    @property
    def field_type(self) -> str:
        return str(inherited(self.field, "/FT", ""))

    @property
    def flags(self) -> int:
        return int(inherited(self.field, "/Ff", 0))

    @property
    def kind(self) -> str:
        """One of ``text``, ``checkbox``, ``radio``, ``pushbutton``, ``choice``, ``signature``."""
        field_type = self.field_type
        if field_type == "/Btn":
            if self.flags & FA.FfBits.Radio:
                return "radio"
            if self.flags & FA.FfBits.Pushbutton:
                return "pushbutton"
            return "checkbox"
        if field_type == "/Ch":
            return "choice"
        if field_type == "/Sig":
            return "signature"
        return "text"

    @property
    def states(self) -> list[str]:
        """Union of the widgets' "on" appearance states, in widget order."""
        seen: list[str] = []
        for widget in self.widgets:
            for state in widget.states:
                if state not in seen:
                    seen.append(state)
        return seen

    def value(self) -> str | bool:
        """Decode the current value according to the field type.

        Text fields give a string, checkboxes a boolean, radio groups the
        selected option name ("" when nothing is selected), choice fields
        the selected option(s) joined with ", ".
        """
        raw = inherited(self.field, "/V")
        kind = self.kind
        if kind == "checkbox":
            if raw is None and self.widgets:
                raw = self.widgets[0].active_state
            return option_name(raw) != ""
        if kind == "radio":
            if raw is None:
                raw = next(
                    (w.active_state for w in self.widgets if w.active_state != OFF_STATE),
                    None,
                )
            return option_name(raw)
        if raw is None:
            return ""
        raw = raw.get_object()
        if isinstance(raw, list):
            return ", ".join(str(item) for item in raw)
        return str(raw)


class FormIndex:
    """Fields of a document, keyed by qualified name.

    Widgets are found through the page annotations. Terminal fields of the
    /AcroForm tree that no page shows are indexed too, without widgets.
    A widget or field that cannot be read is logged and left out.
    """

    def __init__(self, document) -> None:
        self.fields: dict[str, FormField] = {}
        for page_index, page in enumerate(document.pages):
            annotations = page.get("/Annots")
            if annotations is None:
                continue
            for ref in annotations.get_object():
                try:
                    self._add_widget(page_index, ref.get_object())
                except (PyPdfError, KeyError, ValueError, TypeError, AttributeError) as e:
                    log.warning("widget_skipped", page=page_index + 1, error=str(e))
        self._add_unplaced_fields(document)

    def _add_widget(self, page_index: int, annotation: DictionaryObject) -> None:
        if annotation.get("/Subtype") != "/Widget":
            return
        field = annotation
        if "/T" not in annotation and "/Parent" in annotation:
            field = annotation["/Parent"].get_object()
        name = qualified_name(field)
        if not name:
            return
        rect = tuple(float(v) for v in annotation.get("/Rect", (0, 0, 0, 0)))
        if len(rect) != 4:
            raise ValueError(f"{name}: /Rect has {len(rect)} values")
        entry = self.fields.get(name)
        if entry is None:
            entry = self.fields[name] = FormField(name=name, field=field)
        entry.widgets.append(Widget(page_index=page_index, annotation=annotation, rect=rect))

    def _add_unplaced_fields(self, document) -> None:
        try:
            acroform = document.root_object.get("/AcroForm")
            pending = list(acroform.get_object().get("/Fields", [])) if acroform else []
        except (PyPdfError, KeyError, ValueError, TypeError, AttributeError) as e:
            log.warning("field_tree_unreadable", error=str(e))
            return
        seen: set[int] = set()
        while pending:
            try:
                field = pending.pop().get_object()
                if id(field) in seen:
                    continue
                seen.add(id(field))
                kids = [kid.get_object() for kid in field.get("/Kids", [])]
                named_kids = [kid for kid in kids if "/T" in kid]
                if named_kids:
                    pending.extend(named_kids)
                    continue
                name = qualified_name(field)
            except (PyPdfError, KeyError, ValueError, TypeError, AttributeError) as e:
                log.warning("field_skipped", error=str(e))
                continue
            if name and name not in self.fields:
                log.debug("field_without_widget", field_id=name)
                self.fields[name] = FormField(name=name, field=field)

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def __len__(self) -> int:
        return len(self.fields)

    def get(self, name: str) -> FormField | None:
        return self.fields.get(name)

    def values(self) -> dict[str, str | bool]:
        """Decode every field; fields that fail to decode are logged and skipped."""
        decoded: dict[str, str | bool] = {}
        for name, entry in self.fields.items():
            try:
                decoded[name] = entry.value()
            except (PyPdfError, KeyError, ValueError, TypeError, AttributeError) as e:
                log.warning("field_decode_failed", field_id=name, error=str(e))
        return decoded


class FormWriteBatch:
    """Ordered, independently applied field writes.

    Text writes target text fields only; option writes target checkboxes
    and radio groups and take the export value of the state to select.
    """

    def __init__(self) -> None:
        self._writes: list[tuple[str, str, str]] = []  # (kind, field_id, value)
        self._warnings: list[FieldWriteWarning] = []

    def __len__(self) -> int:
        return len(self._writes)

    def text(self, field_id: str | None, value: str) -> None:
        if field_id:
            self._writes.append(("text", field_id, value))

    def option(self, field_id: str | None, option: str) -> None:
        if field_id:
            self._writes.append(("option", field_id, option))

    def warn(self, field_id: str, reason: str) -> None:
        """Record a problem detected while preparing the writes."""
        log.warning("field_write_skipped", field_id=field_id, reason=reason)
        self._warnings.append(FieldWriteWarning(field_id, reason))

    def apply(self, writer: PdfWriter, index: FormIndex) -> list[FieldWriteWarning]:
        """Apply every queued write to ``writer``.

        Args:
            writer: Writer cloned from the template.
            index: Field index built from ``writer``.

        Returns:
            One warning per write that could not be performed, plus any
            recorded with ``warn``.
        """
        warnings = list(self._warnings)
        written = 0
        for kind, field_id, value in self._writes:
            reason = self._write(writer, index, kind, field_id, value)
            if reason is None:
                written += 1
                continue
            log.warning("field_write_failed", field_id=field_id, reason=reason)
            warnings.append(FieldWriteWarning(field_id, reason))
        log.debug("form_fields_written", written=written, failed=len(warnings))
        return warnings

    def _write(
        self, writer: PdfWriter, index: FormIndex, kind: str, field_id: str, value: str
    ) -> str | None:
        entry = index.get(field_id)
        if entry is None:
            return "field not found in template"
        pages = sorted({w.page_index for w in entry.widgets})

        if kind == "text":
            if entry.kind != "text":
                return f"expected a text field, found {entry.kind}"
            for widget in entry.widgets:
                widget.annotation[NameObject("/DA")] = TextStringObject(DEFAULT_APPEARANCE)
            payload = value
        else:
            if entry.kind not in ("checkbox", "radio"):
                return f"expected a checkbox or option group, found {entry.kind}"
            payload = "/" + value.lstrip("/")
            if payload not in entry.states:
                return f"option {value!r} not available (states: {', '.join(entry.states)})"

        if not pages:
            # no widget to redraw, the value is only stored on the field
            entry.field[NameObject("/V")] = TextStringObject(payload)
            return None

        try:
            writer.update_page_form_field_values(
                [writer.pages[i] for i in pages],
                {field_id: payload},
                auto_regenerate=False,
            )
        except (PyPdfError, KeyError, ValueError, TypeError, AttributeError) as e:
            return f"{type(e).__name__}: {e}"

        if kind == "option":
            # pypdf stores the group value as a text string; viewers expect a name
            entry.field[NameObject("/V")] = NameObject(payload)
        return None
