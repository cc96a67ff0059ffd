"""Field layout of the MMT attendance form.

The identifiers below were assigned by the designer of the official
"Liste de présence MMT" PDF. They carry no meaning of their own and cannot be
discovered at runtime: they are a compatibility contract with that template
and must be kept byte-for-byte.

``FORM_LAYOUT`` is the only instance. The extractor and the generator both
read it, so a field id changed here changes both directions at once.
"""

from pydantic import BaseModel, ConfigDict, field_validator

# 31 (morning, afternoon) pairs, index 0 = day 1. The ids follow the visual
# grid of the template, not a numeric sequence.
_ATTENDANCE_GRID: tuple[tuple[str, str], ...] = (
    ("2.10146", "2.10147"),  # 1
    ("2.3015", "2.3016"),
    ("2.2031", "2.2032"),
    ("2.355", "2.356"),
    ("2.335", "2.336"),  # 5
    ("2.347", "2.348"),
    ("2.2039", "2.2040"),
    ("2.363", "2.364"),
    ("2.10150", "2.10151"),
    ("2.3019", "2.344"),  # 10
    ("2.2035", "2.2036"),
    ("2.359", "2.360"),
    ("2.339", "2.340"),
    ("2.351", "2.352"),
    ("2.3011", "2.3012"),  # 15
    ("2.367", "2.368"),
    ("2.10148", "2.10149"),
    ("2.3017", "2.3018"),
    ("2.2033", "2.2034"),
    ("2.357", "2.358"),  # 20
    ("2.337", "2.338"),
    ("2.349", "2.350"),
    ("2.343", "2.3010"),
    ("2.365", "2.366"),
    ("2.10152", "2.10153"),  # 25
    ("2.345", "2.346"),
    ("2.2037", "2.2038"),
    ("2.361", "2.362"),
    ("2.341", "2.342"),
    ("2.353", "2.354"),  # 30
    ("2.3013", "2.3014"),
)

# Semantic key -> field ids. The first id is written by the generator; any
# further id is an alias the extractor also reads (the template repeats the
# AVS number and the month on page 1 and page 2).
_SCALAR_FIELDS: dict[str, tuple[str, ...]] = {
    # Participant
    "last_name": ("1.2",),
    "first_name": ("1.3",),
    "avs_number": ("Textfeld 61", "Textfeld 43"),
    "birth_date": ("Textfeld 42",),
    "month_year": ("Textfeld 98", "Textfeld 41"),
    # Measure
    "course_type": ("1.68",),
    "date_start": ("1.49",),
    "date_end": ("1.48",),
    "work_percent": ("1.46",),
    "decision_number": ("1.139",),
    "unemployment_office": ("1.141",),
    "execution_place": ("1.67",),
    # Organizer
    "organizer_name": ("1.4",),
    "organizer_last_name": ("1.32",),
    "organizer_first_name": ("1.56",),
    "organizer_phone": ("1.61",),
    "organizer_email": ("1.62",),
    # Interruption, signature block, remarks
    "interruption_date": ("1.63",),
    "signature_place": ("5.19",),
    "signature_date": ("Textfeld 103",),
    "comments": ("1.172",),
}

_FLAG_FIELDS: dict[str, str] = {
    "no_participation": "Kontrollkästchen 6",
    "is_correction": "Kontrollkästchen 7",
    "was_interrupted": "Optionsfeld 70",
}

DATE_KEYS: tuple[str, ...] = ("date_start", "date_end", "birth_date")


class ChoiceGroup(BaseModel):
    """A radio group and the export values of the options we set."""

    model_config = ConfigDict(frozen=True)

    field_id: str
    yes: str
    no: str = ""


class FieldLayout(BaseModel):
    """Bidirectional mapping between semantic properties and form field ids."""

    model_config = ConfigDict(frozen=True)

    scalar_fields: dict[str, tuple[str, ...]]
    flag_fields: dict[str, str]
    attendance_fields: tuple[tuple[str, str], ...]
    presence_type: ChoiceGroup
    interruption: ChoiceGroup
    correction_field: str
    signature_field: str
    # Radio option names that mean "yes" when the correction field is a group
    correction_yes_options: frozenset[str] = frozenset(
        {"yes", "oui", "1", "on", "selection2", "auswahl2"}
    )

    @field_validator("attendance_fields")
    @classmethod
    def _one_pair_per_day(
        cls, value: tuple[tuple[str, str], ...]
    ) -> tuple[tuple[str, str], ...]:
        if len(value) != 31:
            raise ValueError("attendance grid must have exactly 31 day pairs")
        return value

    def resolve(self, key: str) -> str | None:
        """Return the primary field id for ``key`` (the one the generator writes)."""
        ids = self.scalar_fields.get(key)
        if ids:
            return ids[0]
        return self.flag_fields.get(key)

    def field_ids(self, key: str) -> tuple[str, ...]:
        """Return every field id read for ``key``, primary first."""
        if key in self.scalar_fields:
            return self.scalar_fields[key]
        if key in self.flag_fields:
            return (self.flag_fields[key],)
        return ()

    def attendance_fields_for_day(
        self, day: int, days_in_month: int = 31
    ) -> tuple[str, str] | None:
        """Return the (morning, afternoon) field ids of a calendar day.

        Args:
            day: Day of month, 1-based.
            days_in_month: Length of the target month; later days have no pair.

        Returns:
            The field pair, or None when ``day`` is outside the month.
        """
        if day < 1 or day > min(days_in_month, len(self.attendance_fields)):
            return None
        return self.attendance_fields[day - 1]

    def semantic_key(self, field_id: str) -> str | None:
        """Reverse lookup: which property a field id belongs to, if any."""
        return _REVERSE_INDEX.get(field_id)


FORM_LAYOUT = FieldLayout(
    scalar_fields=_SCALAR_FIELDS,
    flag_fields=_FLAG_FIELDS,
    attendance_fields=_ATTENDANCE_GRID,
    presence_type=ChoiceGroup(field_id="Optionsfeld 6", yes="Auswahl1"),
    interruption=ChoiceGroup(field_id="Optionsfeld 70", yes="Auswahl2", no="Auswahl1"),
    correction_field="Kontrollkästchen 7",
    signature_field="5.25",
)


def _build_reverse_index() -> dict[str, str]:
    index: dict[str, str] = {}
    for key, ids in _SCALAR_FIELDS.items():
        for field_id in ids:
            index[field_id] = key
    for key, field_id in _FLAG_FIELDS.items():
        index[field_id] = key
    index[FORM_LAYOUT.presence_type.field_id] = "presence_type"
    index[FORM_LAYOUT.signature_field] = "signature"
    for day, (am, pm) in enumerate(_ATTENDANCE_GRID, start=1):
        index[am] = f"day_{day}_am"
        index[pm] = f"day_{day}_pm"
    return index


_REVERSE_INDEX = _build_reverse_index()
