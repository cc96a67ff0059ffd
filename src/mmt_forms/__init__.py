"""MMT attendance tracking and AcroForm extraction/generation.

Reads the official MMT attendance form into structured data, keeps
participants, classes and daily attendance codes, and fills the form back
for a given month.
"""

from mmt_forms.codes import CODE_INFO, AttendanceCode
from mmt_forms.layout import FORM_LAYOUT, FieldLayout
from mmt_forms.models import AttendanceRecord, ParsedFormData, Participant, SchoolClass
from mmt_forms.pdf import GeneratedForm, generate, parse, render

__all__ = [
    "AttendanceCode",
    "AttendanceRecord",
    "CODE_INFO",
    "FORM_LAYOUT",
    "FieldLayout",
    "GeneratedForm",
    "ParsedFormData",
    "Participant",
    "SchoolClass",
    "generate",
    "parse",
    "render",
]
