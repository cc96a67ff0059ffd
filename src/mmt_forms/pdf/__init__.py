"""PDF AcroForm extraction and generation for the MMT attendance form."""

from mmt_forms.pdf.extractor import parse, read_form_fields
from mmt_forms.pdf.generator import GeneratedForm, generate, render

__all__ = [
    "GeneratedForm",
    "generate",
    "parse",
    "read_form_fields",
    "render",
]
