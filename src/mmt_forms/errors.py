"""Error hierarchy for form extraction, generation and persistence.

Fatal conditions are exceptions and abort a single call (one parse, one
generation, one storage request). Batch drivers catch MMTFormsError per item
so that one bad document never aborts the rest of the batch.

Non-fatal conditions (a field that could not be written, a signature image
that could not be embedded) are FormWarning instances. They are collected
and returned to the caller, never raised.
"""


class MMTFormsError(Exception):
    """Base exception for all mmt-forms errors."""

    pass


class FormError(MMTFormsError):
    """Failure tied to a single PDF document."""

    pass


class ExtractionError(FormError):
    """Document cannot be read as a PDF, or carries no interactive form.

    Examples: truncated upload, encrypted file, scanned form without AcroForm.
    """

    def __init__(self, message: str, filename: str = "") -> None:
        super().__init__(message)
        self.filename = filename


class MissingIdentityError(ExtractionError):
    """No last name could be resolved from the form fields or the file name.

    Carries the file name so a batch import can report which file failed.
    """

    def __init__(self, filename: str = "") -> None:
        label = filename or "<unnamed>"
        super().__init__(f"{label}: last name not found in form or file name", filename)


class TemplateError(FormError):
    """Template bytes cannot be opened as a form-bearing PDF during generation."""

    pass


class ValidationError(MMTFormsError):
    """Attendance input rejected before it is stored."""

    pass


class MissingCommentError(ValidationError):
    """Code G (other justified absence) used without a comment.

    Lists every offending participant name in the message.
    """

    def __init__(self, names: list[str]) -> None:
        self.names = names
        super().__init__(
            "Un commentaire est obligatoire pour le code G : " + ", ".join(names)
        )


class StorageError(MMTFormsError):
    """Persistence backend failure.

    Examples: unreadable JSON document, HTTP 500 from the document server,
    SharePoint request rejected.
    """

    pass


class ConfigurationError(MMTFormsError):
    """Settings are missing or inconsistent (unknown backend, empty URL)."""

    pass


class FormWarning(UserWarning):
    """Base class for non-fatal generation issues."""

    pass


class FieldWriteWarning(FormWarning):
    """A single field could not be set; generation continued without it."""

    def __init__(self, field_id: str, reason: str) -> None:
        super().__init__(f"{field_id}: {reason}")
        self.field_id = field_id
        self.reason = reason


class ImageEmbedWarning(FormWarning):
    """Signature image malformed or unsupported; document produced unsigned."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
