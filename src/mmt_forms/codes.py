"""Attendance code alphabet.

Each half-day (morning / afternoon) of a participant carries exactly one
single-letter code. The table below is consumed by the attendance-entry
layer (labels, comment requirement) and by the generator (display alias).
"""

from enum import Enum

from pydantic import BaseModel


class AttendanceCode(str, Enum):
    """The 11 attendance codes printed on the MMT form."""

    ON_SITE = "X"
    ONLINE = "O"
    HOLIDAY = "A"
    SICKNESS = "B"
    ACCIDENT = "C"
    PARENTAL_LEAVE = "D"
    MILITARY_SERVICE = "E"
    INTERIM_EARNINGS = "F"
    OTHER_JUSTIFIED = "G"
    PUBLIC_HOLIDAY = "H"
    UNJUSTIFIED = "I"


class CodeInfo(BaseModel):
    """Label and entry rules for one attendance code."""

    code: AttendanceCode
    label: str
    description: str
    requires_comment: bool = False


CODE_INFO: dict[AttendanceCode, CodeInfo] = {
    info.code: info
    for info in (
        CodeInfo(code=AttendanceCode.ON_SITE, label="Sur place", description="Présent sur place"),
        CodeInfo(code=AttendanceCode.ONLINE, label="En ligne", description="Présent en ligne"),
        CodeInfo(code=AttendanceCode.HOLIDAY, label="Vacances", description="Vacances"),
        CodeInfo(
            code=AttendanceCode.SICKNESS,
            label="Maladie/Grossesse",
            description="Maladie ou grossesse",
        ),
        CodeInfo(code=AttendanceCode.ACCIDENT, label="Accident", description="Accident"),
        CodeInfo(
            code=AttendanceCode.PARENTAL_LEAVE,
            label="Congé maternité/parental",
            description="Congé maternité ou parental",
        ),
        CodeInfo(
            code=AttendanceCode.MILITARY_SERVICE,
            label="Service militaire/civil",
            description="Service militaire, civil ou protection civile",
        ),
        CodeInfo(
            code=AttendanceCode.INTERIM_EARNINGS,
            label="Gain intermédiaire",
            description="Gain intermédiaire",
        ),
        CodeInfo(
            code=AttendanceCode.OTHER_JUSTIFIED,
            label="Autres absences justifiées",
            description="Autres absences justifiées (commentaire obligatoire)",
            requires_comment=True,
        ),
        CodeInfo(
            code=AttendanceCode.PUBLIC_HOLIDAY,
            label="Jours fériés/Fermeture",
            description="Jours fériés ou fermeture de l'organisateur",
        ),
        CodeInfo(
            code=AttendanceCode.UNJUSTIFIED,
            label="Absence non justifiée",
            description="Absence non justifiée",
        ),
    )
}

DEFAULT_CODE = AttendanceCode.ON_SITE

# Legacy records store "P" (présent); forms only know "X"
_DISPLAY_ALIASES: dict[str, str] = {"P": "X"}


def requires_comment(code: str | None) -> bool:
    """Return True if ``code`` may only be saved together with a comment."""
    try:
        return CODE_INFO[AttendanceCode(code)].requires_comment
    except ValueError:
        return False


def display_code(code: str | None) -> str:
    """Return the letter printed on the form for a stored code."""
    if not code:
        return ""
    return _DISPLAY_ALIASES.get(code, code)
