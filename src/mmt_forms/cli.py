"""Command line interface for MMT attendance forms.

Reads and fills the official MMT attendance form and works on the
configured database (see ``.env.example`` for the settings; a local ``.env`` is
loaded into the environment).

Run with: mmt-forms parse FORM.pdf [FORM.pdf ...]
Fields:   mmt-forms fields FORM.pdf
Import:   mmt-forms import forms/*.pdf
Generate: mmt-forms generate PARTICIPANT_ID --month 2025-06 --signature sig.png
Export:   mmt-forms export --month 2025-06 --output export.pdf
Classes:  mmt-forms classes --month 2025-06
Codes:    mmt-forms codes

Exit codes:
  0 = success (JSON, table or summary on stdout)
  1 = error, or at least one item of a batch failed (details on stderr)
"""

import argparse
import json
import sys
from pathlib import Path

from dotenv import load_dotenv

from mmt_forms.attendance import AttendanceService, total_hours
from mmt_forms.batch import export_filename, export_forms, import_forms
from mmt_forms.codes import CODE_INFO
from mmt_forms.config import get_config
from mmt_forms.errors import MMTFormsError
from mmt_forms.logging import setup_logging
from mmt_forms.pdf.extractor import open_form, parse
from mmt_forms.pdf.generator import render
from mmt_forms.roster import ClassService, ParticipantService
from mmt_forms.storage import get_storage


def _log(msg: str) -> None:
    """Write diagnostic messages to stderr so stdout stays clean for JSON."""
    print(msg, file=sys.stderr)


def _read_files(paths: list[str]) -> list[tuple[str, bytes]]:
    return [(Path(p).name, Path(p).read_bytes()) for p in paths]


def _cmd_parse(args: argparse.Namespace) -> int:
    results = []
    failures = 0
    for filename, pdf_bytes in _read_files(args.files):
        try:
            parsed = parse(pdf_bytes, filename)
        except MMTFormsError as e:
            _log(f"  {e}")
            failures += 1
            continue
        results.append({"file": filename, **parsed.model_dump(mode="json")})
    print(json.dumps(results, indent=2, ensure_ascii=False))
    return 1 if failures else 0


def _cmd_fields(args: argparse.Namespace) -> int:
    path = Path(args.file)
    index = open_form(path.read_bytes(), path.name)
    for name, entry in sorted(index.fields.items()):
        states = f" [{', '.join(entry.states)}]" if entry.states else ""
        pages = ",".join(str(w.page_index + 1) for w in entry.widgets)
        print(f"{name}\t{entry.kind}{states}\tp.{pages}\t{entry.value()!r}")
    _log(f"{len(index)} fields")
    return 0


def _cmd_import(args: argparse.Namespace) -> int:
    participants = ParticipantService(get_storage())
    participants.archive_expired()
    result = import_forms(_read_files(args.files), participants)
    print(result.summary())
    return 0 if result.ok else 1


def _signature(path: str | None) -> bytes | None:
    return Path(path).read_bytes() if path else None


def _cmd_generate(args: argparse.Namespace) -> int:
    storage = get_storage()
    participant = ParticipantService(storage).get(args.participant)
    if participant is None:
        _log(f"ERROR: unknown participant {args.participant}")
        return 1
    template = Path(args.template).read_bytes() if args.template else participant.original_pdf
    if not template:
        _log(f"ERROR: {participant.full_name} has no original PDF; pass --template")
        return 1

    records = AttendanceService(storage).records_for_month(participant.id, args.month)
    generated = render(
        participant,
        records,
        template,
        args.signature_date,
        args.correction,
        _signature(args.signature),
        month=args.month,
        flatten=False if args.no_flatten else None,
    )
    output = Path(args.output or export_filename(participant, args.month))
    output.write_bytes(generated.pdf)
    for warning in generated.warnings:
        _log(f"  warning: {warning}")
    print(output)
    return 0


def _cmd_export(args: argparse.Namespace) -> int:
    storage = get_storage()
    participants = ParticipantService(storage)
    participants.archive_expired()
    selected = participants.list_participants()
    if args.participant:
        wanted = set(args.participant)
        selected = [p for p in selected if p.id in wanted]
    template = Path(args.template).read_bytes() if args.template else None

    pdf, result = export_forms(
        selected,
        AttendanceService(storage),
        args.month,
        signature_date=args.signature_date,
        is_correction=args.correction,
        template=template,
        signature_image=_signature(args.signature),
    )
    if pdf is not None:
        Path(args.output).write_bytes(pdf)
        _log(f"  wrote {args.output}")
    for warning in result.warnings:
        _log(f"  warning: {warning}")
    print(result.summary())
    return 0 if result.ok and pdf is not None else 1


def _cmd_classes(args: argparse.Namespace) -> int:
    storage = get_storage()
    attendance = AttendanceService(storage)
    participants = ParticipantService(storage).list_participants()
    groups = ClassService(storage).group_by_class(participants)
    for name, members in groups.items():
        print(f"{name} ({len(members)})")
        for participant in members:
            records = attendance.records_for_month(participant.id, args.month)
            print(f"  {participant.id}\t{participant.full_name}\t{total_hours(records)}h")
    return 0


def _cmd_codes(args: argparse.Namespace) -> int:
    for code, info in CODE_INFO.items():
        flag = "  (commentaire obligatoire)" if info.requires_comment else ""
        print(f"{code.value}\t{info.label}{flag}")
    return 0


def _add_generation_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--month", required=True, help="Target month, YYYY-MM.")
    parser.add_argument(
        "--signature-date",
        default=None,
        help="Signature date DD.MM.YYYY (default: today).",
    )
    parser.add_argument(
        "--correction",
        action="store_true",
        help="Tick the 'corrected form' indicator.",
    )
    parser.add_argument(
        "--template",
        default=None,
        help="Blank form to fill instead of each participant's uploaded form.",
    )
    parser.add_argument(
        "--signature",
        default=None,
        help="PNG or JPEG signature image drawn over the signature field.",
    )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments using argparse."""
    parser = argparse.ArgumentParser(
        prog="mmt-forms",
        description="Read, import and fill MMT attendance forms.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    commands = parser.add_subparsers(dest="command", required=True)

    parse_cmd = commands.add_parser("parse", help="Print the data of filled forms as JSON.")
    parse_cmd.add_argument("files", nargs="+", help="PDF forms.")
    parse_cmd.set_defaults(handler=_cmd_parse)

    fields_cmd = commands.add_parser("fields", help="List every field of a form.")
    fields_cmd.add_argument("file", help="PDF form.")
    fields_cmd.set_defaults(handler=_cmd_fields)

    import_cmd = commands.add_parser("import", help="Import forms into the database.")
    import_cmd.add_argument("files", nargs="+", help="PDF forms.")
    import_cmd.set_defaults(handler=_cmd_import)

    generate_cmd = commands.add_parser("generate", help="Fill the form of one participant.")
    generate_cmd.add_argument("participant", help="Participant id.")
    _add_generation_options(generate_cmd)
    generate_cmd.add_argument(
        "--output",
        default=None,
        help="Output file (default: MMT_<Last>_<First>_<YYYY-MM>.pdf).",
    )
    generate_cmd.add_argument(
        "--no-flatten",
        action="store_true",
        help="Keep the form interactive.",
    )
    generate_cmd.set_defaults(handler=_cmd_generate)

    export_cmd = commands.add_parser(
        "export", help="Fill the forms of all participants into one PDF."
    )
    _add_generation_options(export_cmd)
    export_cmd.add_argument(
        "--participant",
        action="append",
        default=[],
        help="Restrict to this participant id (repeatable).",
    )
    export_cmd.add_argument("--output", required=True, help="Merged PDF to write.")
    export_cmd.set_defaults(handler=_cmd_export)

    classes_cmd = commands.add_parser(
        "classes", help="List the classes, their members and the hours of a month."
    )
    classes_cmd.add_argument("--month", required=True, help="Month to total, YYYY-MM.")
    classes_cmd.set_defaults(handler=_cmd_classes)

    codes_cmd = commands.add_parser("codes", help="List the attendance codes.")
    codes_cmd.set_defaults(handler=_cmd_codes)

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    load_dotenv()
    config = get_config()
    setup_logging(json_output=config.log_json, log_level=config.log_level)
    try:
        return args.handler(args)
    except (MMTFormsError, OSError, ValueError) as e:
        _log(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
