from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from sheet_remedy import __version__ as TOOL_VERSION
from sheet_remedy.ai import AISuggester
from sheet_remedy.catalog import COLUMN_TYPES, DEFAULT_CATALOG, FAMILIES, describe_rule
from sheet_remedy.changelog import CHANGE_TYPES
from sheet_remedy.config import Settings, configure_logging, load_settings, timestamp_token
from sheet_remedy.contracts import build_payload, build_run_summary
from sheet_remedy.errors import (
    ExternalServiceError,
    PersistenceError,
    ReferenceLookupError,
    RemediationError,
    UnknownColumnError,
)
from sheet_remedy.fixes import generate_fix
from sheet_remedy.planner import ACTION_TYPES, AI_VALIDATION, REFERENCE_VALIDATION, plan_actions
from sheet_remedy.profiling import ColumnConfig, apply_config, default_config, profile_column, profile_table
from sheet_remedy.quality import score_quality
from sheet_remedy.reference import Credentials, ReferenceClient, build_reference_index
from sheet_remedy.scanner import ScanResult, scan
from sheet_remedy.validator import validate
from sheet_remedy.workbook import WorkbookSession, build_review, export_cleaned, read_columns

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_ISSUES_FOUND = 3
EXIT_DEGRADED = 6

RESET = "RESET"

logger = logging.getLogger(__name__)


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class SheetRemedyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True, default=str)


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json_dumps(payload), encoding="utf-8")


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, ExternalServiceError):
        return EXIT_DEGRADED
    if isinstance(exc, PersistenceError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def log_level_for(args: argparse.Namespace, settings: Settings) -> str:
    if getattr(args, "verbose", False):
        return "DEBUG"
    if getattr(args, "quiet", False):
        return "WARNING"
    return settings.log_level


def add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def add_column_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--column", required=True, help="Column header")
    parser.add_argument("--type", dest="column_type", choices=COLUMN_TYPES, help="Column type (default: inferred)")
    parser.add_argument("--subtype", help="Subtype id (default: detected from the column name)")


def build_parser() -> argparse.ArgumentParser:
    parser = SheetRemedyArgumentParser(prog="sheet-remedy", description="Column-by-column spreadsheet remediation.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    profile = subparsers.add_parser("profile", help="Profile every column of a file.")
    profile.add_argument("input", help="Input file path")
    profile.add_argument("--output", help="Also write the JSON payload to this path")
    add_common(profile)

    subtypes = subparsers.add_parser("subtypes", help="List the subtype catalog.")
    subtypes.add_argument("--type", dest="column_type", choices=COLUMN_TYPES, help="Only subtypes valid for this column type")
    add_common(subtypes)

    check = subparsers.add_parser("check", help="Validate one value and suggest a fix.")
    check.add_argument("value", help="Cell value")
    check.add_argument("--type", dest="column_type", choices=COLUMN_TYPES, default="string")
    check.add_argument("--subtype", help="Subtype id")
    add_common(check)

    plan = subparsers.add_parser("plan", help="List remediation actions for a column.")
    plan.add_argument("input", help="Input file path")
    add_column_options(plan)
    plan.add_argument("--unique", action="store_true", help="Treat the column as a unique qualifier")
    plan.add_argument("--reference", action="store_true", help="Treat the column as reference data")
    add_common(plan)

    scan_cmd = subparsers.add_parser("scan", help="Find the rows affected by one action.")
    scan_cmd.add_argument("input", help="Input file path")
    add_column_options(scan_cmd)
    scan_cmd.add_argument("--action", required=True, choices=ACTION_TYPES)
    scan_cmd.add_argument("--table", help="ServiceNow table for reference-validation")
    scan_cmd.add_argument("--list-all", action="store_true", help="Reference validation: include valid and empty rows")
    scan_cmd.add_argument("--fail-on-issues", action="store_true", help="Return exit code 3 when issues are found")
    add_common(scan_cmd)

    apply = subparsers.add_parser("apply", help="Scan one action and apply its fixes to the working copy.")
    apply.add_argument("input", help="Working copy (.xlsx) or an upload to convert into one")
    add_column_options(apply)
    apply.add_argument("--action", required=True, choices=ACTION_TYPES)
    apply.add_argument("--rows", help="Comma-separated row numbers to apply (default: all)")
    apply.add_argument("--table", help="ServiceNow table for reference-validation")
    add_common(apply)

    log = subparsers.add_parser("log", help="Record one decision in the change log.")
    log.add_argument("input", help="Working copy (.xlsx)")
    log.add_argument("--row", type=int, required=True, help="Spreadsheet row number (data starts at 2)")
    log.add_argument("--column", required=True, help="Column header")
    log.add_argument("--change", required=True, choices=(*CHANGE_TYPES, RESET))
    log.add_argument("--old", help="Original value for EDIT")
    log.add_argument("--new", help="New value for EDIT")
    add_common(log)

    review = subparsers.add_parser("review", help="Summarize the decisions recorded in a working copy.")
    review.add_argument("input", help="Working copy (.xlsx)")
    add_common(review)

    export = subparsers.add_parser("export", help="Replay the change log and write the cleaned workbook.")
    export.add_argument("input", help="Working copy (.xlsx)")
    export.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    add_common(export)

    quality = subparsers.add_parser("quality", help="Score dataset quality.")
    quality.add_argument("input", help="Input file path")
    quality.add_argument("--unique", action="append", default=[], metavar="COLUMN", help="Unique-qualifier column (repeatable)")
    quality.add_argument("--fail-on-issues", action="store_true", help="Return exit code 3 when any issue is counted")
    add_common(quality)

    subparsers.add_parser("version", help="Print version")
    return parser


def parse_rows(raw: str | None) -> set[int] | None:
    if not raw:
        return None
    try:
        return {int(part) for part in raw.split(",") if part.strip()}
    except ValueError as exc:
        raise CliError(f"--rows must be comma-separated integers, got {raw!r}") from exc


def column_setup(
    columns: dict[str, list[Any]], args: argparse.Namespace
) -> tuple[list[Any], str, str | None]:
    if args.column not in columns:
        raise UnknownColumnError(args.column)
    values = columns[args.column]
    column_type = args.column_type or profile_column(args.column, values).inferred_type
    subtype = args.subtype
    if subtype:
        DEFAULT_CATALOG.require(subtype)
    return values, column_type, subtype


def reference_index_for(args: argparse.Namespace, settings: Settings) -> dict[str, str] | None:
    if args.action != REFERENCE_VALIDATION:
        return None
    if not args.table:
        raise CliError("--table is required for reference-validation")
    try:
        client = ReferenceClient(Credentials.from_settings(settings), timeout=settings.reference_timeout)
        return build_reference_index(client.fetch_records(args.table))
    except ReferenceLookupError as exc:
        logger.warning("Reference lookup degraded: %s", exc)
        return None


def ai_for(args: argparse.Namespace, settings: Settings) -> AISuggester | None:
    if args.action != AI_VALIDATION:
        return None
    return AISuggester.from_settings(settings)


def render_scan_text(column: str, action: str, result: ScanResult) -> str:
    lines = [f"{action} on {column}: {len(result.issues)} issue(s)"]
    if result.error:
        lines.append(f"Unavailable: {result.error}")
    for issue in result.issues:
        reason = f"  ({issue.reason})" if issue.reason else ""
        lines.append(f"  row {issue.row_number}: {issue.current_value!r} -> {issue.suggested_fix!r}{reason}")
    if result.tokens_used:
        lines.append(f"Tokens used: {result.tokens_used}")
    return "\n".join(lines)


def run_profile(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    columns = read_columns(input_path)
    result = profile_table(columns)
    body = {
        "total_records": result["total_records"],
        "total_columns": result["total_columns"],
        "completeness_score": result["completeness_score"],
        "columns": [profile.to_dict() for profile in result["columns"]],
    }
    summary = build_run_summary(command="profile", input_path=input_path, metrics={"columns": len(columns)})
    payload = build_payload("sheet_remedy.profile", summary, **body)
    if args.output:
        write_json(Path(args.output), payload)
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(
            f"{body['total_records']} records, {body['total_columns']} columns, "
            f"completeness {body['completeness_score']}%",
            quiet=args.quiet,
        )
        for column in body["columns"]:
            emit_human(
                f"  {column['name']}: {column['inferred_type']}, {column['empty_records']} empty, "
                f"{column['duplicate_records']} duplicate, {column['unique_value_count']} unique",
                quiet=args.quiet,
            )
    return EXIT_SUCCESS


def run_subtypes(args: argparse.Namespace) -> int:
    if args.column_type:
        rules = list(DEFAULT_CATALOG.subtypes_for(args.column_type).values())
    else:
        rules = [rule for family in FAMILIES for rule in DEFAULT_CATALOG.family(family).values()]
    entries = [{"id": rule.id, "family": rule.family, "description": describe_rule(rule)} for rule in rules]
    if args.json:
        maybe_emit_json_stdout(entries, True)
    else:
        for entry in entries:
            print(f"{entry['id']:<22} {entry['family']:<8} {entry['description']}")
    return EXIT_SUCCESS


def run_check(args: argparse.Namespace) -> int:
    if args.subtype:
        DEFAULT_CATALOG.require(args.subtype)
    result = validate(args.value, args.subtype, args.column_type)
    payload = result.to_dict()
    if result.is_issue and not result.needs_normalization:
        payload["suggested_fix"] = generate_fix(args.value, args.subtype, args.column_type)
    if args.json:
        maybe_emit_json_stdout(payload, True)
    elif result.is_issue:
        print(f"{payload['severity']}: {payload['reason']}")
        print(f"Suggested fix: {payload['suggested_fix']}")
    else:
        print("valid")
    return EXIT_ISSUES_FOUND if result.is_issue else EXIT_SUCCESS


def run_plan(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    columns = read_columns(input_path)
    values, column_type, subtype = column_setup(columns, args)
    profile = apply_config(
        profile_column(args.column, values),
        ColumnConfig(
            name=args.column,
            column_type=column_type,
            subtype=subtype,
            is_unique_qualifier=args.unique,
            is_reference_data=args.reference,
        ),
    )
    actions = plan_actions(args.column, column_type, profile, subtype)
    summary = build_run_summary(command="plan", input_path=input_path, metrics={"actions": len(actions)})
    payload = build_payload(
        "sheet_remedy.plan",
        summary,
        column=args.column,
        column_type=column_type,
        actions=[action.to_dict() for action in actions],
    )
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        for action in actions:
            count = "?" if action.issue_count is None else action.issue_count
            print(f"[{action.severity}] {action.type}: {action.title} ({count})")
            emit_human(f"    {action.description}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_scan(args: argparse.Namespace, settings: Settings) -> int:
    input_path = Path(args.input)
    columns = read_columns(input_path)
    values, column_type, subtype = column_setup(columns, args)
    result = scan(
        args.action,
        args.column,
        column_type,
        subtype,
        values,
        reference_index=reference_index_for(args, settings),
        ai_suggester=ai_for(args, settings),
        list_all=args.list_all,
    )
    warnings = [result.error] if result.error else []
    summary = build_run_summary(
        command="scan",
        input_path=input_path,
        status="degraded" if result.degraded else "ok",
        metrics={"issues": len(result.issues), "tokens_used": result.tokens_used},
        warnings=warnings,
    )
    payload = build_payload(
        "sheet_remedy.scan",
        summary,
        column=args.column,
        action=args.action,
        column_type=column_type,
        subtype=subtype,
        **result.to_dict(),
    )
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(render_scan_text(args.column, args.action, result))
    if result.degraded:
        return EXIT_DEGRADED
    if args.fail_on_issues and result.issues:
        return EXIT_ISSUES_FOUND
    return EXIT_SUCCESS


def open_session(input_path: Path, settings: Settings) -> WorkbookSession:
    if input_path.suffix.lower() == ".xlsx":
        return WorkbookSession(input_path)
    return WorkbookSession.from_upload(input_path, settings.workdir)


def run_apply(args: argparse.Namespace, settings: Settings) -> int:
    session = open_session(Path(args.input), settings)
    _, column_type, subtype = column_setup(session.columns, args)
    result = session.scan(
        args.action,
        args.column,
        column_type,
        subtype,
        reference_index=reference_index_for(args, settings),
        ai_suggester=ai_for(args, settings),
    )
    if result.degraded:
        eprint(f"Unavailable: {result.error}")
        return EXIT_DEGRADED
    rows = parse_rows(args.rows)
    selected = [issue for issue in result.issues if rows is None or issue.row_number in rows]
    applied = session.apply_fixes(args.column, args.action, selected)
    payload = {"working_copy": str(session.path), "applied": applied, "selected": len(selected)}
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(f"Applied {applied} of {len(selected)} {args.action} fix(es) to {args.column}", quiet=args.quiet)
        emit_human(f"Working copy: {session.path}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_log(args: argparse.Namespace) -> int:
    session = WorkbookSession(Path(args.input))
    if args.change == RESET:
        session.clear_change(args.row, args.column)
        action = RESET
    else:
        if args.change == "EDIT" and args.new is None:
            raise CliError("--new is required for EDIT")
        action = session.log_change(args.row, args.column, args.change, args.old, args.new)
    if args.json:
        maybe_emit_json_stdout({"row_number": args.row, "column": args.column, "action": action}, True)
    else:
        emit_human(f"Row {args.row} {args.column}: {action}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_review(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    review = build_review(input_path)
    summary = build_run_summary(command="review", input_path=input_path, metrics=review["counts"])
    payload = build_payload("sheet_remedy.review", summary, **review)
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        counts = review["counts"]
        print(
            f"{counts['total']} decision(s): {counts['changed']} changed, {counts['rejected']} rejected, "
            f"{counts['kept']} kept, {counts['deleted']} row(s) deleted"
        )
        for row in review["rows"]:
            marker = " [delete]" if row["marked_for_deletion"] else ""
            changes = ", ".join(f"{column}:{action}" for column, action in row["changes"].items())
            emit_human(f"  row {row['row_number']}{marker} {changes}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_export(args: argparse.Namespace, settings: Settings) -> int:
    input_path = Path(args.input)
    out_dir = Path(args.out_dir) if args.out_dir else Path.cwd() / "sheet-remedy-output" / f"{input_path.stem}-{timestamp_token(settings)}"
    output_path, stats = export_cleaned(input_path, out_dir)
    summary = build_run_summary(
        command="export", input_path=input_path, output_path=output_path, metrics=stats.to_dict()
    )
    payload = build_payload("sheet_remedy.export", summary, **stats.to_dict())
    write_json(out_dir / f"{input_path.stem}_export_summary.json", payload)
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        emit_human(
            f"{stats.edits_applied} edit(s) applied, {stats.rows_deleted} row(s) deleted, "
            f"{stats.rows_remaining} row(s) remain",
            quiet=args.quiet,
        )
        emit_human(f"Cleaned workbook: {output_path}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_quality(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    columns = read_columns(input_path)
    for name in args.unique:
        if name not in columns:
            raise UnknownColumnError(name)
    configs = {}
    for profile in profile_table(columns)["columns"]:
        config = default_config(profile)
        if profile.name in args.unique:
            config = ColumnConfig(name=profile.name, column_type=config.column_type, is_unique_qualifier=True)
        configs[profile.name] = config
    score = score_quality(columns, configs)
    summary = build_run_summary(
        command="quality",
        input_path=input_path,
        metrics={"quality_score": score["quality_score"], "total_issues": score["total_issues"]},
    )
    payload = build_payload("sheet_remedy.quality", summary, **score)
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(f"Quality score: {score['quality_score']}/100")
        for name, dimension in score["breakdown"].items():
            emit_human(
                f"  {name}: {dimension['score']} (weight {dimension['weight']}, {dimension['issues']} issue(s))",
                quiet=args.quiet,
            )
    if args.fail_on_issues and score["total_issues"]:
        return EXIT_ISSUES_FOUND
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "version":
            return run_version()
        settings = load_settings()
        configure_logging(log_level_for(args, settings))
        if args.command == "profile":
            return run_profile(args)
        if args.command == "subtypes":
            return run_subtypes(args)
        if args.command == "check":
            return run_check(args)
        if args.command == "plan":
            return run_plan(args)
        if args.command == "scan":
            return run_scan(args, settings)
        if args.command == "apply":
            return run_apply(args, settings)
        if args.command == "log":
            return run_log(args)
        if args.command == "review":
            return run_review(args)
        if args.command == "export":
            return run_export(args, settings)
        if args.command == "quality":
            return run_quality(args)
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code
    except RemediationError as exc:
        eprint(str(exc))
        return classify_exception(exc)


if __name__ == "__main__":
    raise SystemExit(main())
