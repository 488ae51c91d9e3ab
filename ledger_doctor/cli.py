from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from ledger_doctor import __version__ as TOOL_VERSION
from ledger_doctor.config import ConfigError, LedgerConfig, load_config
from ledger_doctor.engine import (
    WORKBOOK_FORMATS,
    build_check_report,
    build_structured_summary,
    check_structure,
    default_restore_path,
    init_ledger,
    restore_structure,
)
from ledger_doctor.issues import ISSUE_DEFINITIONS, CriticalError

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_CRITICAL = 2
EXIT_CHECK_ISSUES = 3

HUMAN_ISSUE_LIMIT = 50

logger = logging.getLogger("ledger_doctor")


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class LedgerDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


class LabeledFormatter(logging.Formatter):
    """Prefix every record with a short level label (INFO, WARN, ERROR)."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
    }

    def format(self, record: logging.LogRecord) -> str:
        label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        return f"{label} {record.getMessage()}"


def configure_logging(*, quiet: bool = False, verbose: bool = False) -> None:
    level = logging.WARNING
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json_dumps(payload), encoding="utf-8")


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def safe_output_path(path: Path, *, in_place: bool = False) -> Path:
    if not in_place and path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def require_workbook(input_path: Path) -> None:
    if not input_path.exists():
        raise CliError(f"File not found: {input_path}", EXIT_COMMAND_ERROR)
    if input_path.suffix.lower() not in WORKBOOK_FORMATS:
        raise CliError(
            f"Unsupported file type '{input_path.suffix or '[missing extension]'}'. "
            f"Supported: {', '.join(sorted(WORKBOOK_FORMATS))}",
            EXIT_COMMAND_ERROR,
        )


def resolve_config(args: argparse.Namespace) -> LedgerConfig:
    try:
        return load_config(Path(args.config) if getattr(args, "config", None) else None)
    except ConfigError as exc:
        raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, CriticalError):
        return EXIT_CRITICAL
    return EXIT_COMMAND_ERROR


def exit_code_for_check(report: dict[str, Any]) -> int:
    summary = report["summary"]
    if summary["counts"].get("critical", 0) > 0:
        return EXIT_CRITICAL
    if summary["issue_count"] > 0:
        return EXIT_CHECK_ISSUES
    return EXIT_SUCCESS


def render_check_text(report: dict[str, Any], *, limit: int = HUMAN_ISSUE_LIMIT) -> str:
    summary = report["summary"]
    counts = summary["counts"]
    lines = [
        "ledger-doctor check",
        f"File: {report['file']}",
        f"Verdict: {'clean' if summary['ok'] else 'issues found'}",
        f"Issues: {summary['issue_count']} "
        f"(critical {counts['critical']}, structural {counts['structural']}, style {counts['style']})",
    ]
    issues = report["issues"]
    for item in issues[:limit]:
        location = f"{item['location']}: " if item["location"] else ""
        lines.append(f"- [{item['category']}] {location}{item['message']}")
    if len(issues) > limit:
        lines.append(f"... {len(issues) - limit} more (use --json or --output for the full list)")
    return "\n".join(lines) + "\n"


def render_restore_summary(summary: dict[str, Any]) -> str:
    stats = summary.get("stats", {})
    totals = summary["before_after_issue_summary"]["issue_counts"]["total"]
    lines = [
        "ledger-doctor restore",
        f"Input: {summary['input_file']}",
        f"Output: {summary['output_file']}",
        f"Groups: {stats.get('groups', 0)}",
        f"Rows restored: {stats.get('rows_restored', 0)}",
        f"Rows reset below TOTAL: {stats.get('dead_rows_cleared', 0)}",
        f"Merged ranges split: {stats.get('merged_ranges_unmerged', 0)}",
        f"Issues: {totals['before']} -> {totals['after']}",
    ]
    if summary.get("warnings"):
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in summary["warnings"])
    return "\n".join(lines) + "\n"


def add_common_flags(command: argparse.ArgumentParser) -> None:
    command.add_argument("--config", help="JSON config file")
    command.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    command.add_argument("-v", "--verbose", action="store_true", help="More human logs")


def build_parser() -> argparse.ArgumentParser:
    parser = LedgerDoctorArgumentParser(prog="ledger-doctor", description="Check and restore a grouped financial ledger workbook.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Check the ledger structure and presentation.")
    check.add_argument("input", help="Input workbook (.xlsx/.xlsm)")
    check.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    check.add_argument("--output", help="Write the JSON report to this path")
    add_common_flags(check)

    restore = subparsers.add_parser("restore", help="Restore the ledger presentation and write a new workbook.")
    restore.add_argument("input", help="Input workbook (.xlsx/.xlsm)")
    restore.add_argument("output", nargs="?", default=None, help="Output path (default: <stem>_restored<suffix>)")
    restore.add_argument("--in-place", action="store_true", help="Overwrite the input workbook")
    restore.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    restore.add_argument("--json-summary", dest="json_summary", help="Write the restore summary to this path")
    add_common_flags(restore)

    init = subparsers.add_parser("init", help="Write a fresh ledger workbook.")
    init.add_argument("output", help="Output workbook path")
    init.add_argument("--example", action="store_true", help="Fill the ledger with example data")
    add_common_flags(init)

    explain = subparsers.add_parser("explain", help="Explain a stable rule id.")
    explain.add_argument("rule_id", help="Rule identifier")
    explain.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_check(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    try:
        require_workbook(input_path)
        config = resolve_config(args)
        report = build_check_report(input_path, check_structure(input_path, config))
        if args.output:
            write_json(Path(args.output), report)
        if args.json:
            maybe_emit_json_stdout(report, True)
        else:
            emit_human(render_check_text(report).rstrip(), quiet=args.quiet)
            if args.output:
                emit_human(f"Report written: {args.output}", quiet=args.quiet)
        return exit_code_for_check(report)
    except Exception as exc:
        logger.error("%s", exc)
        return classify_exception(exc)


def restore_output_path(args: argparse.Namespace, input_path: Path) -> Path:
    if args.in_place:
        if args.output:
            raise CliError("Use either an output path or --in-place, not both.", EXIT_COMMAND_ERROR)
        return input_path
    output_path = Path(args.output) if args.output else default_restore_path(input_path)
    if output_path.suffix.lower() not in WORKBOOK_FORMATS:
        raise CliError("Restored output must be an .xlsx or .xlsm path.", EXIT_COMMAND_ERROR)
    return safe_output_path(output_path)


def run_restore(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    try:
        require_workbook(input_path)
        config = resolve_config(args)
        output_path = restore_output_path(args, input_path)
        summary = build_structured_summary(restore_structure(input_path, output_path, config))
        if args.json_summary:
            write_json(Path(args.json_summary), summary)
        if args.json:
            maybe_emit_json_stdout(summary, True)
        else:
            emit_human(render_restore_summary(summary).rstrip(), quiet=args.quiet)
            if args.json_summary:
                emit_human(f"Restore summary: {args.json_summary}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        logger.error("%s", exc)
        return classify_exception(exc)


def run_init(args: argparse.Namespace) -> int:
    output_path = Path(args.output)
    try:
        if output_path.suffix.lower() != ".xlsx":
            raise CliError("init writes .xlsx workbooks only.", EXIT_COMMAND_ERROR)
        safe_output_path(output_path)
        config = resolve_config(args)
        stats = init_ledger(output_path, example=args.example, config=config)
        emit_human(f"Ledger written: {output_path} ({stats['groups']} group(s))", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        logger.error("%s", exc)
        return classify_exception(exc)


def run_explain(args: argparse.Namespace) -> int:
    rule = ISSUE_DEFINITIONS.get(args.rule_id)
    if rule is None:
        eprint(f"Unknown rule id: {args.rule_id}")
        return EXIT_COMMAND_ERROR
    payload = {
        "rule_id": args.rule_id,
        "category": rule["category"],
        "description": rule["description"],
        "auto_fixable": rule["auto_fixable"],
    }
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(
            "\n".join(
                [
                    f"Rule: {args.rule_id}",
                    f"Category: {payload['category']}",
                    f"What it checks: {payload['description']}",
                    f"Fixed by restore: {'yes' if payload['auto_fixable'] else 'no'}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(quiet=getattr(args, "quiet", False), verbose=getattr(args, "verbose", False))
        if args.command == "check":
            return run_check(args)
        if args.command == "restore":
            return run_restore(args)
        if args.command == "init":
            return run_init(args)
        if args.command == "explain":
            return run_explain(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
