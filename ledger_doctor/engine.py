"""Check and restore passes over a ledger workbook on disk."""

from __future__ import annotations

import logging
import os
import tempfile
import zipfile
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook

from ledger_doctor.config import LedgerConfig
from ledger_doctor.contracts import build_envelope, build_run_summary
from ledger_doctor.grid import GridAccessor
from ledger_doctor.issues import CRITICAL, CriticalError, Issue, count_by_category, critical_issue, dedupe_issues, sort_issues
from ledger_doctor.layout import check_sheet_layout, check_workbook_layout
from ledger_doctor.parser import parse
from ledger_doctor.restore import clear_ledger, fill_example_ledger, restore, restore_sheet_layout, restore_workbook_layout
from ledger_doctor.structure import validate_structure
from ledger_doctor.style import validate_style

logger = logging.getLogger(__name__)

WORKBOOK_FORMATS = {".xlsx", ".xlsm"}


def is_encrypted_ooxml(file_path: Path) -> bool:
    if file_path.suffix.lower() not in WORKBOOK_FORMATS:
        return False
    try:
        with zipfile.ZipFile(file_path) as archive:
            names = set(archive.namelist())
    except zipfile.BadZipFile:
        return False
    return {"EncryptedPackage", "EncryptionInfo"}.issubset(names)


def load_ledger_workbook(input_path: Path):
    if is_encrypted_ooxml(input_path):
        raise CriticalError("Password-protected / encrypted OOXML workbooks are not supported")
    keep_vba = input_path.suffix.lower() == ".xlsm"
    try:
        return load_workbook(input_path, keep_vba=keep_vba)
    except Exception as exc:
        raise CriticalError(f"Could not read workbook: {exc}") from exc


def ledger_grid(workbook, config: LedgerConfig) -> GridAccessor:
    if config.sheet_name not in workbook.sheetnames:
        raise CriticalError(f'Missing required sheet: "{config.sheet_name}"', location=f"Sheet {config.sheet_name}")
    return GridAccessor(workbook[config.sheet_name])


def save_workbook_atomic(workbook, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{output_path.stem}.", suffix=output_path.suffix, dir=str(output_path.parent))
    os.close(fd)
    temp_path = Path(tmp_name)
    try:
        workbook.save(temp_path)
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()


@contextmanager
def critical_faults():
    """Turn any unexpected failure inside a pass into a CriticalError."""
    try:
        yield
    except CriticalError:
        raise
    except Exception as exc:
        logger.debug("Unexpected fault during a pass", exc_info=True)
        raise CriticalError(f"Critical error: {exc}") from exc


@dataclass
class CheckResult:
    issues: list[Issue] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues

    @property
    def critical(self) -> bool:
        return any(issue.category == CRITICAL for issue in self.issues)

    def counts(self) -> dict[str, int]:
        return count_by_category(self.issues)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "issue_count": len(self.issues),
            "counts": self.counts(),
            "issues": [issue.to_dict() for issue in self.issues],
        }


@dataclass
class RestoreResult:
    input_path: Path
    output_path: Path
    stats: Counter
    issues_before: CheckResult
    issues_after: CheckResult


def check_grid(grid: GridAccessor, config: LedgerConfig | None = None) -> list[Issue]:
    """All structural and style findings for one ledger sheet, deduplicated and in row order.

    A critical fault yields a list holding only that fault.
    """
    config = config or LedgerConfig()
    try:
        with critical_faults():
            tree = parse(grid, config)
            issues = validate_structure(tree, grid)
            issues.extend(validate_style(tree, grid, config))
            issues.extend(check_sheet_layout(grid, config))
    except CriticalError as exc:
        logger.debug("Critical fault on %r: %s", grid.title, exc)
        return [critical_issue(exc)]
    return sort_issues(dedupe_issues(issues))


def check_workbook(workbook, config: LedgerConfig | None = None) -> CheckResult:
    config = config or LedgerConfig()
    try:
        grid = ledger_grid(workbook, config)
    except CriticalError as exc:
        return CheckResult([critical_issue(exc)])
    issues = check_grid(grid, config)
    if any(issue.category == CRITICAL for issue in issues):
        return CheckResult(issues)
    return CheckResult(sort_issues(check_workbook_layout(workbook, config) + issues))


def check_structure(input_path: Path, config: LedgerConfig | None = None) -> CheckResult:
    input_path = Path(input_path)
    try:
        workbook = load_ledger_workbook(input_path)
    except CriticalError as exc:
        return CheckResult([critical_issue(exc)])
    result = check_workbook(workbook, config)
    logger.info("Checked %s: %d issue(s)", input_path.name, len(result.issues))
    return result


def restore_workbook(workbook, config: LedgerConfig | None = None) -> Counter:
    """Restore layout and presentation in memory.

    The sheet set is fixed first; the ledger sheet is parsed before any cell is
    written, so a critical fault leaves every cell untouched.
    """
    config = config or LedgerConfig()
    stats = Counter()
    with critical_faults():
        stats.update(restore_workbook_layout(workbook, config))
        grid = ledger_grid(workbook, config)
        tree = parse(grid, config)
        stats.update(restore_sheet_layout(grid, config))
        stats.update(restore(tree, grid, config))
    stats["groups"] = len(tree.groups)
    return stats


def default_restore_path(input_path: Path) -> Path:
    return input_path.with_name(f"{input_path.stem}_restored{input_path.suffix}")


def restore_structure(input_path: Path, output_path: Path | None = None, config: LedgerConfig | None = None) -> RestoreResult:
    config = config or LedgerConfig()
    input_path = Path(input_path)
    output_path = Path(output_path) if output_path else default_restore_path(input_path)
    workbook = load_ledger_workbook(input_path)
    before = check_workbook(workbook, config)
    stats = restore_workbook(workbook, config)
    after = check_workbook(workbook, config)
    save_workbook_atomic(workbook, output_path)
    logger.info("Restored %s -> %s (%d -> %d issue(s))", input_path.name, output_path, len(before.issues), len(after.issues))
    return RestoreResult(input_path, output_path, stats, before, after)


def init_ledger(output_path: Path, *, example: bool = False, config: LedgerConfig | None = None) -> Counter:
    """Write a fresh, restored ledger workbook, optionally holding the example ledger."""
    config = config or LedgerConfig()
    workbook = Workbook()
    workbook.active.title = config.sheet_name
    grid = GridAccessor(workbook.active)
    if example:
        fill_example_ledger(grid, config)
    else:
        clear_ledger(grid, config)
    stats = restore_workbook(workbook, config)
    save_workbook_atomic(workbook, Path(output_path))
    return stats


def build_check_report(input_path: Path, result: CheckResult) -> dict[str, Any]:
    counts = result.counts()
    return {
        **build_envelope("ledger_doctor.check"),
        "file": str(input_path),
        "summary": {
            "ok": result.ok,
            "issue_count": len(result.issues),
            "counts": counts,
        },
        "issues": [issue.to_dict() for issue in result.issues],
        "run_summary": build_run_summary(
            command="check",
            input_path=input_path,
            status="critical" if result.critical else "ok",
            metrics={"issues_found": len(result.issues), **counts},
        ),
    }


def build_structured_summary(result: RestoreResult) -> dict[str, Any]:
    warnings = []
    if result.issues_after.issues:
        warnings.append(
            f"{len(result.issues_after.issues)} issue(s) remain after restore; values, sentinels and row order are never rewritten."
        )
    if result.input_path.suffix.lower() == ".xlsm":
        warnings.append(".xlsm macro preservation only holds while the output remains .xlsm.")
    stats = dict(result.stats)
    return {
        **build_envelope("ledger_doctor.restore_summary"),
        "input_file": str(result.input_path),
        "output_file": str(result.output_path),
        "stats": stats,
        "before_after_issue_summary": {
            "issue_counts": {
                "total": {"before": len(result.issues_before.issues), "after": len(result.issues_after.issues)},
                **{
                    category: {"before": result.issues_before.counts()[category], "after": result.issues_after.counts()[category]}
                    for category in result.issues_before.counts()
                },
            }
        },
        "remaining_issues": [issue.to_dict() for issue in result.issues_after.issues],
        "warnings": warnings,
        "run_summary": build_run_summary(
            command="restore",
            input_path=result.input_path,
            output_path=result.output_path,
            warnings=warnings,
            metrics={
                "groups": stats.get("groups", 0),
                "rows_restored": stats.get("rows_restored", 0),
                "dead_rows_cleared": stats.get("dead_rows_cleared", 0),
                "overlays_removed": stats.get("overlays_removed", 0),
                "merged_ranges_unmerged": stats.get("merged_ranges_unmerged", 0),
                "sheets_removed": stats.get("sheets_removed", 0),
                "issues_before": len(result.issues_before.issues),
                "issues_after": len(result.issues_after.issues),
            },
        ),
    }
