from __future__ import annotations

import sys
import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest import mock

from openpyxl import load_workbook
from openpyxl.styles import Font

sys.path.insert(0, str(Path(__file__).resolve().parent))

from ledger_builders import SHEET, ledger_workbook, restored_workbook, save

from ledger_doctor.engine import (
    build_check_report,
    build_structured_summary,
    check_structure,
    check_workbook,
    critical_faults,
    default_restore_path,
    is_encrypted_ooxml,
    restore_structure,
    restore_workbook,
)
from ledger_doctor.grid import GridAccessor
from ledger_doctor.issues import CRITICAL, CriticalError


class CheckStructureTests(unittest.TestCase):
    def test_restored_file_is_clean(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            result = check_structure(save(restored_workbook(), tmpdir))
            self.assertTrue(result.ok)
            self.assertEqual(result.counts(), {"critical": 0, "structural": 0, "style": 0})

    def test_encrypted_workbook_is_a_single_critical_issue(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "locked.xlsx"
            with zipfile.ZipFile(path, "w") as archive:
                archive.writestr("EncryptionInfo", b"\x00")
                archive.writestr("EncryptedPackage", b"\x00")
            self.assertTrue(is_encrypted_ooxml(path))
            result = check_structure(path)
            self.assertEqual(len(result.issues), 1)
            self.assertTrue(result.critical)
            self.assertIn("encrypted", result.issues[0].message)

    def test_corrupt_workbook_is_critical(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "corrupt.xlsx"
            path.write_bytes(b"not a zip archive")
            result = check_structure(path)
            self.assertEqual(len(result.issues), 1)
            self.assertTrue(result.issues[0].message.startswith("Could not read workbook"))

    def test_missing_ledger_sheet_is_critical(self):
        workbook = ledger_workbook()
        workbook[SHEET].title = "Sheet1"
        result = check_workbook(workbook)
        self.assertEqual([issue.category for issue in result.issues], [CRITICAL])
        self.assertIn('Missing required sheet: "Financial Summary"', result.issues[0].message)

    def test_critical_fault_suppresses_every_other_finding(self):
        workbook = ledger_workbook([["TOTAL:", 1, "USD"], ["- Stray"], ["TOTAL:", 1, "USD"]])
        workbook.create_sheet("Scratch")
        result = check_workbook(workbook)
        self.assertEqual(len(result.issues), 1)
        self.assertEqual(result.issues[0].code, "total_multiple")
        self.assertTrue(result.critical)

    def test_unexpected_read_failure_becomes_a_critical_issue(self):
        workbook = restored_workbook()
        with mock.patch.object(GridAccessor, "get_range", side_effect=RuntimeError("sheet went away")):
            result = check_workbook(workbook)
        self.assertEqual(len(result.issues), 1)
        self.assertEqual(result.issues[0].category, CRITICAL)
        self.assertEqual(result.issues[0].message, "Critical error: sheet went away")

    def test_unexpected_write_failure_stops_the_restore(self):
        workbook = ledger_workbook()
        with mock.patch.object(GridAccessor, "set_style", side_effect=ValueError("bad style")):
            with self.assertRaises(CriticalError) as caught:
                restore_workbook(workbook)
        self.assertEqual(str(caught.exception), "Critical error: bad style")

    def test_critical_errors_pass_through_unchanged(self):
        with self.assertRaises(CriticalError) as caught:
            with critical_faults():
                raise CriticalError('Missing "TOTAL:" row', code="total_missing")
        self.assertEqual(caught.exception.code, "total_missing")

    def test_issues_are_deduplicated_and_sorted_by_row(self):
        workbook = restored_workbook()
        workbook[SHEET]["A3"].font = Font(name="Times New Roman", size=10)
        workbook.create_sheet("Scratch")
        issues = check_workbook(workbook).issues
        self.assertEqual(issues[0].location, "Sheet Scratch")
        a3 = [issue for issue in issues if issue.location == "A3" and issue.code == "font_family"]
        self.assertEqual(len(a3), 1)
        keys = [issue.sort_key() for issue in issues]
        self.assertEqual(keys, sorted(keys))


class RestoreStructureTests(unittest.TestCase):
    def test_default_path_appends_restored(self):
        self.assertEqual(default_restore_path(Path("/tmp/ledger.xlsx")), Path("/tmp/ledger_restored.xlsx"))

    def test_restore_writes_a_clean_copy_and_leaves_input_alone(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            workbook = ledger_workbook()
            workbook.create_sheet("Scratch")
            input_path = save(workbook, tmpdir)
            result = restore_structure(input_path)
            self.assertEqual(result.output_path, Path(tmpdir) / "ledger_restored.xlsx")
            self.assertFalse(result.issues_before.ok)
            self.assertTrue(result.issues_after.ok)
            self.assertEqual(load_workbook(input_path).sheetnames, [SHEET, "Scratch"])
            self.assertTrue(check_structure(result.output_path).ok)
            self.assertEqual([path.name for path in Path(tmpdir).iterdir() if path.name.startswith(".")], [])

    def test_restore_summary_reports_before_and_after(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            input_path = save(ledger_workbook(), tmpdir)
            summary = build_structured_summary(restore_structure(input_path, Path(tmpdir) / "out.xlsx"))
            self.assertEqual(summary["contract"]["name"], "ledger_doctor.restore_summary")
            counts = summary["before_after_issue_summary"]["issue_counts"]
            self.assertGreater(counts["total"]["before"], 0)
            self.assertEqual(counts["total"]["after"], 0)
            self.assertEqual(set(counts), {"total", "critical", "structural", "style"})
            self.assertEqual(summary["remaining_issues"], [])
            self.assertEqual(summary["warnings"], [])
            self.assertEqual(summary["run_summary"]["command"], "restore")
            self.assertEqual(summary["run_summary"]["metrics"]["groups"], 1)


class CheckReportTests(unittest.TestCase):
    def test_report_shape(self):
        workbook = ledger_workbook([["Bank Accounts"]])
        with tempfile.TemporaryDirectory() as tmpdir:
            path = save(workbook, tmpdir)
            report = build_check_report(path, check_structure(path))
        self.assertEqual(report["contract"]["name"], "ledger_doctor.check")
        self.assertEqual(report["schema_version"], report["contract"]["version"])
        self.assertEqual(report["summary"]["issue_count"], 1)
        self.assertEqual(report["summary"]["counts"]["critical"], 1)
        self.assertEqual(report["issues"][0]["code"], "total_missing")
        self.assertEqual(report["run_summary"]["status"], "critical")
        self.assertEqual(report["run_summary"]["metrics"]["issues_found"], 1)


if __name__ == "__main__":
    unittest.main()
