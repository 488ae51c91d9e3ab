from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "ledger_doctor.cli"]

sys.path.insert(0, str(Path(__file__).resolve().parent))

from ledger_builders import SHEET, ledger_workbook, save


def run_cli(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = dict(os.environ)
    merged_env.pop("LEDGER_DOCTOR_SHEET", None)
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        env=merged_env,
    )


class LedgerDoctorCliTests(unittest.TestCase):
    def test_init_then_check_returns_exit_0(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "ledger.xlsx"
            proc = run_cli("init", str(path), "--example")
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Ledger written:", proc.stderr)
            proc = run_cli("check", str(path))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Verdict: clean", proc.stderr)

    def test_messy_ledger_returns_exit_3(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = save(ledger_workbook(), tmpdir)
            report_path = Path(tmpdir) / "report.json"
            proc = run_cli("check", str(path), "--output", str(report_path))
            self.assertEqual(proc.returncode, 3, proc.stderr)
            self.assertIn("Report written:", proc.stderr)
            report = json.loads(report_path.read_text())
            self.assertGreater(report["summary"]["issue_count"], 0)

    def test_missing_total_returns_exit_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = save(ledger_workbook([["Bank Accounts"], ["- Bank 1", 1, "USD"]]), tmpdir)
            proc = run_cli("check", str(path))
            self.assertEqual(proc.returncode, 2)
            self.assertIn('Missing "TOTAL:" row', proc.stderr)

    def test_missing_file_returns_exit_1(self):
        proc = run_cli("check", "does-not-exist.xlsx")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_unsupported_suffix_returns_exit_1(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "ledger.csv"
            path.write_text("Category,Amount\n", encoding="utf-8")
            proc = run_cli("check", str(path))
            self.assertEqual(proc.returncode, 1)
            self.assertIn("Unsupported file type", proc.stderr)

    def test_check_json_stdout_contains_only_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = save(ledger_workbook(), tmpdir)
            proc = run_cli("check", str(path), "--json")
            self.assertEqual(proc.returncode, 3, proc.stderr)
            report = json.loads(proc.stdout)
            self.assertEqual(report["contract"]["name"], "ledger_doctor.check")
            self.assertEqual(proc.stderr.strip(), "")

    def test_sheet_name_comes_from_the_environment(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            workbook = ledger_workbook()
            workbook[SHEET].title = "Budget"
            path = save(workbook, tmpdir)
            self.assertEqual(run_cli("check", str(path)).returncode, 2)
            proc = run_cli("restore", str(path), "--json", env={"LEDGER_DOCTOR_SHEET": "Budget"})
            self.assertEqual(proc.returncode, 0, proc.stderr)
            summary = json.loads(proc.stdout)
            self.assertEqual(summary["before_after_issue_summary"]["issue_counts"]["total"]["after"], 0)

    def test_restore_writes_default_output_and_refuses_to_overwrite(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = save(ledger_workbook(), tmpdir)
            summary_path = Path(tmpdir) / "summary.json"
            proc = run_cli("restore", str(path), "--json-summary", str(summary_path))
            self.assertEqual(proc.returncode, 0, proc.stderr)
            self.assertIn("Rows restored:", proc.stderr)
            output_path = Path(tmpdir) / "ledger_restored.xlsx"
            self.assertTrue(output_path.exists())
            summary = json.loads(summary_path.read_text())
            self.assertEqual(summary["output_file"], str(output_path))
            self.assertEqual(run_cli("check", str(output_path)).returncode, 0)

            proc = run_cli("restore", str(path))
            self.assertEqual(proc.returncode, 1)
            self.assertIn("Refusing to overwrite existing output", proc.stderr)

    def test_restore_in_place_and_output_together_is_an_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = save(ledger_workbook(), tmpdir)
            proc = run_cli("restore", str(path), str(Path(tmpdir) / "out.xlsx"), "--in-place")
            self.assertEqual(proc.returncode, 1)
            self.assertIn("not both", proc.stderr)

    def test_restore_on_critical_ledger_returns_exit_2_without_output(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = save(ledger_workbook([["Bank Accounts"]]), tmpdir)
            proc = run_cli("restore", str(path))
            self.assertEqual(proc.returncode, 2)
            self.assertFalse((Path(tmpdir) / "ledger_restored.xlsx").exists())

    def test_explain_and_version(self):
        proc = run_cli("explain", "sub_item_gap")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Rule: sub_item_gap", proc.stdout)
        self.assertIn("Category: structural", proc.stdout)

        proc = run_cli("explain", "font_family", "--json")
        self.assertEqual(json.loads(proc.stdout)["auto_fixable"], True)

        self.assertEqual(run_cli("explain", "nope").returncode, 1)

        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0)
        self.assertEqual(proc.stdout.strip(), "0.1.0")

    def test_bad_arguments_return_exit_1(self):
        proc = run_cli("check")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("required", proc.stderr)


if __name__ == "__main__":
    unittest.main()
