from __future__ import annotations

import sys
import unittest
from pathlib import Path

from openpyxl.comments import Comment

sys.path.insert(0, str(Path(__file__).resolve().parent))

from ledger_builders import codes, grid_of, ledger_workbook, restored_workbook

from ledger_doctor.parser import parse
from ledger_doctor.roles import Role
from ledger_doctor.structure import validate_row, validate_structure


def structural_issues(workbook):
    grid = grid_of(workbook)
    return validate_structure(parse(grid), grid)


class RowRuleTests(unittest.TestCase):
    def test_restored_well_formed_ledger_has_no_structural_issues(self):
        self.assertEqual(structural_issues(restored_workbook()), [])

    def test_dash_without_space_is_reported_distinctly_and_skips_columns(self):
        rows = [["Bank Accounts"], ["-Bank 1", "oops", 5], ["Subtotal:", 1, "USD"], ["TOTAL:", 1, "USD"]]
        issues = validate_row(grid_of(ledger_workbook(rows)), 3, Role.SUB_ITEM)
        self.assertEqual(codes(issues), ["dash_missing_space"])
        self.assertEqual(issues[0].location, "A3")

    def test_required_values_and_types(self):
        rows = [["Bank Accounts"], ["- Bank 1", None, 5], ["Subtotal:", 1, "USD"], ["TOTAL:", 1, "USD"]]
        issues = validate_row(grid_of(ledger_workbook(rows)), 3, Role.SUB_ITEM)
        by_location = {issue.location: issue.code for issue in issues}
        self.assertEqual(by_location["B3"], "missing_value")
        self.assertEqual(by_location["C3"], "not_text")

    def test_zero_amount_is_not_missing(self):
        workbook = restored_workbook([["TOTAL:", 0, "USD"]])
        self.assertEqual(validate_row(grid_of(workbook), 2, Role.TOTAL), [])

    def test_optional_sub_item_columns_may_be_empty(self):
        rows = [["Bank Accounts"], ["- Bank 1", 1, "USD"], ["Subtotal:", 1, "USD"], ["TOTAL:", 1, "USD"]]
        workbook = ledger_workbook(rows)
        workbook[workbook.sheetnames[0]]["B3"].number_format = "0.0000"
        self.assertEqual(validate_row(grid_of(workbook), 3, Role.SUB_ITEM), [])

    def test_empty_columns_use_the_pristine_predicate(self):
        workbook = restored_workbook()
        sheet = workbook[workbook.sheetnames[0]]
        sheet["D5"].comment = Comment("checked", "auditor")
        sheet["E2"] = "stray"
        issues = validate_structure(parse(grid_of(workbook)), grid_of(workbook))
        messages = {(issue.location, issue.message) for issue in issues if issue.code == "not_empty"}
        self.assertIn(("D5", "Cell contains note"), messages)
        self.assertIn(("E2", "Cell contains value or formula"), messages)

    def test_numeric_text_fails_type_check_but_passes_format_check(self):
        workbook = restored_workbook()
        sheet = workbook[workbook.sheetnames[0]]
        sheet["D3"] = "1,08"
        sheet["D3"].number_format = "0.0000"
        issues = [issue for issue in structural_issues(workbook) if issue.location == "D3"]
        self.assertEqual(codes(issues), ["not_number"])

    def test_wrong_number_format_is_its_own_issue(self):
        workbook = restored_workbook()
        workbook[workbook.sheetnames[0]]["B3"].number_format = "0.00"
        issues = [issue for issue in structural_issues(workbook) if issue.location == "B3"]
        self.assertEqual(codes(issues), ["number_format"])
        self.assertIn("0.00", issues[0].message)

    def test_formula_counts_as_numeric(self):
        workbook = restored_workbook()
        issues = [issue for issue in structural_issues(workbook) if issue.location in {"E3", "B5", "B6"}]
        self.assertEqual(issues, [])


class GroupShapeTests(unittest.TestCase):
    def test_group_ended_by_unprefixed_row_has_one_missing_subtotal_and_no_gap(self):
        rows = [
            ["Bank Accounts"],
            ["- Bank 1", 1, "USD"],
            ["- Bank 2", 2, "USD"],
            ["Cash Holdings"],
            ["- Cash 1", 3, "USD"],
            ["Subtotal:", 3, "USD"],
            ["TOTAL:", 6, "USD"],
        ]
        issues = structural_issues(ledger_workbook(rows))
        missing = [issue for issue in issues if issue.code == "missing_subtotal"]
        self.assertEqual(len(missing), 1)
        self.assertEqual(missing[0].location, "A2")
        self.assertTrue(missing[0].message.startswith("Missing Subtotal"))
        self.assertNotIn("sub_item_gap", codes(issues))

    def test_gap_between_sub_items_names_the_empty_row(self):
        rows = [
            ["Bank Accounts"],
            ["- Bank 1", 1, "USD"],
            ["- Bank 2", 2, "USD"],
            [None, None, "unrelated"],
            ["- Bank 3", 3, "USD"],
            ["Subtotal:", 6, "USD"],
            ["TOTAL:", 6, "USD"],
        ]
        issues = structural_issues(ledger_workbook(rows))
        gaps = [issue for issue in issues if issue.code == "sub_item_gap"]
        self.assertEqual(len(gaps), 1)
        self.assertEqual(gaps[0].location, "Row 5")
        self.assertIn("row 5", gaps[0].message)
        self.assertTrue(gaps[0].message.startswith("Gap between sub-items"))
        # Unstyled rows also produce format findings; the gap is reported regardless.
        self.assertIn("number_format", codes(issues))

    def test_subtotal_must_follow_last_sub_item(self):
        rows = [["Bank Accounts"], ["- Bank 1", 1, "USD"], [], ["Subtotal:", 1, "USD"], ["TOTAL:", 1, "USD"]]
        gaps = [issue for issue in structural_issues(ledger_workbook(rows)) if issue.code == "sub_item_gap"]
        self.assertEqual([issue.location for issue in gaps], ["Row 4"])

    def test_near_miss_sentinel_is_flagged(self):
        rows = [["Bank Accounts"], ["- Bank 1", 1, "USD"], ["Subtotal", 1, "USD"], ["TOTAL:", 1, "USD"]]
        issues = structural_issues(ledger_workbook(rows))
        near = [issue for issue in issues if issue.code == "near_miss_sentinel"]
        self.assertEqual([issue.location for issue in near], ["A4"])
        self.assertIn('"Subtotal:"', near[0].message)

    def test_orphan_rows(self):
        rows = [["- Stray", 1, "USD"], ["TOTAL:", 1, "USD"]]
        issues = structural_issues(ledger_workbook(rows))
        orphans = [issue for issue in issues if issue.code == "orphan_row"]
        self.assertEqual([issue.location for issue in orphans], ["Row 2"])


if __name__ == "__main__":
    unittest.main()
