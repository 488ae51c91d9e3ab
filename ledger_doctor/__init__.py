"""Check and restore the structure of a grouped financial ledger workbook."""

__version__ = "0.1.0"

from ledger_doctor.engine import CheckResult, RestoreResult, check_structure, restore_structure  # noqa: E402

__all__ = ["CheckResult", "RestoreResult", "check_structure", "restore_structure", "__version__"]
