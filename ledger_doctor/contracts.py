"""Versioned envelopes for the JSON that ledger-doctor writes."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ledger_doctor import __version__ as TOOL_VERSION

TOOL_NAME = "ledger-doctor"

CONTRACT_VERSIONS = {
    "ledger_doctor.check": "1.0.0",
    "ledger_doctor.restore_summary": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    return {"name": name, "version": CONTRACT_VERSIONS[name]}


def build_envelope(name: str) -> dict[str, Any]:
    """Leading keys shared by every payload: contract, schema and tool version."""
    contract = build_contract(name)
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
    }


def build_run_summary(
    *,
    command: str,
    input_path: Path,
    status: str = "ok",
    output_path: Path | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": TOOL_NAME,
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_file": str(input_path),
        "output_file": str(output_path) if output_path else None,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
