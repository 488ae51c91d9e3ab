from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

from ledger_doctor.issues import LedgerError

SHEET_ENV_VAR = "LEDGER_DOCTOR_SHEET"
DEFAULT_SHEET_NAME = "Financial Summary"
LOG_SHEET_NAME = "Debug Logs"
SNAPSHOT_PREFIX = "Snapshot_"


class ConfigError(LedgerError):
    pass


@dataclass(frozen=True)
class LedgerConfig:
    sheet_name: str = DEFAULT_SHEET_NAME
    first_data_row: int = 2
    dead_region_end: int = 1000
    width_tolerance: int = 5

    def __post_init__(self) -> None:
        if not self.sheet_name:
            raise ConfigError("sheet_name must not be empty")
        if self.first_data_row < 2:
            raise ConfigError("first_data_row must be 2 or greater (row 1 holds the headers)")
        if self.dead_region_end <= self.first_data_row:
            raise ConfigError("dead_region_end must be below first_data_row")
        if self.width_tolerance < 0:
            raise ConfigError("width_tolerance must not be negative")


def config_from_mapping(payload: dict[str, Any]) -> LedgerConfig:
    known = {item.name: item.type for item in fields(LedgerConfig)}
    unknown = sorted(set(payload) - set(known))
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")
    values = {}
    for key, value in payload.items():
        expected = str if known[key] in ("str", str) else int
        if expected is int and (isinstance(value, bool) or not isinstance(value, int)):
            raise ConfigError(f"Config key '{key}' must be an integer")
        if expected is str and not isinstance(value, str):
            raise ConfigError(f"Config key '{key}' must be a string")
        values[key] = value
    return LedgerConfig(**values)


def load_config(path: Path | None = None, env: dict[str, str] | None = None) -> LedgerConfig:
    env = os.environ if env is None else env
    config = LedgerConfig()
    if path is not None:
        if not path.exists():
            raise ConfigError(f"Config not found: {path}")
        if path.suffix.lower() != ".json":
            raise ConfigError("Config must be a .json file")
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except Exception as exc:
            raise ConfigError(f"Could not read config: {exc}") from exc
        if not isinstance(payload, dict):
            raise ConfigError("Config root must be a JSON object.")
        config = config_from_mapping(payload)
    sheet_override = env.get(SHEET_ENV_VAR)
    if sheet_override:
        config = replace(config, sheet_name=sheet_override)
    return config


def is_allowed_sheet(name: str, config: LedgerConfig) -> bool:
    return name in (config.sheet_name, LOG_SHEET_NAME) or name.startswith(SNAPSHOT_PREFIX)
