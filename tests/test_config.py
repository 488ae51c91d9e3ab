from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from ledger_doctor.config import SHEET_ENV_VAR, ConfigError, LedgerConfig, is_allowed_sheet, load_config


def write_config(folder: str, payload, name: str = "ledger.json") -> Path:
    path = Path(folder) / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


class LoadConfigTests(unittest.TestCase):
    def test_defaults(self):
        config = load_config(env={})
        self.assertEqual(config, LedgerConfig())
        self.assertEqual(config.sheet_name, "Financial Summary")
        self.assertEqual(config.dead_region_end, 1000)

    def test_json_overrides(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_config(tmpdir, {"sheet_name": "Ledger", "dead_region_end": 500})
            config = load_config(path, env={})
        self.assertEqual(config.sheet_name, "Ledger")
        self.assertEqual(config.dead_region_end, 500)
        self.assertEqual(config.first_data_row, 2)

    def test_environment_overrides_sheet_name(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_config(tmpdir, {"sheet_name": "Ledger"})
            config = load_config(path, env={SHEET_ENV_VAR: "Budget"})
        self.assertEqual(config.sheet_name, "Budget")

    def test_rejected_payloads(self):
        cases = [
            ({"sheet": "Ledger"}, "Unknown config keys: sheet"),
            ({"dead_region_end": "1000"}, "must be an integer"),
            ({"dead_region_end": True}, "must be an integer"),
            ({"sheet_name": 3}, "must be a string"),
            ({"first_data_row": 1}, "first_data_row must be 2 or greater"),
            ([1, 2], "Config root must be a JSON object."),
        ]
        with tempfile.TemporaryDirectory() as tmpdir:
            for payload, message in cases:
                with self.subTest(payload=payload):
                    with self.assertRaises(ConfigError) as ctx:
                        load_config(write_config(tmpdir, payload), env={})
                    self.assertIn(message, str(ctx.exception))

    def test_missing_and_wrong_suffix(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                load_config(Path(tmpdir) / "absent.json", env={})
            with self.assertRaises(ConfigError):
                load_config(write_config(tmpdir, {}, name="ledger.yaml"), env={})


class AllowedSheetTests(unittest.TestCase):
    def test_allowed_names(self):
        config = LedgerConfig()
        self.assertTrue(is_allowed_sheet("Financial Summary", config))
        self.assertTrue(is_allowed_sheet("Debug Logs", config))
        self.assertTrue(is_allowed_sheet("Snapshot_2024-01-01T00:00:00Z", config))
        self.assertFalse(is_allowed_sheet("Sheet1", config))
        self.assertFalse(is_allowed_sheet("snapshot_old", config))


if __name__ == "__main__":
    unittest.main()
