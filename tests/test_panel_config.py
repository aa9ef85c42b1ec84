"""Tests for persistent panel configuration."""

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from botpanel.supervisor.panel_config import default_config, load_config, save_config, validate_config


class PanelConfigTests(unittest.TestCase):
    """Validate config schema, persistence and environment overrides."""

    def test_defaults_match_console_limits(self) -> None:
        config = default_config()
        self.assertEqual(config["log_buffer_size"], 500)
        self.assertEqual(config["node_versions"], ["14", "16", "18", "20"])
        self.assertIn("{version}", config["install_command_template"])

    def test_validate_rejects_template_without_placeholder(self) -> None:
        with self.assertRaises(ValueError):
            validate_config({"install_command_template": "apt-get install -y nodejs"})

    def test_validate_rejects_bad_numbers(self) -> None:
        for key, value in [("port", 0), ("port", 70000), ("log_buffer_size", "many"), ("kill_wait_seconds", -1)]:
            with self.subTest(key=key, value=value):
                with self.assertRaises(ValueError):
                    validate_config({key: value})

    def test_validate_dedupes_node_versions(self) -> None:
        config = validate_config({"node_versions": ["18", "18", " 20 "]})
        self.assertEqual(config["node_versions"], ["18", "20"])

    def test_save_and_load(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            saved = save_config({"bots_dir": tmpdir, "port": 4100}, path=path)
            with mock.patch.dict(os.environ, {}, clear=True):
                loaded = load_config(path=path)
            self.assertEqual(loaded, saved)
            self.assertEqual(loaded["port"], 4100)

    def test_invalid_file_falls_back_to_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.json"
            path.write_text("{not json", encoding="utf-8")
            with mock.patch.dict(os.environ, {}, clear=True):
                self.assertEqual(load_config(path=path), default_config())

    def test_env_overrides_bots_dir_and_token(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            env = {"BOTPANEL_BOTS_DIR": tmpdir, "BOTPANEL_ACCESS_TOKEN": "s3cret"}
            with mock.patch.dict(os.environ, env, clear=True):
                config = load_config(path=Path(tmpdir) / "missing.json")
            self.assertEqual(config["bots_dir"], tmpdir)
            self.assertEqual(config["access_token"], "s3cret")


if __name__ == "__main__":
    unittest.main()
