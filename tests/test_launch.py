"""Tests for runner selection and runtime install command resolution."""

import os
import sys
import unittest
from unittest import mock

from botpanel.supervisor.errors import LaunchSpecError, RuntimeVersionError
from botpanel.supervisor.launch import (
    NODE_FLAGS,
    LaunchSpec,
    build_env,
    resolve_command,
    resolve_install_command,
)


class ResolveCommandTests(unittest.TestCase):
    """Ensure entry-file extensions map to stable runner commands."""

    def test_js_runs_under_node_with_small_footprint_flags(self) -> None:
        cmd = resolve_command(LaunchSpec(file="index.js"))
        self.assertEqual(cmd, ["node", *NODE_FLAGS, "index.js"])

    def test_py_runs_unbuffered_under_current_interpreter(self) -> None:
        cmd = resolve_command(LaunchSpec(file="src/main.py"))
        self.assertEqual(cmd, [sys.executable, "-u", "src/main.py"])

    def test_other_files_serve_folder_statically(self) -> None:
        cmd = resolve_command(LaunchSpec(file="index.html", port=8080))
        self.assertEqual(cmd, [sys.executable, "-m", "http.server", "8080"])

    def test_static_server_defaults_port(self) -> None:
        cmd = resolve_command(LaunchSpec(), static_port=3001)
        self.assertEqual(cmd[-1], "3001")

    def test_rejects_parent_traversal(self) -> None:
        with self.assertRaises(LaunchSpecError):
            resolve_command(LaunchSpec(file="../other/index.js"))

    def test_rejects_absolute_paths(self) -> None:
        with self.assertRaises(LaunchSpecError):
            resolve_command(LaunchSpec(file="/etc/passwd.js"))
        with self.assertRaises(LaunchSpecError):
            resolve_command(LaunchSpec(file="C:\\bots\\index.js"))

    def test_rejects_nul_byte_in_entry_file(self) -> None:
        with self.assertRaisesRegex(LaunchSpecError, "NUL byte"):
            resolve_command(LaunchSpec(file="main\x00.py"))

    def test_rejects_bad_port(self) -> None:
        with self.assertRaises(LaunchSpecError):
            resolve_command(LaunchSpec(port=70000))

    def test_env_is_production_oriented(self) -> None:
        env = build_env(LaunchSpec(file="index.js", port=4000))
        self.assertEqual(env["NODE_ENV"], "production")
        self.assertEqual(env["PYTHONUNBUFFERED"], "1")
        self.assertEqual(env["PORT"], "4000")

    def test_env_omits_port_when_not_requested(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            env = build_env(LaunchSpec(file="index.js"))
        self.assertNotIn("PORT", env)


class ResolveInstallCommandTests(unittest.TestCase):
    """Ensure runtime versions are validated before reaching a shell."""

    def test_formats_template_with_major_version(self) -> None:
        cmd = resolve_install_command("18", allowed_versions=["18", "20"], template="setup {version}")
        self.assertEqual(cmd, ["bash", "-c", "setup 18"])

    def test_accepts_dot_x_suffix(self) -> None:
        cmd = resolve_install_command("20.x", allowed_versions=["20"], template="v{version}")
        self.assertEqual(cmd[-1], "v20")

    def test_rejects_shell_metacharacters(self) -> None:
        with self.assertRaises(RuntimeVersionError):
            resolve_install_command("18; rm -rf /", allowed_versions=[], template="{version}")

    def test_rejects_versions_not_offered(self) -> None:
        with self.assertRaises(RuntimeVersionError):
            resolve_install_command("12", allowed_versions=["14", "16"], template="{version}")

    def test_rejects_missing_version(self) -> None:
        with self.assertRaises(RuntimeVersionError):
            resolve_install_command(None, allowed_versions=["18"], template="{version}")


if __name__ == "__main__":
    unittest.main()
