"""Resolve launch requests into concrete runner commands."""

from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass
from pathlib import PurePosixPath, PureWindowsPath

from botpanel.supervisor.errors import LaunchSpecError, RuntimeVersionError

NODE_FLAGS = [
    "--max-old-space-size=128",
    "--optimize_for_size",
    "--gc-global",
    "--no-warnings",
    "--lazy",
]
RUNTIME_VERSION_PATTERN = re.compile(r"^(\d{1,2})(?:\.x)?$")


@dataclass(frozen=True)
class LaunchSpec:
    """What to run inside a bot folder: an entry file, or a static server on ``port``."""

    file: str | None = None
    port: int | None = None

    @property
    def extension(self) -> str:
        if not self.file:
            return ""
        return PurePosixPath(self.file).suffix.lower()


def _validate_entry_file(file: str) -> str:
    value = file.strip()
    if not value:
        raise LaunchSpecError("entry file must be non-empty")
    if "\x00" in value:
        raise LaunchSpecError(f"entry file contains a NUL byte: {file!r}")
    for flavour in (PurePosixPath(value), PureWindowsPath(value)):
        if flavour.is_absolute() or flavour.anchor:
            raise LaunchSpecError(f"entry file must be relative: {file}")
        if ".." in flavour.parts:
            raise LaunchSpecError(f"entry file escapes bot folder: {file}")
    return value


def _validate_port(port: object) -> int:
    try:
        value = int(port)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise LaunchSpecError(f"invalid port: {port!r}")
    if not 1 <= value <= 65535:
        raise LaunchSpecError(f"port out of range: {value}")
    return value


def resolve_command(spec: LaunchSpec, *, static_port: int = 3001) -> list[str]:
    """
    Pick a runner by entry-file extension.

    ``.js`` runs under node with a small-footprint flag set, ``.py`` runs under
    the panel's own interpreter, and anything else (including no file) serves
    the bot folder statically.
    """
    if spec.file:
        file = _validate_entry_file(spec.file)
        if spec.extension == ".js":
            return ["node", *NODE_FLAGS, file]
        if spec.extension == ".py":
            return [sys.executable, "-u", file]
    port = _validate_port(spec.port) if spec.port is not None else static_port
    return [sys.executable, "-m", "http.server", str(port)]


def build_env(spec: LaunchSpec) -> dict[str, str]:
    """Production-oriented child environment."""
    env = dict(os.environ)
    env["NODE_ENV"] = "production"
    env["PYTHONUNBUFFERED"] = "1"
    if spec.port is not None:
        env["PORT"] = str(_validate_port(spec.port))
    return env


def resolve_install_command(
    version_spec: object,
    *,
    allowed_versions: list[str],
    template: str,
) -> list[str]:
    """Return the shell invocation that provisions the requested node major."""
    value = str(version_spec if version_spec is not None else "").strip()
    match = RUNTIME_VERSION_PATTERN.match(value)
    if not match:
        raise RuntimeVersionError(f"invalid runtime version: {version_spec!r}")
    major = match.group(1)
    if allowed_versions and major not in allowed_versions:
        raise RuntimeVersionError(
            f"runtime version {major} not offered (choose from {', '.join(allowed_versions)})"
        )
    return ["bash", "-c", template.format(version=major)]
