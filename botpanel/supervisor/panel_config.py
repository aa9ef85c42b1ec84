"""Persistent panel configuration helpers."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

PANEL_HOME = Path(os.getenv("BOTPANEL_HOME", str(Path.home() / ".botpanel")))
CONFIG_PATH = PANEL_HOME / "config.json"
CONFIG_SCHEMA_VERSION = "panel.v1"
DEFAULT_NODE_VERSIONS = ["14", "16", "18", "20"]
DEFAULT_INSTALL_COMMAND = (
    "wget -qO- https://deb.nodesource.com/setup_{version}.x | bash - && apt-get install -y nodejs"
)


def default_config() -> dict[str, Any]:
    return {
        "schema_version": CONFIG_SCHEMA_VERSION,
        "bots_dir": str(PANEL_HOME / "bots"),
        "host": "127.0.0.1",
        "port": 3000,
        "log_buffer_size": 500,
        "subscriber_queue_size": 1000,
        "kill_wait_seconds": 5.0,
        "static_port": 3001,
        "node_versions": list(DEFAULT_NODE_VERSIONS),
        "install_command_template": DEFAULT_INSTALL_COMMAND,
        "access_token": "",
    }


def _positive_int(raw: dict[str, Any], key: str, default: Any, *, upper: int | None = None) -> int:
    try:
        value = int(raw.get(key, default))
    except (TypeError, ValueError):
        raise ValueError(f"{key} must be an integer")
    if value < 1:
        raise ValueError(f"{key} must be positive")
    if upper is not None and value > upper:
        raise ValueError(f"{key} exceeds max {upper}")
    return value


def validate_config(config: dict[str, Any]) -> dict[str, Any]:
    """Validate config shape and return a normalized copy."""
    if not isinstance(config, dict):
        raise ValueError("config must be object")
    defaults = default_config()
    schema_version = config.get("schema_version", CONFIG_SCHEMA_VERSION)
    if schema_version != CONFIG_SCHEMA_VERSION:
        raise ValueError("unsupported config schema_version")

    bots_dir = str(config.get("bots_dir", defaults["bots_dir"])).strip()
    if not bots_dir:
        raise ValueError("bots_dir must be non-empty")
    host = str(config.get("host", defaults["host"])).strip() or defaults["host"]

    try:
        kill_wait = float(config.get("kill_wait_seconds", defaults["kill_wait_seconds"]))
    except (TypeError, ValueError):
        raise ValueError("kill_wait_seconds must be a number")
    if kill_wait < 0:
        raise ValueError("kill_wait_seconds must not be negative")

    node_versions = config.get("node_versions", defaults["node_versions"])
    if not isinstance(node_versions, list) or not node_versions:
        raise ValueError("node_versions must be non-empty list")
    normalized_versions: list[str] = []
    for version in node_versions:
        value = str(version).strip()
        if value and value not in normalized_versions:
            normalized_versions.append(value)

    template = str(config.get("install_command_template", defaults["install_command_template"]))
    if "{version}" not in template:
        raise ValueError("install_command_template must contain {version}")

    return {
        "schema_version": CONFIG_SCHEMA_VERSION,
        "bots_dir": bots_dir,
        "host": host,
        "port": _positive_int(config, "port", defaults["port"], upper=65535),
        "log_buffer_size": _positive_int(config, "log_buffer_size", defaults["log_buffer_size"]),
        "subscriber_queue_size": _positive_int(
            config, "subscriber_queue_size", defaults["subscriber_queue_size"]
        ),
        "kill_wait_seconds": kill_wait,
        "static_port": _positive_int(config, "static_port", defaults["static_port"], upper=65535),
        "node_versions": normalized_versions,
        "install_command_template": template,
        "access_token": str(config.get("access_token") or "").strip(),
    }


def _apply_env_overrides(config: dict[str, Any]) -> dict[str, Any]:
    bots_dir = str(os.getenv("BOTPANEL_BOTS_DIR", "")).strip()
    if bots_dir:
        config["bots_dir"] = bots_dir
    token = str(os.getenv("BOTPANEL_ACCESS_TOKEN", "")).strip()
    if token:
        config["access_token"] = token
    return config


def load_config(path: Path = CONFIG_PATH) -> dict[str, Any]:
    """Load config from disk or return defaults; env overrides always apply."""
    if not path.exists():
        return _apply_env_overrides(default_config())
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return _apply_env_overrides(default_config())
    if not isinstance(raw, dict):
        return _apply_env_overrides(default_config())
    try:
        return _apply_env_overrides(validate_config(raw))
    except ValueError:
        return _apply_env_overrides(default_config())


def save_config(config: dict[str, Any], path: Path = CONFIG_PATH) -> dict[str, Any]:
    """Validate and persist config to disk."""
    validated = validate_config(config)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(validated, indent=2), encoding="utf-8")
    return validated
