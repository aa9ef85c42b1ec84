"""Bot identity validation and working-directory resolution."""

from __future__ import annotations

import re
from pathlib import Path

from botpanel.supervisor.errors import InvalidBotNameError

BOT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_bot_name(name: object) -> str:
    """Return the bot name unchanged or raise if it could escape the bots dir."""
    if not isinstance(name, str):
        raise InvalidBotNameError("bot name must be a string")
    value = name.strip()
    if not BOT_NAME_PATTERN.match(value):
        raise InvalidBotNameError(f"invalid bot name: {name!r}")
    return value


def bot_dir(bots_dir: Path, name: str) -> Path:
    return Path(bots_dir) / validate_bot_name(name)
