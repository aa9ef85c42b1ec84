"""In-memory ownership of live bot processes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from botpanel.supervisor.models import ProcessState


@dataclass
class ProcessRecord:
    """The single live child bound to one bot id."""

    bot_id: str
    process: asyncio.subprocess.Process
    cwd: Path
    command: list[str]
    started_at: datetime = field(default_factory=datetime.utcnow)
    state: ProcessState = ProcessState.RUNNING
    exited: bool = False
    tasks: list[asyncio.Task] = field(default_factory=list)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdin_writable(self) -> bool:
        stdin = self.process.stdin
        if stdin is None or stdin.is_closing():
            return False
        return self.process.returncode is None

    def mark_exited(self) -> None:
        self.exited = True
        self.state = ProcessState.NOT_RUNNING


class ProcessRegistry:
    """
    Runtime handles for running bots, owned by one supervisor instance.
    This is NOT persistent data; it is lost when the service stops.
    """

    def __init__(self) -> None:
        self._records: dict[str, ProcessRecord] = {}

    def register(self, record: ProcessRecord) -> None:
        if record.bot_id in self._records:
            raise RuntimeError(f"bot {record.bot_id} already owns a process")
        self._records[record.bot_id] = record

    def get(self, bot_id: str) -> ProcessRecord | None:
        return self._records.get(bot_id)

    def remove(self, bot_id: str, record: ProcessRecord | None = None) -> ProcessRecord | None:
        """Drop the bot's record; with ``record`` given, only if it is still the owner."""
        current = self._records.get(bot_id)
        if current is None:
            return None
        if record is not None and current is not record:
            return None
        del self._records[bot_id]
        return current

    def bot_ids(self) -> list[str]:
        return sorted(self._records)

    def __len__(self) -> int:
        return len(self._records)
