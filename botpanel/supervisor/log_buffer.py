"""Bounded per-bot console history used for replay on join."""

from __future__ import annotations

from collections import deque

LOG_BUFFER_SIZE = 500


class LogRingBuffer:
    """Append-only, oldest-evicting line history keyed by bot id."""

    def __init__(self, capacity: int = LOG_BUFFER_SIZE) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._buffers: dict[str, deque[str]] = {}

    def _buffer(self, bot_id: str) -> deque[str]:
        buf = self._buffers.get(bot_id)
        if buf is None:
            buf = deque(maxlen=self.capacity)
            self._buffers[bot_id] = buf
        return buf

    def append(self, bot_id: str, line: str) -> None:
        self._buffer(bot_id).append(line)

    def snapshot(self, bot_id: str) -> list[str]:
        """Return a copy of the bot's history in insertion order."""
        buf = self._buffers.get(bot_id)
        if buf is None:
            return []
        return list(buf)

    def bot_ids(self) -> list[str]:
        return sorted(self._buffers)
