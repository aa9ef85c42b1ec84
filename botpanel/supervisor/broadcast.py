"""Per-bot fan-out of console output to live viewers."""

from __future__ import annotations

import asyncio
import logging
from itertools import count

from botpanel.supervisor.log_buffer import LogRingBuffer

logger = logging.getLogger("botpanel.supervisor.broadcast")

SUBSCRIBER_QUEUE_SIZE = 1000

_subscriber_ids = count(1)


class Subscriber:
    """
    One viewer connection's outbound mailbox.

    The hub only ever calls ``deliver``, which never suspends; the owning
    connection drains the queue with ``get`` at its own pace.
    """

    def __init__(self, name: str | None = None, max_pending: int = SUBSCRIBER_QUEUE_SIZE) -> None:
        self.id = next(_subscriber_ids)
        self.name = name or f"subscriber-{self.id}"
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=max_pending + 1)
        self._max_pending = max_pending
        self.closed = False

    def deliver(self, line: str) -> bool:
        """Enqueue one line; return False when the mailbox is full or closed."""
        if self.closed:
            return False
        if self._queue.qsize() >= self._max_pending:
            return False
        self._queue.put_nowait(line)
        return True

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Sentinel slot is reserved by maxsize + 1.
        self._queue.put_nowait(None)

    async def get(self) -> str | None:
        """Wait for the next line; None once the subscriber is closed."""
        return await self._queue.get()

    def pending(self) -> list[str]:
        """Drain whatever is queued right now without waiting."""
        lines: list[str] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not None:
                lines.append(item)
        return lines

    def __repr__(self) -> str:
        return f"Subscriber({self.name!r})"


class BroadcastHub:
    """
    Registry of subscribers per bot plus the shared ring buffer.

    ``join`` and ``publish`` contain no suspension point, so on a single event
    loop each call runs to completion before any other. That makes
    append-then-deliver atomic per bot: a viewer either sees a line in its
    replay or receives it live, never both and never neither.
    """

    def __init__(self, buffer: LogRingBuffer | None = None) -> None:
        self.buffer = buffer or LogRingBuffer()
        self._groups: dict[str, dict[int, Subscriber]] = {}
        self._memberships: dict[int, set[str]] = {}

    def join(self, bot_id: str, subscriber: Subscriber) -> int:
        """Register ``subscriber`` for ``bot_id`` and replay history to it only."""
        group = self._groups.setdefault(bot_id, {})
        group[subscriber.id] = subscriber
        self._memberships.setdefault(subscriber.id, set()).add(bot_id)
        replay = self.buffer.snapshot(bot_id)
        for line in replay:
            if not subscriber.deliver(line):
                self._evict(subscriber)
                break
        logger.info("%s joined %s (replayed %s lines)", subscriber.name, bot_id, len(replay))
        return len(replay)

    def publish(self, bot_id: str, line: str) -> int:
        """Append ``line`` to history, then deliver it to every subscriber of the bot."""
        self.buffer.append(bot_id, line)
        group = self._groups.get(bot_id)
        if not group:
            return 0
        delivered = 0
        for subscriber in list(group.values()):
            if subscriber.deliver(line):
                delivered += 1
            else:
                self._evict(subscriber)
        return delivered

    def leave(self, subscriber: Subscriber, bot_id: str | None = None) -> None:
        """Deregister from one bot or from every bot; no-op if not registered."""
        bot_ids = self._memberships.get(subscriber.id)
        if not bot_ids:
            return
        targets = [bot_id] if bot_id is not None else list(bot_ids)
        for target in targets:
            group = self._groups.get(target)
            if group is not None:
                group.pop(subscriber.id, None)
                if not group:
                    del self._groups[target]
            bot_ids.discard(target)
        if not bot_ids:
            del self._memberships[subscriber.id]

    def subscribers(self, bot_id: str) -> list[Subscriber]:
        return list(self._groups.get(bot_id, {}).values())

    def _evict(self, subscriber: Subscriber) -> None:
        if not subscriber.closed:
            logger.warning("Dropping %s: outbound queue full or closed", subscriber.name)
        self.leave(subscriber)
        subscriber.close()
