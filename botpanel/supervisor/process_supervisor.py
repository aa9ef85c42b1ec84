"""Lifecycle owner for bot child processes and their console streams."""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
import subprocess
import sys
from pathlib import Path
from typing import Any, Coroutine

from botpanel.supervisor.broadcast import BroadcastHub
from botpanel.supervisor.errors import LaunchSpecError, RuntimeVersionError
from botpanel.supervisor.launch import LaunchSpec, build_env, resolve_command, resolve_install_command
from botpanel.supervisor.models import ActionResult, BotSummary, ProcessState
from botpanel.supervisor.panel_config import DEFAULT_INSTALL_COMMAND, DEFAULT_NODE_VERSIONS
from botpanel.supervisor.state import ProcessRecord, ProcessRegistry

logger = logging.getLogger("botpanel.supervisor.process")

READ_CHUNK_SIZE = 4096
KILL_WAIT_SECONDS = 5.0
EXIT_POLL_SECONDS = 0.2
EXIT_DRAIN_SECONDS = 1.0

EXITED_NOTICE = "Bot process exited\n"
STOPPED_NOTICE = "Process forcefully stopped\n"
STOP_FAILED_NOTICE = "Failed to stop process\n"
NO_PROCESS_NOTICE = "No running process to stop\n"
NOT_RUNNING_NOTICE = "Process is not running or cannot accept commands.\n"


def _session_kwargs() -> dict[str, Any]:
    """Put each child in its own process group so a kill reaches its descendants."""
    if sys.platform == "win32":
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def kill_process_tree(process: asyncio.subprocess.Process) -> None:
    """
    SIGKILL the child's process group on POSIX, or just the child elsewhere.

    The child leads its own session, so its pid is the group id; the group stays
    signalable after the leader is reaped as long as a descendant is alive.
    Raises ProcessLookupError when the whole group is already gone.
    """
    if sys.platform == "win32":
        process.kill()
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except PermissionError:
        # Group may contain a setuid descendant; still take down the child itself.
        os.kill(process.pid, signal.SIGKILL)


class ProcessSupervisor:
    """
    Owns at most one child process per bot and routes its output into the hub.

    Start, stop and install spawning for a bot are serialized by a per-bot
    lock; different bots never contend. Every failure is reported as a console
    status line and an ``ActionResult``, never raised to the caller.
    """

    def __init__(
        self,
        hub: BroadcastHub,
        bots_dir: Path,
        *,
        static_port: int = 3001,
        kill_wait_seconds: float = KILL_WAIT_SECONDS,
        node_versions: list[str] | None = None,
        install_command_template: str = DEFAULT_INSTALL_COMMAND,
    ) -> None:
        self.hub = hub
        self.bots_dir = Path(bots_dir)
        self.static_port = static_port
        self.kill_wait_seconds = kill_wait_seconds
        self.node_versions = list(node_versions if node_versions is not None else DEFAULT_NODE_VERSIONS)
        self.install_command_template = install_command_template
        self.registry = ProcessRegistry()
        self._locks: dict[str, asyncio.Lock] = {}
        self._background: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, hub: BroadcastHub, config: dict[str, Any]) -> "ProcessSupervisor":
        return cls(
            hub,
            Path(config["bots_dir"]),
            static_port=int(config["static_port"]),
            kill_wait_seconds=float(config["kill_wait_seconds"]),
            node_versions=list(config["node_versions"]),
            install_command_template=str(config["install_command_template"]),
        )

    def _lock(self, bot_id: str) -> asyncio.Lock:
        lock = self._locks.get(bot_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[bot_id] = lock
        return lock

    def _report(self, bot_id: str, text: str, *, ok: bool) -> ActionResult:
        self.hub.publish(bot_id, text)
        return ActionResult(ok=ok, message=text)

    def _spawn_task(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %s", task.get_name(), exc)

    # -- inspection -----------------------------------------------------

    def is_running(self, bot_id: str) -> bool:
        record = self.registry.get(bot_id)
        return record is not None and not record.exited

    def running_bots(self) -> list[str]:
        return [bot_id for bot_id in self.registry.bot_ids() if self.is_running(bot_id)]

    def describe(self, bot_id: str) -> BotSummary:
        record = self.registry.get(bot_id)
        if record is None or record.exited:
            return BotSummary(name=bot_id, state=ProcessState.NOT_RUNNING)
        return BotSummary(name=bot_id, state=record.state, pid=record.pid)

    # -- operations -----------------------------------------------------

    async def start(self, bot_id: str, spec: LaunchSpec) -> ActionResult:
        """Replace any live process for ``bot_id`` with a fresh one; returns once spawned."""
        async with self._lock(bot_id):
            previous = self.registry.remove(bot_id)
            if previous is not None:
                previous.mark_exited()
                logger.info("Superseding running process for %s (pid=%s)", bot_id, previous.pid)
                try:
                    kill_process_tree(previous.process)
                except OSError as exc:
                    logger.warning("Failed to kill previous process for %s: %s", bot_id, exc)
                else:
                    await self._await_exit(previous)

            try:
                command = resolve_command(spec, static_port=self.static_port)
                env = build_env(spec)
            except LaunchSpecError as exc:
                logger.warning("Rejected launch for %s: %s", bot_id, exc)
                return self._report(bot_id, f"Failed to start bot: {exc}\n", ok=False)

            cwd = self.bots_dir / bot_id
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    cwd=str(cwd),
                    env=env,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    **_session_kwargs(),
                )
            except (OSError, ValueError) as exc:
                logger.error("Failed to spawn %s for %s: %s", command[0], bot_id, exc)
                return self._report(bot_id, f"Failed to start bot: {exc}\n", ok=False)

            record = ProcessRecord(bot_id=bot_id, process=process, cwd=cwd, command=command)
            self.registry.register(record)
            record.tasks.append(
                self._spawn_task(self._supervise(record), name=f"supervise-{bot_id}-{process.pid}")
            )
            logger.info("Started %s for %s (pid=%s)", " ".join(command), bot_id, process.pid)
            return ActionResult(ok=True, message=f"Started {spec.file or 'static server'}\n")

    async def stop(self, bot_id: str) -> ActionResult:
        """Forcefully kill the bot's process group; a missing process is a reported no-op."""
        async with self._lock(bot_id):
            record = self.registry.remove(bot_id)
            if record is None:
                return self._report(bot_id, NO_PROCESS_NOTICE, ok=False)
            record.mark_exited()
            try:
                kill_process_tree(record.process)
            except OSError as exc:
                logger.warning("Failed to stop %s (pid=%s): %s", bot_id, record.pid, exc)
                return self._report(bot_id, STOP_FAILED_NOTICE, ok=False)
            logger.info("Killed %s (pid=%s)", bot_id, record.pid)
            result = self._report(bot_id, STOPPED_NOTICE, ok=True)
            await self._await_exit(record)
            return result

    async def install_runtime(self, bot_id: str, version_spec: object) -> ActionResult:
        """
        Run the runtime provisioning command; untracked and fire-and-forget.

        Only the spawn holds the per-bot lock, so installs may run side by side.
        """
        try:
            command = resolve_install_command(
                version_spec,
                allowed_versions=self.node_versions,
                template=self.install_command_template,
            )
        except RuntimeVersionError as exc:
            return self._report(bot_id, f"Runtime install rejected: {exc}\n", ok=False)

        async with self._lock(bot_id):
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except (OSError, ValueError) as exc:
                logger.error("Failed to spawn runtime install for %s: %s", bot_id, exc)
                return self._report(bot_id, f"Failed to start runtime install: {exc}\n", ok=False)

        logger.info("Runtime install for %s started (pid=%s)", bot_id, process.pid)
        self._spawn_task(self._supervise_install(bot_id, process), name=f"install-{bot_id}-{process.pid}")
        return ActionResult(ok=True, message=f"Installing runtime {version_spec}\n")

    async def send_input(self, bot_id: str, line: str) -> ActionResult:
        """Write one line to the bot's stdin and echo it; never raises."""
        record = self.registry.get(bot_id)
        stdin = record.process.stdin if record is not None else None
        if record is None or record.exited or stdin is None or not record.stdin_writable:
            return ActionResult(ok=False, message=NOT_RUNNING_NOTICE)
        try:
            stdin.write(f"{line}\n".encode("utf-8"))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError, RuntimeError) as exc:
            logger.warning("stdin write to %s failed: %s", bot_id, exc)
            return ActionResult(ok=False, message=NOT_RUNNING_NOTICE)
        echo = f"> {line}\n"
        self.hub.publish(bot_id, echo)
        return ActionResult(ok=True, message=echo)

    async def shutdown(self) -> None:
        """Kill every tracked process and stop background readers."""
        for bot_id in self.registry.bot_ids():
            record = self.registry.remove(bot_id)
            if record is None:
                continue
            record.mark_exited()
            try:
                kill_process_tree(record.process)
            except OSError as exc:
                logger.warning("Shutdown kill for %s failed: %s", bot_id, exc)
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Process supervisor shut down (%s tasks cancelled)", len(tasks))

    # -- stream plumbing ------------------------------------------------

    async def _await_exit(self, record: ProcessRecord) -> None:
        try:
            await asyncio.wait_for(self._wait_for_exit(record.process), timeout=self.kill_wait_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Process for %s (pid=%s) did not exit within %.1fs of SIGKILL",
                record.bot_id,
                record.pid,
                self.kill_wait_seconds,
            )

    @staticmethod
    async def _read_stream(stream: asyncio.StreamReader, queue: asyncio.Queue) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            while True:
                data = await stream.read(READ_CHUNK_SIZE)
                if not data:
                    tail = decoder.decode(b"", final=True)
                    if tail:
                        await queue.put(tail)
                    break
                text = decoder.decode(data)
                if text:
                    await queue.put(text)
        finally:
            queue.put_nowait(None)

    async def _forward_output(self, bot_id: str, process: asyncio.subprocess.Process) -> None:
        """Single writer: drain both child streams through one queue into the hub."""
        queue: asyncio.Queue[str | None] = asyncio.Queue()
        streams = [s for s in (process.stdout, process.stderr) if s is not None]
        readers = [asyncio.create_task(self._read_stream(s, queue)) for s in streams]
        remaining = len(readers)
        try:
            while remaining:
                chunk = await queue.get()
                if chunk is None:
                    remaining -= 1
                    continue
                self.hub.publish(bot_id, chunk)
        finally:
            for reader in readers:
                reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)

    @staticmethod
    async def _wait_for_exit(process: asyncio.subprocess.Process) -> int:
        """
        Return the exit code once the child itself is reaped.

        ``Process.wait()`` can stay pending while a detached descendant still
        holds the inherited pipes, so ``returncode`` is checked between waits.
        """
        waiter = asyncio.ensure_future(process.wait())
        try:
            while process.returncode is None:
                await asyncio.wait({waiter}, timeout=EXIT_POLL_SECONDS)
            return process.returncode
        finally:
            waiter.cancel()

    async def _drain(self, forwarder: asyncio.Task, bot_id: str) -> None:
        """Give buffered output a moment to land before the exit notice; never cancels."""
        done, _ = await asyncio.wait({forwarder}, timeout=EXIT_DRAIN_SECONDS)
        if not done:
            logger.info("Output for %s still open after exit; descendants hold the pipes", bot_id)

    async def _supervise(self, record: ProcessRecord) -> None:
        bot_id = record.bot_id
        forwarder = self._spawn_task(
            self._forward_output(bot_id, record.process), name=f"output-{bot_id}-{record.pid}"
        )
        record.tasks.append(forwarder)
        returncode = await self._wait_for_exit(record.process)
        record.mark_exited()
        self.registry.remove(bot_id, record)
        logger.info("Process for %s (pid=%s) exited with code %s", bot_id, record.pid, returncode)
        await self._drain(forwarder, bot_id)
        self.hub.publish(bot_id, EXITED_NOTICE)

    async def _supervise_install(self, bot_id: str, process: asyncio.subprocess.Process) -> None:
        forwarder = self._spawn_task(
            self._forward_output(bot_id, process), name=f"install-output-{bot_id}-{process.pid}"
        )
        returncode = await self._wait_for_exit(process)
        logger.info("Runtime install for %s finished with code %s", bot_id, returncode)
        await self._drain(forwarder, bot_id)
        self.hub.publish(bot_id, f"Runtime install finished with code {returncode}\n")
