"""Execution clients that start and stop project runs.

The core talks to any object implementing ``ExecutionClient``. Two adapters
ship with the package: a simulated bridge with random latency and failures,
and a subprocess client that runs the project script as a child process.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
import random
import shlex
import time
from typing import Protocol, runtime_checkable

import structlog

from project_hub.errors import ExecutionError, StopError
from project_hub.models import BackendStatus, ExecutionResult, StopResult

logger = structlog.get_logger()


class ExecutionClient(Protocol):
    """Transport that runs project commands."""

    async def execute(self, command: str) -> ExecutionResult:
        """Start ``command``; raise ExecutionError on failure."""
        ...

    async def stop(self, handle: str) -> StopResult:
        """Stop the run identified by ``handle``; raise StopError on failure."""
        ...


@runtime_checkable
class HealthCheck(Protocol):
    """Optional health check an execution client may also implement."""

    async def status(self) -> BackendStatus: ...


class SimulatedExecutionClient:
    """Stand-in bridge with random latency and a configurable success rate.

    Pass a seeded ``random.Random`` for deterministic outcomes.
    """

    def __init__(
        self,
        success_rate: float = 0.9,
        min_delay: float = 1.0,
        max_delay: float = 3.0,
        stop_delay: float = 0.5,
        rng: random.Random | None = None,
    ) -> None:
        self.success_rate = success_rate
        self.min_delay = min_delay
        self.max_delay = max(min_delay, max_delay)
        self.stop_delay = stop_delay
        self._rng = rng or random.Random()
        self._started = time.monotonic()

    async def execute(self, command: str) -> ExecutionResult:
        program = command.split(" ")[0]
        logger.debug("simulated_execute", command=command)

        await asyncio.sleep(self._rng.uniform(self.min_delay, self.max_delay))

        if self._rng.random() >= self.success_rate:
            raise ExecutionError(
                f'Error executing "{program}": Permission denied or command not found.'
            )

        return ExecutionResult(
            output=[
                f"Executing: {command}",
                "...processing...",
                f'Command "{program}" completed successfully.',
            ],
            handle=str(self._rng.randint(1, 10000)),
        )

    async def stop(self, handle: str) -> StopResult:
        logger.debug("simulated_stop", handle=handle)
        await asyncio.sleep(self.stop_delay)
        return StopResult(message=f"Process {handle} stopped.")

    async def status(self) -> BackendStatus:
        """Report the bridge online with probability ``success_rate``."""
        await asyncio.sleep(self.stop_delay)
        if self._rng.random() >= self.success_rate:
            return BackendStatus(online=False, detail="No response from bridge")
        return BackendStatus(
            online=True, detail="Online", uptime_sec=time.monotonic() - self._started
        )


@dataclass
class ProcessSession:
    """A child process started by SubprocessExecutionClient."""

    process: asyncio.subprocess.Process
    command: str
    drain_task: asyncio.Task | None = None
    tail: deque[str] = field(default_factory=lambda: deque(maxlen=200))
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_alive(self) -> bool:
        return self.process.returncode is None


class SubprocessExecutionClient:
    """Runs project commands as local child processes.

    A run counts as started once the child survives ``startup_window``
    seconds (or exits cleanly inside it); the lines printed during that
    window become the run's output. Afterwards stdout keeps being drained in
    the background so the child never blocks on a full pipe.
    """

    def __init__(
        self,
        cwd: Path | None = None,
        startup_window: float = 1.0,
        terminate_timeout: float = 5.0,
    ) -> None:
        self.cwd = cwd
        self.startup_window = startup_window
        self.terminate_timeout = terminate_timeout
        self._sessions: dict[str, ProcessSession] = {}
        self._started = time.monotonic()

    async def execute(self, command: str) -> ExecutionResult:
        argv = shlex.split(command)
        if not argv:
            raise ExecutionError("Empty command")

        logger.info("starting_process", command=command, cwd=str(self.cwd or "."))

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=self.cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise ExecutionError(f'Error executing "{argv[0]}": {e}') from e

        try:
            output = await self._read_startup_output(process)
        except BaseException:
            # cancelled (caller timeout) or unreadable output: never leave the child behind
            logger.warning("process_abandoned_on_startup", command=command, pid=process.pid)
            await self._reap(process)
            raise

        if process.returncode not in (None, 0):
            logger.warning(
                "process_failed_on_startup",
                command=command,
                returncode=process.returncode,
            )
            detail = output[-1] if output else "no output"
            raise ExecutionError(
                f'Command "{argv[0]}" exited with code {process.returncode}: {detail}'
            )

        handle = str(process.pid)
        session = ProcessSession(process=process, command=command)
        session.drain_task = asyncio.create_task(
            self._drain(session), name=f"drain_{handle}"
        )
        self._sessions[handle] = session

        logger.info("process_started", command=command, pid=process.pid)
        return ExecutionResult(output=[f"Executing: {command}", *output], handle=handle)

    async def stop(self, handle: str) -> StopResult:
        session = self._sessions.pop(handle, None)
        if session is None:
            raise StopError(f"No process found for handle {handle}")

        process = session.process
        if not session.is_alive:
            await self._cancel_drain(session)
            return StopResult(
                message=f"Process {handle} already exited with code {process.returncode}."
            )

        logger.info("stopping_process", pid=process.pid)
        try:
            process.terminate()
            await asyncio.wait_for(process.wait(), timeout=self.terminate_timeout)
        except ProcessLookupError:
            pass
        except TimeoutError:
            logger.warning("process_force_kill", pid=process.pid)
            process.kill()
            await process.wait()
        except OSError as e:
            raise StopError(f"Failed to stop process {handle}: {e}") from e
        finally:
            await self._cancel_drain(session)

        return StopResult(message=f"Process {handle} stopped.")

    async def aclose(self) -> None:
        """Stop every child process still tracked."""
        for handle in list(self._sessions):
            try:
                await self.stop(handle)
            except StopError as e:
                logger.error("process_cleanup_failed", handle=handle, error=str(e))

    async def status(self) -> BackendStatus:
        alive = sum(1 for s in self._sessions.values() if s.is_alive)
        return BackendStatus(
            online=True,
            detail=f"{alive} of {len(self._sessions)} tracked processes alive",
            uptime_sec=time.monotonic() - self._started,
        )

    def tail(self, handle: str) -> list[str]:
        """Output lines received after startup for a live session."""
        session = self._sessions.get(handle)
        return list(session.tail) if session else []

    async def _read_startup_output(self, process: asyncio.subprocess.Process) -> list[str]:
        assert process.stdout is not None
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.startup_window
        lines: list[str] = []

        while (remaining := deadline - loop.time()) > 0:
            try:
                raw = await asyncio.wait_for(process.stdout.readline(), timeout=remaining)
            except TimeoutError:
                break
            if not raw:
                # EOF: the child is done, collect its exit code
                await process.wait()
                break
            lines.append(raw.decode(errors="replace").rstrip("\n"))

        return lines

    async def _reap(self, process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

    async def _drain(self, session: ProcessSession) -> None:
        stdout = session.process.stdout
        if stdout is None:
            return
        while True:
            raw = await stdout.readline()
            if not raw:
                break
            session.tail.append(raw.decode(errors="replace").rstrip("\n"))

    async def _cancel_drain(self, session: ProcessSession) -> None:
        task = session.drain_task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
