"""Tests for execution clients and installers."""

import asyncio
import os
import random
import shlex
import sys

from fakes import make_project
from pydantic import ValidationError
import pytest

from project_hub.config import Settings
from project_hub.errors import ExecutionError, InstallError, StopError
from project_hub.execution import SimulatedExecutionClient, SubprocessExecutionClient
from project_hub.installer import ScriptInstaller, SimulatedInstaller


def python_command(code: str) -> str:
    return shlex.join([sys.executable, "-u", "-c", code])


class TestSimulatedExecutionClient:
    """Tests for the simulated bridge."""

    @pytest.mark.asyncio
    async def test_success_output(self):
        client = SimulatedExecutionClient(
            success_rate=1.0, min_delay=0, max_delay=0, rng=random.Random(7)
        )

        result = await client.execute("python telegram_bot.py")

        assert result.output == [
            "Executing: python telegram_bot.py",
            "...processing...",
            'Command "python" completed successfully.',
        ]
        assert 1 <= int(result.handle) <= 10000

    @pytest.mark.asyncio
    async def test_failure(self):
        client = SimulatedExecutionClient(success_rate=0.0, min_delay=0, max_delay=0)

        with pytest.raises(ExecutionError) as exc_info:
            await client.execute("python backend_server.py")

        assert str(exc_info.value) == (
            'Error executing "python": Permission denied or command not found.'
        )

    @pytest.mark.asyncio
    async def test_seeded_rng_is_deterministic(self):
        """Same seed, same outcomes."""

        async def outcomes(seed):
            client = SimulatedExecutionClient(
                success_rate=0.5, min_delay=0, max_delay=0, rng=random.Random(seed)
            )
            results = []
            for _ in range(10):
                try:
                    results.append((await client.execute("python a.py")).handle)
                except ExecutionError:
                    results.append(None)
            return results

        assert await outcomes(42) == await outcomes(42)

    @pytest.mark.asyncio
    async def test_stop(self):
        client = SimulatedExecutionClient(stop_delay=0)

        result = await client.stop("1234")

        assert result.message == "Process 1234 stopped."

    @pytest.mark.asyncio
    async def test_status(self):
        online = SimulatedExecutionClient(success_rate=1.0, stop_delay=0)
        offline = SimulatedExecutionClient(success_rate=0.0, stop_delay=0)

        up = await online.status()
        down = await offline.status()

        assert up.online is True
        assert up.uptime_sec >= 0
        assert down.online is False
        assert down.uptime_sec is None


class TestSubprocessExecutionClient:
    """Tests for running real child processes."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        """Startup output is captured and stop terminates the child."""
        client = SubprocessExecutionClient(startup_window=0.5, terminate_timeout=2)
        command = python_command("import time; print('ready'); time.sleep(30)")

        result = await client.execute(command)

        assert result.output == [f"Executing: {command}", "ready"]
        assert result.handle.isdigit()

        stopped = await client.stop(result.handle)

        assert stopped.message == f"Process {result.handle} stopped."
        with pytest.raises(StopError):
            await client.stop(result.handle)

    @pytest.mark.asyncio
    async def test_non_zero_exit_fails(self):
        """A child that exits with an error during startup fails the run."""
        client = SubprocessExecutionClient(startup_window=2)

        with pytest.raises(ExecutionError, match="code 3") as exc_info:
            await client.execute(python_command("print('boom'); raise SystemExit(3)"))

        assert "boom" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_executable_fails(self, tmp_path):
        client = SubprocessExecutionClient()

        with pytest.raises(ExecutionError, match="Error executing"):
            await client.execute(f"{tmp_path / 'no-such-binary'} script.py")

    @pytest.mark.asyncio
    async def test_empty_command_fails(self):
        with pytest.raises(ExecutionError, match="Empty command"):
            await SubprocessExecutionClient().execute("   ")

    @pytest.mark.asyncio
    async def test_clean_exit_counts_as_started(self):
        """A child that finishes cleanly inside the window still started."""
        client = SubprocessExecutionClient(startup_window=2)

        result = await client.execute(python_command("print('done')"))

        assert result.output[-1] == "done"
        stopped = await client.stop(result.handle)
        assert stopped.message == f"Process {result.handle} already exited with code 0."

    @pytest.mark.asyncio
    async def test_timeout_during_startup_kills_child(self, tmp_path):
        """A caller timeout inside the startup window does not leak the child."""
        pid_file = tmp_path / "child.pid"
        code = (
            "import os, pathlib, time; "
            f"pathlib.Path({str(pid_file)!r}).write_text(str(os.getpid())); "
            "time.sleep(30)"
        )
        client = SubprocessExecutionClient(startup_window=3.0)

        with pytest.raises(TimeoutError):
            await asyncio.wait_for(client.execute(python_command(code)), timeout=0.5)

        pid = int(pid_file.read_text())
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
        await client.aclose()

    def test_startup_window_must_fit_in_execution_timeout(self):
        with pytest.raises(ValidationError, match="startup_output_window_sec"):
            Settings(_env_file=None, startup_output_window_sec=5, execution_timeout_sec=5)

    @pytest.mark.asyncio
    async def test_stop_unknown_handle(self):
        with pytest.raises(StopError, match="No process found"):
            await SubprocessExecutionClient().stop("999999")

    @pytest.mark.asyncio
    async def test_aclose_stops_children(self):
        client = SubprocessExecutionClient(startup_window=0.2, terminate_timeout=2)
        result = await client.execute(python_command("import time; time.sleep(30)"))

        assert (await client.status()).detail == "1 of 1 tracked processes alive"

        await client.aclose()

        assert client.tail(result.handle) == []
        assert (await client.status()).detail == "0 of 0 tracked processes alive"
        with pytest.raises(StopError):
            await client.stop(result.handle)


class TestInstallers:
    """Tests for the installer adapters."""

    @pytest.mark.asyncio
    async def test_simulated_installer(self):
        await SimulatedInstaller(delay=0).install(make_project("alpha"))

    @pytest.mark.asyncio
    async def test_script_installer_finds_script(self, tmp_path):
        (tmp_path / "alpha.py").write_text("print('hi')\n")
        installer = ScriptInstaller(tmp_path)
        project = make_project("alpha")

        await installer.install(project)

        assert installer.script_path(project) == tmp_path / "alpha.py"

    @pytest.mark.asyncio
    async def test_script_installer_missing_script(self, tmp_path):
        with pytest.raises(InstallError, match="Script not found"):
            await ScriptInstaller(tmp_path).install(make_project("alpha"))
