"""Deterministic collaborators for tests."""

import asyncio

from project_hub.errors import ExecutionError, InstallError, StopError
from project_hub.models import ExecutionResult, InstallStatus, Project, RunState, StopResult


def script_of(command: str) -> str:
    """``python alpha.py`` -> ``alpha``."""
    return command.split()[-1].removesuffix(".py")


class FakeExecutionClient:
    """Execution client with scripted per-script outcomes.

    Handles are ``<script>-<n>`` so stop failures can be scripted by script name.
    """

    def __init__(self, delay: float = 0.0, stop_delay: float = 0.0) -> None:
        self.delay = delay
        self.stop_delay = stop_delay
        self.failing_scripts: dict[str, str] = {}
        self.hanging_scripts: set[str] = set()
        self.failing_stops: dict[str, str] = {}
        self.execute_calls: list[str] = []
        self.stop_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def fail(self, script: str, message: str = "Permission denied") -> None:
        self.failing_scripts[script] = message

    def hang(self, script: str) -> None:
        self.hanging_scripts.add(script)

    def fail_stop(self, script: str, message: str = "Process refused to stop") -> None:
        self.failing_stops[script] = message

    async def execute(self, command: str) -> ExecutionResult:
        self.execute_calls.append(command)
        script = script_of(command)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if script in self.hanging_scripts:
                await asyncio.Event().wait()
            if script in self.failing_scripts:
                raise ExecutionError(self.failing_scripts[script])
        finally:
            self.in_flight -= 1

        return ExecutionResult(
            output=[f"Executing: {command}", f"{script} ready"],
            handle=f"{script}-{len(self.execute_calls)}",
        )

    async def stop(self, handle: str) -> StopResult:
        self.stop_calls.append(handle)
        await asyncio.sleep(self.stop_delay)
        script = handle.rsplit("-", 1)[0]
        if script in self.failing_stops:
            raise StopError(self.failing_stops[script])
        return StopResult(message=f"Process {handle} stopped.")


class FakeInstaller:
    """Installer that records calls and fails or hangs for chosen project ids."""

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.failing: dict[str, str] = {}
        self.hanging: set[str] = set()
        self.calls: list[str] = []

    def fail(self, project_id: str, message: str = "Dependency download failed") -> None:
        self.failing[project_id] = message

    async def install(self, project: Project) -> None:
        self.calls.append(project.id)
        await asyncio.sleep(self.delay)
        if project.id in self.hanging:
            await asyncio.Event().wait()
        if project.id in self.failing:
            raise InstallError(self.failing[project.id])


def make_project(
    project_id: str,
    install_status: InstallStatus = InstallStatus.INSTALLED,
    logs: list[str] | None = None,
    **run_state,
) -> Project:
    return Project(
        id=project_id,
        name=project_id.capitalize(),
        icon="*",
        description=f"{project_id} test project",
        script_name=project_id,
        install_status=install_status,
        run_state=RunState(**run_state),
        logs=logs or [],
    )
