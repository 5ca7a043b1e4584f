"""Per-project lifecycle state machine.

Install axis: not_installed -> installing -> installed -> not_installed.
Run axis (installed only): stopped -> loading -> running -> loading -> stopped,
with the error recorded when either loading phase fails.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from project_hub.errors import InvalidStateError, OperationTimeoutError
from project_hub.execution import ExecutionClient
from project_hub.installer import Installer
from project_hub.logging_config import bound_operation
from project_hub.models import InstallStatus, Project
from project_hub.store import ProjectStore

logger = structlog.get_logger()

T = TypeVar("T")


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


def _check_installable(project: Project) -> None:
    if project.install_status is not InstallStatus.NOT_INSTALLED:
        raise InvalidStateError(
            f"Cannot install {project.id}: status is {project.install_status.value}"
        )
    if project.run_state.is_loading:
        raise InvalidStateError(f"Cannot install {project.id}: a run is in progress")


def _check_uninstallable(project: Project) -> None:
    if project.install_status is not InstallStatus.INSTALLED:
        raise InvalidStateError(
            f"Cannot uninstall {project.id}: status is {project.install_status.value}"
        )
    if project.run_state.is_running or project.run_state.is_loading:
        raise InvalidStateError(f"Cannot uninstall {project.id} while it is running")


def _check_runnable(project: Project) -> None:
    if project.run_state.is_running or project.run_state.is_loading:
        raise InvalidStateError(f"Project {project.id} is already running")
    if project.install_status is InstallStatus.INSTALLING:
        raise InvalidStateError(f"Project {project.id} is still installing")


def _check_stoppable(project: Project) -> bool:
    if not project.run_state.is_running:
        return False
    if project.run_state.is_loading:
        raise InvalidStateError(f"Project {project.id} is already stopping")
    return True


class ProjectController:
    """Drives install/uninstall/run/stop for single projects.

    Collaborator failures (installer, execution client, timeouts) are
    recorded on the project's ``run_state.error`` and never raised.
    ``InvalidStateError`` and ``NotFoundError`` are raised to the caller.
    """

    def __init__(
        self,
        store: ProjectStore,
        executor: ExecutionClient,
        installer: Installer,
        *,
        python_executable: str = "python",
        execution_timeout: float = 5.0,
        stop_timeout: float = 5.0,
        install_timeout: float = 10.0,
    ) -> None:
        self.store = store
        self.executor = executor
        self.installer = installer
        self.python_executable = python_executable
        self.execution_timeout = execution_timeout
        self.stop_timeout = stop_timeout
        self.install_timeout = install_timeout

    async def install(self, project_id: str) -> Project:
        """Provision a not-installed project.

        Returns:
            Snapshot after the attempt; on failure ``install_status`` is back
            to not_installed and ``run_state.error`` holds the reason.
        """
        with bound_operation(project_id, "install"):
            project = await self.store.update(
                project_id,
                check=_check_installable,
                install_status=InstallStatus.INSTALLING,
            )
            try:
                return await self._provision(project)
            except asyncio.CancelledError:
                await self._abandon(project_id, "install")
                raise

    async def uninstall(self, project_id: str) -> Project:
        with bound_operation(project_id, "uninstall"):
            project = await self.store.update(
                project_id,
                check=_check_uninstallable,
                install_status=InstallStatus.NOT_INSTALLED,
            )
            logger.info("project_uninstalled")
            return project

    async def run(self, project_id: str) -> Project:
        """Start a run session, installing the project first when needed.

        Raises:
            InvalidStateError: If a session is active or an install is in progress
            NotFoundError: If the id is unknown
        """
        with bound_operation(project_id, "run"):
            project = await self.store.update(
                project_id,
                check=_check_runnable,
                logs=[],
                run_state={"is_loading": True, "error": None, "run_handle": None},
            )
            try:
                return await self._start(project)
            except asyncio.CancelledError:
                await self._abandon(project_id, "run", is_running=False)
                raise

    async def _start(self, project: Project) -> Project:
        project_id = project.id
        if project.install_status is InstallStatus.NOT_INSTALLED:
            project = await self.store.update(project_id, install_status=InstallStatus.INSTALLING)
            project = await self._provision(project)
            if not project.is_installed:
                return await self.store.update(
                    project_id,
                    run_state={"is_loading": False, "is_running": False},
                )

        command = project.command(self.python_executable)
        logger.info("run_starting", command=command)
        try:
            result = await self._bounded(
                self.executor.execute(command), "run", self.execution_timeout
            )
        except Exception as e:
            message = _describe(e)
            logger.warning("run_failed", error=message)
            return await self.store.update(
                project_id,
                run_state={"is_loading": False, "is_running": False, "error": message},
            )

        logger.info("run_started", handle=result.handle, output_lines=len(result.output))
        return await self.store.update(
            project_id,
            logs=list(result.output),
            run_state={"is_loading": False, "is_running": True, "run_handle": result.handle},
        )

    async def stop(self, project_id: str) -> Project:
        """Stop the active run session; a no-op when the project is not running.

        Raises:
            InvalidStateError: If a stop is already in progress
            NotFoundError: If the id is unknown
        """
        with bound_operation(project_id, "stop"):
            project = await self.store.update(
                project_id,
                check=_check_stoppable,
                run_state={"is_loading": True},
            )
            if not project.run_state.is_running:
                logger.debug("stop_skipped_not_running")
                return project
            try:
                return await self._halt(project)
            except asyncio.CancelledError:
                # the session may still be alive, so the project stays running
                await self._abandon(project_id, "stop")
                raise

    async def _halt(self, project: Project) -> Project:
        handle = project.run_state.run_handle
        if handle is None:
            # seeded or restored state without a live session
            message = f"{project.name} stopped."
        else:
            try:
                result = await self._bounded(
                    self.executor.stop(handle), "stop", self.stop_timeout
                )
            except Exception as e:
                message = _describe(e)
                logger.warning("stop_failed", handle=handle, error=message)
                return await self.store.update(
                    project.id,
                    run_state={"is_loading": False, "error": message},
                )
            message = result.message

        logger.info("run_stopped", handle=handle)
        return await self.store.update(
            project.id,
            logs=[*project.logs, message],
            run_state={"is_loading": False, "is_running": False, "run_handle": None},
        )

    async def _provision(self, project: Project) -> Project:
        logger.info("install_started")
        try:
            await self._bounded(
                self.installer.install(project), "install", self.install_timeout
            )
        except Exception as e:
            message = _describe(e)
            logger.warning("install_failed", error=message)
            return await self.store.update(
                project.id,
                install_status=InstallStatus.NOT_INSTALLED,
                run_state={"error": message},
            )

        logger.info("install_completed")
        return await self.store.update(project.id, install_status=InstallStatus.INSTALLED)

    async def _abandon(self, project_id: str, operation: str, **run_state: bool) -> None:
        """Release a project whose operation was cancelled mid-flight."""
        logger.warning("operation_cancelled")
        fields: dict = {
            "run_state": {"is_loading": False, "error": f"{operation} cancelled", **run_state}
        }
        if self.store.get(project_id).install_status is InstallStatus.INSTALLING:
            fields["install_status"] = InstallStatus.NOT_INSTALLED
        await self.store.update(project_id, **fields)

    async def _bounded(self, awaitable: Awaitable[T], operation: str, timeout: float) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except TimeoutError as e:
            if isinstance(e, OperationTimeoutError):
                raise
            raise OperationTimeoutError(operation, timeout) from e
