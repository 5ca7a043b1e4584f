"""Run-all / stop-all fan-out across projects."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from project_hub.controller import ProjectController
from project_hub.models import InstallStatus, OperationOutcome, Project
from project_hub.store import ProjectStore

logger = structlog.get_logger()


def _eligible_to_run(project: Project, include_uninstalled: bool) -> bool:
    state = project.run_state
    if state.is_running or state.is_loading:
        return False
    if project.install_status is InstallStatus.INSTALLED:
        return True
    return include_uninstalled and project.install_status is InstallStatus.NOT_INSTALLED


class AggregateController:
    """Fans run/stop out to every eligible project concurrently.

    Each project's operation runs in its own task; a failure in one is
    captured in its outcome and never cancels or delays the others. Both
    operations return once every fanned-out operation has finished.
    """

    def __init__(
        self,
        store: ProjectStore,
        controller: ProjectController,
        *,
        run_all_includes_uninstalled: bool = False,
    ) -> None:
        self.store = store
        self.controller = controller
        self.run_all_includes_uninstalled = run_all_includes_uninstalled

    async def run_all(self, include_uninstalled: bool | None = None) -> list[OperationOutcome]:
        """Run every installed project that is idle.

        Args:
            include_uninstalled: Also install-then-run projects that are not
                installed (defaults to the configured behaviour)
        """
        if include_uninstalled is None:
            include_uninstalled = self.run_all_includes_uninstalled

        selected = [
            p.id for p in self.store.get_all() if _eligible_to_run(p, include_uninstalled)
        ]
        return await self._fan_out(
            "run_all", selected, self.controller.run, lambda p: p.run_state.is_running
        )

    async def stop_all(self) -> list[OperationOutcome]:
        """Stop every running project."""
        selected = [p.id for p in self.store.get_all() if p.run_state.is_running]
        return await self._fan_out(
            "stop_all", selected, self.controller.stop, lambda p: not p.run_state.is_running
        )

    async def _fan_out(
        self,
        operation: str,
        project_ids: list[str],
        action: Callable[[str], Awaitable[Project]],
        succeeded: Callable[[Project], bool],
    ) -> list[OperationOutcome]:
        """Run ``action`` for every id concurrently.

        ``succeeded`` judges each returned snapshot. The record's ``error`` may
        be left over from an earlier attempt, so it is not the success signal.
        """
        logger.info(f"{operation}_started", projects=project_ids)
        if not project_ids:
            return []

        results = await asyncio.gather(
            *(action(project_id) for project_id in project_ids),
            return_exceptions=True,
        )

        outcomes = [
            self._outcome(project_id, result, succeeded)
            for project_id, result in zip(project_ids, results, strict=True)
        ]
        logger.info(
            f"{operation}_completed",
            total=len(outcomes),
            succeeded=sum(1 for o in outcomes if o.ok),
            failed=[o.project_id for o in outcomes if not o.ok],
        )
        return outcomes

    def _outcome(
        self,
        project_id: str,
        result: Project | BaseException,
        succeeded: Callable[[Project], bool],
    ) -> OperationOutcome:
        if isinstance(result, BaseException):
            logger.warning("fan_out_operation_failed", project_id=project_id, error=str(result))
            project = self.store.get(project_id) if project_id in self.store else None
            return OperationOutcome(
                project_id=project_id,
                ok=False,
                error=str(result) or type(result).__name__,
                project=project,
            )
        ok = succeeded(result)
        return OperationOutcome(
            project_id=project_id,
            ok=ok,
            error=None if ok else result.run_state.error or f"{project_id} did not change state",
            project=result,
        )
