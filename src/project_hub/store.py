"""Authoritative in-memory table of projects."""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

import structlog

from project_hub.errors import InvalidStateError, NotFoundError
from project_hub.models import METADATA_FIELDS, Project

logger = structlog.get_logger()

ChangeListener = Callable[[Project], Awaitable[None]]
UpdateCheck = Callable[[Project], bool | None]


class ProjectStore:
    """Owns all project records.

    Writes to one project are serialized by a per-project lock; writes to
    different projects never wait on each other. Callers only ever receive
    deep-copied snapshots.
    """

    def __init__(self, projects: Iterable[Project] = ()) -> None:
        self._projects: dict[str, Project] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[ChangeListener] = []
        for project in projects:
            self._add(project)

    def _add(self, project: Project) -> None:
        if project.id in self._projects:
            raise ValueError(f"Duplicate project id: {project.id}")
        self._projects[project.id] = project.model_copy(deep=True)
        self._locks[project.id] = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._projects)

    def __contains__(self, project_id: object) -> bool:
        return project_id in self._projects

    def ids(self) -> list[str]:
        return list(self._projects)

    def get(self, project_id: str) -> Project:
        """Return a snapshot of one project.

        Raises:
            NotFoundError: If the id is unknown
        """
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError(project_id)
        return project.model_copy(deep=True)

    def get_all(self) -> list[Project]:
        """Snapshots of all projects in insertion order."""
        return [p.model_copy(deep=True) for p in self._projects.values()]

    def subscribe(self, listener: ChangeListener) -> None:
        """Register an async listener called with the new snapshot after each update."""
        self._listeners.append(listener)

    async def update(
        self,
        project_id: str,
        check: UpdateCheck | None = None,
        **fields: Any,
    ) -> Project:
        """Atomically merge ``fields`` into one project.

        ``check`` runs under the project's lock with the current snapshot. It
        may raise to abort the update, or return ``False`` to leave the
        project untouched (no write, no notification).

        ``run_state`` may be given as a dict of partial run-state fields.

        Returns:
            Snapshot after the update (or the unchanged snapshot on a skip)

        Raises:
            NotFoundError: If the id is unknown
            InvalidStateError: If ``fields`` touch immutable metadata
        """
        lock = self._locks.get(project_id)
        if lock is None:
            raise NotFoundError(project_id)

        touched = METADATA_FIELDS.intersection(fields)
        if touched:
            raise InvalidStateError(f"Immutable fields cannot be updated: {sorted(touched)}")

        async with lock:
            current = self._projects[project_id]
            if check is not None and check(current.model_copy(deep=True)) is False:
                return current.model_copy(deep=True)

            data = current.model_dump()
            run_state = fields.pop("run_state", None)
            if run_state is not None:
                if not isinstance(run_state, dict):
                    run_state = run_state.model_dump()
                data["run_state"].update(run_state)
            data.update(fields)

            updated = Project.model_validate(data)
            self._projects[project_id] = updated
            snapshot = updated.model_copy(deep=True)

        logger.debug(
            "project_updated",
            project_id=project_id,
            install_status=snapshot.install_status.value,
            status=snapshot.status_label,
        )
        await self._notify(snapshot)
        return snapshot

    def replace_all(self, projects: Iterable[Project]) -> None:
        """Reset the table to ``projects``; used when restoring persisted state.

        Meant for startup: the per-project locks are replaced, so no update
        may be in flight.

        Raises:
            InvalidStateError: If an update currently holds a project lock
        """
        busy = [project_id for project_id, lock in self._locks.items() if lock.locked()]
        if busy:
            raise InvalidStateError(f"Cannot replace projects while updates are in flight: {busy}")
        self._projects.clear()
        self._locks.clear()
        for project in projects:
            self._add(project)

    async def _notify(self, snapshot: Project) -> None:
        for listener in list(self._listeners):
            try:
                await listener(snapshot)
            except Exception as e:
                logger.error(
                    "store_listener_failed",
                    project_id=snapshot.id,
                    error=str(e),
                )
