"""Persistence gateways and the store's persistence listener.

Two logical keys are kept: the theme preference and a JSON snapshot of all
project records. Persistence is best effort: failures are logged and the
in-memory store stays authoritative.
"""

import asyncio
from collections.abc import Awaitable, Iterable
from typing import Protocol, TypeVar

from pydantic import TypeAdapter, ValidationError
import redis.asyncio as redis
import structlog

from project_hub.errors import OperationTimeoutError, PersistenceError
from project_hub.models import InstallStatus, Project, ProjectSpec, RunState, ThemeMode
from project_hub.store import ProjectStore

logger = structlog.get_logger()

T = TypeVar("T")

_projects_adapter = TypeAdapter(list[Project])


class PersistenceGateway(Protocol):
    """Async key-value storage."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def clear(self) -> None: ...


class InMemoryPersistenceGateway:
    """Dict-backed gateway; state lives only as long as the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def clear(self) -> None:
        self.data.clear()


class RedisPersistenceGateway:
    """Gateway storing keys in Redis under ``<prefix>:<key>``.

    ``clear`` only removes keys inside the prefix.
    """

    def __init__(self, redis_client: redis.Redis, prefix: str = "project_hub") -> None:
        self.redis = redis_client
        self.prefix = prefix

    @classmethod
    def from_url(cls, redis_url: str, prefix: str = "project_hub") -> "RedisPersistenceGateway":
        return cls(redis.from_url(redis_url, decode_responses=True), prefix=prefix)

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> str | None:
        try:
            value = await self.redis.get(self._key(key))
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to read {key}: {e}") from e
        if isinstance(value, bytes):
            return value.decode()
        return value

    async def set(self, key: str, value: str) -> None:
        try:
            await self.redis.set(self._key(key), value)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to write {key}: {e}") from e

    async def clear(self) -> None:
        try:
            keys = [k async for k in self.redis.scan_iter(match=f"{self.prefix}:*")]
            if keys:
                await self.redis.delete(*keys)
        except redis.RedisError as e:
            raise PersistenceError(f"Failed to clear {self.prefix}: {e}") from e
        logger.info("persistence_cleared", prefix=self.prefix, keys=len(keys))

    async def aclose(self) -> None:
        await self.redis.aclose()


def restore_project(spec: ProjectSpec, saved: Project | None) -> Project:
    """Build a project from its catalog entry and its persisted record.

    Catalog metadata wins. Transient state is dropped: loading flags, an
    interrupted install and run sessions never survive a restart.
    """
    project = Project.from_spec(spec)
    if saved is None:
        return project

    install_status = saved.install_status
    if install_status is InstallStatus.INSTALLING:
        install_status = InstallStatus.NOT_INSTALLED

    return project.model_copy(
        update={
            "install_status": install_status,
            "run_state": RunState(error=saved.run_state.error),
            "logs": list(saved.logs),
        }
    )


class StatePersister:
    """Loads state at startup and writes the project snapshot after changes.

    Store listeners only mark the snapshot dirty; a single background writer
    coalesces bursts of changes into one write of the latest state, so a slow
    gateway never holds up store updates. ``drain()`` waits for it.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        projects_key: str = "projects",
        theme_key: str = "theme",
        timeout: float = 3.0,
    ) -> None:
        self.gateway = gateway
        self.projects_key = projects_key
        self.theme_key = theme_key
        self.timeout = timeout
        self._store: ProjectStore | None = None
        self._write_lock = asyncio.Lock()
        self._dirty = False
        self._writer: asyncio.Task | None = None

    def attach(self, store: ProjectStore) -> None:
        """Persist ``store`` after each of its updates."""
        self._store = store
        store.subscribe(self._on_change)

    async def load_projects(self, catalog: Iterable[ProjectSpec]) -> list[Project]:
        """Projects for ``catalog``, merged with whatever was persisted."""
        saved: dict[str, Project] = {}
        raw = await self._read(self.projects_key)
        if raw:
            try:
                saved = {p.id: p for p in _projects_adapter.validate_json(raw)}
            except ValidationError as e:
                logger.warning("persisted_projects_invalid", error=str(e))

        projects = [restore_project(spec, saved.get(spec.id)) for spec in catalog]
        logger.info(
            "projects_loaded",
            total=len(projects),
            restored=sum(1 for p in projects if p.id in saved),
        )
        return projects

    async def save_projects(self, projects: list[Project]) -> bool:
        payload = _projects_adapter.dump_json(projects).decode()
        return await self._write(self.projects_key, payload)

    async def load_theme(self, default: ThemeMode = ThemeMode.LIGHT) -> ThemeMode:
        raw = await self._read(self.theme_key)
        if raw is None:
            return default
        try:
            return ThemeMode(raw)
        except ValueError:
            logger.warning("persisted_theme_invalid", value=raw)
            return default

    async def save_theme(self, theme: ThemeMode) -> bool:
        return await self._write(self.theme_key, theme.value)

    async def clear(self) -> bool:
        # a pending write would resurrect the cleared snapshot
        await self.drain()
        try:
            await self._bounded(self.gateway.clear(), "clear")
        except (PersistenceError, OperationTimeoutError) as e:
            logger.error("persistence_clear_failed", error=str(e))
            return False
        return True

    async def flush(self) -> bool:
        """Write the attached store's current snapshot."""
        if self._store is None:
            return False
        async with self._write_lock:
            return await self.save_projects(self._store.get_all())

    async def drain(self) -> None:
        """Wait until every change seen so far has been written (or failed)."""
        while self._writer is not None and not self._writer.done():
            await asyncio.shield(self._writer)

    async def _on_change(self, snapshot: Project) -> None:
        self._dirty = True
        if self._writer is None or self._writer.done():
            self._writer = asyncio.create_task(self._write_pending(), name="persist_projects")

    async def _write_pending(self) -> None:
        while self._dirty:
            self._dirty = False
            await self.flush()

    async def _read(self, key: str) -> str | None:
        try:
            return await self._bounded(self.gateway.get(key), f"read {key}")
        except (PersistenceError, OperationTimeoutError) as e:
            logger.error("persistence_read_failed", key=key, error=str(e))
            return None

    async def _write(self, key: str, value: str) -> bool:
        try:
            await self._bounded(self.gateway.set(key, value), f"write {key}")
        except (PersistenceError, OperationTimeoutError) as e:
            logger.error("persistence_write_failed", key=key, error=str(e))
            return False
        logger.debug("persisted", key=key, size=len(value))
        return True

    async def _bounded(self, awaitable: Awaitable[T], operation: str) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except PersistenceError:
            raise
        except TimeoutError as e:
            raise OperationTimeoutError(operation, self.timeout) from e
        except Exception as e:
            raise PersistenceError(f"{operation} failed: {e}") from e
