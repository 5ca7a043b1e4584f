"""Application-state object wiring the store, controllers and collaborators."""

import asyncio
import random

import structlog

from project_hub.aggregate import AggregateController
from project_hub.catalog import load_catalog
from project_hub.config import Settings, get_settings
from project_hub.controller import ProjectController
from project_hub.execution import (
    ExecutionClient,
    SimulatedExecutionClient,
    HealthCheck,
    SubprocessExecutionClient,
)
from project_hub.installer import Installer, ScriptInstaller, SimulatedInstaller
from project_hub.log_aggregator import LogAggregator
from project_hub.models import (
    BackendStatus,
    OperationOutcome,
    Project,
    ProjectSpec,
    ProjectSummary,
    ThemeMode,
)
from project_hub.persistence import (
    InMemoryPersistenceGateway,
    PersistenceGateway,
    RedisPersistenceGateway,
    StatePersister,
)
from project_hub.store import ProjectStore

logger = structlog.get_logger()


def build_gateway(settings: Settings) -> PersistenceGateway:
    if settings.redis_url:
        return RedisPersistenceGateway.from_url(
            settings.redis_url, prefix=settings.redis_key_prefix
        )
    return InMemoryPersistenceGateway()


def build_executor(settings: Settings) -> ExecutionClient:
    if settings.execution_backend == "subprocess":
        return SubprocessExecutionClient(
            cwd=settings.scripts_dir,
            startup_window=settings.startup_output_window_sec,
            terminate_timeout=settings.stop_timeout_sec,
        )
    return SimulatedExecutionClient(
        success_rate=settings.simulated_success_rate,
        min_delay=settings.simulated_min_delay_sec,
        max_delay=settings.simulated_max_delay_sec,
        stop_delay=settings.simulated_stop_delay_sec,
        rng=random.Random(),
    )


def build_installer(settings: Settings) -> Installer:
    if settings.install_backend == "script":
        return ScriptInstaller(settings.scripts_dir)
    return SimulatedInstaller(delay=settings.install_delay_sec)


class ProjectHub:
    """Everything the presentation layer talks to.

    Holds the project store (the only mutable project state), the theme
    preference and the collaborators. Readers get snapshots; all changes go
    through the methods below.
    """

    def __init__(
        self,
        store: ProjectStore,
        controller: ProjectController,
        aggregate: AggregateController,
        persister: StatePersister,
        theme: ThemeMode = ThemeMode.LIGHT,
    ) -> None:
        self.store = store
        self.controller = controller
        self.aggregate = aggregate
        self.persister = persister
        self.logs = LogAggregator(store)
        self.theme = theme

    @classmethod
    async def create(
        cls,
        settings: Settings | None = None,
        *,
        catalog: list[ProjectSpec] | None = None,
        executor: ExecutionClient | None = None,
        installer: Installer | None = None,
        gateway: PersistenceGateway | None = None,
    ) -> "ProjectHub":
        """Build a hub and restore persisted project and theme state."""
        settings = settings or get_settings()
        if catalog is None:
            catalog = load_catalog(settings.catalog_path)

        persister = StatePersister(
            gateway or build_gateway(settings),
            projects_key=settings.projects_key,
            theme_key=settings.theme_key,
            timeout=settings.persistence_timeout_sec,
        )
        projects = await persister.load_projects(catalog)
        theme = await persister.load_theme(ThemeMode(settings.default_theme))

        store = ProjectStore(projects)
        persister.attach(store)

        controller = ProjectController(
            store,
            executor or build_executor(settings),
            installer or build_installer(settings),
            python_executable=settings.python_executable,
            execution_timeout=settings.execution_timeout_sec,
            stop_timeout=settings.stop_timeout_sec,
            install_timeout=settings.install_timeout_sec,
        )
        aggregate = AggregateController(
            store,
            controller,
            run_all_includes_uninstalled=settings.run_all_includes_uninstalled,
        )

        logger.info("project_hub_ready", projects=len(store), theme=theme.value)
        return cls(store, controller, aggregate, persister, theme=theme)

    # Read side

    def projects(self) -> list[Project]:
        return self.store.get_all()

    def project(self, project_id: str) -> Project:
        return self.store.get(project_id)

    def combined_logs(self) -> list[str]:
        return self.logs.combined_logs()

    def summary(self) -> ProjectSummary:
        return ProjectSummary.from_projects(self.store.get_all())

    async def backend_status(self) -> BackendStatus:
        """Ask the execution backend whether it is reachable.

        Clients without a ``status()`` check report offline; failures and
        timeouts are reported as offline rather than raised.
        """
        executor = self.controller.executor
        if not isinstance(executor, HealthCheck):
            return BackendStatus(online=False, detail="Status check not supported")
        try:
            return await asyncio.wait_for(
                executor.status(), timeout=self.controller.execution_timeout
            )
        except Exception as e:
            logger.warning("backend_status_failed", error=str(e))
            return BackendStatus(online=False, detail=str(e) or type(e).__name__)

    @property
    def is_dark_mode(self) -> bool:
        return self.theme is ThemeMode.DARK

    # Commands

    async def install(self, project_id: str) -> Project:
        return await self.controller.install(project_id)

    async def uninstall(self, project_id: str) -> Project:
        return await self.controller.uninstall(project_id)

    async def run(self, project_id: str) -> Project:
        return await self.controller.run(project_id)

    async def stop(self, project_id: str) -> Project:
        return await self.controller.stop(project_id)

    async def run_all(self, include_uninstalled: bool | None = None) -> list[OperationOutcome]:
        return await self.aggregate.run_all(include_uninstalled)

    async def stop_all(self) -> list[OperationOutcome]:
        return await self.aggregate.stop_all()

    async def set_theme(self, theme: ThemeMode) -> ThemeMode:
        self.theme = theme
        await self.persister.save_theme(theme)
        logger.info("theme_changed", theme=theme.value)
        return theme

    async def toggle_theme(self) -> ThemeMode:
        return await self.set_theme(self.theme.toggled())

    async def clear_cache(self) -> bool:
        """Drop persisted state; the in-memory projects are kept."""
        cleared = await self.persister.clear()
        logger.info("cache_cleared", success=cleared)
        return cleared

    async def aclose(self) -> None:
        """Flush pending writes, then release child processes and connections."""
        await self.persister.drain()
        for resource in (self.controller.executor, self.persister.gateway):
            close = getattr(resource, "aclose", None)
            if close is not None:
                await close()
