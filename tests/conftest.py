"""Shared fixtures for project-hub tests."""

from fakes import FakeExecutionClient, FakeInstaller, make_project
import pytest

from project_hub.aggregate import AggregateController
from project_hub.config import Settings
from project_hub.controller import ProjectController
from project_hub.models import InstallStatus, Project, ProjectSpec
from project_hub.store import ProjectStore

# Bound for collaborator calls in tests; hanging fakes hit it quickly.
TEST_TIMEOUT = 0.3


@pytest.fixture
def catalog() -> list[ProjectSpec]:
    return [
        ProjectSpec(id="alpha", name="Alpha", script_name="alpha"),
        ProjectSpec(id="beta", name="Beta", script_name="beta"),
        ProjectSpec(id="gamma", name="Gamma", script_name="gamma"),
    ]


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with fast timeouts and no environment influence."""
    return Settings(
        _env_file=None,
        execution_timeout_sec=TEST_TIMEOUT,
        stop_timeout_sec=TEST_TIMEOUT,
        install_timeout_sec=TEST_TIMEOUT,
        persistence_timeout_sec=TEST_TIMEOUT,
        startup_output_window_sec=0.1,
        install_delay_sec=0,
        scripts_dir=tmp_path,
    )


@pytest.fixture
def executor() -> FakeExecutionClient:
    return FakeExecutionClient()


@pytest.fixture
def installer() -> FakeInstaller:
    return FakeInstaller()


@pytest.fixture
def store() -> ProjectStore:
    """alpha installed, beta not installed, gamma installed."""
    return ProjectStore(
        [
            make_project("alpha"),
            make_project("beta", InstallStatus.NOT_INSTALLED),
            make_project("gamma"),
        ]
    )


@pytest.fixture
def controller(store, executor, installer) -> ProjectController:
    return ProjectController(
        store,
        executor,
        installer,
        execution_timeout=TEST_TIMEOUT,
        stop_timeout=TEST_TIMEOUT,
        install_timeout=TEST_TIMEOUT,
    )


@pytest.fixture
def aggregate(store, controller) -> AggregateController:
    return AggregateController(store, controller)


@pytest.fixture
def recorded(store) -> list[Project]:
    """Every snapshot the store notifies, in order."""
    snapshots: list[Project] = []

    async def _record(snapshot: Project) -> None:
        snapshots.append(snapshot)

    store.subscribe(_record)
    return snapshots
