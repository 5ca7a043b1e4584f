"""Data models for managed projects and operation results."""

from enum import Enum
import uuid

from pydantic import BaseModel, Field

# Fields fixed at creation; updates may not touch them.
METADATA_FIELDS = frozenset({"id", "name", "icon", "description", "script_name"})


class InstallStatus(str, Enum):
    """Whether a project's runtime is provisioned."""

    NOT_INSTALLED = "not_installed"
    INSTALLING = "installing"
    INSTALLED = "installed"


class ThemeMode(str, Enum):
    """Persisted UI theme preference."""

    LIGHT = "light"
    DARK = "dark"

    def toggled(self) -> "ThemeMode":
        return ThemeMode.LIGHT if self is ThemeMode.DARK else ThemeMode.DARK


class ProjectSpec(BaseModel):
    """Static catalog entry a project is created from."""

    id: str = Field(..., min_length=1)
    name: str
    icon: str = ""
    description: str = ""
    script_name: str = Field(..., min_length=1, description="Script name without .py suffix")


class RunState(BaseModel):
    """Run axis of a project."""

    is_loading: bool = False
    is_running: bool = False
    error: str | None = None
    run_handle: str | None = Field(
        default=None,
        description="Opaque token from the execution client for the current session",
    )


class Project(ProjectSpec):
    """Identity and lifecycle record of a managed project."""

    install_status: InstallStatus = InstallStatus.NOT_INSTALLED
    run_state: RunState = Field(default_factory=RunState)
    logs: list[str] = Field(default_factory=list)

    @classmethod
    def from_spec(cls, spec: ProjectSpec) -> "Project":
        return cls(**spec.model_dump())

    @property
    def is_installed(self) -> bool:
        return self.install_status is InstallStatus.INSTALLED

    @property
    def status_label(self) -> str:
        """Run badge: LOADING wins over RUNNING, RUNNING over ERROR."""
        if self.run_state.is_loading:
            return "LOADING"
        if self.run_state.is_running:
            return "RUNNING"
        if self.run_state.error:
            return "ERROR"
        return "STOPPED"

    def command(self, python: str = "python") -> str:
        """Shell command that runs this project's script."""
        return f"{python} {self.script_name}.py"


class ExecutionResult(BaseModel):
    """Successful start of a run."""

    output: list[str] = Field(default_factory=list)
    handle: str = Field(default_factory=lambda: uuid.uuid4().hex)


class StopResult(BaseModel):
    """Successful stop of a run."""

    message: str


class BackendStatus(BaseModel):
    """Health of the execution backend."""

    online: bool
    detail: str = ""
    uptime_sec: float | None = None


class OperationOutcome(BaseModel):
    """Result of one project's operation inside a fan-out."""

    project_id: str
    ok: bool
    error: str | None = None
    project: Project | None = None


class ProjectSummary(BaseModel):
    """Counts shown on the dashboard."""

    total: int = 0
    installed: int = 0
    running: int = 0
    errored: int = 0

    @classmethod
    def from_projects(cls, projects: list[Project]) -> "ProjectSummary":
        return cls(
            total=len(projects),
            installed=sum(1 for p in projects if p.is_installed),
            running=sum(1 for p in projects if p.run_state.is_running),
            errored=sum(1 for p in projects if p.run_state.error),
        )
