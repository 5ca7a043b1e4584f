"""Error types raised by the project hub core and its adapters."""


class ProjectHubError(Exception):
    """Base class for project hub errors."""


class InvalidStateError(ProjectHubError):
    """Operation attempted from a state that forbids it (e.g. double run)."""


class NotFoundError(ProjectHubError):
    """Unknown project id."""

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class ExecutionError(ProjectHubError):
    """The execution client failed to start a run."""


class StopError(ProjectHubError):
    """The execution client failed to stop a run."""


class InstallError(ProjectHubError):
    """Provisioning a project failed."""


class PersistenceError(ProjectHubError):
    """Storage read or write failed."""


class OperationTimeoutError(ProjectHubError, TimeoutError):
    """A collaborator call exceeded its time bound."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout:g}s")
