"""Combined log view across all projects."""

from project_hub.store import ProjectStore


class LogAggregator:
    """Builds ``[<project name>] <line>`` views from the store on demand."""

    def __init__(self, store: ProjectStore) -> None:
        self.store = store

    def combined_logs(self) -> list[str]:
        return [
            f"[{project.name}] {line}"
            for project in self.store.get_all()
            for line in project.logs
        ]

    def recent(self, limit: int) -> list[str]:
        """Last ``limit`` lines of the combined view."""
        if limit <= 0:
            return []
        return self.combined_logs()[-limit:]
