"""Project Hub - lifecycle and bulk control for locally managed projects."""

from project_hub.hub import ProjectHub
from project_hub.models import InstallStatus, Project, ProjectSpec, RunState, ThemeMode

__all__ = ["InstallStatus", "Project", "ProjectHub", "ProjectSpec", "RunState", "ThemeMode"]
