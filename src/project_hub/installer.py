"""Installers that provision a project before it can run."""

import asyncio
from pathlib import Path
from typing import Protocol

import structlog

from project_hub.errors import InstallError
from project_hub.models import Project

logger = structlog.get_logger()


class Installer(Protocol):
    """Provisions a project's runtime."""

    async def install(self, project: Project) -> None:
        """Install ``project``; raise InstallError on failure."""
        ...


class SimulatedInstaller:
    """Pretends to install by waiting a fixed delay."""

    def __init__(self, delay: float = 2.0) -> None:
        self.delay = delay

    async def install(self, project: Project) -> None:
        logger.debug("simulated_install", project_id=project.id, delay=self.delay)
        await asyncio.sleep(self.delay)


class ScriptInstaller:
    """Treats a project as installed once its script exists in ``scripts_dir``."""

    def __init__(self, scripts_dir: Path) -> None:
        self.scripts_dir = scripts_dir

    def script_path(self, project: Project) -> Path:
        return self.scripts_dir / f"{project.script_name}.py"

    async def install(self, project: Project) -> None:
        path = self.script_path(project)
        if not path.is_file():
            raise InstallError(f"Script not found: {path}")
        logger.info("script_verified", project_id=project.id, path=str(path))
