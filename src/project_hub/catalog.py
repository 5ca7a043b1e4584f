"""Static project catalog."""

from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from project_hub.models import ProjectSpec

DEFAULT_CATALOG: list[ProjectSpec] = [
    ProjectSpec(
        id="telegram-bot",
        name="Telegram Bot",
        icon="🤖",
        description="Bot that relays chat commands to the local AI services.",
        script_name="telegram_bot",
    ),
    ProjectSpec(
        id="python-backend",
        name="Python Backend",
        icon="🐍",
        description="Local HTTP backend the bridge calls for script execution.",
        script_name="backend_server",
    ),
    ProjectSpec(
        id="image-generator",
        name="Image Generator",
        icon="🎨",
        description="Queue worker that renders images from text prompts.",
        script_name="image_generator",
    ),
]

_catalog_adapter = TypeAdapter(list[ProjectSpec])


def load_catalog(path: Path | None = None) -> list[ProjectSpec]:
    """Load catalog entries from a JSON file, or the built-in catalog.

    Raises:
        ValueError: If the file is not a valid catalog or repeats an id
    """
    if path is None:
        return [spec.model_copy() for spec in DEFAULT_CATALOG]

    try:
        specs = _catalog_adapter.validate_json(path.read_bytes())
    except ValidationError as e:
        raise ValueError(f"Invalid catalog {path}: {e}") from e

    seen: set[str] = set()
    for spec in specs:
        if spec.id in seen:
            raise ValueError(f"Duplicate project id in catalog {path}: {spec.id}")
        seen.add(spec.id)
    return specs
