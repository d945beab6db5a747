"""Field Contract Registry.

Every step input is assembled from the fields declared here. The step input
builder rejects names missing from this catalogue at compile time, so a typo
in a workflow definition is a startup error rather than a ``None`` sent to a
provider.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from .models import FieldSpec


def _field(
    name: str,
    description: str,
    category: str,
    default: Any = None,
    source: Optional[str] = None,
    resolver: Optional[Callable[[Any], Any]] = None,
) -> FieldSpec:
    return FieldSpec(
        name=name,
        source=source if source is not None or resolver is not None else name,
        default=default,
        resolver=resolver,
        description=description,
        category=category,
    )


_FIELDS = [
    # Models, kept strictly apart per modality
    _field("textModel", "Text model name (scripts, prompts, analysis)", "model"),
    _field("imageModel", "Image model name (characters, scenes, frames)", "model"),
    _field("videoModel", "Video model name (storyboard clips)", "model"),
    _field("audioModel", "Audio model name (voice, effects)", "model"),
    # Identifiers
    _field(
        "projectId",
        "Project id taken from the job row",
        "id",
        resolver=lambda ctx: ctx.project_id,
    ),
    _field(
        "userId",
        "Owning user id taken from the job row",
        "id",
        resolver=lambda ctx: ctx.user_id,
    ),
    _field("scriptId", "Script id", "id"),
    _field("sceneId", "Scene id", "id"),
    _field("characterId", "Character id", "id"),
    _field("storyboardId", "Storyboard id", "id"),
    # Script
    _field("title", "Script or project title", "script"),
    _field("description", "Free-form description", "script"),
    _field("style", "Visual or narrative style", "script"),
    _field("length", "Script length (short, medium, long)", "script"),
    _field("episodeNumber", "Episode number", "script"),
    _field("scriptContent", "Script body text", "script"),
    # Scene
    _field("sceneName", "Scene name", "scene"),
    _field("environment", "Environment description", "scene"),
    _field("lighting", "Lighting description", "scene"),
    _field("mood", "Mood description", "scene"),
    # Character
    _field("characterName", "Character name", "character"),
    _field("appearance", "Appearance description", "character"),
    _field("personality", "Personality description", "character"),
    # Generation
    _field("prompt", "Generation prompt (image and video)", "generation"),
    _field("imageUrl", "Single image URL, placeholder {{imageUrl}}", "generation"),
    _field("imageUrls", "Image URL list, placeholder {{imageUrls}}", "generation"),
    _field("startFrame", "First frame image URL", "generation"),
    _field("endFrame", "Last frame image URL", "generation"),
    _field("width", "Output width in pixels", "generation", default=1024),
    _field("height", "Output height in pixels", "generation", default=1024),
    _field("duration", "Video duration in seconds", "generation", default=5),
    _field("aspectRatio", 'Aspect ratio such as "16:9"', "generation"),
    _field("think", "Enable extended reasoning on supporting text models", "generation", default=False),
]

FIELD_REGISTRY: Mapping[str, FieldSpec] = MappingProxyType(
    {spec.name: spec for spec in _FIELDS}
)


def get_field(name: str) -> Optional[FieldSpec]:
    """Return the registered field called ``name`` if any."""
    return FIELD_REGISTRY.get(name)


__all__ = ["FieldSpec", "FIELD_REGISTRY", "get_field"]
