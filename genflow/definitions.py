"""Workflow definitions.

Each step pairs a task handler with an input builder compiled from the
field registry. Builders are compiled at import time, so a step naming an
unregistered field stops the process before any job exists.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from .contracts import StepContext, StepDefinition, WorkflowDefinition
from .inputs import FieldRef, compile_input
from .tasks import (
    extract_characters,
    generate_frames,
    generate_image,
    generate_script,
    generate_video,
)

SCRIPT_EXCERPT_CHARS = 500


def _script_content(ctx: StepContext) -> Optional[str]:
    return ctx.result_of(0, "content")


def _first_character_prompt(ctx: StepContext) -> str:
    characters = ctx.result_of(1, "characters", [])
    first = characters[0] if characters else {}
    subject = first.get("appearance") or first.get("name") or "character"
    return f"{subject}, high quality, rich detail"


def _character_prompt(ctx: StepContext) -> str:
    if ctx.job_params.get("prompt"):
        return ctx.job_params["prompt"]
    params = ctx.job_params
    subject = params.get("appearance") or params.get("characterName") or "character"
    return f"{subject}, high quality, rich detail"


def _script_excerpt(ctx: StepContext) -> str:
    return (ctx.result_of(0, "content") or "")[:SCRIPT_EXCERPT_CHARS]


def _frame_pair(ctx: StepContext) -> List[str]:
    frames = (ctx.result_of(0, "startFrame"), ctx.result_of(0, "endFrame"))
    return [f for f in frames if f]


SCRIPT_STEP = StepDefinition(
    type="script",
    target_type="script",
    handler=generate_script,
    build_input=compile_input(
        ["textModel", "title", "description", "style", "length", "think"]
    ),
)

CHARACTER_EXTRACT_STEP = StepDefinition(
    type="character_extract",
    target_type="character",
    handler=extract_characters,
    build_input=compile_input(
        [
            "textModel",
            FieldRef(name="scriptContent", source=_script_content, default=""),
        ]
    ),
)


WORKFLOW_DEFINITIONS: Mapping[str, WorkflowDefinition] = MappingProxyType(
    {
        "script_only": WorkflowDefinition(
            type="script_only",
            name="Script generation",
            steps=[SCRIPT_STEP],
        ),
        "script_and_characters": WorkflowDefinition(
            type="script_and_characters",
            name="Script generation + character extraction",
            steps=[SCRIPT_STEP, CHARACTER_EXTRACT_STEP],
        ),
        "character_image": WorkflowDefinition(
            type="character_image",
            name="Character image",
            steps=[
                StepDefinition(
                    type="character_image",
                    target_type="character",
                    handler=generate_image,
                    build_input=compile_input(
                        [
                            "imageModel",
                            "characterId",
                            FieldRef(name="prompt", source=_character_prompt),
                            "width",
                            "height",
                            "imageUrl",
                            "imageUrls",
                        ]
                    ),
                )
            ],
        ),
        "comic_generation": WorkflowDefinition(
            type="comic_generation",
            name="Comic video generation",
            steps=[
                SCRIPT_STEP,
                CHARACTER_EXTRACT_STEP,
                StepDefinition(
                    type="character_image",
                    target_type="character",
                    handler=generate_image,
                    build_input=compile_input(
                        [
                            "imageModel",
                            FieldRef(name="prompt", source=_first_character_prompt),
                            "width",
                            "height",
                        ]
                    ),
                ),
                StepDefinition(
                    type="video",
                    target_type="storyboard",
                    handler=generate_video,
                    build_input=compile_input(
                        [
                            "videoModel",
                            FieldRef(name="prompt", source=_script_excerpt),
                            FieldRef(
                                name="imageUrl",
                                source=lambda ctx: ctx.result_of(2, "image_url"),
                            ),
                            "duration",
                            "aspectRatio",
                        ]
                    ),
                ),
            ],
        ),
        "scene_video": WorkflowDefinition(
            type="scene_video",
            name="Scene video from first/last frames",
            steps=[
                StepDefinition(
                    type="frames",
                    target_type="storyboard",
                    handler=generate_frames,
                    build_input=compile_input(
                        [
                            "imageModel",
                            "storyboardId",
                            "prompt",
                            "width",
                            FieldRef(name="height", default=576),
                            FieldRef(name="aspectRatio", default="16:9"),
                        ]
                    ),
                ),
                StepDefinition(
                    type="video",
                    target_type="storyboard",
                    handler=generate_video,
                    build_input=compile_input(
                        [
                            "videoModel",
                            "storyboardId",
                            "prompt",
                            FieldRef(name="imageUrls", source=_frame_pair),
                            "duration",
                            FieldRef(name="aspectRatio", default="16:9"),
                        ]
                    ),
                ),
            ],
        ),
    }
)


def get_workflow_definition(
    workflow_type: str,
    definitions: Mapping[str, WorkflowDefinition] = WORKFLOW_DEFINITIONS,
) -> WorkflowDefinition | None:
    return definitions.get(workflow_type)


def available_workflows(
    definitions: Mapping[str, WorkflowDefinition] = WORKFLOW_DEFINITIONS,
) -> List[Dict[str, Any]]:
    """Describe every workflow: type, name, step count and step tags."""
    return [definition.describe() for definition in definitions.values()]
