"""Tests for the field registry and step input builder."""

import pytest

from genflow.contracts import StepContext
from genflow.definitions import WORKFLOW_DEFINITIONS, available_workflows
from genflow.exceptions import UnknownField
from genflow.inputs import FieldRef, compile_input
from genflow.registry import FIELD_REGISTRY, get_field


def _ctx(**kwargs) -> StepContext:
    return StepContext(job_id="job-1", **kwargs)


def test_unregistered_field_fails_at_compile_time():
    with pytest.raises(UnknownField) as exc:
        compile_input(["textModel", "txetModel"])
    assert exc.value.name == "txetModel"


def test_override_without_source_must_be_registered():
    with pytest.raises(UnknownField):
        compile_input([FieldRef(name="notAField", default=1)])


def test_callable_source_allows_unregistered_name():
    build = compile_input([FieldRef(name="custom", source=lambda ctx: ctx.job_id)])
    assert build(_ctx()) == {"custom": "job-1"}


def test_registry_defaults_apply_when_value_missing():
    build = compile_input(["width", "height", "duration", "style"])
    assert build(_ctx(job_params={"height": 768})) == {
        "width": 1024,
        "height": 768,
        "duration": 5,
        "style": None,
    }


def test_override_default_and_source():
    build = compile_input(
        [
            FieldRef(name="height", default=576),
            FieldRef(name="prompt", source="scenePrompt"),
        ]
    )
    assert build(_ctx(job_params={"scenePrompt": "a harbour at dawn"})) == {
        "height": 576,
        "prompt": "a harbour at dawn",
    }


def test_explicit_none_default_overrides_registry_default():
    build = compile_input([FieldRef(name="width", default=None)])
    assert build(_ctx()) == {"width": None}


def test_resolvers_read_engine_supplied_values():
    build = compile_input(["projectId", "userId"])
    assert build(_ctx(user_id="u-7", project_id="p-3", job_params={"projectId": "ignored"})) == {
        "projectId": "p-3",
        "userId": "u-7",
    }


def test_resolver_reads_previous_results():
    build = compile_input(
        [FieldRef(name="scriptContent", source=lambda ctx: ctx.result_of(0, "content"), default="")]
    )
    assert build(_ctx(previous_results={0: {"content": "INT. HOUSE"}})) == {
        "scriptContent": "INT. HOUSE"
    }
    assert build(_ctx()) == {"scriptContent": ""}


def test_compiled_builder_lists_its_fields():
    build = compile_input(["textModel", FieldRef(name="height", default=576)])
    assert build.fields == ["textModel", "height"]


def test_registry_is_read_only():
    assert get_field("textModel").category == "model"
    with pytest.raises(TypeError):
        FIELD_REGISTRY["other"] = FIELD_REGISTRY["textModel"]


def test_available_workflows_describe_every_definition():
    described = {w["type"]: w for w in available_workflows()}
    assert set(described) == set(WORKFLOW_DEFINITIONS)
    comic = described["comic_generation"]
    assert comic["total_steps"] == 4
    assert [s["type"] for s in comic["steps"]] == [
        "script",
        "character_extract",
        "character_image",
        "video",
    ]
    assert [s["index"] for s in comic["steps"]] == [0, 1, 2, 3]


def test_scene_video_chains_frames_into_video_input():
    video_step = WORKFLOW_DEFINITIONS["scene_video"].steps[1]
    ctx = _ctx(
        job_params={"videoModel": "kling", "prompt": "a duel"},
        previous_results={0: {"startFrame": "http://img/a.png", "endFrame": "http://img/b.png"}},
    )
    params = video_step.build_input(ctx)
    assert params["imageUrls"] == ["http://img/a.png", "http://img/b.png"]
    assert params["aspectRatio"] == "16:9"
    assert params["duration"] == 5
