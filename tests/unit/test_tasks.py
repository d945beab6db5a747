import pytest

from genflow.contracts import TaskRuntime
from genflow.exceptions import ProviderError, TaskInputError
from genflow.tasks import (
    extract_characters,
    generate_frames,
    generate_image,
    generate_script,
    generate_video,
)
from genflow.tasks.characters import parse_characters


class FakeAdapter:
    """Stands in for ProviderAdapter.execute and records every call."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    async def execute(self, model_name, params, **kwargs):
        self.calls.append((model_name, params, kwargs))
        return dict(self.results.pop(0))


def _runtime(adapter):
    progress = []

    async def report(value):
        progress.append(value)

    runtime = TaskRuntime(adapter, report, task_id="task-1", step_type="test")
    return runtime, progress


@pytest.mark.asyncio
async def test_generate_script_cleans_model_output():
    adapter = FakeAdapter({"content": "<think>plan</think>INT. HARBOUR - DAWN", "tokens": 120})
    runtime, progress = _runtime(adapter)

    result = await generate_script(
        {"textModel": "DeepSeek Chat", "title": "Dawn", "style": "noir", "think": True}, runtime
    )

    assert result == {"content": "INT. HARBOUR - DAWN", "tokens": 120, "model_name": "DeepSeek Chat"}
    model, request, _ = adapter.calls[0]
    assert model == "DeepSeek Chat"
    assert request["think"] is True
    assert request["maxTokens"] == 4000
    assert request["messages"][0]["role"] == "system"
    assert "Title: Dawn" in request["prompt"]
    assert "noir" in request["prompt"]
    assert progress == [30, 90]


@pytest.mark.asyncio
async def test_generate_script_requires_a_model():
    runtime, _ = _runtime(FakeAdapter())
    with pytest.raises(TaskInputError):
        await generate_script({"title": "Dawn"}, runtime)


@pytest.mark.asyncio
async def test_extract_characters_parses_fenced_json():
    reply = '```json\n[{"name": "Mara", "appearance": "red coat"}, "noise"]\n```'
    adapter = FakeAdapter({"content": reply})
    runtime, _ = _runtime(adapter)

    result = await extract_characters({"textModel": "m", "scriptContent": "MARA enters."}, runtime)

    assert result["characters"] == [{"name": "Mara", "appearance": "red coat"}]
    assert result["tokens"] == 0
    assert adapter.calls[0][1]["temperature"] == 0.3


@pytest.mark.asyncio
async def test_extract_characters_rejects_empty_script():
    runtime, _ = _runtime(FakeAdapter())
    with pytest.raises(TaskInputError):
        await extract_characters({"textModel": "m", "scriptContent": "  "}, runtime)


@pytest.mark.parametrize(
    "content,expected",
    [
        ('{"characters": [{"name": "A"}]}', [{"name": "A"}]),
        ('Here you go: {"name": "B"}', [{"name": "B"}]),
        ("no json here", [{"name": "unparsed", "description": "no json here"}]),
    ],
)
def test_parse_characters_is_tolerant(content, expected):
    assert parse_characters(content) == expected


@pytest.mark.asyncio
async def test_generate_image_forwards_references_and_polling():
    adapter = FakeAdapter({"url": "http://img/1.png", "taskId": "t-1"})
    runtime, _ = _runtime(adapter)

    result = await generate_image(
        {"imageModel": "Acme Image", "prompt": "a fox", "width": 512, "imageUrls": ["ref.png"]}, runtime
    )

    assert result == {"image_url": "http://img/1.png", "task_id": "t-1", "model_name": "Acme Image"}
    _, request, kwargs = adapter.calls[0]
    assert request == {"prompt": "a fox", "width": 512, "height": 1024, "imageUrls": ["ref.png"]}
    assert kwargs["interval_ms"] == 3000
    assert kwargs["max_duration_ms"] == 300_000
    assert kwargs["on_progress"] is runtime.report_progress


@pytest.mark.asyncio
async def test_generate_image_without_url_fails():
    runtime, _ = _runtime(FakeAdapter({"status": "succeed"}))
    with pytest.raises(ProviderError):
        await generate_image({"imageModel": "m"}, runtime)


@pytest.mark.asyncio
@pytest.mark.parametrize("handler", [generate_image, generate_video])
async def test_single_reference_url_is_not_split(handler):
    adapter = FakeAdapter({"url": "http://out/1", "video_url": "http://out/1"})
    runtime, _ = _runtime(adapter)

    await handler(
        {"imageModel": "M", "videoModel": "M", "prompt": "p", "imageUrls": "https://a/b.png"},
        runtime,
    )

    _, request, _ = adapter.calls[0]
    assert request["imageUrls"] == ["https://a/b.png"]


@pytest.mark.asyncio
async def test_generate_video_uses_video_polling():
    adapter = FakeAdapter({"video_url": "http://v/1.mp4", "task_id": "vt"})
    runtime, _ = _runtime(adapter)

    result = await generate_video(
        {"videoModel": "Kling Video", "prompt": "duel", "imageUrls": ["a", "b"], "aspectRatio": "16:9"},
        runtime,
    )

    assert result == {"video_url": "http://v/1.mp4", "task_id": "vt", "model_name": "Kling Video"}
    _, request, kwargs = adapter.calls[0]
    assert request == {"prompt": "duel", "duration": 5, "imageUrls": ["a", "b"], "aspectRatio": "16:9"}
    assert kwargs["interval_ms"] == 5000
    assert kwargs["max_duration_ms"] == 600_000
    assert (kwargs["progress_start"], kwargs["progress_end"]) == (20, 90)


@pytest.mark.asyncio
async def test_generate_frames_makes_two_image_calls():
    adapter = FakeAdapter({"image_url": "start.png"}, {"image_url": "end.png"})
    runtime, progress = _runtime(adapter)

    result = await generate_frames({"imageModel": "m", "prompt": "a duel", "width": 1024}, runtime)

    assert result == {"startFrame": "start.png", "endFrame": "end.png", "model_name": "m"}
    first, second = (call[1] for call in adapter.calls)
    assert first["imageSize"] == "1024x576"
    assert first["aspectRatio"] == "16:9"
    assert first["prompt"].startswith("a duel, opening moment")
    assert second["prompt"].startswith("a duel, closing moment")
    assert all(call[2]["on_progress"] is None for call in adapter.calls)
    assert progress == [10, 50]
