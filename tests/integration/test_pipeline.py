"""End-to-end workflow runs over SQLite with mocked vendor APIs."""

import json

import httpx
import jwt
import pytest

from genflow.constants import JobStatus, TaskStatus
from genflow.engine import WorkflowEngine
from genflow.handlers import HandlerRegistry
from genflow.persistence import SQLiteJobRepository

PROVIDERS = [
    {
        "name": "DeepSeek Chat",
        "category": "TEXT",
        "provider": "deepseek",
        "api_key": "ds-key",
        "url_template": "https://api.deepseek.test/chat/completions",
        "headers_template": {"Authorization": "Bearer {{apiKey}}", "Content-Type": "application/json"},
        "body_template": {
            "model": "deepseek-chat",
            "messages": "{{messages}}",
            "max_tokens": "{{maxTokens}}",
            "temperature": "{{temperature}}",
            "think": "{{think}}",
        },
        "response_mapping": {"content": "choices.0.message.content", "tokens": "usage.total_tokens"},
        "custom_handler": "deepseek",
    },
    {
        "name": "Acme Image",
        "category": "IMAGE",
        "provider": "acme",
        "api_key": "img-key",
        "url_template": "https://img.test/v1/generate",
        "headers_template": {"Authorization": "Bearer {{apiKey}}"},
        "body_template": {"prompt": "{{prompt}}", "size": "{{imageSize}}"},
        "response_mapping": {"taskId": "data.id"},
        "query_url_template": "https://img.test/v1/tasks/{{taskId}}",
        "query_response_mapping": {"status": "data.status"},
        "query_success_condition": 'status == "done"',
        "query_fail_condition": 'status == "error"',
        "query_success_mapping": {"image_url": "data.output.url", "taskId": "data.id"},
    },
    {
        "name": "Kling Video",
        "category": "VIDEO",
        "provider": "kling",
        "api_key": "ak-1+sk-1",
        "url_template": "https://kling.test/v1/videos/image2video",
        "headers_template": {"Content-Type": "application/json"},
        "body_template": {
            "model_name": "kling-v1",
            "prompt": "{{prompt}}",
            "duration": "{{duration}}",
            "aspect_ratio": "{{aspectRatio}}",
        },
        "response_mapping": {"taskId": "data.task_id"},
        "query_url_template": "https://kling.test/v1/videos/image2video/{{taskId}}",
        "query_response_mapping": {
            "status": "data.task_status",
            "video_url": "data.task_result.videos.0.url",
            "error": "data.task_status_msg",
        },
        "query_success_condition": 'status == "succeed"',
        "query_fail_condition": 'status == "failed"',
        "custom_handler": "kling_video",
        "custom_query_handler": "kling_video_query",
    },
]

SCRIPT = "INT. HARBOUR - DAWN\nMARA waits by the water."
CHARACTERS = [{"name": "Mara", "appearance": "woman in a red coat"}]


class Vendors:
    """Mock of the three vendor APIs."""

    def __init__(self):
        self.requests = []
        self.images = 0
        self.kling_down = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path
        if host == "api.deepseek.test":
            body = json.loads(request.content)
            prompt = body["messages"][-1]["content"]
            content = (
                "```json\n" + json.dumps(CHARACTERS) + "\n```"
                if "Extract every character" in prompt
                else f"<think>outline</think>{SCRIPT}"
            )
            return httpx.Response(
                200,
                json={"choices": [{"message": {"content": content}}], "usage": {"total_tokens": 321}},
            )
        if host == "img.test" and request.method == "POST":
            self.images += 1
            return httpx.Response(200, json={"data": {"id": f"img-{self.images}"}})
        if host == "img.test":
            task_id = path.rsplit("/", 1)[-1]
            return httpx.Response(
                200,
                json={"data": {"id": task_id, "status": "done", "output": {"url": f"https://cdn.test/{task_id}.png"}}},
            )
        if host == "kling.test" and self.kling_down:
            return httpx.Response(503, json={"message": "maintenance"})
        if host == "kling.test" and request.method == "POST":
            return httpx.Response(200, json={"code": 0, "data": {"task_id": "kling-1"}})
        if host == "kling.test":
            return httpx.Response(
                200,
                json={
                    "data": {
                        "task_status": "succeed",
                        "task_result": {"videos": [{"url": "https://cdn.test/kling-1.mp4"}]},
                    }
                },
            )
        return httpx.Response(404, json={"error": "unexpected request"})

    def sent_to(self, host, method=None):
        return [
            r for r in self.requests if r.url.host == host and (method is None or r.method == method)
        ]


@pytest.fixture
def vendors():
    return Vendors()


@pytest.fixture
def engine(tmp_path, vendors, make_adapter, fast_sleep):
    repository = SQLiteJobRepository(tmp_path / "genflow.db")
    adapter = make_adapter(vendors, PROVIDERS, registry=HandlerRegistry().init(), sleep=fast_sleep)
    yield WorkflowEngine(repository, adapter)
    repository.close()


@pytest.mark.asyncio
async def test_script_and_characters(engine, vendors):
    started = await engine.start(
        "script_and_characters",
        "user-1",
        "proj-1",
        {"textModel": "DeepSeek Chat", "title": "Harbour", "style": "noir"},
    )
    view = await engine.wait(started.job_id, timeout=10)

    assert view.job.status == JobStatus.COMPLETED, view.job.error_message
    script, characters = view.tasks
    assert script.result_data == {"content": SCRIPT, "tokens": 321, "model_name": "DeepSeek Chat"}
    assert characters.result_data["characters"] == CHARACTERS
    assert characters.input_params["scriptContent"] == SCRIPT

    first, second = vendors.sent_to("api.deepseek.test")
    first_body = json.loads(first.content)
    assert first.headers["authorization"] == "Bearer ds-key"
    assert "think" not in first_body
    assert first_body["temperature"] == 0.7
    assert first_body["max_tokens"] == 4000
    assert SCRIPT in json.loads(second.content)["messages"][-1]["content"]


@pytest.mark.asyncio
async def test_thinking_mode_reaches_deepseek(engine, vendors):
    started = await engine.start(
        "script_only", "user-1", None, {"textModel": "DeepSeek Chat", "title": "Harbour", "think": True}
    )
    view = await engine.wait(started.job_id, timeout=10)

    assert view.job.status == JobStatus.COMPLETED
    body = json.loads(vendors.sent_to("api.deepseek.test")[0].content)
    assert body["thinking"] == {"type": "enabled"}
    assert "temperature" not in body


@pytest.mark.asyncio
async def test_scene_video_feeds_frames_into_kling(engine, vendors):
    started = await engine.start(
        "scene_video",
        "user-1",
        "proj-1",
        {
            "imageModel": "Acme Image",
            "videoModel": "Kling Video",
            "prompt": "two knights duel on a bridge",
            "duration": 10,
        },
    )
    view = await engine.wait(started.job_id, timeout=10)

    assert view.job.status == JobStatus.COMPLETED, view.job.error_message
    frames, video = view.tasks
    assert frames.result_data == {
        "startFrame": "https://cdn.test/img-1.png",
        "endFrame": "https://cdn.test/img-2.png",
        "model_name": "Acme Image",
    }
    assert video.result_data == {
        "video_url": "https://cdn.test/kling-1.mp4",
        "task_id": "kling-1",
        "model_name": "Kling Video",
    }
    assert video.input_params["imageUrls"] == ["https://cdn.test/img-1.png", "https://cdn.test/img-2.png"]

    image_bodies = [json.loads(r.content) for r in vendors.sent_to("img.test", "POST")]
    assert [b["size"] for b in image_bodies] == ["1024x576", "1024x576"]
    assert "opening moment" in image_bodies[0]["prompt"]
    assert "closing moment" in image_bodies[1]["prompt"]

    submit = vendors.sent_to("kling.test", "POST")[0]
    body = json.loads(submit.content)
    assert body["image"] == "https://cdn.test/img-1.png"
    assert body["image_tail"] == "https://cdn.test/img-2.png"
    assert body["duration"] == 10
    assert body["aspect_ratio"] == "16:9"
    token = submit.headers["authorization"].removeprefix("Bearer ")
    assert jwt.decode(token, "sk-1", algorithms=["HS256"])["iss"] == "ak-1"

    events = [e["event"] for e in video.trace["events"]]
    assert events[0] == "task.start"
    assert "kling.submit" in events
    assert events[-1] == "task.completed"


@pytest.mark.asyncio
async def test_vendor_failure_then_resume(engine, vendors):
    vendors.kling_down = True
    started = await engine.start(
        "scene_video",
        "user-1",
        None,
        {"imageModel": "Acme Image", "videoModel": "Kling Video", "prompt": "a duel"},
    )
    view = await engine.wait(started.job_id, timeout=10)
    assert view.job.status == JobStatus.FAILED
    assert view.failed_step.step_index == 1
    assert "maintenance" in view.job.error_message
    assert view.tasks[0].status == TaskStatus.COMPLETED

    vendors.kling_down = False
    await engine.resume(started.job_id, "user-1")
    view = await engine.wait(started.job_id, timeout=10)

    assert view.job.status == JobStatus.COMPLETED
    assert len(vendors.sent_to("img.test", "POST")) == 2
    assert view.tasks[1].result_data["video_url"] == "https://cdn.test/kling-1.mp4"


@pytest.mark.asyncio
async def test_query_string_keys_stay_out_of_job_state(tmp_path, make_adapter):
    gemini = {
        "name": "Gem Text",
        "category": "TEXT",
        "provider": "gem",
        "api_key": "SECRET-KEY-123",
        "url_template": "https://gem.test/v1/generate?key={{apiKey}}",
        "body_template": {"prompt": "{{prompt}}"},
        "response_mapping": {"content": "text"},
    }

    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    repository = SQLiteJobRepository(tmp_path / "genflow.db")
    engine = WorkflowEngine(repository, make_adapter(unreachable, [gemini]))
    try:
        started = await engine.start("script_only", "user-1", None, {"textModel": "Gem Text"})
        view = await engine.wait(started.job_id, timeout=10)
    finally:
        await engine.aclose()
        repository.close()

    assert view.job.status == JobStatus.FAILED
    assert "key=***" in view.job.error_message
    assert "SECRET-KEY-123" not in view.job.error_message
    assert "SECRET-KEY-123" not in view.tasks[0].error_message
    assert "SECRET-KEY-123" not in json.dumps(view.tasks[0].trace)
