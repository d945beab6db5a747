from genflow.providers.paths import MISSING, extract_path, map_response, split_path


def test_split_path_supports_dots_and_brackets():
    assert split_path("choices.0.message.content") == ["choices", "0", "message", "content"]
    assert split_path("data.images[1].url") == ["data", "images", "1", "url"]


def test_extract_nested_values():
    data = {"data": {"task_id": "t-1", "images": [{"url": "a"}, {"url": "b"}]}}
    assert extract_path(data, "data.task_id") == "t-1"
    assert extract_path(data, "data.images.1.url") == "b"
    assert extract_path(data, "data.images[0].url") == "a"


def test_missing_paths_return_marker_instead_of_raising():
    data = {"data": {"images": [], "status": None}}
    assert extract_path(data, "data.images.0.url") is MISSING
    assert extract_path(data, "data.status.code") is MISSING
    assert extract_path(data, "data.images.x") is MISSING
    assert extract_path("text", "a") is MISSING
    assert extract_path(data, "") is MISSING
    assert not MISSING


def test_present_none_is_not_missing():
    assert extract_path({"a": None}, "a") is None


def test_map_response_turns_missing_into_none():
    raw = {"data": {"value": 42}}
    assert map_response(raw, {"x": "data.value", "y": "data.other"}) == {"x": 42, "y": None}
    assert map_response(raw, None) == {}
