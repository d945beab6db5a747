from genflow.providers.templates import render_headers, render_json_template, render_string


def test_url_templates_percent_encode_values():
    url = render_string("https://api.example.com/v1/tasks/{{taskId}}?q={{prompt}}", {
        "taskId": "abc/1",
        "prompt": "a cat & a dog",
    })
    assert url == "https://api.example.com/v1/tasks/abc%2F1?q=a%20cat%20%26%20a%20dog"


def test_plain_strings_are_not_encoded():
    assert render_string("Bearer {{apiKey}}", {"apiKey": "k/1+2"}) == "Bearer k/1+2"


def test_unknown_placeholders_are_left_alone():
    assert render_string("{{known}}-{{unknown}}", {"known": "x"}) == "x-{{unknown}}"


def test_string_context_takes_first_scalar_of_a_list():
    assert render_string("image={{imageUrls}}", {"imageUrls": ["a.png", "b.png"]}) == "image=a.png"


def test_whole_placeholder_keeps_value_shape():
    template = {
        "messages": "{{messages}}",
        "size": "{{width}}x{{height}}",
        "n": "{{n}}",
        "refs": ["{{imageUrls}}"],
        "flag": "{{think}}",
        "nested": {"prompt": "Draw: {{prompt}}"},
    }
    rendered = render_json_template(template, {
        "messages": [{"role": "user", "content": "hi"}],
        "width": 1024,
        "height": 576,
        "n": 2,
        "imageUrls": ["a", "b"],
        "think": False,
        "prompt": None,
    })
    assert rendered == {
        "messages": [{"role": "user", "content": "hi"}],
        "size": "1024x576",
        "n": 2,
        "refs": [["a", "b"]],
        "flag": False,
        "nested": {"prompt": "Draw: "},
    }


def test_headers_are_strings_and_none_values_dropped():
    headers = render_headers(
        {"Authorization": "Bearer {{apiKey}}", "X-Trace": "{{trace}}", "X-Retries": "{{retries}}"},
        {"apiKey": "secret", "trace": None, "retries": 3},
    )
    assert headers == {"Authorization": "Bearer secret", "X-Retries": "3"}
