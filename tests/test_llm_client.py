from __future__ import annotations

import json

import httpx
import pytest

from mailsight.modules.llm import client as llm_client
from mailsight.modules.llm.client import LLMError, OpenAIChatClient
from mailsight.modules.llm.json_tools import parse_json_object


def _ok(content: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "model": "gpt-4o-mini",
            "choices": [{"message": {"content": content}, "finish_reason": "stop"}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 5},
        },
    )


def _client(handler, *, api_key: str | None = "sk-test", max_retries: int = 2) -> OpenAIChatClient:
    return OpenAIChatClient(
        api_key=api_key,
        base_url="https://llm.test/v1/",
        model="gpt-4o-mini",
        timeout_seconds=5,
        max_retries=max_retries,
        http=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def _complete(client: OpenAIChatClient) -> str:
    return client.complete_json(system="sys", prompt="hello", temperature=0.2, max_tokens=50)


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch):
    delays: list[float] = []
    monkeypatch.setattr(llm_client.time, "sleep", delays.append)
    return delays


def test_request_shape_and_content():
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return _ok('{"summary": "ok"}')

    assert _complete(_client(handler)) == '{"summary": "ok"}'

    request = requests[0]
    assert str(request.url) == "https://llm.test/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-test"
    payload = json.loads(request.content)
    assert payload["model"] == "gpt-4o-mini"
    assert payload["response_format"] == {"type": "json_object"}
    assert payload["max_tokens"] == 50
    assert [m["role"] for m in payload["messages"]] == ["system", "user"]


def test_retries_rate_limits(_no_sleep):
    statuses = [429, 503]

    def handler(request: httpx.Request) -> httpx.Response:
        if statuses:
            return httpx.Response(statuses.pop(0), json={"error": "busy"})
        return _ok("{}")

    assert _complete(_client(handler)) == "{}"
    assert _no_sleep == [0.5, 1.0]


def test_gives_up_after_max_retries():
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(500)

    with pytest.raises(LLMError):
        _complete(_client(handler, max_retries=1))
    assert len(calls) == 2


def test_client_errors_are_not_retried():
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(401, json={"error": "bad key"})

    with pytest.raises(LLMError, match="OpenAI request failed"):
        _complete(_client(handler))
    assert len(calls) == 1


def test_missing_api_key():
    with pytest.raises(LLMError, match="OPENAI_API_KEY"):
        _complete(_client(lambda request: _ok("{}"), api_key=None))


@pytest.mark.parametrize(
    "message",
    [{"content": None, "refusal": "I can't help with that."}, {"content": "  "}],
)
def test_refusal_or_empty_content(message):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": [{"message": message}]})

    with pytest.raises(LLMError):
        _complete(_client(handler))


def test_parse_json_object():
    assert parse_json_object('{"a": 1}') == {"a": 1}
    assert parse_json_object('Sure!\n```json\n{"a": {"b": 2}}\n```') == {"a": {"b": 2}}
    assert parse_json_object("no json here") is None
    assert parse_json_object("") is None
