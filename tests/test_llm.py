import httpx
import pytest

from grokker.http import RetryPolicy, is_transient, post_json
from grokker.llm import (
    ChatMessage,
    LLMClientError,
    OpenAIChatClient,
    TransientLLMError,
    UnknownModelError,
    select_model,
)


class _FakeResponse:
    def __init__(self, payload: object, *, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            request = httpx.Request("POST", "https://api.example.test/v1/chat/completions")
            response = httpx.Response(self.status_code, request=request)
            raise httpx.HTTPStatusError("request failed", request=request, response=response)

    def json(self) -> object:
        return self._payload


def _completion(content: str) -> dict[str, object]:
    return {
        "model": "gpt-3.5-turbo-0125",
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 3, "total_tokens": 15},
    }


def test_chat_client_sends_messages_and_parses_response(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, object] = {}

    def fake_post(url: str, *, json: dict[str, object], headers: dict[str, str], timeout: float) -> _FakeResponse:
        captured["url"] = url
        captured["json"] = json
        captured["timeout"] = timeout
        return _FakeResponse(_completion("forty-two"))

    monkeypatch.setattr("grokker.http.httpx.post", fake_post)

    client = OpenAIChatClient(
        base_url="https://api.example.test/v1",
        api_key="sk-test",
        default_model="gpt-3.5-turbo",
        timeout_seconds=9,
    )
    response = client.chat(
        [
            ChatMessage(role="system", content="You are a helpful assistant."),
            ChatMessage(role="user", content="What is the answer?"),
        ]
    )

    assert response.content == "forty-two"
    assert response.model == "gpt-3.5-turbo-0125"
    assert response.usage.total_tokens == 15
    assert captured["url"] == "https://api.example.test/v1/chat/completions"
    assert captured["json"] == {
        "model": "gpt-3.5-turbo",
        "messages": [
            {"role": "system", "content": "You are a helpful assistant."},
            {"role": "user", "content": "What is the answer?"},
        ],
    }
    assert captured["timeout"] == 9


def test_chat_client_model_override(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[object] = []

    def fake_post(url: str, *, json: dict[str, object], headers: dict[str, str], timeout: float) -> _FakeResponse:
        seen.append(json["model"])
        return _FakeResponse({"choices": [{"message": {"content": "ok"}}]})

    monkeypatch.setattr("grokker.http.httpx.post", fake_post)

    client = OpenAIChatClient(base_url="https://api.example.test/v1")
    response = client.chat([ChatMessage(role="user", content="hi")], model="gpt-4")

    assert seen == ["gpt-4"]
    assert response.model == "gpt-4"
    assert response.usage.total_tokens == 0


def test_chat_client_rejects_payload_without_choices(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "grokker.http.httpx.post",
        lambda url, *, json, headers, timeout: _FakeResponse({"choices": []}),
    )

    client = OpenAIChatClient(base_url="https://api.example.test/v1")

    with pytest.raises(LLMClientError, match="missing choices"):
        client.chat([ChatMessage(role="user", content="hi")])


def test_chat_client_maps_client_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "grokker.http.httpx.post",
        lambda url, *, json, headers, timeout: _FakeResponse({}, status_code=401),
    )

    client = OpenAIChatClient(base_url="https://api.example.test/v1")

    with pytest.raises(LLMClientError) as excinfo:
        client.chat([ChatMessage(role="user", content="hi")])

    assert not isinstance(excinfo.value, TransientLLMError)


def test_post_json_retries_transient_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    responses = [
        _FakeResponse({}, status_code=429),
        _FakeResponse({}, status_code=502),
        _FakeResponse(_completion("done")),
    ]
    delays: list[float] = []

    monkeypatch.setattr(
        "grokker.http.httpx.post",
        lambda url, *, json, headers, timeout: responses.pop(0),
    )
    monkeypatch.setattr("grokker.http.sleep", delays.append)
    monkeypatch.setattr("grokker.http.random", lambda: 0.0)

    payload = post_json(
        "https://api.example.test/v1/chat/completions",
        payload={},
        retry=RetryPolicy(max_retries=3, base_seconds=1.0, max_seconds=1.5),
    )

    assert payload["choices"]
    assert delays == [1.0, 1.5]


def test_post_json_does_not_retry_without_policy(monkeypatch: pytest.MonkeyPatch) -> None:
    attempts: list[int] = []

    def fake_post(url: str, *, json: dict[str, object], headers: dict[str, str], timeout: float) -> _FakeResponse:
        attempts.append(1)
        return _FakeResponse({}, status_code=503)

    monkeypatch.setattr("grokker.http.httpx.post", fake_post)

    with pytest.raises(httpx.HTTPStatusError):
        post_json("https://api.example.test/v1/embeddings", payload={})

    assert attempts == [1]


def test_post_json_rejects_non_object_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "grokker.http.httpx.post",
        lambda url, *, json, headers, timeout: _FakeResponse([1, 2, 3]),
    )

    with pytest.raises(ValueError, match="expected a JSON object"):
        post_json("https://api.example.test/v1/embeddings", payload={})


def test_is_transient_classification() -> None:
    request = httpx.Request("POST", "https://api.example.test")

    assert is_transient(httpx.ConnectTimeout("slow", request=request))
    assert is_transient(httpx.ConnectError("refused", request=request))
    assert not is_transient(
        httpx.HTTPStatusError(
            "bad", request=request, response=httpx.Response(400, request=request)
        )
    )


def test_select_model() -> None:
    assert select_model(" gpt-4 ") == "gpt-4"
    with pytest.raises(UnknownModelError, match="Unknown chat model"):
        select_model("gpt-0")
