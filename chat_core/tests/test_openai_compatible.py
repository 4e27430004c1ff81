import httpx
import pytest

from chat_core.domain.exceptions import ApiError, NetworkError, RateLimitError, ValidationError
from chat_core.domain.models import ChatMessage, GenerationResult, GenerationStatus, ResultKind
from chat_core.providers.openai_compatible import OpenAICompatibleGenerator
from chat_core.session import ChatSession


class SettingsStub:
    llm_api_key = "sk-test-1234567890"
    llm_base_url = "https://llm.example.com/v1/"
    llm_model = "test-model"
    llm_temperature = 0.2
    llm_stream = True
    http_timeout = 1.0


class CompleteSettingsStub(SettingsStub):
    llm_stream = False


HISTORY = [ChatMessage(role="system", content="sys"), ChatMessage(role="user", content="hi")]


class FakeResponse:
    def __init__(self, status_code=200, payload=None, lines=(), text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self._lines = list(lines)
        self.text = text

    def json(self):
        return self._payload

    async def aiter_lines(self):
        for line in self._lines:
            yield line

    async def aread(self):
        return self.text.encode("utf-8")


class StreamContext:
    def __init__(self, response):
        self._response = response

    async def __aenter__(self):
        return self._response

    async def __aexit__(self, *args):
        return False


def fake_client(response, captured=None, error=None):
    class Client:
        def __init__(self, *a, **kw):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def post(self, url, json=None, headers=None, **_):
            if error is not None:
                raise error
            if captured is not None:
                captured.update(url=url, payload=json, headers=headers)
            return response

        def stream(self, method, url, json=None, headers=None, **_):
            if error is not None:
                raise error
            if captured is not None:
                captured.update(method=method, url=url, payload=json, headers=headers)
            return StreamContext(response)

    return Client


async def drain(result: GenerationResult):
    return [part async for part in result.fragments]


@pytest.mark.asyncio
async def test_missing_api_key():
    class NoKey(SettingsStub):
        llm_api_key = None

    with pytest.raises(ValidationError) as exc:
        await OpenAICompatibleGenerator(NoKey())(HISTORY)
    assert exc.value.code == "MISSING_API_KEY"


@pytest.mark.asyncio
async def test_complete_response(monkeypatch):
    captured = {}
    resp = FakeResponse(payload={"choices": [{"message": {"role": "assistant", "content": "ok"}}]})
    monkeypatch.setattr("httpx.AsyncClient", fake_client(resp, captured))

    result = await OpenAICompatibleGenerator(CompleteSettingsStub())(HISTORY)

    assert result.kind is ResultKind.COMPLETE
    assert result.text == "ok"
    assert captured["url"] == "https://llm.example.com/v1/chat/completions"
    assert captured["payload"] == {
        "model": "test-model",
        "messages": [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}],
        "temperature": 0.2,
    }
    assert captured["headers"]["Authorization"] == "Bearer sk-test-1234567890"


@pytest.mark.asyncio
async def test_stream_response(monkeypatch):
    captured = {}
    lines = [
        'data: {"choices": [{"index": 0, "delta": {"role": "assistant"}}]}',
        "",
        'data: {"choices": [{"index": 0, "delta": {"content": "hel"}}]}',
        "data: not-json",
        'data: {"choices": [{"index": 0, "delta": {"content": "lo"}, "finish_reason": "stop"}]}',
        "data: [DONE]",
        'data: {"choices": [{"index": 0, "delta": {"content": "ignored"}}]}',
    ]
    monkeypatch.setattr("httpx.AsyncClient", fake_client(FakeResponse(lines=lines), captured))

    result = await OpenAICompatibleGenerator(SettingsStub())(HISTORY)

    assert result.kind is ResultKind.STREAM
    assert await drain(result) == ["hel", "lo"]
    assert captured["method"] == "POST"
    assert captured["payload"]["stream"] is True


@pytest.mark.asyncio
async def test_stream_rate_limit(monkeypatch):
    monkeypatch.setattr("httpx.AsyncClient", fake_client(FakeResponse(status_code=429)))
    result = await OpenAICompatibleGenerator(SettingsStub())(HISTORY)
    with pytest.raises(RateLimitError):
        await drain(result)


@pytest.mark.asyncio
async def test_stream_api_error(monkeypatch):
    monkeypatch.setattr("httpx.AsyncClient", fake_client(FakeResponse(status_code=500, text="server down")))
    result = await OpenAICompatibleGenerator(SettingsStub())(HISTORY)
    with pytest.raises(ApiError) as exc:
        await drain(result)
    assert exc.value.http_status == 500
    assert exc.value.message == "server down"


@pytest.mark.asyncio
async def test_complete_network_error(monkeypatch):
    error = httpx.ConnectError("connection refused")
    monkeypatch.setattr("httpx.AsyncClient", fake_client(FakeResponse(), error=error))
    with pytest.raises(NetworkError):
        await OpenAICompatibleGenerator(CompleteSettingsStub())(HISTORY)


@pytest.mark.asyncio
async def test_complete_without_choices(monkeypatch):
    monkeypatch.setattr("httpx.AsyncClient", fake_client(FakeResponse(payload={"choices": []})))
    with pytest.raises(ApiError) as exc:
        await OpenAICompatibleGenerator(CompleteSettingsStub())(HISTORY)
    assert exc.value.code == "EMPTY_CHOICES"


@pytest.mark.asyncio
async def test_session_with_streaming_provider(monkeypatch):
    lines = [
        'data: {"choices": [{"delta": {"content": "Hello"}}]}',
        'data: {"choices": [{"delta": {"content": "!"}}]}',
        "data: [DONE]",
    ]
    monkeypatch.setattr("httpx.AsyncClient", fake_client(FakeResponse(lines=lines)))
    session = ChatSession(OpenAICompatibleGenerator(SettingsStub()), system_prompt="You are terse.")

    outcome = await session.send_message("hi")

    assert outcome.status is GenerationStatus.COMPLETED
    assert [(m.role, m.content) for m in session.messages][-1] == ("assistant", "Hello!")


@pytest.mark.asyncio
async def test_session_rolls_back_on_provider_error(monkeypatch):
    monkeypatch.setattr("httpx.AsyncClient", fake_client(FakeResponse(status_code=429)))
    session = ChatSession(OpenAICompatibleGenerator(SettingsStub()))

    outcome = await session.send_message("hi")

    assert outcome.status is GenerationStatus.FAILED
    assert session.last_error.code == "RATE_LIMIT"
    assert [m.role for m in session.messages] == ["user"]
