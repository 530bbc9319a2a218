"""Tests for npc_council.providers.openai: streaming and sync chat completions."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from npc_council.models import ConversationEntry, Scenario
from npc_council.providers import ProviderError
from npc_council.providers.openai import OpenAIProvider, response_format

SCENARIO = Scenario.model_validate({
    "id": "s1",
    "disclaimer": "架空の会議です。",
    "members": [{"id": "commander", "name": "司令官"}, {"id": "drone", "name": "操縦者"}],
})


def _sse(*payloads) -> bytes:
    frames = []
    for p in payloads:
        data = p if isinstance(p, str) else json.dumps(p, ensure_ascii=False)
        frames.append(f"data: {data}\n\n")
    return "".join(frames).encode("utf-8")


def _chunk(text: str) -> dict:
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def _mock_response(body: dict, status: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = body
    resp.raise_for_status = MagicMock(
        side_effect=None if status < 400 else httpx.HTTPStatusError(
            "", request=MagicMock(), response=resp
        )
    )
    return resp


async def _collect(stream) -> list[str]:
    return [fragment async for fragment in stream]


class Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response | Exception) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    @property
    def body(self) -> dict:
        return json.loads(self.requests[-1].content)


def _provider(handler, **kwargs) -> OpenAIProvider:
    kwargs.setdefault("api_key", "sk-test")
    return OpenAIProvider(
        base_url="https://api.test/v1", transport=httpx.MockTransport(handler), **kwargs
    )


# ---------------------------------------------------------------------------
# Request shape
# ---------------------------------------------------------------------------

class TestOpenAIRequest:
    def test_build_messages_starts_with_instruction(self) -> None:
        provider = OpenAIProvider(api_key="k")
        history = [ConversationEntry(role="user", who="user", content="状況は？")]
        messages = provider.build_messages(SCENARIO.member("commander"), SCENARIO, history)

        assert messages[0]["role"] == "system"
        assert "next_speaker" in messages[0]["content"]
        assert messages[1] == {"role": "system", "content": "架空の会議です。"}
        assert messages[-1] == {"role": "user", "content": "userの発言：状況は？"}
        assert all(set(m) == {"role", "content"} for m in messages)

    def test_response_format_is_strict_json_schema(self) -> None:
        fmt = response_format(SCENARIO)
        assert fmt["type"] == "json_schema"
        assert fmt["json_schema"]["strict"] is True
        schema = fmt["json_schema"]["schema"]
        assert "$schema" not in schema
        assert "title" not in schema
        assert schema["properties"]["next_speaker"]["pattern"] == "^(commander|drone)$"

    async def test_stream_request(self) -> None:
        recorder = Recorder(httpx.Response(200, content=_sse(_chunk("x"), "[DONE]")))
        provider = _provider(recorder)

        await _collect(provider.call_stream([{"role": "user", "content": "hi"}], scenario=SCENARIO))

        request = recorder.requests[0]
        assert str(request.url) == "https://api.test/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = recorder.body
        assert body["model"] == "gpt-5-mini"
        assert body["stream"] is True
        assert body["reasoning_effort"] == "low"
        assert body["messages"] == [{"role": "user", "content": "hi"}]
        assert body["response_format"]["json_schema"]["name"] == "NextTurnDirective"

    async def test_per_call_model_and_effort(self) -> None:
        recorder = Recorder(httpx.Response(200, content=_sse("[DONE]")))
        provider = _provider(recorder)

        await _collect(provider.call_stream([], model="gpt-x", reasoning_effort="high"))

        assert recorder.body["model"] == "gpt-x"
        assert recorder.body["reasoning_effort"] == "high"

    async def test_effort_omitted_when_unset(self) -> None:
        recorder = Recorder(httpx.Response(200, content=_sse("[DONE]")))
        provider = _provider(recorder, reasoning_effort="")

        await _collect(provider.call_stream([]))

        assert "reasoning_effort" not in recorder.body

    async def test_missing_api_key(self) -> None:
        recorder = Recorder(httpx.Response(200, content=_sse("[DONE]")))
        provider = _provider(recorder, api_key="")

        with pytest.raises(ProviderError, match="OPENAI_API_KEY is not set"):
            await _collect(provider.call_stream([]))
        assert recorder.requests == []


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

class TestOpenAIStream:
    async def test_yields_delta_content(self) -> None:
        body = _sse(
            {"choices": [{"index": 0, "delta": {"role": "assistant"}}]},
            _chunk('{"utter'),
            _chunk('ance":"了解"'),
            {"choices": []},
            _chunk(',"next_speaker":"drone"}'),
            "[DONE]",
        )
        provider = _provider(Recorder(httpx.Response(200, content=body)))

        fragments = await _collect(provider.call_stream([]))

        assert fragments == ['{"utter', 'ance":"了解"', ',"next_speaker":"drone"}']

    async def test_stops_at_done(self) -> None:
        body = _sse(_chunk("a"), "[DONE]", _chunk("b"))
        provider = _provider(Recorder(httpx.Response(200, content=body)))
        assert await _collect(provider.call_stream([])) == ["a"]

    async def test_http_error_carries_status(self) -> None:
        provider = _provider(Recorder(httpx.Response(500, text="upstream exploded")))

        with pytest.raises(ProviderError, match="HTTP 500") as exc:
            await _collect(provider.call_stream([]))
        assert exc.value.status == 500
        assert exc.value.body == "upstream exploded"

    async def test_connect_error(self) -> None:
        provider = _provider(Recorder(httpx.ConnectError("refused")))
        with pytest.raises(ProviderError, match="Cannot connect to OpenAI"):
            await _collect(provider.call_stream([]))

    async def test_read_timeout(self) -> None:
        provider = _provider(Recorder(httpx.ReadTimeout("slow")))
        with pytest.raises(ProviderError, match="timed out"):
            await _collect(provider.call_stream([]))

    async def test_malformed_chunk(self) -> None:
        provider = _provider(Recorder(httpx.Response(200, content=_sse("{not json"))))
        with pytest.raises(ProviderError, match="Malformed stream chunk"):
            await _collect(provider.call_stream([]))

    @pytest.mark.parametrize("chunk", [
        {"choices": [{"delta": "oops"}]},
        {"choices": ["oops"]},
        {"choices": {"delta": {}}},
        {"choices": [{"delta": {"content": 5}}]},
    ])
    async def test_wrong_shape_chunk(self, chunk) -> None:
        provider = _provider(Recorder(httpx.Response(200, content=_sse(chunk))))
        with pytest.raises(ProviderError, match="Malformed stream chunk from OpenAI") as exc:
            await _collect(provider.call_stream([]))
        assert exc.value.body == json.dumps(chunk)

    async def test_error_chunk(self) -> None:
        body = _sse({"error": {"message": "quota exceeded"}})
        provider = _provider(Recorder(httpx.Response(200, content=body)))
        with pytest.raises(ProviderError, match="quota exceeded"):
            await _collect(provider.call_stream([]))

    async def test_empty_body(self) -> None:
        provider = _provider(Recorder(httpx.Response(200, content=b"")))
        with pytest.raises(ProviderError, match="empty response body"):
            await _collect(provider.call_stream([]))


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------

class TestOpenAISync:
    @pytest.fixture
    def provider(self) -> OpenAIProvider:
        return OpenAIProvider(api_key="sk-test", base_url="https://api.test/v1/")

    async def test_happy_path(self, provider: OpenAIProvider) -> None:
        body = {"choices": [{"message": {"content": '{"utterance":"了解","next_speaker":"drone"}'}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            result = await provider.call_sync([], scenario=SCENARIO)
        assert result == '{"utterance":"了解","next_speaker":"drone"}'

    async def test_posts_to_correct_url(self, provider: OpenAIProvider) -> None:
        body = {"choices": [{"message": {"content": "ok"}}]}
        mock_post = AsyncMock(return_value=_mock_response(body))
        with patch("httpx.AsyncClient.post", mock_post):
            await provider.call_sync([])
        assert mock_post.call_args[0][0] == "https://api.test/v1/chat/completions"
        assert "stream" not in mock_post.call_args.kwargs["json"]

    async def test_http_error(self, provider: OpenAIProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({}, status=503))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderError, match="HTTP 503"):
                await provider.call_sync([])

    async def test_malformed_response(self, provider: OpenAIProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"unexpected": "format"}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderError, match="Unexpected response format"):
                await provider.call_sync([])

    async def test_empty_content(self, provider: OpenAIProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"choices": [{"message": {"content": None}}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderError, match="No text returned"):
                await provider.call_sync([])

    async def test_non_string_content(self, provider: OpenAIProvider) -> None:
        mock_post = AsyncMock(return_value=_mock_response({"choices": [{"message": {"content": ["x"]}}]}))
        with patch("httpx.AsyncClient.post", mock_post):
            with pytest.raises(ProviderError, match="Unexpected response format"):
                await provider.call_sync([])
