import json
import sys
from pathlib import Path

import httpx
import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from services.ai.llm_provider import HuggingFaceRouterProvider, LLMMessage, parse_json_content
from utils.result import ErrorKind
from utils.retry import RetryableClient, RetryConfig, calculate_delay


def _completion(content: str, total_tokens: int = 12) -> dict:
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 8, "completion_tokens": 4, "total_tokens": total_tokens},
    }


def _provider(handler, **kwargs) -> HuggingFaceRouterProvider:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HuggingFaceRouterProvider(
        api_key="test-key",
        base_url="https://router.example/v1",
        primary_model="primary/model",
        backup_models=["backup/model"],
        retry_config=RetryConfig(max_attempts=1),
        http_client=http,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_chat_without_key_is_not_configured():
    provider = HuggingFaceRouterProvider(api_key=None)

    result = await provider.chat([LLMMessage(role="user", content="hi")])

    assert not result.ok
    assert result.kind == ErrorKind.NOT_CONFIGURED
    assert provider.config_summary()["hasApiKey"] is False


@pytest.mark.asyncio
async def test_chat_sends_openai_compatible_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion("ok"))

    result = await _provider(handler).chat([LLMMessage(role="user", content="Summarize")], temperature=0.2)

    assert result.ok
    assert result.value.content == "ok"
    assert result.value.model == "primary/model"
    assert result.value.usage.total_tokens == 12
    assert seen["url"] == "https://router.example/v1/chat/completions"
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"]["model"] == "primary/model"
    assert seen["body"]["messages"] == [{"role": "user", "content": "Summarize"}]
    assert seen["body"]["temperature"] == 0.2
    assert seen["body"]["stream"] is False


@pytest.mark.asyncio
async def test_chat_falls_back_to_backup_model():
    models = []

    def handler(request: httpx.Request) -> httpx.Response:
        model = json.loads(request.content)["model"]
        models.append(model)
        if model == "primary/model":
            return httpx.Response(503, json={"error": {"message": "model overloaded"}})
        return httpx.Response(200, json=_completion("from backup"))

    result = await _provider(handler).chat([LLMMessage(role="user", content="hi")])

    assert result.ok
    assert result.value.content == "from backup"
    assert result.source == "backup/model"
    assert models == ["primary/model", "backup/model"]


@pytest.mark.asyncio
async def test_chat_reports_last_error_when_all_models_fail():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "invalid token"})

    result = await _provider(handler).chat([LLMMessage(role="user", content="hi")])

    assert not result.ok
    assert result.status_code == 401
    assert "backup/model returned HTTP 401: invalid token" == result.message


@pytest.mark.asyncio
async def test_reply_without_choices_is_an_error():
    result = await _provider(lambda request: httpx.Response(200, json={"message": "queue full"})).chat(
        [LLMMessage(role="user", content="hi")]
    )
    assert not result.ok
    assert "queue full" in result.message


@pytest.mark.asyncio
async def test_connection_probe_reports_model_and_reply():
    provider = _provider(lambda request: httpx.Response(200, json=_completion("Assessing needs")))

    probe = await provider.test_connection()

    assert probe["success"] is True
    assert probe["model"] == "primary/model"
    assert probe["testResponse"] == "Assessing needs"


def test_parse_json_content_variants():
    assert parse_json_content('{"a": 1}') == {"a": 1}
    assert parse_json_content('```json\n{"a": 2}\n```') == {"a": 2}
    assert parse_json_content('<think>{"draft": true}</think>Here it is: {"a": 3} done') == {"a": 3}
    assert parse_json_content({"a": 4}) == {"a": 4}

    with pytest.raises(ValueError):
        parse_json_content("no json here")
    with pytest.raises(ValueError):
        parse_json_content("<think>only thoughts</think>")


def test_exponential_delay_is_capped():
    config = RetryConfig(base_delay=2.0, max_delay=10.0, backoff="exponential")
    assert [calculate_delay(i, config) for i in range(4)] == [2.0, 4.0, 8.0, 10.0]
    with pytest.raises(ValueError):
        RetryConfig(backoff="fibonacci")


@pytest.mark.asyncio
async def test_retryable_client_retries_server_errors(monkeypatch):
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    monkeypatch.setattr("utils.retry.asyncio.sleep", fake_sleep)
    responses = iter([httpx.Response(503), httpx.Response(200, json={"ok": True})])
    http = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: next(responses)))

    response = await RetryableClient(http, RetryConfig(max_attempts=3, base_delay=1.0)).get("https://x.example/")

    assert response.json() == {"ok": True}
    assert sleeps == [1.0]


@pytest.mark.asyncio
async def test_retryable_client_does_not_retry_client_errors():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(400)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    with pytest.raises(httpx.HTTPStatusError):
        await RetryableClient(http, RetryConfig(max_attempts=3)).get("https://x.example/")
    assert len(calls) == 1
