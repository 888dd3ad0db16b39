"""
Hugging Face router chat completions (OpenAI-compatible API).

The router exposes many hosted models behind one ``/chat/completions``
endpoint. Requests go to the primary model first; when it keeps failing
after retries, the backup models are tried in order.

Usage:
    provider = HuggingFaceRouterProvider(api_key="hf_...")
    result = await provider.chat(
        [LLMMessage(role="user", content="Summarize the situation")],
        temperature=0.3,
    )
    if result.ok:
        print(result.value.content)
"""

from __future__ import annotations

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from utils.logger import ai_logger as logger
from utils.result import Err, ErrorKind, Ok, Result
from utils.retry import RetryableClient, RetryConfig


DEFAULT_BASE_URL = "https://router.huggingface.co/v1"
DEFAULT_MODEL = "deepseek-ai/DeepSeek-R1"
DEFAULT_BACKUP_MODELS = ("Qwen/Qwen2.5-7B-Instruct", "meta-llama/Llama-3.3-70B-Instruct")

_PROBE_PROMPT = "What is humanitarian crisis assessment?"


# ==================== DATA CLASSES ====================


@dataclass
class LLMMessage:
    """A single message in a chat conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class TokenUsage:
    input_tokens: int
    output_tokens: int
    total_tokens: int


@dataclass
class LLMResponse:
    """Response from the chat completions endpoint."""

    content: str
    usage: Optional[TokenUsage] = None
    model: str = ""
    latency_ms: int = 0


# ==================== HELPERS ====================


def _safe_response_json(response: httpx.Response) -> Any:
    """Return parsed response JSON, or an empty dict when parsing fails."""
    try:
        return response.json()
    except ValueError:
        return {}


def _extract_error_message(data: Any, fallback: str) -> str:
    """Extract a readable API error message from varied payload formats."""
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict):
            for key in ("message", "detail"):
                value = error.get(key)
                if isinstance(value, str) and value.strip():
                    return value.strip()
            return json.dumps(error)
        if isinstance(error, str) and error.strip():
            return error.strip()
        for key in ("message", "detail"):
            value = data.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return (fallback or "").strip() or "Unknown error"


def parse_json_content(text: Any) -> dict[str, Any]:
    """Parse the JSON object in a model reply.

    Handles ```json fences, reasoning text around the object and
    ``<think>`` blocks emitted by reasoning models. Raises ``ValueError``
    when no JSON object can be recovered.
    """
    if isinstance(text, dict):
        return text
    raw = str(text or "").strip()
    raw = re.sub(r"<think>[\s\S]*?</think>", "", raw, flags=re.IGNORECASE).strip()
    if not raw:
        raise ValueError("LLM returned empty content")

    candidates = [raw]
    fenced = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", raw, flags=re.IGNORECASE)
    if fenced:
        candidates.append(fenced.group(1).strip())
    start = raw.find("{")
    end = raw.rfind("}")
    if start != -1 and end > start:
        candidates.append(raw[start : end + 1])

    last_error: Optional[Exception] = None
    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError as exc:
            last_error = exc
            continue
        if isinstance(parsed, dict):
            return parsed
    raise ValueError(f"LLM returned invalid JSON: {last_error}")


def json_section(payload: Any, key: str) -> dict[str, Any]:
    """``payload[key]`` when the model sent an object there, else ``{}``."""
    value = payload.get(key) if isinstance(payload, dict) else None
    return value if isinstance(value, dict) else {}


def json_list(payload: Any, key: str) -> list[Any]:
    """``payload[key]`` as a list; a lone string becomes a one-item list."""
    value = payload.get(key) if isinstance(payload, dict) else None
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value.strip():
        return [value]
    return []


# ==================== PROVIDER ====================


class HuggingFaceRouterProvider:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        primary_model: str = DEFAULT_MODEL,
        backup_models: Optional[list[str]] = None,
        timeout: float = 60.0,
        retry_config: Optional[RetryConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.primary_model = primary_model
        self.backup_models = list(DEFAULT_BACKUP_MODELS if backup_models is None else backup_models)
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig(
            max_attempts=3, base_delay=2.0, backoff="exponential"
        )
        self._http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _build_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def _post_completion(self, client: httpx.AsyncClient, payload: dict[str, Any]) -> LLMResponse:
        started = time.monotonic()
        response = await RetryableClient(client, self.retry_config).post(
            f"{self.base_url}/chat/completions",
            headers=self._build_headers(),
            json=payload,
        )
        data = _safe_response_json(response)
        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ValueError(_extract_error_message(data, "response has no choices"))

        message = choices[0].get("message") or {}
        usage_data = data.get("usage") or {}
        return LLMResponse(
            content=message.get("content") or "",
            usage=TokenUsage(
                input_tokens=usage_data.get("prompt_tokens", 0),
                output_tokens=usage_data.get("completion_tokens", 0),
                total_tokens=usage_data.get("total_tokens", 0),
            ),
            model=payload["model"],
            latency_ms=int((time.monotonic() - started) * 1000),
        )

    def _models_to_try(self, model: Optional[str]) -> list[str]:
        first = model or self.primary_model
        ordered = [first]
        for candidate in [self.primary_model, *self.backup_models]:
            if candidate not in ordered:
                ordered.append(candidate)
        return ordered

    async def chat(
        self,
        messages: list[LLMMessage],
        model: Optional[str] = None,
        temperature: float = 0.3,
        max_tokens: int = 2048,
        top_p: float = 0.9,
    ) -> Result[LLMResponse]:
        """Run a chat completion, falling back across models."""
        if not self.configured:
            return Err(ErrorKind.NOT_CONFIGURED, "Missing HUGGINGFACE_API_KEY")

        payload: dict[str, Any] = {
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
            "top_p": top_p,
            "stream": False,
        }

        last_error: Optional[Err] = None
        for candidate in self._models_to_try(model):
            try:
                if self._http_client is not None:
                    response = await self._post_completion(self._http_client, {**payload, "model": candidate})
                else:
                    async with httpx.AsyncClient(timeout=self.timeout) as client:
                        response = await self._post_completion(client, {**payload, "model": candidate})
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                message = _extract_error_message(_safe_response_json(e.response), e.response.text)
                last_error = Err(
                    ErrorKind.UPSTREAM_UNAVAILABLE,
                    f"{candidate} returned HTTP {status}: {message}",
                    status_code=status,
                )
            except (httpx.HTTPError, ValueError) as e:
                last_error = Err(ErrorKind.UPSTREAM_UNAVAILABLE, f"{candidate} request failed: {e}")
            else:
                if candidate != (model or self.primary_model):
                    logger.info("Fallback model succeeded", model=candidate)
                logger.info(
                    "LLM call complete",
                    model=candidate,
                    latency_ms=response.latency_ms,
                    tokens=response.usage.total_tokens if response.usage else 0,
                )
                return Ok(response, source=candidate)

            logger.warning("LLM call failed", model=candidate, error=last_error.message)

        return last_error or Err(ErrorKind.UPSTREAM_UNAVAILABLE, "No models available")

    async def test_connection(self) -> dict[str, Any]:
        """Short probe against the primary model."""
        started = time.monotonic()
        if not self.configured:
            return {"success": False, "error": "Missing HUGGINGFACE_API_KEY", "responseTime": 0}

        result = await self.chat(
            [LLMMessage(role="user", content=_PROBE_PROMPT)],
            model=self.primary_model,
            temperature=0.7,
            max_tokens=50,
        )
        elapsed = int((time.monotonic() - started) * 1000)
        if not result.ok:
            logger.error("Model connection failed", error=result.message, response_time_ms=elapsed)
            return {"success": False, "error": result.message, "responseTime": elapsed}
        return {
            "success": True,
            "model": result.value.model,
            "responseTime": elapsed,
            "testResponse": result.value.content or "Success",
        }

    def config_summary(self) -> dict[str, Any]:
        return {
            "hasApiKey": self.configured,
            "baseURL": self.base_url,
            "primaryModel": self.primary_model,
            "backupModels": list(self.backup_models),
            "timeout": self.timeout,
        }
