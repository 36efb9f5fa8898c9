"""Chat model providers speaking the OpenAI-compatible and Anthropic HTTP APIs."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, TypeVar

import aiohttp

from agent.config import ProviderSettings
from agent.exceptions import (
    ConfigError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
    ProviderResponseError,
)
from agent.messages import Message, ModelResponse, ToolCall, new_id
from tools.base_tool import ToolDefinition
from tools.formats import to_anthropic_tools, to_openai_tools

T = TypeVar("T")

logger = logging.getLogger(__name__)

_RETRY_STATUSES = (429, 500, 502, 503, 504)


class _RetryableStatus(Exception):
    def __init__(self, status: int, body: str):
        super().__init__(f"HTTP {status}: {body[:200]}")
        self.status = status
        self.body = body


class ChatProvider(ABC):
    """A chat model that can be offered tools.

    The tool-call loop depends only on ``invoke``; each subclass maps the
    canonical conversation onto its provider's wire format and parses the
    reply back into a ``ModelResponse``.
    """

    name: str = ""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        settings: ProviderSettings | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.settings = settings or ProviderSettings()

    @abstractmethod
    async def invoke(
        self,
        conversation: list[Message],
        tools: list[ToolDefinition],
    ) -> ModelResponse:
        ...

    async def _post_json(self, url: str, headers: dict[str, str], payload: dict) -> dict:
        async def _request() -> dict:
            async with aiohttp.ClientSession(timeout=self._timeout()) as session:
                async with session.post(url, json=payload, headers=headers) as resp:
                    if resp.status in (401, 403):
                        body = await resp.text()
                        raise ProviderAuthError(
                            f"{self.name} rejected the API key (HTTP {resp.status}): {body[:200]}",
                            status=resp.status,
                        )
                    if resp.status in _RETRY_STATUSES:
                        raise _RetryableStatus(resp.status, await resp.text())
                    if resp.status != 200:
                        body = await resp.text()
                        raise ProviderError(
                            f"{self.name} request failed (HTTP {resp.status}): {body[:500]}",
                            status=resp.status,
                        )
                    try:
                        return await resp.json(content_type=None)
                    except (json.JSONDecodeError, aiohttp.ContentTypeError) as e:
                        raise ProviderResponseError(f"{self.name} returned invalid JSON: {e}") from e

        started = time.monotonic()
        data = await self._with_retry("chat", _request)
        logger.info(
            "%s %s answered in %.0f ms",
            self.name, self.model, (time.monotonic() - started) * 1000,
        )
        if not isinstance(data, dict):
            raise ProviderResponseError(f"{self.name} returned an unexpected body")
        return data

    def _timeout(self) -> aiohttp.ClientTimeout:
        """Build a client timeout configuration from settings."""
        return aiohttp.ClientTimeout(
            total=None,
            connect=self.settings.connect_timeout,
            sock_connect=self.settings.connect_timeout,
            sock_read=self.settings.read_timeout,
        )

    async def _with_retry(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run an async operation with exponential backoff retries."""
        delay = 1.0
        last_error: Exception | None = None
        max_retries = self.settings.max_retries
        for attempt in range(1, max_retries + 1):
            try:
                return await func()
            except (aiohttp.ClientError, asyncio.TimeoutError, _RetryableStatus) as e:
                last_error = e
                logger.warning(
                    "%s %s attempt %d/%d failed: %s", self.name, operation, attempt, max_retries, e
                )
                if attempt >= max_retries:
                    break
                await asyncio.sleep(delay)
                delay *= 2

        if isinstance(last_error, _RetryableStatus):
            if last_error.status == 429:
                raise ProviderRateLimitError(
                    f"{self.name} rate limit exceeded after {max_retries} attempt(s)",
                    status=429,
                )
            raise ProviderError(
                f"{self.name} {operation} failed after {max_retries} attempt(s): {last_error}",
                status=last_error.status,
            )
        details = f"{last_error}" if last_error else "unknown error"
        raise ProviderError(
            f"Cannot connect to {self.name} at {self.base_url} during {operation} "
            f"(after {max_retries} attempt(s)): {details}"
        )


class OpenAICompatibleProvider(ChatProvider):
    """OpenAI chat completions, also used for custom OpenAI-compatible endpoints."""

    name = "openai"

    async def invoke(self, conversation: list[Message], tools: list[ToolDefinition]) -> ModelResponse:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self.format_messages(conversation),
            "temperature": self.settings.temperature,
            "max_tokens": self.settings.max_tokens,
        }
        if tools:
            payload["tools"] = to_openai_tools(tools)

        headers = {"Authorization": f"Bearer {self.api_key}"}
        data = await self._post_json(f"{self.base_url}/chat/completions", headers, payload)
        return self.parse_response(data)

    @staticmethod
    def format_messages(conversation: list[Message]) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for msg in conversation:
            if msg.role == "tool":
                for entry in _tool_outputs(msg):
                    out.append({
                        "role": "tool",
                        "tool_call_id": entry["tool_call_id"],
                        "content": json.dumps(entry["output"]),
                    })
            elif msg.role == "assistant" and msg.tool_calls:
                out.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.tool_name,
                                "arguments": json.dumps(tc.parameters),
                            },
                        }
                        for tc in msg.tool_calls
                    ],
                })
            else:
                out.append({"role": msg.role, "content": msg.content})
        return out

    @staticmethod
    def parse_response(data: dict) -> ModelResponse:
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderResponseError(f"openai response has no message: {e}") from e

        tool_calls = []
        for raw in message.get("tool_calls") or []:
            function = raw.get("function") or {}
            tool_calls.append(ToolCall(
                id=raw.get("id") or new_id("call_"),
                tool_name=function.get("name", ""),
                parameters=_decode_arguments(function.get("arguments")),
            ))

        usage = data.get("usage") or {}
        content = message.get("content")
        return ModelResponse(
            content=content if isinstance(content, str) else "",
            tool_calls=tool_calls,
            id=data.get("id"),
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
        )


class AnthropicProvider(ChatProvider):
    """Anthropic messages API."""

    name = "anthropic"

    async def invoke(self, conversation: list[Message], tools: list[ToolDefinition]) -> ModelResponse:
        system, messages = self.format_messages(conversation)
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.settings.max_tokens,
            "temperature": self.settings.temperature,
        }
        if system:
            payload["system"] = system
        if tools:
            payload["tools"] = to_anthropic_tools(tools)

        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.settings.anthropic_version,
        }
        data = await self._post_json(f"{self.base_url}/v1/messages", headers, payload)
        return self.parse_response(data)

    @staticmethod
    def format_messages(conversation: list[Message]) -> tuple[str, list[dict[str, Any]]]:
        """Split out the system prompt and merge consecutive same-role turns."""
        system_parts: list[str] = []
        out: list[dict[str, Any]] = []

        def _append(role: str, blocks: list[dict[str, Any]]) -> None:
            if not blocks:
                return
            if out and out[-1]["role"] == role:
                out[-1]["content"].extend(blocks)
            else:
                out.append({"role": role, "content": blocks})

        for msg in conversation:
            if msg.role == "system":
                system_parts.append(msg.content)
            elif msg.role == "tool":
                _append("user", [
                    {
                        "type": "tool_result",
                        "tool_use_id": entry["tool_call_id"],
                        "content": json.dumps(entry["output"]),
                        "is_error": not _output_succeeded(entry["output"]),
                    }
                    for entry in _tool_outputs(msg)
                ])
            else:
                blocks: list[dict[str, Any]] = []
                if msg.content:
                    blocks.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls if msg.role == "assistant" else ():
                    blocks.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.tool_name,
                        "input": tc.parameters,
                    })
                _append(msg.role, blocks)

        return "\n\n".join(p for p in system_parts if p), out

    @staticmethod
    def parse_response(data: dict) -> ModelResponse:
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise ProviderResponseError("anthropic response has no content blocks")

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in blocks:
            if not isinstance(block, dict):
                raise ProviderResponseError(f"anthropic content block is not an object: {block!r}")
            if block.get("type") == "text":
                text_parts.append(block.get("text", ""))
            elif block.get("type") == "tool_use":
                tool_input = block.get("input")
                tool_calls.append(ToolCall(
                    id=block.get("id") or new_id("toolu_"),
                    tool_name=block.get("name", ""),
                    parameters=tool_input if isinstance(tool_input, dict) else {},
                ))

        usage = data.get("usage") or {}
        return ModelResponse(
            content="".join(text_parts),
            tool_calls=tool_calls,
            id=data.get("id"),
            prompt_tokens=usage.get("input_tokens", 0),
            completion_tokens=usage.get("output_tokens", 0),
        )


def create_provider(
    provider: str,
    api_key: str,
    model: str | None,
    base_url: str | None,
    settings: ProviderSettings,
) -> ChatProvider:
    """Build the provider client for a session's configuration."""
    model = model or settings.default_models.get(provider)
    if provider in ("openai", "custom"):
        url = base_url or settings.default_base_urls.get("openai")
        if provider == "custom" and not base_url:
            raise ConfigError("custom provider requires a baseURL")
        client = OpenAICompatibleProvider(api_key, model, url, settings)
        client.name = provider
        return client
    if provider == "anthropic":
        url = base_url or settings.default_base_urls.get("anthropic")
        return AnthropicProvider(api_key, model, url, settings)
    raise ConfigError(f"Unsupported provider: {provider!r}")


def _decode_arguments(arguments: Any) -> dict:
    if isinstance(arguments, dict):
        return arguments
    if not arguments:
        return {}
    try:
        decoded = json.loads(arguments)
    except (TypeError, json.JSONDecodeError):
        logger.warning("Discarding undecodable tool arguments: %r", arguments)
        return {}
    return decoded if isinstance(decoded, dict) else {}


def _tool_outputs(msg: Message) -> list[dict[str, Any]]:
    """Decode the canonical tool-result turn: ``[{"tool_call_id", "output"}]``."""
    try:
        entries = json.loads(msg.content)
    except json.JSONDecodeError as e:
        raise ProviderResponseError(f"Malformed tool result turn: {e}") from e
    return [e for e in entries if isinstance(e, dict) and "tool_call_id" in e]


def _output_succeeded(output: Any) -> bool:
    return isinstance(output, dict) and bool(output.get("success"))
