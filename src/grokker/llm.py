from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Protocol

import httpx

from grokker.http import RetryPolicy, is_transient, post_json

LOGGER = logging.getLogger(__name__)

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

# context window, in tokens
CHAT_MODELS: dict[str, int] = {
    "gpt-3.5-turbo": 16385,
    "gpt-4": 8192,
    "gpt-4-turbo": 128000,
    "gpt-4o": 128000,
    "gpt-4o-mini": 128000,
}
DEFAULT_CHAT_MODEL = "gpt-3.5-turbo"


class LLMClientError(RuntimeError):
    pass


class TransientLLMError(LLMClientError):
    pass


class UnknownModelError(ValueError):
    pass


def select_model(name: str) -> str:
    normalized = name.strip()
    if normalized not in CHAT_MODELS:
        raise UnknownModelError(
            f"Unknown chat model: {name!r} (known: {', '.join(sorted(CHAT_MODELS))})"
        )
    return normalized


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    def as_payload(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ChatUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


@dataclass(frozen=True)
class ChatResponse:
    content: str
    model: str
    usage: ChatUsage = field(default_factory=ChatUsage)


class ChatClient(Protocol):
    def chat(self, messages: list[ChatMessage], *, model: str | None = None) -> ChatResponse: ...


class OpenAIChatClient:
    def __init__(
        self,
        *,
        base_url: str,
        api_key: str = "",
        default_model: str = DEFAULT_CHAT_MODEL,
        timeout_seconds: float = 60.0,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._default_model = default_model
        self._timeout_seconds = timeout_seconds
        self._retry = retry or RetryPolicy()

    def chat(self, messages: list[ChatMessage], *, model: str | None = None) -> ChatResponse:
        resolved_model = model or self._default_model
        LOGGER.debug("chat: model=%s messages=%d", resolved_model, len(messages))

        try:
            payload = post_json(
                f"{self._base_url}/chat/completions",
                payload={
                    "model": resolved_model,
                    "messages": [message.as_payload() for message in messages],
                },
                api_key=self._api_key,
                timeout_seconds=self._timeout_seconds,
                retry=self._retry,
            )
        except httpx.HTTPError as exc:
            if is_transient(exc):
                raise TransientLLMError(str(exc)) from exc
            raise LLMClientError(str(exc)) from exc
        except ValueError as exc:
            raise LLMClientError(str(exc)) from exc

        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise LLMClientError("Invalid chat completion payload: missing choices")

        message = choices[0].get("message") if isinstance(choices[0], dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise LLMClientError("Invalid chat completion payload: missing assistant content")

        usage = _parse_usage(payload.get("usage"))
        if usage.total_tokens:
            total_chars = sum(len(item.content) for item in messages) + len(content)
            LOGGER.debug(
                "total tokens: %d  char/token ratio: %.1f",
                usage.total_tokens,
                total_chars / usage.total_tokens,
            )

        model_name = payload.get("model")
        return ChatResponse(
            content=content,
            model=model_name if isinstance(model_name, str) else resolved_model,
            usage=usage,
        )


def _parse_usage(raw: object) -> ChatUsage:
    if not isinstance(raw, dict):
        return ChatUsage()

    def _count(key: str) -> int:
        value = raw.get(key)
        return value if isinstance(value, int) and not isinstance(value, bool) else 0

    return ChatUsage(
        prompt_tokens=_count("prompt_tokens"),
        completion_tokens=_count("completion_tokens"),
        total_tokens=_count("total_tokens"),
    )
