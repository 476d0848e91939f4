"""AI provider abstraction layer.

Supports any OpenAI-compatible chat-completions endpoint (OpenAI itself or an
AI gateway) and Google Gemini behind one interface. Providers are plain
objects built by the process entrypoint and injected into the classifier.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from triage.services.http_service import RetryPolicy, request_with_retries

logger = logging.getLogger(__name__)

# Deadline for one chat call, retries and backoff included.
DEFAULT_TIMEOUT_SECONDS = 25.0


@dataclass
class ChatMessage:
    """A single message in a conversation."""

    role: str  # 'system', 'user', 'assistant'
    content: str


@dataclass
class ChatResponse:
    """Response from an AI provider."""

    content: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    model: str


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first(value: Any) -> Any:
    return value[0] if isinstance(value, list) and value else None


def _content_text(data: dict[str, Any]) -> str:
    """Pull the text out of a chat-completions style body; "{}" when there is none."""
    message = _as_dict(_as_dict(_first(data.get("choices"))).get("message"))
    content: Any = message.get("content")
    if not content:
        content = data.get("output_text") or data.get("content") or "{}"
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    return str(content)


class AIProvider(ABC):
    """Abstract base class for AI providers."""

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4000,
        json_mode: bool = False,
    ) -> ChatResponse:
        """
        Send a chat completion request.

        Raises httpx.HTTPError on failure and asyncio.TimeoutError once the
        provider deadline passes.
        """


class ChatCompletionsProvider(AIProvider):
    """OpenAI-compatible ``/chat/completions`` provider (OpenAI or a gateway)."""

    def __init__(
        self,
        api_key: str,
        *,
        endpoint: str = "https://api.openai.com/v1/chat/completions",
        default_model: str = "gpt-4o-mini",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.endpoint = endpoint
        self.default_model = default_model
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=1)
        self._transport = transport

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4000,
        json_mode: bool = False,
    ) -> ChatResponse:
        model = model or self.default_model
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        body: dict[str, Any] = {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            body["response_format"] = {"type": "json_object"}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await asyncio.wait_for(
                request_with_retries(
                    lambda: client.post(self.endpoint, headers=headers, json=body),
                    policy=self.retry_policy,
                ),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = _as_dict(response.json())

        usage = _as_dict(data.get("usage"))
        return ChatResponse(
            content=_content_text(data),
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
            model=model,
        )


class GeminiProvider(AIProvider):
    """Google Gemini API provider."""

    def __init__(
        self,
        api_key: str,
        *,
        default_model: str = "gemini-2.5-flash",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retry_policy: RetryPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = "https://generativelanguage.googleapis.com/v1beta"
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy(max_attempts=1)
        self._transport = transport

    async def chat(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float = 0.0,
        max_tokens: int = 4000,
        json_mode: bool = False,
    ) -> ChatResponse:
        model = model or self.default_model

        # Gemini uses 'user' and 'model' roles, system goes in systemInstruction
        system_instruction = None
        contents = []
        for msg in messages:
            if msg.role == "system":
                system_instruction = msg.content
            else:
                role = "model" if msg.role == "assistant" else "user"
                contents.append({"role": role, "parts": [{"text": msg.content}]})

        generation_config: dict[str, Any] = {
            "temperature": temperature,
            "maxOutputTokens": max_tokens,
        }
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        request_body: dict[str, Any] = {
            "contents": contents,
            "generationConfig": generation_config,
        }
        if system_instruction:
            request_body["systemInstruction"] = {"parts": [{"text": system_instruction}]}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await asyncio.wait_for(
                request_with_retries(
                    lambda: client.post(
                        f"{self.base_url}/models/{model}:generateContent",
                        params={"key": self.api_key},
                        headers={"Content-Type": "application/json"},
                        json=request_body,
                    ),
                    policy=self.retry_policy,
                ),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = _as_dict(response.json())

        candidate = _as_dict(_first(data.get("candidates")))
        part = _as_dict(_first(_as_dict(candidate.get("content")).get("parts")))
        text = part.get("text")
        usage = _as_dict(data.get("usageMetadata"))
        prompt_tokens = usage.get("promptTokenCount", 0)
        completion_tokens = usage.get("candidatesTokenCount", 0)
        return ChatResponse(
            content=text if isinstance(text, str) and text else "{}",
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            model=model,
        )


def get_provider(
    provider_name: str,
    api_key: str,
    *,
    model: str | None = None,
    endpoint: str | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    retry_policy: RetryPolicy | None = None,
) -> AIProvider:
    """Factory function to get the appropriate AI provider."""
    if provider_name == "gateway":
        if not endpoint:
            raise ValueError("AI gateway provider requires an endpoint URL")
        return ChatCompletionsProvider(
            api_key,
            endpoint=endpoint,
            default_model=model or "gemini-2.5-flash",
            timeout=timeout,
            retry_policy=retry_policy,
        )
    elif provider_name == "openai":
        return ChatCompletionsProvider(
            api_key,
            endpoint=endpoint or "https://api.openai.com/v1/chat/completions",
            default_model=model or "gpt-4o-mini",
            timeout=timeout,
            retry_policy=retry_policy,
        )
    elif provider_name == "gemini":
        return GeminiProvider(
            api_key,
            default_model=model or "gemini-2.5-flash",
            timeout=timeout,
            retry_policy=retry_policy,
        )
    else:
        raise ValueError(f"Unknown provider: {provider_name}")
