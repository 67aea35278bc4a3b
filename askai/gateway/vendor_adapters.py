"""Vendor-Specific Adapters — protocol-level handling for each AI backend.

Each adapter translates a NormalizedRequest into the vendor's HTTP protocol,
sends it, and returns a NormalizedResponse. Failures are raised as
ProviderError subclasses whose messages are safe to show to the end user.

Vendor-specific behaviors:
  - OpenAI: Chat Completions, system prompt as a synthetic first message, Bearer auth
  - Anthropic: Messages API, top-level "system" field, x-api-key auth, content blocks
  - Gemini: generateContent, model in the URL path, "parts" wrapping,
    assistant role renamed to "model", x-goog-api-key auth
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx

from askai.core.exceptions import (
    InvalidCredential,
    MalformedUpstreamResponse,
    RateLimitedUpstream,
    UpstreamError,
)
from askai.gateway.types import NormalizedRequest, NormalizedResponse, Provider, Role

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


class BaseVendorAdapter(ABC):
    """Base class for all vendor adapters.

    Subclasses describe the wire protocol (endpoint, auth headers, payload,
    response parsing); the HTTP exchange and the status-to-error mapping are
    shared so every backend fails the same way.
    """

    provider: Provider
    # Status-specific messages that replace the generic UpstreamError text
    status_messages: dict[int, str] = {}

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.provider.display_name

    @abstractmethod
    def endpoint(self, request: NormalizedRequest) -> str:
        """URL of the single POST for this request."""
        ...

    @abstractmethod
    def auth_headers(self, api_key: str) -> dict[str, str]: ...

    @abstractmethod
    def build_payload(self, request: NormalizedRequest) -> dict[str, Any]:
        """Translate the normalized request into the vendor JSON body."""
        ...

    @abstractmethod
    def parse_response(self, data: Any) -> NormalizedResponse:
        """Translate the vendor JSON body into a normalized response.

        May raise KeyError/IndexError/TypeError/ValueError on unexpected
        shapes; the caller maps those to MalformedUpstreamResponse.
        """
        ...

    async def chat(self, request: NormalizedRequest, api_key: str) -> NormalizedResponse:
        """Send one request and return the normalized response."""
        url = self.endpoint(request)
        payload = self.build_payload(request)
        headers = {**self.auth_headers(api_key), "Content-Type": "application/json"}
        start = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            logger.warning("%s request timed out after %.0fs", self.name, self.timeout)
            raise UpstreamError(f"{self.name} did not respond within {self.timeout:.0f}s. Please try again.") from e
        except httpx.HTTPError as e:
            logger.warning("%s request failed: %s", self.name, type(e).__name__)
            raise UpstreamError(f"Could not reach {self.name}. Please try again later.") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug("%s responded %d in %dms", self.name, resp.status_code, elapsed_ms)

        self.raise_for_status(resp.status_code)

        try:
            data = resp.json()
            return self.parse_response(data)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            logger.warning("%s returned an unexpected response shape: %s", self.name, type(e).__name__)
            raise MalformedUpstreamResponse(f"{self.name} returned a response that could not be read.") from e

    def raise_for_status(self, status_code: int) -> None:
        """Map HTTP status codes to the shared error classes."""
        if status_code < 400:
            return
        if status_code in (401, 403):
            raise InvalidCredential(
                f"Invalid {self.name} API key. Check your key with {self.provider.setkey_hint}"
            )
        if status_code == 429:
            raise RateLimitedUpstream(f"{self.name} rate limit exceeded. Please wait and try again.")
        message = self.status_messages.get(status_code, f"{self.name} returned error {status_code}.")
        raise UpstreamError(message, status_code=status_code)


def _usage_count(usage: dict, key: str) -> int:
    return int(usage.get(key) or 0)


# ---------------------------------------------------------------------------
# OpenAI Adapter
# ---------------------------------------------------------------------------


class OpenAIAdapter(BaseVendorAdapter):
    """OpenAI Chat Completions adapter."""

    provider = Provider.OPENAI
    api_url = "https://api.openai.com/v1/chat/completions"

    def endpoint(self, request: NormalizedRequest) -> str:
        return self.api_url

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    def build_payload(self, request: NormalizedRequest) -> dict[str, Any]:
        messages = []
        if request.has_system_prompt:
            messages.append({"role": Role.SYSTEM.value, "content": request.system_prompt})
        for msg in request.messages:
            messages.append({"role": msg.role, "content": msg.content})

        return {
            "model": request.model,
            "messages": messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

    def parse_response(self, data: Any) -> NormalizedResponse:
        choice = data["choices"][0]
        text = choice["message"]["content"] or ""
        if not isinstance(text, str):
            raise TypeError("message content is not a string")

        usage = data.get("usage") or {}
        return NormalizedResponse(
            text=text,
            prompt_tokens=_usage_count(usage, "prompt_tokens"),
            completion_tokens=_usage_count(usage, "completion_tokens"),
            finish_reason=choice.get("finish_reason") or "unknown",
        )


# ---------------------------------------------------------------------------
# Anthropic Adapter
# ---------------------------------------------------------------------------


class AnthropicAdapter(BaseVendorAdapter):
    """Anthropic Messages adapter: dedicated system field, content blocks."""

    provider = Provider.ANTHROPIC
    api_url = "https://api.anthropic.com/v1/messages"
    api_version = "2023-06-01"
    max_temperature = 1.0

    def endpoint(self, request: NormalizedRequest) -> str:
        return self.api_url

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"x-api-key": api_key, "anthropic-version": self.api_version}

    def build_payload(self, request: NormalizedRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": min(request.temperature, self.max_temperature),
        }
        if request.has_system_prompt:
            payload["system"] = request.system_prompt

        # System prompt travels in its own field; never send it twice
        payload["messages"] = [
            {"role": msg.role, "content": msg.content} for msg in request.messages if msg.role != Role.SYSTEM.value
        ]
        return payload

    def parse_response(self, data: Any) -> NormalizedResponse:
        content = data["content"]
        if not isinstance(content, list):
            raise TypeError("content is not a list of blocks")

        text_parts = [block["text"] for block in content if block.get("type") == "text"]

        usage = data.get("usage") or {}
        return NormalizedResponse(
            text="".join(text_parts),
            prompt_tokens=_usage_count(usage, "input_tokens"),
            completion_tokens=_usage_count(usage, "output_tokens"),
            finish_reason=data.get("stop_reason") or "unknown",
        )


# ---------------------------------------------------------------------------
# Gemini Adapter (Google AI)
# ---------------------------------------------------------------------------


class GeminiAdapter(BaseVendorAdapter):
    """Google Gemini adapter with SAFETY filter detection."""

    provider = Provider.GEMINI
    api_url_template = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
    status_messages = {
        400: "Gemini rejected the request. Check your model name and API key.",
    }

    def endpoint(self, request: NormalizedRequest) -> str:
        return self.api_url_template.format(model=quote(request.model, safe=""))

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"x-goog-api-key": api_key}

    def build_payload(self, request: NormalizedRequest) -> dict[str, Any]:
        # Gemini uses "user" and "model" roles; system prompt goes to systemInstruction
        contents = []
        for msg in request.messages:
            if msg.role == Role.SYSTEM.value:
                continue
            role = "model" if msg.role == Role.ASSISTANT.value else msg.role
            contents.append({"role": role, "parts": [{"text": msg.content}]})

        payload: dict[str, Any] = {
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": request.max_tokens,
                "temperature": request.temperature,
            },
        }
        if request.has_system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        return payload

    def parse_response(self, data: Any) -> NormalizedResponse:
        usage = data.get("usageMetadata") or {}
        prompt_tokens = _usage_count(usage, "promptTokenCount")
        completion_tokens = _usage_count(usage, "candidatesTokenCount")

        candidates = data.get("candidates") or []
        if not candidates:
            # No candidates: the prompt itself was blocked
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            if not block_reason:
                raise KeyError("candidates")
            return NormalizedResponse(
                text="",
                prompt_tokens=prompt_tokens,
                finish_reason=f"BLOCKED_{block_reason}",
            )

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason") or "UNKNOWN"

        if "content" not in candidate and finish_reason == "SAFETY":
            return NormalizedResponse(
                text="",
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                finish_reason=finish_reason,
            )

        parts = candidate["content"]["parts"]
        text_parts = [p["text"] for p in parts if "text" in p]

        return NormalizedResponse(
            text="".join(text_parts),
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            finish_reason=finish_reason,
        )


# ---------------------------------------------------------------------------
# Adapter table
# ---------------------------------------------------------------------------

ADAPTER_REGISTRY: dict[Provider, type[BaseVendorAdapter]] = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.ANTHROPIC: AnthropicAdapter,
    Provider.GEMINI: GeminiAdapter,
}
