"""
Chat Completions adapters for OpenAI-compatible text providers.

OpenRouter and Mistral both speak the OpenAI Chat Completions dialect and
differ only in endpoint, headers and default model. The built-in OpenAI
adapter in ``openai.py`` derives from the same base.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..logging_config import get_logger
from .base import EMPTY_COMPLETION, LLMComponent, LLMRequest, LLMResponse, Usage

logger = get_logger(__name__)


def _make_http_headers(api_key: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "User-Agent": "VoiceHub/1.0",
    }


def parse_chat_completion(data: Dict[str, Any], *, provider: str, fallback_model: str) -> LLMResponse:
    """Normalize a Chat Completions response body."""
    choices = data.get("choices") or []
    message = (choices[0] or {}).get("message") if choices else None
    content = (message or {}).get("content") or EMPTY_COMPLETION
    usage_data = data.get("usage")
    usage = None
    if isinstance(usage_data, dict):
        usage = Usage(
            prompt_tokens=usage_data.get("prompt_tokens") or 0,
            completion_tokens=usage_data.get("completion_tokens") or 0,
        )
    return LLMResponse(
        content=content,
        usage=usage,
        model=data.get("model") or fallback_model,
        provider=provider,
    )


class ChatCompletionsLLMAdapter(LLMComponent):
    """Shared request/response handling for Chat Completions endpoints."""

    def _endpoint(self) -> str:
        return self._provider_defaults.base_url

    def _default_model(self) -> str:
        return self._provider_defaults.model

    def _resolve_api_key(self, request: LLMRequest) -> Optional[str]:
        return request.api_key

    def _headers(self, api_key: str) -> Dict[str, str]:
        return _make_http_headers(api_key)

    def _build_payload(self, request: LLMRequest, model: str) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "temperature": self._temperature(request),
            "max_tokens": self._max_tokens(request),
        }

    async def generate(self, request: LLMRequest) -> LLMResponse:
        api_key = self._require_key(self._resolve_api_key(request))
        model = request.model or self._default_model()
        payload = self._build_payload(request, model)

        logger.debug(
            "Chat completion request",
            component=self.component_key,
            model=model,
            temperature=payload.get("temperature"),
            messages=len(payload["messages"]),
        )
        data = await self._request_json(
            "POST",
            self._endpoint(),
            headers=self._headers(api_key),
            json_body=payload,
        )
        return parse_chat_completion(data, provider=self.provider_id, fallback_model=model)


class OpenRouterLLMAdapter(ChatCompletionsLLMAdapter):
    provider_id = "openrouter"
    display_name = "OpenRouter"
    config_section = "openrouter"
    models = (
        "mistralai/mistral-7b-instruct",
        "mistralai/mistral-medium",
        "mistralai/mistral-large-latest",
        "anthropic/claude-3-opus",
        "anthropic/claude-3-5-sonnet",
        "google/gemini-pro",
        "meta-llama/llama-3-70b-instruct",
        "openai/gpt-4-turbo",
    )

    def _headers(self, api_key: str) -> Dict[str, str]:
        headers = _make_http_headers(api_key)
        headers["HTTP-Referer"] = self._provider_defaults.referer
        return headers


class MistralLLMAdapter(ChatCompletionsLLMAdapter):
    provider_id = "mistral"
    display_name = "Mistral AI"
    config_section = "mistral"
    models = (
        "mistral-small-latest",
        "mistral-medium-latest",
        "mistral-large-latest",
        "open-mistral-7b",
        "open-mixtral-8x7b",
    )
