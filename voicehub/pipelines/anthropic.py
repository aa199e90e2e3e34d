"""Anthropic Messages API adapter."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from ..logging_config import get_logger
from .base import EMPTY_COMPLETION, LLMComponent, LLMMessage, LLMRequest, LLMResponse, Usage

logger = get_logger(__name__)


def split_system_messages(messages: List[LLMMessage]) -> Tuple[str, List[Dict[str, str]]]:
    """
    Separate system messages from the conversational turns.

    The Messages API takes the system prompt as a top-level field; all
    system messages are joined in order and removed from the turn list.
    """
    system_parts = [m.content for m in messages if m.role == "system" and m.content]
    turns = [{"role": m.role, "content": m.content} for m in messages if m.role != "system"]
    return "\n\n".join(system_parts), turns


class AnthropicLLMAdapter(LLMComponent):
    provider_id = "anthropic"
    display_name = "Anthropic Claude"
    config_section = "anthropic"
    aliases = ("claude",)
    models = (
        "claude-3-5-sonnet-20241022",
        "claude-3-opus-20240229",
        "claude-3-sonnet-20240229",
        "claude-3-haiku-20240307",
    )

    async def generate(self, request: LLMRequest) -> LLMResponse:
        api_key = self._require_key(request.api_key)
        model = request.model or self._provider_defaults.model
        system, turns = split_system_messages(request.messages)

        payload: Dict[str, Any] = {
            "model": model,
            "messages": turns,
            "max_tokens": self._max_tokens(request),
            "temperature": self._temperature(request),
        }
        if system:
            payload["system"] = system

        headers = {
            "x-api-key": api_key,
            "anthropic-version": self._provider_defaults.api_version,
            "Content-Type": "application/json",
        }
        logger.debug("Anthropic messages request", component=self.component_key, model=model, turns=len(turns))
        data = await self._request_json("POST", self._provider_defaults.base_url, headers=headers, json_body=payload)

        content_blocks = data.get("content") or []
        text_parts = [
            block.get("text", "")
            for block in content_blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        ]
        content = "".join(text_parts) or EMPTY_COMPLETION

        usage = None
        usage_data = data.get("usage")
        if isinstance(usage_data, dict):
            usage = Usage(
                prompt_tokens=usage_data.get("input_tokens") or 0,
                completion_tokens=usage_data.get("output_tokens") or 0,
            )
        return LLMResponse(content=content, usage=usage, model=data.get("model") or model, provider=self.provider_id)
