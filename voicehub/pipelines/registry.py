"""
Provider registry.

Maps (capability, provider id) to a live adapter component. Lookup is
case-insensitive and honours per-component aliases (``claude`` for the
Anthropic text adapter, ``openai`` for Whisper transcription). Unknown
ids raise ``UnsupportedProviderError``, never a silent fallback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type

import aiohttp

from ..config import AppConfig
from ..errors import UnsupportedProviderError
from ..logging_config import get_logger
from .anthropic import AnthropicLLMAdapter
from .base import (
    Capability,
    Component,
    LLMRequest,
    LLMResponse,
    STTRequest,
    STTResponse,
    TTSRequest,
    TTSResponse,
)
from .deepgram import DeepgramSTTAdapter
from .elevenlabs import ElevenLabsTTSAdapter
from .hume import HumeTTSAdapter
from .openai import OpenAILLMAdapter, OpenAITTSAdapter, OpenAIWhisperSTTAdapter
from .openai_compatible import MistralLLMAdapter, OpenRouterLLMAdapter

logger = get_logger(__name__)

DEFAULT_COMPONENTS: Dict[Capability, List[Type[Component]]] = {
    Capability.TEXT: [OpenAILLMAdapter, OpenRouterLLMAdapter, MistralLLMAdapter, AnthropicLLMAdapter],
    Capability.STT: [OpenAIWhisperSTTAdapter, DeepgramSTTAdapter],
    Capability.TTS: [ElevenLabsTTSAdapter, HumeTTSAdapter, OpenAITTSAdapter],
}


@dataclass
class ProviderInfo:
    id: str
    name: str
    capability: str
    requires_api_key: bool
    models: List[str] = field(default_factory=list)


class ProviderRegistry:
    def __init__(
        self,
        app_config: AppConfig,
        *,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
        components: Optional[Dict[Capability, Iterable[Type[Component]]]] = None,
    ):
        self._app_config = app_config
        self._session_factory = session_factory
        self._components: Dict[Capability, Dict[str, Component]] = {cap: {} for cap in Capability}
        self._aliases: Dict[Capability, Dict[str, str]] = {cap: {} for cap in Capability}
        for capability, classes in (components or DEFAULT_COMPONENTS).items():
            for cls in classes:
                self.register(self._build(cls))

    def _build(self, cls: Type[Component]) -> Component:
        provider_config = getattr(self._app_config.providers, cls.config_section, None)
        return cls(
            f"{cls.provider_id}_{cls.capability.value}",
            self._app_config,
            provider_config,
            session_factory=self._session_factory,
        )

    def register(self, component: Component) -> None:
        """Register a component; a later registration for the same id replaces the earlier one."""
        capability = Capability(component.capability)
        provider_id = component.provider_id.lower()
        self._components[capability][provider_id] = component
        for alias in component.aliases:
            self._aliases[capability][alias.lower()] = provider_id
        logger.debug("Provider registered", capability=capability.value, provider=provider_id)

    def canonical_id(self, capability: Capability, provider_id: Optional[str]) -> Optional[str]:
        """Return the registered id for provider_id (resolving aliases), or None."""
        if not provider_id:
            return None
        capability = Capability(capability)
        key = provider_id.strip().lower()
        if key in self._components[capability]:
            return key
        return self._aliases[capability].get(key)

    def credential_provider_id(self, provider_id: Optional[str]) -> Optional[str]:
        """
        Canonical id a stored credential is filed under.

        Credentials are shared across capabilities, so the first capability
        (text, then stt, then tts) that knows the id or alias decides.
        """
        for capability in Capability:
            canonical = self.canonical_id(capability, provider_id)
            if canonical is not None:
                return canonical
        return None

    def get_component(self, capability: Capability, provider_id: Optional[str]) -> Component:
        capability = Capability(capability)
        canonical = self.canonical_id(capability, provider_id)
        if canonical is None:
            raise UnsupportedProviderError(capability.value, str(provider_id))
        return self._components[capability][canonical]

    def resolve_adapter(self, capability: Capability, provider_id: Optional[str]) -> Callable[[Any], Awaitable[Any]]:
        return self.get_component(capability, provider_id).invoke

    def list_providers(self, capability: Capability) -> List[ProviderInfo]:
        capability = Capability(capability)
        return [
            ProviderInfo(
                id=pid,
                name=component.display_name or pid,
                capability=capability.value,
                requires_api_key=component.requires_api_key,
                models=list(component.models),
            )
            for pid, component in self._components[capability].items()
        ]

    def display_name(self, capability: Capability, provider_id: str) -> str:
        canonical = self.canonical_id(capability, provider_id)
        if canonical is None:
            return provider_id
        return self._components[Capability(capability)][canonical].display_name or canonical

    async def invoke_llm(self, provider_id: str, request: LLMRequest) -> LLMResponse:
        return await self.resolve_adapter(Capability.TEXT, provider_id)(request)

    async def invoke_stt(self, provider_id: str, request: STTRequest) -> STTResponse:
        return await self.resolve_adapter(Capability.STT, provider_id)(request)

    async def invoke_tts(self, provider_id: str, request: TTSRequest) -> TTSResponse:
        return await self.resolve_adapter(Capability.TTS, provider_id)(request)

    async def start(self) -> None:
        for components in self._components.values():
            for component in components.values():
                await component.start()

    async def stop(self) -> None:
        for components in self._components.values():
            for component in components.values():
                await component.stop()
