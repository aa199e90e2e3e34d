from .base import (
    Capability,
    Component,
    LLMComponent,
    LLMMessage,
    LLMRequest,
    LLMResponse,
    STTComponent,
    STTRequest,
    STTResponse,
    TTSComponent,
    TTSRequest,
    TTSResponse,
    Usage,
)
from .registry import ProviderInfo, ProviderRegistry

__all__ = [
    "Capability",
    "Component",
    "LLMComponent",
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "ProviderInfo",
    "ProviderRegistry",
    "STTComponent",
    "STTRequest",
    "STTResponse",
    "TTSComponent",
    "TTSRequest",
    "TTSResponse",
    "Usage",
]
