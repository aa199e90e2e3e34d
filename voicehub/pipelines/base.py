"""
Component contract shared by every provider adapter.

An adapter is a component bound to one vendor and one capability (text,
speech-to-text or text-to-speech). The registry dispatches to
``component.invoke(request)``; the request and response dataclasses below
are the only shapes that cross the adapter boundary, so callers never see
a vendor payload.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import aiohttp

from ..config import AppConfig
from ..errors import AdapterError, ConfigurationError
from ..logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2000
EMPTY_COMPLETION = "No response generated"


class Capability(str, Enum):
    TEXT = "text"
    STT = "stt"
    TTS = "tts"


# Requests / responses ----------------------------------------------------------


@dataclass
class LLMMessage:
    role: str  # system | user | assistant
    content: str


@dataclass
class LLMRequest:
    messages: List[LLMMessage]
    model: Optional[str] = None
    api_key: Optional[str] = None
    temperature: Optional[float] = None  # 0.0 - 2.0
    max_tokens: Optional[int] = None


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = field(init=False)

    def __post_init__(self) -> None:
        self.prompt_tokens = int(self.prompt_tokens or 0)
        self.completion_tokens = int(self.completion_tokens or 0)
        self.total_tokens = self.prompt_tokens + self.completion_tokens


@dataclass
class LLMResponse:
    content: str
    model: str
    provider: str
    usage: Optional[Usage] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class STTRequest:
    audio_url: str
    language: Optional[str] = None
    api_key: Optional[str] = None
    model: Optional[str] = None


@dataclass
class STTResponse:
    text: str
    provider: str
    language: Optional[str] = None
    duration_seconds: Optional[float] = None
    confidence: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TTSRequest:
    text: str
    voice: Optional[str] = None
    model: Optional[str] = None
    api_key: Optional[str] = None
    speed: Optional[float] = None


@dataclass
class TTSResponse:
    audio_url: str
    provider: str
    voice: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Components --------------------------------------------------------------------


class Component(ABC):
    """Base class for a single-vendor, single-capability adapter."""

    capability: Capability
    provider_id: str = ""
    display_name: str = ""
    models: Sequence[str] = ()
    aliases: Sequence[str] = ()
    # False only for the built-in channels that fall back to the deployment key.
    requires_api_key: bool = True
    # Attribute of AppConfig.providers holding this vendor's settings.
    config_section: str = ""

    def __init__(
        self,
        component_key: str,
        app_config: AppConfig,
        provider_config: Any,
        options: Optional[Dict[str, Any]] = None,
        *,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        self.component_key = component_key
        self._app_config = app_config
        self._provider_defaults = provider_config
        self._options = options or {}
        self._session_factory = session_factory
        self._session: Optional[aiohttp.ClientSession] = None
        self._default_timeout = float(
            self._options.get("request_timeout_sec", getattr(provider_config, "response_timeout_sec", 60.0))
        )

    async def start(self) -> None:
        logger.debug("Provider adapter initialized", component=self.component_key, provider=self.provider_id)

    async def stop(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    @abstractmethod
    async def invoke(self, request: Any) -> Any:
        ...

    async def _ensure_session(self) -> None:
        if self._session and not self._session.closed:
            return
        factory = self._session_factory or aiohttp.ClientSession
        self._session = factory()

    def _require_key(self, api_key: Optional[str]) -> str:
        if not api_key or not str(api_key).strip():
            raise ConfigurationError(
                f"No API key configured for {self.display_name or self.provider_id}"
            )
        return str(api_key).strip()

    def _extra_headers(self) -> Dict[str, str]:
        return dict(self._app_config.extra_headers.get(self.provider_id, {}))

    async def _request(
        self,
        method: str,
        url: str,
        *,
        headers: Dict[str, str],
        json_body: Optional[Dict[str, Any]] = None,
        data: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Tuple[int, bytes]:
        """
        Perform one HTTP call and return (status, raw body).

        Non-success statuses and transport failures are both raised as
        AdapterError carrying the vendor's raw error text.
        """
        await self._ensure_session()
        assert self._session
        headers = {**headers, **self._extra_headers()}
        send = self._session.get if method == "GET" else self._session.post
        kwargs: Dict[str, Any] = {
            "headers": headers,
            "timeout": aiohttp.ClientTimeout(total=self._default_timeout),
        }
        if json_body is not None:
            kwargs["json"] = json_body
        if data is not None:
            kwargs["data"] = data
        if params is not None:
            kwargs["params"] = params
        try:
            async with send(url, **kwargs) as response:
                raw = await response.read()
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.error(
                "Provider request failed to complete",
                component=self.component_key,
                provider=self.provider_id,
                error=str(exc) or type(exc).__name__,
            )
            raise AdapterError(self.display_name or self.provider_id, str(exc) or type(exc).__name__) from exc

        if status >= 400:
            body_text = raw.decode("utf-8", errors="ignore")
            logger.error(
                "Provider request failed",
                component=self.component_key,
                provider=self.provider_id,
                status=status,
                body_preview=body_text[:200],
            )
            raise AdapterError(self.display_name or self.provider_id, body_text, status=status)
        return status, raw

    async def _request_json(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        _, raw = await self._request(method, url, **kwargs)
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise AdapterError(
                self.display_name or self.provider_id,
                f"invalid JSON response: {raw[:200]!r}",
            ) from exc
        if not isinstance(payload, dict):
            raise AdapterError(self.display_name or self.provider_id, "unexpected response shape")
        return payload


class LLMComponent(Component):
    capability = Capability.TEXT

    async def invoke(self, request: LLMRequest) -> LLMResponse:
        return await self.generate(request)

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        ...

    @staticmethod
    def _temperature(request: LLMRequest) -> float:
        # 0.0 is a valid temperature; only a missing value falls back.
        return DEFAULT_TEMPERATURE if request.temperature is None else float(request.temperature)

    @staticmethod
    def _max_tokens(request: LLMRequest) -> int:
        return DEFAULT_MAX_TOKENS if request.max_tokens is None else int(request.max_tokens)


class STTComponent(Component):
    capability = Capability.STT

    async def invoke(self, request: STTRequest) -> STTResponse:
        return await self.transcribe(request)

    @abstractmethod
    async def transcribe(self, request: STTRequest) -> STTResponse:
        ...


class TTSComponent(Component):
    capability = Capability.TTS

    async def invoke(self, request: TTSRequest) -> TTSResponse:
        return await self.synthesize(request)

    @abstractmethod
    async def synthesize(self, request: TTSRequest) -> TTSResponse:
        ...

    async def list_voices(self, api_key: Optional[str] = None) -> List[Dict[str, str]]:
        return []
