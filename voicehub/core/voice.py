"""
Voice service: audio upload, transcription and speech synthesis.

Unlike chat, STT and TTS failures propagate to the caller; a usage row
is written only after a successful vendor call.
"""

import math
import re
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import unquote, urlparse

from ..config import AppConfig
from ..errors import NotFoundError
from ..logging_config import get_logger
from ..pipelines.base import Capability, STTRequest, STTResponse, TTSRequest, TTSResponse
from ..pipelines.registry import ProviderRegistry
from .models import RequestType, UsageRecord
from .recorder import AudioClip
from .storage import ObjectStorage
from .store import ChatStore

logger = get_logger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class UploadResult:
    url: str
    key: str


def build_audio_key(user_id: str, file_name: str, now_ms: Optional[int] = None) -> str:
    """Object key for an uploaded clip: {user}/audio/{epoch_ms}-{random}-{file}."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = secrets.token_hex(3)
    safe_name = _UNSAFE_FILENAME_CHARS.sub("_", file_name).strip("._") or "recording"
    return f"{user_id}/audio/{now_ms}-{suffix}-{safe_name}"


class VoiceService:
    def __init__(self, store: ChatStore, storage: ObjectStorage, registry: ProviderRegistry, app_config: AppConfig):
        self._store = store
        self._storage = storage
        self._registry = registry
        self._app_config = app_config

    async def _api_key_for(self, user_id: str, capability: Capability, provider_id: str) -> Optional[str]:
        canonical = self._registry.canonical_id(capability, provider_id) or provider_id
        credential = await self._store.get_active_credential(user_id, canonical)
        return credential.api_key if credential else None

    def _check_audio_owner(self, user_id: str, audio_url: str) -> None:
        """Stored clips live under {base_dir}/{user}/; other local paths are not the caller's."""
        parsed = urlparse(audio_url)
        if parsed.scheme != "file":
            return
        user_root = (Path(self._app_config.storage.base_dir) / user_id).resolve()
        if user_root not in Path(unquote(parsed.path)).resolve().parents:
            raise NotFoundError("Audio not found")

    async def upload_audio(self, user_id: str, data: bytes, file_name: str, mime_type: str) -> UploadResult:
        key = build_audio_key(user_id, file_name)
        stored = await self._storage.put(key, data, mime_type)
        logger.info("Audio uploaded", user_id=user_id, key=stored.key, bytes=len(data))
        return UploadResult(url=stored.url, key=stored.key)

    async def transcribe(
        self,
        user_id: str,
        audio_url: str,
        *,
        language: Optional[str] = None,
        provider: Optional[str] = None,
    ) -> STTResponse:
        self._check_audio_owner(user_id, audio_url)
        prefs = await self._store.get_or_create_preferences(user_id)
        provider_id = provider or prefs.default_stt_provider
        adapter = self._registry.resolve_adapter(Capability.STT, provider_id)
        request = STTRequest(
            audio_url=audio_url,
            language=language,
            api_key=await self._api_key_for(user_id, Capability.STT, provider_id),
            model=prefs.default_stt_model if provider is None else None,
        )
        result = await adapter(request)
        await self._store.record_usage(
            UsageRecord(
                user_id=user_id,
                provider=result.provider,
                request_type=RequestType.VOICE.value,
                audio_seconds=math.ceil(result.duration_seconds or 0),
            )
        )
        logger.info(
            "Transcription complete",
            user_id=user_id,
            provider=result.provider,
            chars=len(result.text),
            duration_seconds=result.duration_seconds,
        )
        return result

    async def transcribe_clip(self, user_id: str, clip: AudioClip, *, language: Optional[str] = None) -> STTResponse:
        upload = await self.upload_audio(user_id, clip.data, clip.file_name, clip.mime_type)
        return await self.transcribe(user_id, upload.url, language=language)

    async def synthesize(
        self,
        user_id: str,
        text: str,
        *,
        voice: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> TTSResponse:
        prefs = await self._store.get_or_create_preferences(user_id)
        provider_id = provider or prefs.default_tts_provider
        adapter = self._registry.resolve_adapter(Capability.TTS, provider_id)
        using_default_provider = provider is None
        request = TTSRequest(
            text=text,
            voice=voice or (prefs.default_tts_voice if using_default_provider else None),
            model=model or (prefs.default_tts_model if using_default_provider else None),
            api_key=await self._api_key_for(user_id, Capability.TTS, provider_id),
            speed=prefs.tts_speed / 100,
        )
        result = await adapter(request)
        await self._store.record_usage(
            UsageRecord(user_id=user_id, provider=result.provider, request_type=RequestType.TTS.value)
        )
        return result

    async def list_voices(self, user_id: str, provider: str) -> List[Dict[str, str]]:
        component = self._registry.get_component(Capability.TTS, provider)
        api_key = await self._api_key_for(user_id, Capability.TTS, provider)
        return await component.list_voices(api_key)
