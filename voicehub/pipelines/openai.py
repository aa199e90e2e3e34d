"""
OpenAI component adapters.

The text and Whisper adapters are the built-in channels: they fall back to
the deployment's own key (OPENAI_API_KEY) when the user has no credential
of their own. Speech synthesis always requires a user credential.
"""

from __future__ import annotations

import asyncio
import base64
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from urllib.parse import unquote, urlparse

import aiohttp

from ..errors import AdapterError, ConfigurationError
from ..logging_config import get_logger
from .base import STTComponent, STTRequest, STTResponse, TTSComponent, TTSRequest, TTSResponse, LLMRequest
from .openai_compatible import ChatCompletionsLLMAdapter

logger = get_logger(__name__)


# Shared helpers -----------------------------------------------------------------

def _auth_headers(api_key: str, organization: Optional[str] = None) -> Dict[str, str]:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "User-Agent": "VoiceHub/1.0",
    }
    if organization:
        headers["OpenAI-Organization"] = organization
    return headers


def _filename_from_url(url: str, default: str = "audio.wav") -> str:
    name = os.path.basename(urlparse(url).path or "")
    return unquote(name) or default


def _content_type_for(filename: str) -> str:
    lowered = filename.lower()
    if lowered.endswith(".webm"):
        return "audio/webm"
    if lowered.endswith(".mp3") or lowered.endswith(".mpeg"):
        return "audio/mpeg"
    if lowered.endswith(".ogg"):
        return "audio/ogg"
    if lowered.endswith(".m4a") or lowered.endswith(".mp4"):
        return "audio/mp4"
    return "audio/wav"


# OpenAI Chat Completions (built-in text channel) --------------------------------


class OpenAILLMAdapter(ChatCompletionsLLMAdapter):
    provider_id = "openai"
    display_name = "OpenAI"
    config_section = "openai"
    requires_api_key = False
    models = ("gpt-4", "gpt-4-turbo", "gpt-4o", "gpt-3.5-turbo")

    def _endpoint(self) -> str:
        return self._provider_defaults.chat_base_url.rstrip("/") + "/chat/completions"

    def _default_model(self) -> str:
        return self._provider_defaults.chat_model

    def _resolve_api_key(self, request: LLMRequest) -> Optional[str]:
        key = request.api_key or self._provider_defaults.api_key
        if not key:
            raise ConfigurationError("OpenAI API key is not configured for the built-in text channel")
        return key

    def _headers(self, api_key: str) -> Dict[str, str]:
        headers = _auth_headers(api_key, self._provider_defaults.organization)
        headers["Content-Type"] = "application/json"
        return headers


# OpenAI Whisper Speech-to-Text (built-in STT channel) ---------------------------


class OpenAIWhisperSTTAdapter(STTComponent):
    """Whisper transcription via /v1/audio/transcriptions with verbose_json output."""

    provider_id = "whisper"
    display_name = "OpenAI Whisper"
    config_section = "openai"
    requires_api_key = False
    aliases = ("openai",)
    models = ("whisper-1",)

    def _local_audio_path(self, audio_url: str) -> Path:
        root = Path(self._app_config.storage.base_dir).resolve()
        path = Path(unquote(urlparse(audio_url).path)).resolve()
        if root not in path.parents:
            logger.warning("Rejected local audio outside storage root", audio_url=audio_url)
            raise AdapterError(self.display_name, "local audio must come from VoiceHub storage")
        return path

    async def _fetch_audio(self, audio_url: str) -> Tuple[bytes, str]:
        parsed = urlparse(audio_url)
        filename = _filename_from_url(audio_url)
        if parsed.scheme == "file":
            path = self._local_audio_path(audio_url)

            def _read_sync() -> bytes:
                with open(path, "rb") as f:
                    return f.read()

            loop = asyncio.get_running_loop()
            try:
                return await loop.run_in_executor(None, _read_sync), filename
            except OSError as exc:
                raise AdapterError(self.display_name, f"could not read audio at {audio_url}: {exc}") from exc
        if parsed.scheme not in ("http", "https"):
            raise AdapterError(self.display_name, f"unsupported audio URL scheme: {parsed.scheme or '(none)'}")
        _, raw = await self._request("GET", audio_url, headers={"User-Agent": "VoiceHub/1.0"})
        return raw, filename

    async def transcribe(self, request: STTRequest) -> STTResponse:
        api_key = request.api_key or self._provider_defaults.api_key
        if not api_key:
            raise ConfigurationError("OpenAI API key is not configured for the built-in transcription channel")

        audio_bytes, filename = await self._fetch_audio(request.audio_url)
        model = request.model or self._provider_defaults.stt_model

        form = aiohttp.FormData()
        form.add_field("file", audio_bytes, filename=filename, content_type=_content_type_for(filename))
        form.add_field("model", str(model))
        form.add_field("response_format", "verbose_json")
        if request.language:
            form.add_field("language", str(request.language))

        data = await self._request_json(
            "POST",
            self._provider_defaults.stt_base_url,
            headers=_auth_headers(api_key, self._provider_defaults.organization),
            data=form,
        )
        duration = data.get("duration")
        return STTResponse(
            text=str(data.get("text") or ""),
            language=data.get("language") or request.language,
            duration_seconds=float(duration) if duration is not None else None,
            provider=self.provider_id,
        )


# OpenAI Text-to-Speech -----------------------------------------------------------


class OpenAITTSAdapter(TTSComponent):
    provider_id = "openai"
    display_name = "OpenAI TTS"
    config_section = "openai"
    models = ("tts-1", "tts-1-hd")

    _VOICES = ("alloy", "echo", "fable", "onyx", "nova", "shimmer")

    async def synthesize(self, request: TTSRequest) -> TTSResponse:
        api_key = self._require_key(request.api_key)
        voice = request.voice or self._provider_defaults.voice
        payload: Dict[str, Any] = {
            "model": request.model or self._provider_defaults.tts_model,
            "input": request.text,
            "voice": voice,
            "response_format": "mp3",
        }
        if request.speed is not None:
            payload["speed"] = float(request.speed)

        headers = _auth_headers(api_key, self._provider_defaults.organization)
        headers["Content-Type"] = "application/json"
        _, audio = await self._request("POST", self._provider_defaults.tts_base_url, headers=headers, json_body=payload)
        encoded = base64.b64encode(audio).decode("ascii")
        return TTSResponse(audio_url=f"data:audio/mpeg;base64,{encoded}", provider=self.provider_id, voice=voice)

    async def list_voices(self, api_key: Optional[str] = None):
        return [{"voice_id": v, "name": v.capitalize()} for v in self._VOICES]
