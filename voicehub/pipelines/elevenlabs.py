"""ElevenLabs text-to-speech adapter."""

from __future__ import annotations

import base64
from typing import Any, Dict, List, Optional

from ..logging_config import get_logger
from .base import TTSComponent, TTSRequest, TTSResponse

logger = get_logger(__name__)


class ElevenLabsTTSAdapter(TTSComponent):
    provider_id = "elevenlabs"
    display_name = "ElevenLabs"
    config_section = "elevenlabs"
    models = ("eleven_turbo_v2_5", "eleven_multilingual_v2", "eleven_monolingual_v1")

    def _voice_settings(self) -> Dict[str, Any]:
        cfg = self._provider_defaults
        return {
            "stability": cfg.stability,
            "similarity_boost": cfg.similarity_boost,
            "style": cfg.style,
            "use_speaker_boost": cfg.use_speaker_boost,
        }

    async def synthesize(self, request: TTSRequest) -> TTSResponse:
        api_key = self._require_key(request.api_key)
        voice = request.voice or self._provider_defaults.voice_id
        url = f"{self._provider_defaults.base_url.rstrip('/')}/text-to-speech/{voice}"
        payload = {
            "text": request.text,
            "model_id": request.model or self._provider_defaults.model_id,
            "voice_settings": self._voice_settings(),
        }
        headers = {
            "xi-api-key": api_key,
            "Content-Type": "application/json",
            "Accept": "audio/mpeg",
        }
        _, audio = await self._request("POST", url, headers=headers, json_body=payload)
        logger.debug("ElevenLabs synthesis complete", component=self.component_key, voice=voice, bytes=len(audio))
        encoded = base64.b64encode(audio).decode("ascii")
        return TTSResponse(audio_url=f"data:audio/mpeg;base64,{encoded}", provider=self.provider_id, voice=voice)

    async def list_voices(self, api_key: Optional[str] = None) -> List[Dict[str, str]]:
        key = self._require_key(api_key)
        url = f"{self._provider_defaults.base_url.rstrip('/')}/voices"
        data = await self._request_json("GET", url, headers={"xi-api-key": key})
        voices = []
        for voice in data.get("voices") or []:
            if not isinstance(voice, dict) or not voice.get("voice_id"):
                continue
            voices.append({"voice_id": voice["voice_id"], "name": voice.get("name") or voice["voice_id"]})
        return voices
