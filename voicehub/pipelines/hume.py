"""Hume batch text-to-speech adapter."""

from __future__ import annotations

from typing import Dict, List, Optional

from ..errors import AdapterError
from .base import TTSComponent, TTSRequest, TTSResponse


class HumeTTSAdapter(TTSComponent):
    provider_id = "hume"
    display_name = "Hume AI"
    config_section = "hume"
    models = ("default",)

    _VOICES = (
        ("default", "Default"),
        ("expressive", "Expressive"),
        ("calm", "Calm"),
    )

    async def synthesize(self, request: TTSRequest) -> TTSResponse:
        api_key = self._require_key(request.api_key)
        voice = request.voice or self._provider_defaults.voice
        headers = {
            "X-Hume-Api-Key": api_key,
            "Content-Type": "application/json",
        }
        data = await self._request_json(
            "POST",
            self._provider_defaults.base_url,
            headers=headers,
            json_body={"text": request.text, "voice": voice},
        )
        audio_url = data.get("audio_url")
        if not audio_url:
            raise AdapterError(self.display_name, "response did not include an audio_url")
        return TTSResponse(audio_url=str(audio_url), provider=self.provider_id, voice=voice)

    async def list_voices(self, api_key: Optional[str] = None) -> List[Dict[str, str]]:
        return [{"voice_id": vid, "name": name} for vid, name in self._VOICES]
