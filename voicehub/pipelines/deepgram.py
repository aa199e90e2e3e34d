"""
Deepgram pre-recorded transcription adapter.

Deepgram fetches the audio itself: the request body carries only the
public audio URL, so no bytes pass through this process.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..logging_config import get_logger
from .base import STTComponent, STTRequest, STTResponse

logger = get_logger(__name__)


def _first_alternative(data: Dict[str, Any]) -> Dict[str, Any]:
    channels = ((data.get("results") or {}).get("channels")) or []
    if not channels:
        return {}
    alternatives = (channels[0] or {}).get("alternatives") or []
    return (alternatives[0] or {}) if alternatives else {}


class DeepgramSTTAdapter(STTComponent):
    provider_id = "deepgram"
    display_name = "Deepgram"
    config_section = "deepgram"
    models = ("nova-2", "nova", "enhanced", "base")

    async def transcribe(self, request: STTRequest) -> STTResponse:
        api_key = self._require_key(request.api_key)
        model = request.model or self._provider_defaults.model
        language = request.language or self._provider_defaults.language
        params = {
            "model": model,
            "language": language,
            "punctuate": "true",
            "smart_format": "true",
        }
        headers = {
            "Authorization": f"Token {api_key}",
            "Content-Type": "application/json",
        }
        data = await self._request_json(
            "POST",
            self._provider_defaults.base_url,
            headers=headers,
            json_body={"url": request.audio_url},
            params=params,
        )

        alternative = _first_alternative(data)
        channel0 = (((data.get("results") or {}).get("channels")) or [{}])[0] or {}
        duration: Optional[float] = (data.get("metadata") or {}).get("duration")
        confidence = alternative.get("confidence")
        return STTResponse(
            text=str(alternative.get("transcript") or ""),
            language=channel0.get("detected_language") or language,
            duration_seconds=float(duration) if duration is not None else None,
            confidence=float(confidence) if confidence is not None else None,
            provider=self.provider_id,
        )
