import base64
import binascii
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..core.models import User
from ..core.recorder import validate_clip
from .deps import Services, get_current_user, get_services

router = APIRouter(prefix="/voice")


class UploadRequest(BaseModel):
    # Base64-encoded audio bytes.
    audio: str
    file_name: str = Field(default="recording.wav", min_length=1)
    mime_type: str = Field(default="audio/wav")


class TranscribeRequest(BaseModel):
    audio_url: str
    language: Optional[str] = None
    provider: Optional[str] = None


class SpeechRequest(BaseModel):
    text: str = Field(min_length=1)
    voice: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None


@router.post("/upload")
async def upload(
    body: UploadRequest, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, str]:
    try:
        data = base64.b64decode(body.audio, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Audio must be base64-encoded")
    capture = services.app_config.capture
    validate_clip(data, capture.min_clip_bytes, capture.max_clip_bytes)
    result = await services.voice.upload_audio(user.id, data, body.file_name, body.mime_type)
    return asdict(result)


@router.post("/transcribe")
async def transcribe(
    body: TranscribeRequest, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, Any]:
    result = await services.voice.transcribe(user.id, body.audio_url, language=body.language, provider=body.provider)
    return result.to_dict()


@router.post("/speech")
async def speech(
    body: SpeechRequest, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, Any]:
    result = await services.voice.synthesize(
        user.id, body.text, voice=body.voice, provider=body.provider, model=body.model
    )
    return result.to_dict()


@router.get("/voices/{provider}")
async def voices(
    provider: str, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> List[Dict[str, str]]:
    return await services.voice.list_voices(user.id, provider)
