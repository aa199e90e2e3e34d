"""
User settings, provider credentials, voice profiles and usage.
"""

from dataclasses import asdict
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from ..core.conversations import PreferencesUpdate
from ..core.models import User
from ..pipelines.base import Capability
from .deps import Services, get_current_user, get_services

router = APIRouter()


class CredentialCreateRequest(BaseModel):
    provider: str = Field(min_length=1)
    api_key: str = Field(min_length=1)


class CredentialUpdateRequest(BaseModel):
    api_key: Optional[str] = Field(default=None, min_length=1)
    is_active: Optional[bool] = None


class VoiceProfileCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    provider: str = Field(min_length=1)
    voice_id: str = Field(min_length=1)
    sample_url: Optional[str] = None
    is_default: bool = False


@router.get("/settings")
async def get_settings(
    user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, Any]:
    prefs = await services.conversations.get_settings(user.id)
    return prefs.to_dict()


@router.patch("/settings")
async def update_settings(
    body: PreferencesUpdate, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, Any]:
    prefs = await services.conversations.update_settings(user.id, body)
    return prefs.to_dict()


@router.get("/providers")
async def list_credentials(
    user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> List[Dict[str, Any]]:
    return [c.to_dict() for c in await services.conversations.list_credentials(user.id)]


@router.post("/providers", status_code=201)
async def create_credential(
    body: CredentialCreateRequest, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, Any]:
    credential = await services.conversations.create_credential(user.id, body.provider, body.api_key)
    return credential.to_dict()


@router.get("/providers/catalog/{capability}")
async def provider_catalog(
    capability: str, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> List[Dict[str, Any]]:
    try:
        cap = Capability(capability.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown capability: {capability}")
    return [asdict(info) for info in services.registry.list_providers(cap)]


@router.patch("/providers/{credential_id}")
async def update_credential(
    credential_id: int,
    body: CredentialUpdateRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    credential = await services.conversations.update_credential(
        user.id, credential_id, api_key=body.api_key, is_active=body.is_active
    )
    return credential.to_dict()


@router.delete("/providers/{credential_id}")
async def delete_credential(
    credential_id: int, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, bool]:
    await services.conversations.delete_credential(user.id, credential_id)
    return {"success": True}


@router.get("/voice-profiles")
async def list_voice_profiles(
    user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> List[Dict[str, Any]]:
    return [p.to_dict() for p in await services.conversations.list_voice_profiles(user.id)]


@router.post("/voice-profiles", status_code=201)
async def create_voice_profile(
    body: VoiceProfileCreateRequest, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, Any]:
    profile = await services.conversations.create_voice_profile(
        user.id,
        body.name,
        body.provider,
        body.voice_id,
        sample_url=body.sample_url,
        is_default=body.is_default,
    )
    return profile.to_dict()


@router.delete("/voice-profiles/{profile_id}")
async def delete_voice_profile(
    profile_id: int, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, bool]:
    await services.conversations.delete_voice_profile(user.id, profile_id)
    return {"success": True}


@router.get("/usage")
async def usage(
    user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, Any]:
    summary = await services.conversations.usage_stats(user.id)
    return summary.to_dict()
