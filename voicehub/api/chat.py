from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..core.models import User
from .deps import Services, get_current_user, get_services

router = APIRouter()


class ChatSendRequest(BaseModel):
    conversation_id: int
    message: str = Field(min_length=1)
    provider: Optional[str] = None
    model: Optional[str] = None


@router.post("/chat/send")
async def send(
    body: ChatSendRequest, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, Any]:
    """
    Run one chat turn. Provider failures come back as an assistant message
    starting with "Error:" (``failed`` is true), not as an HTTP error.
    """
    result = await services.orchestrator.send_message(
        user.id, body.conversation_id, body.message, provider=body.provider, model=body.model
    )
    return asdict(result)
