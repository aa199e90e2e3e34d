from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field

from ..core.conversations import ConversationUpdate
from ..core.models import Role, User
from ..core.templates import CONVERSATION_TEMPLATES
from ..utils.export import EXPORTERS, export_conversation, export_filename, media_type
from .deps import Services, get_current_user, get_services

router = APIRouter()


class ConversationCreateRequest(BaseModel):
    title: str = Field(default="New Conversation", min_length=1, max_length=255)
    system_prompt: Optional[str] = None
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)


class TemplateCreateRequest(BaseModel):
    template_id: str
    title: Optional[str] = None


class MessageCreateRequest(BaseModel):
    role: Role
    content: str
    audio_url: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    token_count: Optional[int] = Field(default=None, ge=0)


@router.get("/conversations")
async def list_conversations(
    user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> List[Dict[str, Any]]:
    conversations = await services.conversations.list_conversations(user.id)
    return [c.to_dict() for c in conversations]


@router.post("/conversations", status_code=201)
async def create_conversation(
    body: ConversationCreateRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    conversation = await services.conversations.create_conversation(
        user.id,
        body.title,
        system_prompt=body.system_prompt,
        llm_provider=body.llm_provider,
        llm_model=body.llm_model,
        temperature=body.temperature,
    )
    return conversation.to_dict()


@router.get("/conversations/templates")
async def list_templates(user: User = Depends(get_current_user)) -> List[Dict[str, Any]]:
    return [t.to_dict() for t in CONVERSATION_TEMPLATES]


@router.post("/conversations/from-template", status_code=201)
async def create_from_template(
    body: TemplateCreateRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    conversation = await services.conversations.create_from_template(user.id, body.template_id, body.title)
    return conversation.to_dict()


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: int, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, Any]:
    conversation = await services.conversations.get_conversation(user.id, conversation_id)
    return conversation.to_dict()


@router.patch("/conversations/{conversation_id}")
async def update_conversation(
    conversation_id: int,
    body: ConversationUpdate,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    conversation = await services.conversations.update_conversation(user.id, conversation_id, body)
    return conversation.to_dict()


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: int, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, bool]:
    await services.conversations.archive_conversation(user.id, conversation_id)
    return {"success": True}


@router.get("/conversations/{conversation_id}/messages")
async def list_messages(
    conversation_id: int, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> List[Dict[str, Any]]:
    messages = await services.conversations.list_messages(user.id, conversation_id)
    return [m.to_dict() for m in messages]


@router.post("/conversations/{conversation_id}/messages", status_code=201)
async def create_message(
    conversation_id: int,
    body: MessageCreateRequest,
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    message = await services.conversations.create_message(
        user.id,
        conversation_id,
        body.role.value,
        body.content,
        audio_url=body.audio_url,
        provider=body.provider,
        model=body.model,
        token_count=body.token_count,
    )
    return message.to_dict()


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: int, user: User = Depends(get_current_user), services: Services = Depends(get_services)
) -> Dict[str, bool]:
    await services.conversations.delete_message(user.id, message_id)
    return {"success": True}


@router.get("/conversations/{conversation_id}/export")
async def export(
    conversation_id: int,
    format: str = Query(default="json"),
    user: User = Depends(get_current_user),
    services: Services = Depends(get_services),
) -> Response:
    if format not in EXPORTERS:
        raise HTTPException(status_code=400, detail=f"Unsupported export format: {format}")
    conversation = await services.conversations.get_conversation(user.id, conversation_id)
    messages = await services.conversations.list_messages(user.id, conversation_id)
    body = export_conversation(format, conversation, messages)
    filename = export_filename(conversation_id, format)
    return Response(
        content=body,
        media_type=media_type(format),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
