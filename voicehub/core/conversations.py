"""
Conversation, message, settings, credential and voice-profile operations.

Every operation is scoped to the requesting user. An entity that does not
exist and one owned by somebody else are indistinguishable to the caller:
both raise ``NotFoundError``.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..config import AppConfig
from ..errors import NotFoundError, UnsupportedProviderError
from ..logging_config import get_logger
from ..pipelines.registry import ProviderRegistry
from ..utils.usage import UsageSummary, summarize_usage
from .models import (
    Conversation,
    Message,
    ProviderCredential,
    Role,
    UserPreferences,
    VoiceProfile,
    temperature_to_storage,
)
from .store import ChatStore
from .templates import get_template

logger = get_logger(__name__)


class PreferencesUpdate(BaseModel):
    """Validated partial update of a user's preferences."""

    default_text_provider: Optional[str] = None
    default_text_model: Optional[str] = None
    default_stt_provider: Optional[str] = None
    default_stt_model: Optional[str] = None
    default_tts_provider: Optional[str] = None
    default_tts_voice: Optional[str] = None
    default_tts_model: Optional[str] = None
    vad_sensitivity: Optional[int] = Field(default=None, ge=0, le=100)
    silence_threshold_ms: Optional[int] = Field(default=None, ge=500, le=3000)
    tts_speed: Optional[int] = Field(default=None, ge=50, le=200)
    auto_play_responses: Optional[bool] = None
    theme: Optional[str] = None
    language: Optional[str] = None


class ConversationUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    system_prompt: Optional[str] = None
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    # Sampling temperature as a float; persisted as integer x100.
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)


class ConversationService:
    def __init__(self, store: ChatStore, app_config: AppConfig, registry: Optional[ProviderRegistry] = None):
        self._store = store
        self._app_config = app_config
        self._registry = registry or ProviderRegistry(app_config)

    # Conversations -------------------------------------------------------------

    async def create_conversation(
        self,
        user_id: str,
        title: str = "New Conversation",
        *,
        system_prompt: Optional[str] = None,
        llm_provider: Optional[str] = None,
        llm_model: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Conversation:
        prefs = await self._store.get_or_create_preferences(user_id)
        conversation = Conversation(
            user_id=user_id,
            title=title,
            system_prompt=system_prompt,
            llm_provider=llm_provider or prefs.default_text_provider,
            llm_model=llm_model or prefs.default_text_model,
            temperature=(
                temperature_to_storage(temperature)
                if temperature is not None
                else self._app_config.defaults.temperature
            ),
        )
        created = await self._store.create_conversation(conversation)
        logger.info("Conversation created", user_id=user_id, conversation_id=created.id)
        return created

    async def create_from_template(self, user_id: str, template_id: str, title: Optional[str] = None) -> Conversation:
        template = get_template(template_id)
        if template is None:
            raise NotFoundError(f"Unknown conversation template: {template_id}")
        conversation = Conversation(
            user_id=user_id,
            title=title or template.name,
            system_prompt=template.system_prompt,
            llm_provider=template.llm_provider,
            llm_model=template.llm_model,
            temperature=template.temperature,
        )
        return await self._store.create_conversation(conversation)

    async def get_conversation(self, user_id: str, conversation_id: int) -> Conversation:
        conversation = await self._store.get_conversation(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return conversation

    async def list_conversations(self, user_id: str) -> List[Conversation]:
        return await self._store.list_conversations(user_id)

    async def update_conversation(self, user_id: str, conversation_id: int, update: ConversationUpdate) -> Conversation:
        await self.get_conversation(user_id, conversation_id)
        fields: Dict[str, Any] = update.model_dump(exclude_none=True)
        if "temperature" in fields:
            fields["temperature"] = temperature_to_storage(fields["temperature"])
        updated = await self._store.update_conversation(conversation_id, **fields)
        return updated

    async def archive_conversation(self, user_id: str, conversation_id: int) -> None:
        """Soft delete: the conversation and its messages are kept but hidden from listings."""
        await self.get_conversation(user_id, conversation_id)
        await self._store.update_conversation(conversation_id, is_archived=True)
        logger.info("Conversation archived", user_id=user_id, conversation_id=conversation_id)

    # Messages ------------------------------------------------------------------

    async def list_messages(self, user_id: str, conversation_id: int) -> List[Message]:
        await self.get_conversation(user_id, conversation_id)
        return await self._store.list_messages(conversation_id)

    async def create_message(
        self,
        user_id: str,
        conversation_id: int,
        role: str,
        content: str,
        *,
        audio_url: Optional[str] = None,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        token_count: Optional[int] = None,
    ) -> Message:
        await self.get_conversation(user_id, conversation_id)
        message = Message(
            conversation_id=conversation_id,
            role=Role(role).value,
            content=content,
            audio_url=audio_url,
            provider=provider,
            model=model,
            token_count=token_count,
        )
        return await self._store.create_message(message)

    async def delete_message(self, user_id: str, message_id: int) -> None:
        message = await self._store.get_message(message_id)
        if message is None:
            raise NotFoundError(f"Message {message_id} not found")
        await self.get_conversation(user_id, message.conversation_id)
        await self._store.delete_message(message_id)

    # Settings ------------------------------------------------------------------

    async def get_settings(self, user_id: str) -> UserPreferences:
        return await self._store.get_or_create_preferences(user_id)

    async def update_settings(self, user_id: str, update: PreferencesUpdate) -> UserPreferences:
        return await self._store.update_preferences(user_id, **update.model_dump(exclude_none=True))

    # Provider credentials ------------------------------------------------------

    async def list_credentials(self, user_id: str) -> List[ProviderCredential]:
        return await self._store.list_credentials(user_id)

    async def create_credential(self, user_id: str, provider: str, api_key: str) -> ProviderCredential:
        canonical = self._registry.credential_provider_id(provider)
        if canonical is None:
            raise UnsupportedProviderError("credential", provider)
        credential = ProviderCredential(user_id=user_id, provider=canonical, api_key=api_key.strip())
        return await self._store.create_credential(credential)

    async def _owned_credential(self, user_id: str, credential_id: int) -> ProviderCredential:
        credential = await self._store.get_credential(credential_id)
        if credential is None or credential.user_id != user_id:
            raise NotFoundError(f"Provider credential {credential_id} not found")
        return credential

    async def update_credential(
        self, user_id: str, credential_id: int, *, api_key: Optional[str] = None, is_active: Optional[bool] = None
    ) -> ProviderCredential:
        await self._owned_credential(user_id, credential_id)
        return await self._store.update_credential(
            credential_id, api_key=api_key.strip() if api_key else None, is_active=is_active
        )

    async def delete_credential(self, user_id: str, credential_id: int) -> None:
        await self._owned_credential(user_id, credential_id)
        await self._store.delete_credential(credential_id)

    # Voice profiles ------------------------------------------------------------

    async def list_voice_profiles(self, user_id: str) -> List[VoiceProfile]:
        return await self._store.list_voice_profiles(user_id)

    async def create_voice_profile(
        self,
        user_id: str,
        name: str,
        provider: str,
        voice_id: str,
        *,
        sample_url: Optional[str] = None,
        is_default: bool = False,
    ) -> VoiceProfile:
        profile = VoiceProfile(
            user_id=user_id,
            name=name,
            provider=provider,
            voice_id=voice_id,
            sample_url=sample_url,
            is_default=is_default,
        )
        return await self._store.create_voice_profile(profile)

    async def delete_voice_profile(self, user_id: str, profile_id: int) -> None:
        if not await self._store.delete_voice_profile(profile_id, user_id):
            raise NotFoundError(f"Voice profile {profile_id} not found")

    # Usage ---------------------------------------------------------------------

    async def usage_stats(self, user_id: str) -> UsageSummary:
        return summarize_usage(await self._store.list_usage(user_id))
