"""
Conversation Orchestrator.

Executes one chat turn: persist the user's utterance, build the prompt
from the conversation's history, dispatch to the conversation's text
provider, persist the reply and record usage.

Provider failures never escape ``send_message``. They become the
assistant message content ("Error: ...") so the conversation log records
what happened, and the caller always gets a ChatResult back.
"""

from dataclasses import dataclass
from typing import List, Optional

from ..config import AppConfig
from ..errors import AdapterError, ConfigurationError, UnsupportedProviderError
from ..logging_config import get_logger, set_correlation_id
from ..pipelines.base import Capability, LLMMessage, LLMRequest
from ..pipelines.registry import ProviderRegistry
from .conversations import ConversationService
from .models import Message, RequestType, Role, UsageRecord, temperature_from_storage
from .store import ChatStore

logger = get_logger(__name__)


@dataclass
class ChatResult:
    message_id: int
    content: str
    token_count: Optional[int]
    provider: str
    model: str
    failed: bool = False


class ConversationOrchestrator:
    def __init__(self, store: ChatStore, registry: ProviderRegistry, app_config: AppConfig):
        self._store = store
        self._registry = registry
        self._app_config = app_config
        self._conversations = ConversationService(store, app_config, registry)

    def build_prompt(self, system_prompt: Optional[str], history: List[Message], text: str) -> List[LLMMessage]:
        """[system, *history, user]; history is windowed only when max_history_messages is set."""
        window = self._app_config.defaults.max_history_messages
        if window is not None:
            history = history[-window:]
        messages = [LLMMessage(role=Role.SYSTEM.value, content=system_prompt or self._app_config.defaults.system_prompt)]
        messages.extend(LLMMessage(role=m.role, content=m.content) for m in history)
        messages.append(LLMMessage(role=Role.USER.value, content=text))
        return messages

    async def send_message(
        self,
        user_id: str,
        conversation_id: int,
        text: str,
        *,
        provider: Optional[str] = None,
        model: Optional[str] = None,
    ) -> ChatResult:
        """
        Run one chat turn.

        Args:
            user_id: Owner of the conversation
            conversation_id: Target conversation
            text: The user's utterance
            provider: Optional per-turn override of the conversation's text provider
            model: Optional per-turn override of the conversation's model

        Raises:
            NotFoundError: conversation missing or owned by another user
        """
        set_correlation_id()
        conversation = await self._conversations.get_conversation(user_id, conversation_id)

        history = await self._store.list_messages(conversation_id)
        await self._store.create_message(
            Message(conversation_id=conversation_id, role=Role.USER.value, content=text)
        )

        defaults = self._app_config.defaults
        provider_id = provider or conversation.llm_provider or defaults.llm_provider
        model_id = model or conversation.llm_model or defaults.llm_model
        temperature = temperature_from_storage(conversation.temperature)
        canonical = self._registry.canonical_id(Capability.TEXT, provider_id) or provider_id

        failed = False
        token_count: Optional[int]
        try:
            credential = await self._store.get_active_credential(user_id, canonical)
            request = LLMRequest(
                messages=self.build_prompt(conversation.system_prompt, history, text),
                model=model_id,
                api_key=credential.api_key if credential else None,
                temperature=temperature,
                max_tokens=defaults.max_tokens,
            )
            adapter = self._registry.resolve_adapter(Capability.TEXT, provider_id)
            response = await adapter(request)
            content = response.content
            token_count = response.usage.total_tokens if response.usage else 0
        except (AdapterError, ConfigurationError, UnsupportedProviderError) as exc:
            logger.warning(
                "Chat turn failed at provider",
                conversation_id=conversation_id,
                provider=provider_id,
                model=model_id,
                error=str(exc),
            )
            content = f"Error: {exc}"
            token_count = None
            failed = True

        assistant = await self._store.create_message(
            Message(
                conversation_id=conversation_id,
                role=Role.ASSISTANT.value,
                content=content,
                provider=canonical,
                model=model_id,
                token_count=token_count,
            )
        )
        await self._store.record_usage(
            UsageRecord(
                user_id=user_id,
                provider=canonical,
                request_type=RequestType.TEXT.value,
                token_count=token_count or 0,
            )
        )
        logger.info(
            "Chat turn complete",
            conversation_id=conversation_id,
            provider=canonical,
            model=model_id,
            tokens=token_count,
            failed=failed,
        )
        return ChatResult(
            message_id=assistant.id,
            content=content,
            token_count=token_count,
            provider=canonical,
            model=model_id,
            failed=failed,
        )
