"""
Service container, authentication and error mapping shared by the routers.
"""

import inspect
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from fastapi import HTTPException, Request

from ..config import AppConfig
from ..core.chat import ConversationOrchestrator
from ..core.conversations import ConversationService
from ..core.models import User
from ..core.storage import LocalObjectStorage, ObjectStorage
from ..core.store import ChatStore
from ..core.voice import VoiceService
from ..errors import (
    AdapterError,
    ClipValidationError,
    ConfigurationError,
    NotFoundError,
    UnsupportedProviderError,
    VoiceHubError,
)
from ..logging_config import get_logger
from ..pipelines.registry import ProviderRegistry

logger = get_logger(__name__)

Authenticator = Callable[[Request], Union[Optional[User], Awaitable[Optional[User]]]]


@dataclass
class Services:
    app_config: AppConfig
    store: ChatStore
    storage: ObjectStorage
    registry: ProviderRegistry
    conversations: ConversationService
    orchestrator: ConversationOrchestrator
    voice: VoiceService
    authenticator: Authenticator


def build_services(
    app_config: AppConfig,
    *,
    authenticator: Optional[Authenticator] = None,
    registry: Optional[ProviderRegistry] = None,
    storage: Optional[ObjectStorage] = None,
) -> Services:
    store = ChatStore(app_config.database.path, encryption_key=app_config.security.credential_encryption_key)
    storage = storage or LocalObjectStorage(app_config.storage.base_dir, app_config.storage.public_base_url)
    registry = registry or ProviderRegistry(app_config)
    return Services(
        app_config=app_config,
        store=store,
        storage=storage,
        registry=registry,
        conversations=ConversationService(store, app_config, registry),
        orchestrator=ConversationOrchestrator(store, registry, app_config),
        voice=VoiceService(store, storage, registry, app_config),
        authenticator=authenticator or HeaderAuthenticator(),
    )


class HeaderAuthenticator:
    """
    Trusts the ``X-User-Id`` request header.

    Development only: anything that can reach the API can claim any user.
    """

    header = "X-User-Id"

    def __call__(self, request: Request) -> Optional[User]:
        user_id = (request.headers.get(self.header) or "").strip()
        if not user_id:
            return None
        return User(id=user_id)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def get_current_user(request: Request) -> User:
    services = get_services(request)
    user = services.authenticator(request)
    if inspect.isawaitable(user):
        user = await user
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def status_for(exc: VoiceHubError) -> int:
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (ConfigurationError, UnsupportedProviderError, ClipValidationError)):
        return 400
    if isinstance(exc, AdapterError):
        return 502
    return 500


def to_http_exception(exc: VoiceHubError) -> HTTPException:
    status = status_for(exc)
    if status >= 500:
        logger.error("Request failed", error=str(exc), error_type=type(exc).__name__)
    return HTTPException(status_code=status, detail=str(exc))
