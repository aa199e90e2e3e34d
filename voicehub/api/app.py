from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler

from ..errors import VoiceHubError
from ..logging_config import get_logger
from . import chat, conversations, settings, voice
from .deps import Services, get_current_user, to_http_exception

logger = get_logger(__name__)


def create_app(services: Services) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await services.registry.start()
        logger.info("VoiceHub API started", db_path=services.app_config.database.path)
        try:
            yield
        finally:
            await services.registry.stop()

    app = FastAPI(title="VoiceHub API", lifespan=lifespan)
    app.state.services = services

    @app.exception_handler(VoiceHubError)
    async def voicehub_error_handler(request: Request, exc: VoiceHubError):
        return await http_exception_handler(request, to_http_exception(exc))

    # Protected routes
    app.include_router(conversations.router, prefix="/api", tags=["conversations"], dependencies=[Depends(get_current_user)])
    app.include_router(chat.router, prefix="/api", tags=["chat"], dependencies=[Depends(get_current_user)])
    app.include_router(voice.router, prefix="/api", tags=["voice"], dependencies=[Depends(get_current_user)])
    app.include_router(settings.router, prefix="/api", tags=["settings"], dependencies=[Depends(get_current_user)])

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app
