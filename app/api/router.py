from fastapi import APIRouter

from app.api.routes import assistant, conversations, health
from app.core.config import get_settings


def get_api_router() -> APIRouter:
    settings = get_settings()
    router = APIRouter(prefix=settings.api_prefix)
    router.include_router(health.router)
    router.include_router(assistant.router)
    router.include_router(conversations.router)
    return router
