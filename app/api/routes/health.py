from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter

from app.core.config import get_settings
from app.services.tool_registry import TOOL_METADATA

router = APIRouter(tags=["health"])


@router.get("/health")
def read_health() -> dict:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/status")
def read_status() -> Dict[str, Any]:
    """Which optional backends are configured, for ops dashboards."""
    settings = get_settings()
    return {
        "ready": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "pendingCallStore": "redis" if settings.redis_url else "memory",
        "entityRepository": "supabase" if settings.supabase_url and settings.supabase_service_role_key else "memory",
        "businessApiConfigured": bool(settings.business_api_base_url),
        "llmConfigured": bool(settings.openai_api_key),
        "llmPrimaryModel": settings.llm_primary_model,
        "toolCount": len(TOOL_METADATA),
    }
