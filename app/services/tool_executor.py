from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, Optional, Protocol

import httpx
from fastapi import HTTPException, status

from app.core.config import get_settings
from app.middleware.caller_context import CallerContext
from app.models.assistant import ToolExecutionResult

logger = logging.getLogger(__name__)


class BusinessExecutorError(Exception):
    def __init__(self, status_code: int, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details or {"error": message}


class BusinessExecutor(Protocol):
    """Carries out tool calls against the wedding-planning backend."""

    async def execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolExecutionResult:
        ...

    async def preview(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> Optional[Dict[str, Any]]:
        """Describe a mutation without side effects; ``None`` when the backend has no preview."""
        ...


class HttpBusinessExecutor:
    """HTTP client for the business API (``/tools/<name>/execute`` and ``/tools/<name>/preview``)."""

    def __init__(self, base_url: str, *, timeout: float = 15.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def _request(self, path: str, payload: Dict[str, Any], caller: CallerContext) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                return await client.post(url, json=payload, headers=caller.as_headers())
        except httpx.RequestError as exc:
            raise BusinessExecutorError(status.HTTP_502_BAD_GATEWAY, f"Business API unreachable: {exc}") from exc

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise BusinessExecutorError(status.HTTP_502_BAD_GATEWAY, "Business API returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise BusinessExecutorError(status.HTTP_502_BAD_GATEWAY, "Business API returned an unexpected payload")
        return payload

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        try:
            payload = response.json()
        except ValueError:
            payload = {"error": response.text or response.reason_phrase}
        message = (payload.get("error") if isinstance(payload, dict) else None) or response.reason_phrase or "Tool request failed"
        raise BusinessExecutorError(response.status_code, message, payload if isinstance(payload, dict) else None)

    async def execute(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> ToolExecutionResult:
        response = await self._request(
            f"/tools/{tool_name}/execute",
            {"args": args, "clientId": caller.client_id},
            caller,
        )
        self._raise_for_status(response)
        payload = self._json(response)
        payload.setdefault("toolName", tool_name)
        result = ToolExecutionResult.model_validate(payload)
        if not result.success:
            raise BusinessExecutorError(status.HTTP_422_UNPROCESSABLE_ENTITY, result.message or f"{tool_name} failed", payload)
        return result

    async def preview(self, tool_name: str, args: Dict[str, Any], caller: CallerContext) -> Optional[Dict[str, Any]]:
        response = await self._request(
            f"/tools/{tool_name}/preview",
            {"args": args, "clientId": caller.client_id},
            caller,
        )
        if response.status_code == status.HTTP_404_NOT_FOUND:
            return None
        self._raise_for_status(response)
        return self._json(response)


@lru_cache
def get_business_executor() -> BusinessExecutor:
    settings = get_settings()
    if not settings.business_api_base_url:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Business API base URL is not configured")
    return HttpBusinessExecutor(settings.business_api_base_url, timeout=settings.business_api_timeout_seconds)
