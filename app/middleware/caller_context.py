"""
Caller identity for assistant requests.

The dashboard's auth layer authenticates the user and forwards the identity
as X-User-ID / X-Company-ID headers. Every assistant operation is scoped to
that company (tenant).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from fastapi import HTTPException, Request, status


@dataclass(frozen=True)
class CallerContext:
    """Authenticated caller attached to each assistant request."""
    user_id: str
    company_id: str
    client_id: Optional[str] = None

    def with_client(self, client_id: Optional[str]) -> "CallerContext":
        return replace(self, client_id=client_id)

    def as_headers(self) -> dict:
        headers = {"X-User-ID": self.user_id, "X-Company-ID": self.company_id}
        if self.client_id:
            headers["X-Client-ID"] = self.client_id
        return headers


async def get_caller_context(request: Request) -> CallerContext:
    """
    FastAPI dependency resolving the caller from request headers.

    Raises 401 when either identity header is missing.
    """
    user_id = (request.headers.get("X-User-ID") or "").strip()
    company_id = (request.headers.get("X-Company-ID") or "").strip()

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-ID header",
        )
    if not company_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Company-ID header",
        )

    return CallerContext(user_id=user_id, company_id=company_id)
