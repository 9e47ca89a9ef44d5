"""API key authentication, caller identity and rate limiting dependencies."""
from __future__ import annotations

from fastapi import Depends, Header, Security
from fastapi.security import APIKeyHeader

from ..bootstrap import Container
from ..errors import ErrorKind, ServiceError
from .dependencies import container_dependency

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)


async def require_api_key(
    api_key: str | None = Security(API_KEY_HEADER),
    container: Container = Depends(container_dependency),
) -> str:
    if not api_key or api_key != container.settings.api.api_key:
        raise ServiceError(ErrorKind.UNAUTHORIZED, "Invalid or missing API key")
    return api_key


async def current_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity forwarded by the upstream authorizer."""

    if not x_user_id or not x_user_id.strip():
        raise ServiceError(ErrorKind.UNAUTHORIZED, "Missing X-User-Id header")
    return x_user_id.strip()


async def enforce_rate_limit(
    api_key: str = Depends(require_api_key),
    container: Container = Depends(container_dependency),
) -> None:
    await container.rate_limiter.enforce(api_key)
