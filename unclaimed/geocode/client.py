"""Factories for the HTTP client used to reach the geocoding service."""
from __future__ import annotations

import contextlib
from typing import AsyncIterator, Optional

import httpx


@contextlib.asynccontextmanager
async def create_geocoding_client(
    *,
    user_agent: str,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield an `httpx.AsyncClient` that identifies the application on every request."""
    headers = {"User-Agent": user_agent, "Accept": "application/json"}
    # A single connection is enough: calls are strictly sequential.
    limits = httpx.Limits(max_connections=1, max_keepalive_connections=1)
    async with httpx.AsyncClient(headers=headers, limits=limits, timeout=timeout, transport=transport) as client:
        yield client
