from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import httpx

from .configuration import get_http_timeout

TOKEN_HEADER = "x-bot-token"


def auth_headers(service_token: str, json_body: bool = False) -> Dict[str, str]:
    headers = {TOKEN_HEADER: service_token}
    if json_body:
        headers["content-type"] = "application/json"
    return headers


def create_client(transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=get_http_timeout(), follow_redirects=True, transport=transport)


@asynccontextmanager
async def client_scope(client: Optional[httpx.AsyncClient] = None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the caller's client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with create_client() as owned:
        yield owned
