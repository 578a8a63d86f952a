"""Shared HTTP client handling."""

import httpx

from org_pulse.config import get_api_url, get_timeout, get_verify_ssl


def create_async_http_client(
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an async HTTP client with connection pooling.

    One client is created per batch invocation and shared by every pipeline
    running in that batch; it is never reused across invocations.

    Args:
        transport: Optional transport override (used by tests).
    """
    return httpx.AsyncClient(
        base_url=get_api_url(),
        verify=get_verify_ssl(),
        timeout=get_timeout(),
        transport=transport,
        limits=httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
            keepalive_expiry=30.0,
        ),
        headers={
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "org-pulse",
        },
    )
