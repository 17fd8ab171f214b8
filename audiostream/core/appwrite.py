"""Appwrite REST session shared by the document store and file storage.

Both clients talk to Appwrite over plain HTTPS with a server API key, so the
service needs nothing beyond httpx to reach it.
"""

from typing import Optional

import httpx

from audiostream.core.config import Settings


def create_appwrite_client(
    settings: Settings,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Create an httpx client preconfigured for the Appwrite REST API.

    Args:
        settings: Application settings
        transport: Optional transport override (used by tests)

    Returns:
        httpx.Client with base URL and authentication headers set
    """
    return httpx.Client(
        base_url=settings.APPWRITE_ENDPOINT.rstrip("/"),
        headers={
            "X-Appwrite-Project": settings.APPWRITE_PROJECT_ID,
            "X-Appwrite-Key": settings.APPWRITE_API_KEY,
            "X-Appwrite-Response-Format": "1.4.0",
        },
        timeout=settings.APPWRITE_TIMEOUT_SECONDS,
        transport=transport,
    )


def error_message(response: httpx.Response) -> str:
    """Extract the error message Appwrite puts in a failed response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {response.status_code}"
