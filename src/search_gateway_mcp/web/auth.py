"""
Search API key extraction for the MCP endpoint.

PURPOSE: Pick up a per-request search API key so hosted deployments can serve
clients that bring their own key.

PRECEDENCE (first non-empty wins):
1. Query parameter 'apiKey' or 'api_key'
2. Header 'x-api-key'
3. Header 'Authorization: Bearer <key>'
4. Environment variable BRAVE_API_KEY

The key is stored process-wide through Config.set_api_key(). Concurrent
requests with different keys race on that slot; the provider reads whichever
was set last.
"""

from __future__ import annotations

import logging
import os

from fastapi import Request

from ..config import Config

__all__ = ["extract_api_key", "require_api_key"]

logger = logging.getLogger(__name__)

BEARER_PREFIX = "bearer "


def extract_api_key(request: Request) -> str | None:
    """
    Find the search API key carried by a request.

    Args:
        request: Incoming request.

    Returns:
        The key, or None if neither the request nor the environment has one.

    Example:
        >>> # GET /mcp?apiKey=abc  -> 'abc'
        >>> # Authorization: Bearer xyz  -> 'xyz'
    """
    params = request.query_params
    key = params.get("apiKey") or params.get("api_key") or request.headers.get("x-api-key")
    if key:
        return key

    authorization = request.headers.get("authorization", "")
    if authorization.lower().startswith(BEARER_PREFIX):
        token = authorization[len(BEARER_PREFIX) :].strip()
        if token:
            return token

    return os.environ.get("BRAVE_API_KEY") or None


async def require_api_key(request: Request) -> None:
    """
    FastAPI dependency for /mcp: store the extracted key in Config.

    Requests without any key are let through; the provider reports the
    missing key as a tool error.
    """
    key = extract_api_key(request)
    if key:
        Config.set_api_key(key)
    else:
        logger.debug("No search API key on request or in environment")
