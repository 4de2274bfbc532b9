"""Authenticated request client for the downstream API."""

from app.adapters.api_client.client import ApiClient
from app.adapters.api_client.responses import NO_CONTENT, NoContent

__all__ = ["ApiClient", "NO_CONTENT", "NoContent"]
