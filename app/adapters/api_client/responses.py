"""Helpers for interpreting downstream API responses."""

from __future__ import annotations

import enum
import json
import re
from typing import Any, Mapping

import httpx

_VALUE_ERROR_PREFIX = re.compile(r"^Value error,\s*", re.IGNORECASE)

DEFAULT_ERROR_MESSAGE = "An error occurred"


class NoContent(enum.Enum):
    """Result of a request answered with 204 No Content."""

    NO_CONTENT = "no_content"

    def __bool__(self) -> bool:
        return False


NO_CONTENT = NoContent.NO_CONTENT


def is_expired_by_header(headers: Mapping[str, str]) -> bool:
    """Detect an expired bearer token from response headers.

    Either signal is sufficient:
    - ``WWW-Authenticate`` carrying ``error="invalid_token"`` and an
      error description mentioning expiry (RFC 6750 section 3)
    - ``X-Token-Expired: true``

    A 401 without either means the credential itself was rejected.
    """

    challenge = (headers.get("www-authenticate") or "").lower()
    if 'error="invalid_token"' in challenge and "expired" in challenge:
        return True
    return (headers.get("x-token-expired") or "").strip().lower() == "true"


def _first_validation_message(errors: list[Any]) -> str:
    first = errors[0] if errors else None
    if isinstance(first, Mapping) and isinstance(first.get("msg"), str) and first["msg"]:
        return _VALUE_ERROR_PREFIX.sub("", first["msg"])
    return json.dumps(errors)


def extract_error_message(body: str) -> str | None:
    """Pull a human-readable message out of an error body.

    Accepted shapes, in order: a list of validation errors, ``detail`` as a
    list of validation errors, ``detail`` string, ``message`` string. Any
    other JSON falls back to the raw text. Returns None for non-JSON bodies.
    """

    try:
        data = json.loads(body)
    except (TypeError, ValueError):
        return None

    if isinstance(data, list):
        return _first_validation_message(data)

    if isinstance(data, Mapping):
        detail = data.get("detail")
        if isinstance(detail, list):
            return _first_validation_message(detail)
        if isinstance(detail, str) and detail:
            return detail
        message = data.get("message")
        if isinstance(message, str) and message:
            return message

    return body or None


def parse_error_message(response: httpx.Response) -> str:
    """Message for a failed response, falling back to the reason phrase."""

    message = extract_error_message(response.text)
    if message:
        return message
    return response.reason_phrase or DEFAULT_ERROR_MESSAGE
