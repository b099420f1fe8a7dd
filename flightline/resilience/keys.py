"""Deterministic keys for deduplicating requests."""

import hashlib
from typing import Any, Mapping, Optional


def request_key(method: str, url: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """Build a dedup key from method, URL and query parameters.

    Parameters are sorted by name so ``{"b": 2, "a": 1}`` and ``{"a": 1, "b": 2}``
    produce the same key. They are appended with ``&`` if the URL already has a
    query string, otherwise with ``?``.

    >>> request_key("get", "/users", {"page": 2, "limit": 10})
    'GET /users?limit=10&page=2'
    """
    target = url
    if params:
        query = "&".join(f"{name}={_stringify(params[name])}" for name in sorted(params))
        separator = "&" if "?" in url else "?"
        target = f"{url}{separator}{query}"
    return f"{method.upper()} {target}"


def hashed_key(*parts: Any) -> str:
    """Fixed-length sha256 key for arbitrary parts, e.g. a request body."""
    digest = hashlib.sha256()
    for part in parts:
        digest.update(str(part).encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
