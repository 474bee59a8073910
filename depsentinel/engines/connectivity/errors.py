"""Network error recognition shared by the probe and the coordinator."""

from __future__ import annotations

import httpx

_NETWORK_ERROR_PATTERNS = (
    "enotfound",
    "etimedout",
    "econnrefused",
    "econnreset",
    "eai_again",
    "getaddrinfo",
    "network",
    "offline",
    "internet",
    "enetunreach",
    "ehostunreach",
    "name or service not known",
    "connection refused",
    "timed out",
)


def is_network_error(exc: BaseException | None) -> bool:
    """True if *exc* looks like a transport failure rather than a logic error."""
    if exc is None:
        return False
    if isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError)):
        return True
    text = f"{type(exc).__name__}: {exc}".lower()
    return any(pattern in text for pattern in _NETWORK_ERROR_PATTERNS)
