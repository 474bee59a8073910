"""Custom exceptions for depsentinel."""

from __future__ import annotations


class DepSentinelError(Exception):
    """Base exception for all depsentinel errors."""


class ConnectivityError(DepSentinelError):
    """Raised when the network is unreachable and no safe fallback exists.

    ``remediation`` lists the actions the user may take next.
    """

    def __init__(self, message: str, remediation: list[str] | None = None) -> None:
        self.remediation = list(remediation or [])
        super().__init__(message)


class AuthError(DepSentinelError):
    """Raised when a vulnerability source rejects the configured credentials.

    Never retried automatically — the user has to reconfigure the secret.
    """

    def __init__(self, source: str, message: str | None = None) -> None:
        self.source = source
        super().__init__(message or f"{source} rejected the configured credentials")


class CacheUnavailable(DepSentinelError):
    """Raised when offline and no cache accessor is configured."""


class SnapshotCorrupt(DepSentinelError):
    """Raised when a stored analysis snapshot fails validation on load."""


class AnalysisFailure(DepSentinelError):
    """Raised when the underlying analysis engine throws."""


class ScanLockError(DepSentinelError):
    """Raised when a scan lock is released by something that does not hold it."""
