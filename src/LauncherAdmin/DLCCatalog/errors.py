"""Exception hierarchy shared across DLC discovery, reconciliation, and publishing.

The catalog engine talks to two external collaborators (the public object
store and the document store) and surfaces four kinds of failure to the
operator: transient fetch failures, validation findings, destructive
operations awaiting confirmation, and rejected persistence.  Validation
findings are plain strings collected in a report; the remaining categories
are grouped here so callers can react to the high-level category while still
having access to the context (url, build, app) needed to act on it.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional

__all__ = [
    "DLCCatalogError",
    "ConfigurationError",
    "UnknownBuildError",
    "InvalidFormError",
    "FetchFailure",
    "ConfirmationRequiredError",
    "PersistenceError",
]


class DLCCatalogError(RuntimeError):
    """Base exception for DLC discovery, sync, or catalog publishing failures."""


class ConfigurationError(DLCCatalogError):
    """Raised when settings files or environment overrides are invalid."""


class UnknownBuildError(ConfigurationError, ValueError):
    """Raised when a build name is neither ``production`` nor ``staging``."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Unknown build '{value}' (expected 'production' or 'staging')")
        self.value = value


class InvalidFormError(ConfigurationError):
    """Raised when operator-entered DLC values fail validation.

    ``errors`` maps each offending form field to its message.
    """

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors: Dict[str, str] = dict(errors)
        summary = "; ".join(f"{field}: {message}" for field, message in self.errors.items())
        super().__init__(f"Invalid DLC form: {summary}")


class FetchFailure(DLCCatalogError):
    """Raised when an object store GET/HEAD fails or returns unusable JSON."""

    def __init__(
        self,
        message: str,
        *,
        url: str,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class ConfirmationRequiredError(DLCCatalogError):
    """Raised when a destructive write is attempted without explicit confirmation."""


class PersistenceError(DLCCatalogError):
    """Raised when the document store rejects a write."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        key: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.key = key
