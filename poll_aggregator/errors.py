"""Error kinds raised or reported by the ingestion pipeline."""

from __future__ import annotations

from enum import Enum


class FetchErrorKind(str, Enum):
    """Classification of a failed fetch sequence."""

    TRANSIENT_NETWORK = "transient_network"
    TRANSIENT_HTTP = "transient_http"
    MALFORMED_JSON = "malformed_json"

    @property
    def retryable(self) -> bool:
        return self is not FetchErrorKind.MALFORMED_JSON


class IngestionError(Exception):
    """Base class for fatal errors aborting a source run."""


class FetchError(IngestionError):
    """A fetch that could not produce a decoded JSON document."""

    def __init__(
        self,
        kind: FetchErrorKind,
        url: str,
        message: str,
        *,
        status_code: int | None = None,
        attempts: int = 1,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.url = url
        self.message = message
        self.status_code = status_code
        self.attempts = attempts

    def __str__(self) -> str:
        return f"{self.message} ({self.kind.value}, {self.attempts} attempt(s): {self.url})"


class MalformedEnvelopeError(IngestionError):
    """Top-level response does not match the source contract."""

    def __init__(self, source: str, detail: str) -> None:
        super().__init__(f"Unexpected {source} response shape: {detail}")
        self.source = source
        self.detail = detail


class PersistenceError(IngestionError):
    """Storage layer failure while writing polls or runs."""


__all__ = [
    "FetchError",
    "FetchErrorKind",
    "IngestionError",
    "MalformedEnvelopeError",
    "PersistenceError",
]
