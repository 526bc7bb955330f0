from __future__ import annotations


class ArchiveError(RuntimeError):
    """Base error for archive ingestion and scoring."""


class ConfigError(ArchiveError, ValueError):
    """Raised when the league configuration file is malformed."""


class ProviderError(ArchiveError):
    """Raised when the external stats provider cannot serve a request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
