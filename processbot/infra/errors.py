"""Custom exception hierarchy for processbot.

All application-specific exceptions inherit from ProcessBotError,
which carries an error code used in structured log records.
"""

from __future__ import annotations


class ProcessBotError(Exception):
    """Base exception for all processbot errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class MissingDataError(ProcessBotError):
    """A required field is absent from an upstream object (issue id, URL, ...)."""

    def __init__(self, message: str, *, code: str = "MISSING_DATA") -> None:
        super().__init__(message, code=code)


class UpstreamClientError(ProcessBotError):
    """A call to an external service failed."""

    def __init__(self, message: str, *, code: str = "UPSTREAM_ERROR") -> None:
        super().__init__(message, code=code)


class GitHubError(UpstreamClientError):
    """Errors from the GitHub REST API (transport failures, non-2xx responses)."""

    def __init__(
        self, message: str, *, code: str = "GITHUB_ERROR", status_code: int | None = None
    ) -> None:
        super().__init__(message, code=code)
        self.status_code = status_code


class ChatError(UpstreamClientError):
    """Errors in chat notifiers (Matrix, Telegram)."""

    def __init__(self, message: str, *, code: str = "CHAT_ERROR") -> None:
        super().__init__(message, code=code)


class StoreError(ProcessBotError):
    """Key-value store get/put/delete failed."""

    def __init__(self, message: str, *, code: str = "STORE_ERROR") -> None:
        super().__init__(message, code=code)


class DeserializationError(ProcessBotError):
    """A persisted escalation record exists but cannot be parsed.

    Never reset silently: a corrupt record aborts the evaluation.
    """

    def __init__(self, message: str, *, code: str = "DESERIALIZATION_ERROR") -> None:
        super().__init__(message, code=code)
