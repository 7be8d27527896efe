"""Exception types raised by the recording-to-transcript pipeline."""

from __future__ import annotations


class GeminiWhisperError(Exception):
    """Base class for all application errors."""


class NotFoundError(GeminiWhisperError):
    """A referenced item does not exist."""


class ModeNotFoundError(NotFoundError):
    def __init__(self, mode_id: str) -> None:
        super().__init__(f"Unknown mode: {mode_id!r}")
        self.mode_id = mode_id


class ArchiveEntryNotFound(NotFoundError):
    def __init__(self, entry_id: str) -> None:
        super().__init__(f"No archived recording with id {entry_id!r}")
        self.entry_id = entry_id


class ToolInvocationFailure(GeminiWhisperError):
    """The external audio tool could not be run or exited with an error."""


class ArchiveIOFailure(GeminiWhisperError):
    """Reading or writing the recording archive failed."""


class TranscriptionError(GeminiWhisperError):
    """
    A failed call to the remote transcription endpoint.

    Attributes:
        kind: Short machine-readable error category.
        message: Human readable description, preferably from the endpoint.
        retryable: Whether another attempt may succeed.
        status_code: HTTP status, if a response was received.
    """

    kind = "transcription_error"
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        kind: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        if kind is not None:
            self.kind = kind


class TransientRemoteFailure(TranscriptionError):
    kind = "transient"
    retryable = True


class RetriesExhausted(TransientRemoteFailure):
    kind = "retries_exhausted"
    retryable = False


class QuotaExceeded(TranscriptionError):
    kind = "quota_exceeded"


class InvalidRequest(TranscriptionError):
    kind = "invalid_request"


class MalformedResponse(TranscriptionError):
    kind = "malformed_response"
