from __future__ import annotations


class TranscriptionError(Exception):
    """Base class for every error raised by the ASR providers."""


class ValidationError(TranscriptionError):
    """A caller-supplied option violates a precondition."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"validation error on field '{field}': {message}")


class FetchError(TranscriptionError):
    """A named workflow step failed."""

    def __init__(self, step: str, message: str, cause: BaseException | None = None):
        self.step = step
        self.message = message
        self.cause = cause
        text = f"fetch error at step '{step}': {message}"
        if cause is not None:
            text = f"{text}: {cause}"
        super().__init__(text)


class APIError(TranscriptionError):
    """A remote endpoint answered with a non-success HTTP status."""

    def __init__(self, status_code: int, response: str):
        self.status_code = status_code
        self.response = response
        super().__init__(f"API error (status {status_code}): {response}")


class ParseError(TranscriptionError):
    def __init__(self, message: str, cause: BaseException | None = None):
        self.message = message
        self.cause = cause
        text = f"parse error: {message}"
        if cause is not None:
            text = f"{text}: {cause}"
        super().__init__(text)


class ProviderNotFoundError(TranscriptionError, LookupError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"provider '{name}' not found")


class MalformedResponseError(TranscriptionError):
    """A decoded response lacks a field a workflow step depends on."""


class PollTimeoutError(TranscriptionError):
    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"polling timeout after {attempts} attempts")


class FetchCancelledError(TranscriptionError):
    """The caller's cancellation event fired while the workflow was running."""


class TranscribeError(TranscriptionError):
    """Raised by transcribe(); ``phase`` is "fetch" or "parse"."""

    def __init__(self, phase: str, cause: TranscriptionError):
        self.phase = phase
        self.cause = cause
        super().__init__(f"{phase} failed: {cause}")
