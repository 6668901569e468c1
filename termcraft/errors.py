"""Error types raised by the termcraft core.

Every failure path in the core surfaces as a subclass of
:class:`TermcraftError`.  Each subclass carries a short ``kind`` string
so that callers which only care about the category (the CLI, the JSON
server) can report it without an ``isinstance`` ladder.
"""

from __future__ import annotations

from typing import Optional


class TermcraftError(Exception):
    """Base class for all termcraft errors."""

    kind = "error"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.kind}: {self.message} (cause: {self.cause})"
        return f"{self.kind}: {self.message}"


class ConfigurationError(TermcraftError):
    """Missing credentials, malformed config file or uninitialised client."""

    kind = "configuration_error"


class ExecutionError(TermcraftError):
    """The backend call failed or returned nothing usable."""

    kind = "execution_error"


class PermissionDeniedError(TermcraftError):
    """A command was refused by the safety validator."""

    kind = "permission_error"


class ValidationError(TermcraftError):
    """A command is structurally unusable (e.g. empty)."""

    kind = "validation_error"


class RateLimitError(TermcraftError):
    """A rate limit ceiling was reached.

    ``retry_after`` is the number of seconds until the window that
    caused the refusal resets.
    """

    kind = "rate_limit_error"

    def __init__(self, message: str, retry_after: float = 0.0) -> None:
        super().__init__(message)
        self.retry_after = max(0.0, retry_after)


class ModelError(TermcraftError):
    """Unknown model name or model misconfiguration."""

    kind = "model_error"


class InputError(TermcraftError):
    """Bad, missing, oversized or unsupported input files."""

    kind = "input_error"


class RequestTimeoutError(TermcraftError):
    """A request was cancelled or ran out of time."""

    kind = "timeout_error"


class SystemInfoError(TermcraftError):
    """The local system could not be inspected."""

    kind = "system_error"
