"""
Error taxonomy for completion jobs.

Fatal errors are exceptions raised from JobController.start() before any
network call is made:

    from inkstream.utils.exceptions import CredentialError, EmptyPromptError

Everything that happens once a stream is running is a Diagnostic: it is
logged and reported to the host. Only a HOST diagnostic (the host failed to
take a fragment) ends the job.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class InkstreamError(Exception):
    """Base class for errors raised to the caller of start()."""


class CredentialError(InkstreamError):
    """Raised when the environment variable holding a provider key is missing or empty."""

    def __init__(self, name: Optional[str]):
        self.name = name
        if name:
            message = f"API key environment variable not found: {name}"
        else:
            message = "API key name not configured"
        super().__init__(message)


class EmptyPromptError(InkstreamError):
    """Raised when the host resolves an empty prompt."""

    def __init__(self, detail: str = "No prompt generated (no selection or text before cursor?)"):
        super().__init__(detail)


class UnknownProviderError(InkstreamError):
    """Raised when no codec is registered for a provider id."""

    def __init__(self, provider_id: str):
        self.provider_id = provider_id
        super().__init__(f"Unknown provider '{provider_id}'")


class DiagnosticKind(str, Enum):
    DECODE = "decode"
    PROVIDER = "provider"
    TRANSPORT = "transport"
    EXIT_NON_ZERO = "exit_non_zero"
    HOST = "host"


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal problem observed while a job was streaming."""

    kind: DiagnosticKind
    message: str
    job_id: Optional[int] = None
