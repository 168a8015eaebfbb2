"""Failure taxonomy for the avalanche analysis pipeline.

Every failure raised inside the pipeline is an `AnalysisError` subclass that
carries an `ErrorKind`. The session converts the exception into an
`AnalysisFailure` value so the presentation layer can match on `kind` without
inspecting exception types.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class ErrorStage(str, Enum):
    """Where in the pipeline a failure originated."""

    INPUT = "input"
    CREDENTIAL = "credential"
    TRANSIENT = "transient"
    REMOTE_CONTRACT = "remote_contract"
    INTERNAL = "internal"


class ErrorKind(str, Enum):
    UNSUPPORTED_FORMAT = "unsupported_format"
    CORRUPT_IMAGE = "corrupt_image"
    ENCODING_TOO_LARGE = "encoding_too_large"
    AUTH_ERROR = "auth_error"
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"
    SERVER_ERROR = "server_error"
    MALFORMED_ENVELOPE = "malformed_envelope"
    SCHEMA_VIOLATION = "schema_violation"
    INCOMPLETE_ASSESSMENT = "incomplete_assessment"
    INTERNAL_ERROR = "internal_error"

    @property
    def stage(self) -> ErrorStage:
        return _STAGES[self]

    @property
    def retryable(self) -> bool:
        """True when a manual retry of the same image may succeed."""
        return self.stage is ErrorStage.TRANSIENT


_STAGES = {
    ErrorKind.UNSUPPORTED_FORMAT: ErrorStage.INPUT,
    ErrorKind.CORRUPT_IMAGE: ErrorStage.INPUT,
    ErrorKind.ENCODING_TOO_LARGE: ErrorStage.INPUT,
    ErrorKind.AUTH_ERROR: ErrorStage.CREDENTIAL,
    ErrorKind.RATE_LIMITED: ErrorStage.TRANSIENT,
    ErrorKind.TIMEOUT: ErrorStage.TRANSIENT,
    ErrorKind.TRANSPORT_ERROR: ErrorStage.TRANSIENT,
    ErrorKind.SERVER_ERROR: ErrorStage.TRANSIENT,
    ErrorKind.MALFORMED_ENVELOPE: ErrorStage.REMOTE_CONTRACT,
    ErrorKind.SCHEMA_VIOLATION: ErrorStage.REMOTE_CONTRACT,
    ErrorKind.INCOMPLETE_ASSESSMENT: ErrorStage.REMOTE_CONTRACT,
    ErrorKind.INTERNAL_ERROR: ErrorStage.INTERNAL,
}


@dataclass(frozen=True)
class AnalysisFailure:
    """Renderable description of a failed analysis.

    Attributes:
        kind: Taxonomy entry the failure belongs to.
        message: Human readable explanation suitable for display.
        retry_after: Seconds suggested by the remote service before retrying (rate limits only).
    """

    kind: ErrorKind
    message: str
    retry_after: Optional[float] = None

    @property
    def stage(self) -> ErrorStage:
        return self.kind.stage

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "stage": self.stage.value,
            "message": self.message,
            "retryable": self.retryable,
            "retry_after": self.retry_after,
        }


class AnalysisError(Exception):
    """Base class for every failure surfaced by the analysis pipeline."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_failure(self) -> AnalysisFailure:
        return AnalysisFailure(kind=self.kind, message=self.message)


class UnsupportedFormat(AnalysisError):
    kind = ErrorKind.UNSUPPORTED_FORMAT


class CorruptImage(AnalysisError):
    kind = ErrorKind.CORRUPT_IMAGE


class EncodingTooLarge(AnalysisError):
    kind = ErrorKind.ENCODING_TOO_LARGE


class AuthError(AnalysisError):
    kind = ErrorKind.AUTH_ERROR


class RateLimited(AnalysisError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after

    def to_failure(self) -> AnalysisFailure:
        return AnalysisFailure(kind=self.kind, message=self.message, retry_after=self.retry_after)


class Timeout(AnalysisError):
    kind = ErrorKind.TIMEOUT


class TransportError(AnalysisError):
    kind = ErrorKind.TRANSPORT_ERROR


class ServerError(AnalysisError):
    kind = ErrorKind.SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedEnvelope(AnalysisError):
    kind = ErrorKind.MALFORMED_ENVELOPE


class SchemaViolation(AnalysisError):
    kind = ErrorKind.SCHEMA_VIOLATION


class IncompleteAssessment(AnalysisError):
    kind = ErrorKind.INCOMPLETE_ASSESSMENT

    def __init__(self, message: str, missing_fields: tuple = ()) -> None:
        super().__init__(message)
        self.missing_fields = tuple(missing_fields)
