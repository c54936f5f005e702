"""Structured error types for the Legal Hub workflow engine.

Every rejection raised by the engine is a ``WorkflowError`` subclass carrying
an ``ErrorType``, a human-readable message and the submission context. The
runtime converts them into a single envelope structure (``to_dict``) so the
view layer can surface them without parsing messages.

Validation is always completed before any write, so a raised error means
nothing was changed.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from legalhub.types import ErrorType, FieldErrorCode


@dataclass(frozen=True)
class FieldError:
    """Per-field validation error details.

    Attributes:
        path: Field name or dot-notation path (e.g., "registeredBy", "parties.0.type")
        code: Specific validation error code
        message: Human-readable error description
        expected: Optional - what was expected
        received: Optional - what was actually received

    Examples:
        >>> err = FieldError(
        ...     path="registeredBy",
        ...     code=FieldErrorCode.REQUIRED,
        ...     message="Field 'registeredBy' is required",
        ... )
        >>> err.path
        'registeredBy'
    """
    path: str
    code: FieldErrorCode
    message: str
    expected: Optional[Any] = None
    received: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        result: Dict[str, Any] = {
            "path": self.path,
            "code": self.code.value if isinstance(self.code, FieldErrorCode) else self.code,
            "message": self.message,
        }
        if self.expected is not None:
            result["expected"] = self.expected
        if self.received is not None:
            result["received"] = self.received
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldError":
        """Create FieldError from dict."""
        code = data["code"]
        if isinstance(code, str):
            code = FieldErrorCode(code)
        return cls(
            path=data["path"],
            code=code,
            message=data["message"],
            expected=data.get("expected"),
            received=data.get("received"),
        )


class WorkflowError(Exception):
    """Base class for every error the engine reports to its caller.

    Attributes:
        error_type: Category of error
        message: Human-readable message
        submission_id: Submission the error relates to, when known
        status: Submission status at the time of the error, when known
        retryable: Whether repeating the identical call may succeed
    """

    error_type: ErrorType = ErrorType.INVALID_STATE
    retryable: bool = False

    def __init__(
        self,
        message: str,
        submission_id: Optional[str] = None,
        status: Optional[str] = None,
    ):
        self.message = message
        self.submission_id = submission_id
        self.status = status
        super().__init__(message)

    def with_context(self, submission_id: Optional[str], status: Optional[str]) -> "WorkflowError":
        """Fill in submission context if the raiser did not know it."""
        if self.submission_id is None:
            self.submission_id = submission_id
        if self.status is None:
            self.status = status
        return self

    def detail(self) -> Dict[str, Any]:
        return {
            "type": self.error_type.value,
            "message": self.message,
            "retryable": self.retryable,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the error envelope returned by the runtime.

        Examples:
            >>> NotFoundError("Submission sub_1 not found", submission_id="sub_1").to_dict()["error"]["type"]
            'not_found'
        """
        return {
            "ok": False,
            "submissionId": self.submission_id,
            "status": self.status,
            "error": self.detail(),
        }


class NotFoundError(WorkflowError):
    """Submission, ledger row or document does not exist."""

    error_type = ErrorType.NOT_FOUND


class InvalidActorError(WorkflowError):
    """The requesting role is not the one authorised to act in the current state."""

    error_type = ErrorType.INVALID_ACTOR


class AlreadyActionedError(WorkflowError):
    """The targeted ledger row was already resolved; nothing was changed."""

    error_type = ErrorType.ALREADY_ACTIONED


class InvalidStateError(WorkflowError):
    """The action is not legal for the submission's current status or stage."""

    error_type = ErrorType.INVALID_STATE


class ValidationError(WorkflowError):
    """Input is incomplete or malformed.

    Raised for missing comments on send-back/cancel, missing official-use
    fields at completion, malformed requests, and unknown assignees.

    Attributes:
        fields: Per-field error details
    """

    error_type = ErrorType.VALIDATION

    def __init__(
        self,
        message: str,
        fields: Optional[List[FieldError]] = None,
        submission_id: Optional[str] = None,
        status: Optional[str] = None,
    ):
        super().__init__(message, submission_id=submission_id, status=status)
        self.fields: List[FieldError] = list(fields or [])

    @property
    def missing_fields(self) -> List[str]:
        """Paths of fields reported as required."""
        return [f.path for f in self.fields if f.code == FieldErrorCode.REQUIRED]

    def detail(self) -> Dict[str, Any]:
        result = super().detail()
        if self.fields:
            result["fields"] = [f.to_dict() for f in self.fields]
        return result


class StoreError(WorkflowError):
    """The backing store failed; callers should retry with backoff."""

    error_type = ErrorType.STORE
    retryable = True


class ConcurrentModificationError(StoreError):
    """Another writer committed the submission after it was read."""


def missing_field_error(
    names: List[str],
    message: str,
    code: FieldErrorCode = FieldErrorCode.REQUIRED,
) -> ValidationError:
    """Build a ValidationError naming each missing field."""
    return ValidationError(
        f"{message}: {', '.join(names)}",
        fields=[
            FieldError(
                path=name,
                code=code,
                message=f"Field '{name}' is required but was not provided",
                expected="non-empty value",
            )
            for name in names
        ],
    )


def invalid_field_error(
    path: str,
    message: str,
    expected: Optional[Any] = None,
    received: Optional[Any] = None,
) -> ValidationError:
    """Build a ValidationError for a single malformed field."""
    return ValidationError(
        message,
        fields=[
            FieldError(
                path=path,
                code=FieldErrorCode.INVALID_VALUE,
                message=message,
                expected=expected,
                received=received,
            )
        ],
    )


__all__ = [
    "FieldError",
    "WorkflowError",
    "NotFoundError",
    "InvalidActorError",
    "AlreadyActionedError",
    "InvalidStateError",
    "ValidationError",
    "StoreError",
    "ConcurrentModificationError",
    "missing_field_error",
    "invalid_field_error",
]
