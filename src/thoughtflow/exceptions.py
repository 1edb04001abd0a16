"""Custom exceptions for ThoughtFlow.

Provides a structured exception hierarchy with error codes and
machine-readable error information. Every failure the engine reports to
a display sink is one of these.
"""
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_CONTENT_REQUIRED = 1005

    # Tag errors (3xxx)
    TAG_NAME_REQUIRED = 3002
    TAG_ALREADY_EXISTS = 3003

    # Storage / transport errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_CONNECTION_FAILED = 4004

    # Tag association sync errors (45xx)
    SYNC_DELETE_FAILED = 4501
    SYNC_INSERT_FAILED = 4502

    # Auth errors (6xxx)
    AUTH_NO_SESSION = 6001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    INVALID_SORT_ORDER = 7002
    INVALID_DATE = 7003


class ThoughtflowError(Exception):
    """Base exception for all ThoughtFlow errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class ValidationError(ThoughtflowError):
    """Raised when a required input is empty or malformed."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]  # Truncate for safety

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value


class NoteNotFoundError(ThoughtflowError):
    """Raised when an update targets a thought that does not exist."""

    def __init__(self, note_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Thought with ID '{note_id}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"note_id": note_id},
        )
        self.note_id = note_id


class AuthError(ThoughtflowError):
    """Raised when an operation needs an owner identity and none is bound."""

    def __init__(self, message: str = "You must be signed in to save thoughts"):
        super().__init__(message, code=ErrorCode.AUTH_NO_SESSION)


class ConflictError(ThoughtflowError):
    """Raised when a tag name already exists for the owner."""

    def __init__(self, tag_name: str, owner_id: Optional[str] = None):
        details = {"tag_name": tag_name}
        if owner_id:
            details["owner_id"] = owner_id
        super().__init__(
            f"A tag named '{tag_name}' already exists",
            code=ErrorCode.TAG_ALREADY_EXISTS,
            details=details,
        )
        self.tag_name = tag_name
        self.owner_id = owner_id


class TransportError(ThoughtflowError):
    """Raised when the persistence service fails a request.

    Retryable at the caller's discretion.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class SyncError(ThoughtflowError):
    """Raised when tag reconciliation fails partway.

    The note content write has already happened when this is raised, so
    the persisted associations may be stale until reconciliation is re-run.

    Attributes:
        note_id: Note whose associations were being replaced
        step: "delete" or "insert", the sub-step that failed
        target_tag_ids: The tag ids the note should end up with
    """

    def __init__(
        self,
        note_id: str,
        step: str,
        target_tag_ids: Optional[List[str]] = None,
        original_error: Optional[Exception] = None,
    ):
        code = (
            ErrorCode.SYNC_DELETE_FAILED
            if step == "delete"
            else ErrorCode.SYNC_INSERT_FAILED
        )
        details: Dict[str, Any] = {"note_id": note_id, "step": step}
        if target_tag_ids:
            details["target_tag_ids"] = list(target_tag_ids)[:10]
        if original_error:
            details["original_error"] = str(original_error)[:200]
        super().__init__(
            f"Failed to update tags for thought '{note_id}' ({step} step)",
            code=code,
            details=details,
        )
        self.note_id = note_id
        self.step = step
        self.target_tag_ids: List[str] = list(target_tag_ids or [])
        self.original_error = original_error
