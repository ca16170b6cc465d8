"""
Typed failures of the task workflow.

Every workflow operation either returns the new state or raises one of these.
The HTTP adapter maps them to status codes; nothing in the workflow swallows them.
"""

from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """Base class for all workflow failures."""

    code = "workflow_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(WorkflowError):
    """Missing or malformed input, e.g. an extension request without a reason."""
    code = "validation_error"


class PermissionDenied(WorkflowError):
    """The actor lacks authority for the requested operation."""
    code = "permission_denied"


class InvalidTransition(WorkflowError):
    """The operation is not legal from the record's current state."""
    code = "invalid_transition"


class FileConstraintViolation(WorkflowError):
    """A file breaches the type, size or count policy."""
    code = "file_constraint_violation"

    def __init__(self, message: str, constraint: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.constraint = constraint
        self.details.setdefault("constraint", constraint)


class EmptySubmission(WorkflowError):
    """Finalize was called with no content on any enabled channel."""
    code = "empty_submission"


class NotFound(WorkflowError):
    """Unknown task, submission or file id."""
    code = "not_found"


class Conflict(WorkflowError):
    """Concurrent writers kept winning until the retry budget ran out."""
    code = "conflict"
