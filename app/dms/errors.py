"""
Typed failures raised by the service layer.

Every service function fails closed by raising one of these before any
mutation is flushed; the HTTP layer turns them into JSON error bodies.
"""
from __future__ import annotations


class DmsError(RuntimeError):
    status_code = 500
    code = "error"

    def __init__(self, message: str | None = None, **details: object) -> None:
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()
        self.details = details

    def to_dict(self) -> dict:
        body: dict[str, object] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFound(DmsError):
    """Requested record does not exist."""

    status_code = 404
    code = "not_found"


class DocumentNotFound(NotFound):
    """Document not found."""

    code = "document_not_found"


class WorkflowNotFound(NotFound):
    """Workflow not found."""

    code = "workflow_not_found"


class DocumentTypeNotFound(NotFound):
    """Document type not found."""

    code = "document_type_not_found"


class UserNotFound(NotFound):
    """User not found."""

    code = "user_not_found"


class NoWorkflowAvailable(NotFound):
    """No workflow template available."""

    code = "no_workflow_available"


class RoleMismatch(DmsError):
    """Actor role does not match the role required by the current step."""

    status_code = 403
    code = "role_mismatch"


class PermissionDenied(DmsError):
    """Actor is not allowed to perform this action."""

    status_code = 403
    code = "permission_denied"


class WorkflowComplete(DmsError):
    """Workflow is already complete."""

    status_code = 409
    code = "workflow_complete"


class InvalidTransition(DmsError):
    """Document status does not permit this transition."""

    status_code = 409
    code = "invalid_transition"


class AlreadyExists(DmsError):
    """Record already exists."""

    status_code = 409
    code = "already_exists"


class ConcurrentModification(DmsError):
    """Document was modified by another writer; reload and retry."""

    status_code = 409
    code = "concurrent_modification"


class ValidationFailed(DmsError):
    """Request is malformed."""

    status_code = 400
    code = "validation_failed"


class IntegrityViolation(DmsError):
    """Stored records are inconsistent."""

    status_code = 500
    code = "integrity_violation"


class TemplateMissing(IntegrityViolation):
    """Workflow template missing."""

    code = "template_missing"


class AppendOnlyViolation(IntegrityViolation):
    """Append-only records cannot be updated or deleted."""

    code = "append_only_violation"


class AuthenticationFailed(DmsError):
    """Invalid credentials."""

    status_code = 401
    code = "authentication_failed"


class ReentryFailed(DmsError):
    """Password verification failed."""

    status_code = 401
    code = "reentry_failed"
