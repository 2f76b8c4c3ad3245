"""
Error taxonomy for the document lifecycle engine.

Services raise these; the FastAPI exception handler in main.py turns them into
JSON responses via to_dict() and status_code. Nothing here imports FastAPI so
services stay usable outside a request.
"""
from typing import Any, Dict, Iterable, List, Optional


class DocflowError(Exception):
    """Base class for every failure the engine surfaces to callers."""

    status_code: int = 500
    error_type: str = "internal_error"

    def __init__(
        self,
        message: str,
        detail: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}
        self.retryable = retryable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_type,
            "message": self.message,
            "retryable": self.retryable,
            "detail": self.detail,
        }


class NotFoundError(DocflowError):
    """Referenced document does not exist."""

    status_code = 404
    error_type = "not_found"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} not found: {entity_id}",
            detail={"entity": entity, "entity_id": str(entity_id)},
        )


class ValidationError(DocflowError):
    """Malformed input. `fields` names the offending inputs."""

    status_code = 422
    error_type = "validation_error"

    def __init__(self, message: str, fields: Optional[Iterable[str]] = None):
        self.fields: List[str] = list(fields or [])
        super().__init__(message, detail={"fields": self.fields})


class ConflictError(DocflowError):
    """
    Business-rule rejection or lost race.

    retryable=True only for lock timeouts, sequence collisions and stale
    row versions; the caller may simply repeat the request.
    """

    status_code = 409
    error_type = "conflict"

    def __init__(
        self,
        message: str,
        detail: Optional[Dict[str, Any]] = None,
        retryable: bool = False,
    ):
        super().__init__(message, detail=detail, retryable=retryable)


class InvalidTransitionError(ConflictError):
    """A status change the document's state machine does not allow."""

    error_type = "invalid_transition"

    def __init__(
        self,
        document: str,
        current_status: str,
        target_status: str,
        allowed: Optional[Iterable[str]] = None,
        reason: Optional[str] = None,
    ):
        self.current_status = current_status
        self.target_status = target_status
        self.allowed = list(allowed or [])
        if reason:
            message = f"Cannot change {document} from '{current_status}' to '{target_status}': {reason}"
        elif self.allowed:
            message = (
                f"Cannot change {document} from '{current_status}' to '{target_status}'. "
                f"Allowed transitions: {', '.join(self.allowed)}"
            )
        else:
            message = (
                f"{document} in '{current_status}' status cannot be modified. "
                f"This is a terminal state."
            )
        super().__init__(
            message,
            detail={
                "current_status": current_status,
                "target_status": target_status,
                "allowed": self.allowed,
            },
        )


class PersistenceError(DocflowError):
    """The database rejected a write."""

    error_type = "persistence_error"

    def __init__(self, message: str, original: Optional[BaseException] = None):
        self.original = original
        detail = {"cause": type(original).__name__} if original is not None else None
        super().__init__(message, detail=detail)
