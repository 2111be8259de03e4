"""Custom exception classes for the limit options service."""

from typing import Any, Dict, List, Optional


class AppError(Exception):
    """Base exception for application errors."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class DocumentStoreError(AppError):
    """Raised when a document store read or write fails."""
    pass


class AccessDeniedError(DocumentStoreError):
    """Raised when the store refuses access to a path.

    Usually transient: an auth token that has not yet propagated to the store.
    """

    def __init__(self, path: str, message: Optional[str] = None, original_error: Exception = None):
        super().__init__(message or f"Missing or insufficient permissions for {path}", original_error)
        self.path = path


class NotFoundError(AppError):
    """Raised when a referenced option set or option does not exist."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} not found: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class LimitValidationError(AppError):
    """Raised when a limit option or option set fails validation before write."""

    def __init__(self, errors: List[Any], message: str = "Limit option validation failed"):
        super().__init__(message)
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.message,
            "errors": [
                e.model_dump(by_alias=True, exclude_none=True) if hasattr(e, "model_dump") else str(e)
                for e in self.errors
            ],
        }


class InvalidReorderError(AppError):
    """Raised when a reorder request is not a permutation of the set's option ids."""

    def __init__(self, missing: List[str], unknown: List[str], duplicated: List[str]):
        parts = []
        if missing:
            parts.append(f"missing ids {missing}")
        if unknown:
            parts.append(f"unknown ids {unknown}")
        if duplicated:
            parts.append(f"duplicated ids {duplicated}")
        super().__init__("Reorder must list every option exactly once: " + "; ".join(parts))
        self.missing = missing
        self.unknown = unknown
        self.duplicated = duplicated


class StructureChangeError(AppError):
    """Raised when an option set's structure changes without operator confirmation."""

    def __init__(self, set_id: str, current: str, requested: str, affected: int):
        super().__init__(
            f"Option set {set_id} has {affected} option(s) shaped as '{current}'; "
            f"changing structure to '{requested}' requires confirmation"
        )
        self.set_id = set_id
        self.current = current
        self.requested = requested
        self.affected = affected
