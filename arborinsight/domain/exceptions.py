"""
Domain error taxonomy.

Every error carries the HTTP status it maps to, so the error handling
middleware can translate it without knowing where it was raised.
"""
from typing import Any, Optional


class ArborInsightError(Exception):
    """Base class for all application errors."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        detail: Any = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail if detail is not None else message


class ValidationError(ArborInsightError):
    """Bad input shape or range."""

    status_code = 422

    def __init__(self, message: str, errors: Optional[list[dict[str, str]]] = None):
        super().__init__(message, detail=message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(f"{field}: {message}", errors=[{"field": field, "message": message}])

    @classmethod
    def from_pydantic(cls, exc, prefix: str = "") -> "ValidationError":
        """Build a field-level error from a pydantic ValidationError."""
        errors = []
        for err in exc.errors():
            field = ".".join(str(part) for part in err.get("loc", ()))
            if prefix:
                field = f"{prefix}.{field}" if field else prefix
            errors.append({"field": field, "message": err.get("msg", "invalid value")})
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in errors)
        return cls(summary or "Invalid payload", errors=errors)


class NotFoundError(ArborInsightError):
    """Requested entity does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} '{entity_id}' not found")
        self.entity = entity
        self.entity_id = entity_id


class UpstreamError(ArborInsightError):
    """External gateway failure (provider error, unreachable or timed out)."""

    status_code = 502

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message, status_code=status_code, detail=detail)


class ConfigurationError(ArborInsightError):
    """Missing required configuration, such as a provider credential. Never retried."""

    status_code = 500


class PersistenceError(ArborInsightError):
    """Generic database failure."""

    status_code = 500
