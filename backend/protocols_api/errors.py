"""
Domain error taxonomy.

Every failure raised by the services carries a human-readable message and a
category; the HTTP layer maps the category to a status code.
"""

from typing import Any, Dict, Optional


class ProtocolsAPIError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    category = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Error body in the API envelope shape."""
        return {"success": False, "error": self.message}


class NotFoundError(ProtocolsAPIError):
    """Referenced protocol, visit, activity, template, rule or user does not exist."""

    status_code = 404
    category = "not_found"


class DuplicateIdentifierError(ProtocolsAPIError):
    """A unique field (protocol code, user email) already exists."""

    status_code = 400
    category = "duplicate_identifier"

    def __init__(self, field: str, message: Optional[str] = None):
        super().__init__(message or f"El campo {field} ya existe")
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["field"] = self.field
        return body


class DomainValidationError(ProtocolsAPIError):
    """Structurally invalid input the services refuse to persist."""

    status_code = 400
    category = "validation"


class ProtectedResourceError(ProtocolsAPIError):
    """Operation blocked by a system invariant."""

    status_code = 400
    category = "protected"


class WriteConflictError(ProtocolsAPIError):
    """The stored document changed since it was read (stale version)."""

    status_code = 409
    category = "write_conflict"


class ContentionError(ProtocolsAPIError):
    """Write conflicts persisted through every retry attempt."""

    status_code = 409
    category = "contention"


class AuthenticationError(ProtocolsAPIError):
    status_code = 401
    category = "authentication"


class PermissionDeniedError(ProtocolsAPIError):
    status_code = 403
    category = "permission"


class UpstreamServiceError(ProtocolsAPIError):
    """AI or document rendering collaborator failed."""

    status_code = 500
    category = "upstream"
