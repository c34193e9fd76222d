"""
FastAPI dependencies: database session, authenticated caller, role gates
and path id validation.
"""

from typing import Callable, Optional

from fastapi import Depends, Header, Path

from protocols_api.db import get_db
from protocols_api.errors import AuthenticationError, DomainValidationError, PermissionDeniedError
from protocols_api.models.common import is_object_id
from protocols_api.models.user import Principal, UserRole
from protocols_api.services.auth_service import decode_access_token

__all__ = [
    "get_db",
    "get_current_principal",
    "require_role",
    "require_admin",
    "object_id_param",
]


def get_current_principal(authorization: Optional[str] = Header(default=None)) -> Principal:
    """Caller identified by the ``Authorization: Bearer <token>`` header."""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("No se proporcionó token de autenticación")
    return decode_access_token(authorization[len("Bearer "):].strip())


def require_role(*roles: UserRole) -> Callable[..., Principal]:
    """Dependency allowing only callers with one of ``roles``."""
    allowed = {role.value for role in roles}

    def check(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise PermissionDeniedError("No tiene permisos para realizar esta acción")
        return principal

    return check


require_admin = require_role(UserRole.ADMIN)


def object_id_param(name: str) -> Callable[..., str]:
    """Path parameter that must be a 24-character hex id."""

    def check(value: str = Path(..., alias=name)) -> str:
        if not is_object_id(value):
            raise DomainValidationError(f"{name} inválido")
        return value

    return check
