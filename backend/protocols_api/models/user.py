"""
User accounts, roles and the authenticated principal.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from protocols_api.models.common import CamelModel


class UserRole(str, Enum):
    ADMIN = "admin"
    MEDICO = "medico"
    INVESTIGADOR_PRINCIPAL = "investigador_principal"


class Principal(CamelModel):
    """Authenticated caller, decoded from the access token."""

    user_id: str
    email: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class User(CamelModel):
    id: str
    email: str
    name: str
    role: UserRole = UserRole.MEDICO
    is_active: bool = True
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    license_number: Optional[str] = None
    seal_signature_photo: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RegisterRequest(CamelModel):
    """Admin-created account."""

    email: EmailStr
    password: str = Field(min_length=6)
    name: str = Field(min_length=1)
    role: UserRole = UserRole.MEDICO


class SignupRequest(CamelModel):
    """Self-service physician signup; the account stays inactive until approved."""

    email: EmailStr
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    license_number: str = Field(min_length=1, pattern=r"^\d+$")
    seal_signature_photo: str = Field(min_length=1)


class UserStatusUpdate(CamelModel):
    is_active: bool


class SignaturePhotoUpdate(CamelModel):
    seal_signature_photo: str = Field(min_length=1)

    @field_validator("seal_signature_photo")
    @classmethod
    def _image_data_url(cls, value: str) -> str:
        if not value.startswith("data:image/"):
            raise ValueError("La foto debe ser una imagen válida en formato base64")
        return value
