"""
Authentication router.

Public: login, logout, physician signup. Authenticated: current user.
Admin only: account registration and user management.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from protocols_api.dependencies import get_current_principal, get_db, object_id_param, require_admin
from protocols_api.models.common import envelope
from protocols_api.models.user import (
    LoginRequest,
    Principal,
    RegisterRequest,
    SignaturePhotoUpdate,
    SignupRequest,
    UserStatusUpdate,
)
from protocols_api.services.auth_service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter()

user_id_param = object_id_param("user_id")


def get_auth_service(db: Session = Depends(get_db)) -> AuthService:
    return AuthService(db)


@router.post("/login")
def login(request: LoginRequest, service: AuthService = Depends(get_auth_service)):
    """Authenticate user and return JWT token."""
    token, user = service.login(request.email, request.password)
    return envelope({"user": user.to_document(), "token": token}, "Login exitoso")


@router.post("/logout")
def logout():
    """Logout user (client-side token removal)."""
    return envelope(message="Logout exitoso")


@router.post("/signup", status_code=status.HTTP_201_CREATED)
def signup(request: SignupRequest, service: AuthService = Depends(get_auth_service)):
    user = service.signup(request)
    return envelope(
        user.to_document(),
        "Registro exitoso. Su cuenta será activada por un administrador.",
    )


@router.get("/me")
def current_user(
    principal: Principal = Depends(get_current_principal),
    service: AuthService = Depends(get_auth_service),
):
    return envelope(service.get_user(principal.user_id).to_document())


@router.post("/register", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def register(request: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    user = service.register(request)
    return envelope(user.to_document(), "Usuario registrado exitosamente")


@router.get("/users", dependencies=[Depends(require_admin)])
def list_users(service: AuthService = Depends(get_auth_service)):
    return envelope([user.to_document() for user in service.list_users()])


@router.patch("/users/{user_id}", dependencies=[Depends(require_admin)])
def update_user_status(
    request: UserStatusUpdate,
    user_id: str = Depends(user_id_param),
    service: AuthService = Depends(get_auth_service),
):
    user = service.set_active(user_id, request.is_active)
    message = "Usuario activado exitosamente" if user.is_active else "Usuario desactivado exitosamente"
    return envelope(user.to_document(), message)


@router.patch("/users/{user_id}/signature-photo", dependencies=[Depends(require_admin)])
def update_signature_photo(
    request: SignaturePhotoUpdate,
    user_id: str = Depends(user_id_param),
    service: AuthService = Depends(get_auth_service),
):
    user = service.set_signature_photo(user_id, request.seal_signature_photo)
    return envelope(user.to_document(), "Foto de sello y firma actualizada exitosamente")
