"""
Accounts and access tokens.

Passwords are stored as bcrypt hashes; access tokens are HS256 JWTs carrying
the user id, email and role.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import bcrypt
import jwt
from sqlalchemy.orm import Session

from protocols_api.config import settings
from protocols_api.errors import AuthenticationError
from protocols_api.models.common import new_object_id
from protocols_api.models.user import Principal, RegisterRequest, SignupRequest, User, UserRole
from protocols_api.repositories import UserRepository

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Credenciales inválidas"


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(user: User) -> str:
    """Create a JWT token for an authenticated user."""
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user.id,
        "email": user.email,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(hours=settings.jwt_expires_hours),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Principal:
    """
    Verify a JWT token and return the caller it identifies.

    Raises:
        AuthenticationError: expired, tampered or malformed token
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Token expirado") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Token inválido") from e

    try:
        return Principal(user_id=payload["userId"], email=payload["email"], role=payload["role"])
    except (KeyError, ValueError) as e:
        raise AuthenticationError("Token inválido") from e


class AuthService:

    def __init__(self, db: Session):
        self.users = UserRepository(db)

    def login(self, email: str, password: str) -> Tuple[str, User]:
        """
        Authenticate user and return (token, user).

        Raises:
            AuthenticationError: unknown email, wrong password or inactive account
        """
        credentials = self.users.get_credentials(email)
        if credentials is None:
            logger.warning(f"Login attempt for unknown email: {email}")
            raise AuthenticationError(INVALID_CREDENTIALS)

        user, password_hash = credentials
        if not user.is_active:
            logger.warning(f"Login attempt for inactive user: {email}")
            raise AuthenticationError("Usuario inactivo")

        if not verify_password(password, password_hash):
            logger.warning(f"Invalid password for user: {email}")
            raise AuthenticationError(INVALID_CREDENTIALS)

        logger.info(f"User logged in: {user.email}")
        return create_access_token(user), user

    def register(self, payload: RegisterRequest) -> User:
        """Admin-created account, active immediately."""
        user = User(
            id=new_object_id(),
            email=payload.email,
            name=payload.name,
            role=payload.role,
            is_active=True,
        )
        created = self.users.create(user, hash_password(payload.password))
        logger.info(f"User registered: {created.email} ({created.role})")
        return created

    def signup(self, payload: SignupRequest) -> User:
        """Physician self-signup; stays inactive until an admin enables it."""
        user = User(
            id=new_object_id(),
            email=payload.email,
            name=f"{payload.first_name} {payload.last_name}",
            role=UserRole.MEDICO,
            is_active=False,
            first_name=payload.first_name,
            last_name=payload.last_name,
            license_number=payload.license_number,
            seal_signature_photo=payload.seal_signature_photo,
        )
        created = self.users.create(user, hash_password(payload.password))
        logger.info(f"Signup pending approval: {created.email}")
        return created

    def get_user(self, user_id: str) -> User:
        return self.users.get(user_id)

    def list_users(self) -> List[User]:
        return self.users.list_all()

    def set_active(self, user_id: str, is_active: bool) -> User:
        user = self.users.update_fields(user_id, is_active=is_active)
        logger.info(f"User {user.email} {'activated' if is_active else 'deactivated'}")
        return user

    def set_signature_photo(self, user_id: str, photo: str) -> User:
        return self.users.update_fields(user_id, seal_signature_photo=photo)
