"""
Tests for accounts and access tokens.

Tests:
- bcrypt password hashing
- JWT issue and verification
- Login outcomes (unknown email, inactive account, wrong password)
- Signup and account management

Run with: python -m pytest protocols_api/tests/test_auth.py -v
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from protocols_api.config import settings
from protocols_api.errors import AuthenticationError, DuplicateIdentifierError, NotFoundError
from protocols_api.models.user import RegisterRequest, SignupRequest
from protocols_api.services.auth_service import (
    AuthService,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)

SIGNATURE = "data:image/png;base64,iVBORw0KGgo="


def signup_request(**overrides) -> SignupRequest:
    values = {
        "email": "nuevo@cedic.com",
        "password": "secreto1",
        "first_name": "Ana",
        "last_name": "Gómez",
        "license_number": "123456",
        "seal_signature_photo": SIGNATURE,
    }
    values.update(overrides)
    return SignupRequest(**values)


class TestPasswords:
    """Tests for password hashing."""

    def test_hash_and_verify(self):
        hashed = hash_password("admin123")

        assert hashed != "admin123"
        assert verify_password("admin123", hashed) is True
        assert verify_password("otra", hashed) is False

    def test_malformed_hash(self):
        assert verify_password("admin123", "not-a-bcrypt-hash") is False


class TestTokens:
    """Tests for access tokens."""

    def test_round_trip(self, admin_user):
        principal = decode_access_token(create_access_token(admin_user))

        assert principal.user_id == admin_user.id
        assert principal.email == "admin@cedic.com"
        assert principal.is_admin is True

    def test_expired(self, admin_user):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"userId": admin_user.id, "email": admin_user.email, "role": "admin",
             "iat": past, "exp": past + timedelta(hours=1)},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )

        with pytest.raises(AuthenticationError, match="Token expirado"):
            decode_access_token(token)

    def test_wrong_secret(self, admin_user):
        token = jwt.encode(
            {"userId": admin_user.id, "email": admin_user.email, "role": "admin"},
            "otro-secreto",
            algorithm="HS256",
        )

        with pytest.raises(AuthenticationError, match="Token inválido"):
            decode_access_token(token)

    def test_missing_claims(self):
        token = jwt.encode({"email": "x@cedic.com"}, settings.jwt_secret, algorithm=settings.jwt_algorithm)

        with pytest.raises(AuthenticationError):
            decode_access_token(token)


class TestLogin:
    """Tests for AuthService.login."""

    def test_success(self, db, admin_user):
        token, user = AuthService(db).login("admin@cedic.com", "admin123")

        assert user.id == admin_user.id
        assert decode_access_token(token).user_id == admin_user.id

    def test_email_case_insensitive(self, db, admin_user):
        _, user = AuthService(db).login("Admin@Cedic.com", "admin123")

        assert user.id == admin_user.id

    def test_unknown_email(self, db):
        with pytest.raises(AuthenticationError, match="Credenciales inválidas"):
            AuthService(db).login("nadie@cedic.com", "admin123")

    def test_wrong_password(self, db, admin_user):
        with pytest.raises(AuthenticationError, match="Credenciales inválidas"):
            AuthService(db).login("admin@cedic.com", "incorrecta")

    def test_inactive_user(self, db, medico_user):
        service = AuthService(db)
        service.set_active(medico_user.id, False)

        with pytest.raises(AuthenticationError, match="Usuario inactivo"):
            service.login("medico@cedic.com", "medico123")


class TestAccounts:
    """Tests for registration, signup and user management."""

    def test_duplicate_email(self, db, admin_user):
        with pytest.raises(DuplicateIdentifierError) as exc_info:
            AuthService(db).register(
                RegisterRequest(email="ADMIN@cedic.com", password="otra123", name="Otro")
            )

        assert exc_info.value.field == "email"

    def test_signup_is_inactive_medico(self, db):
        user = AuthService(db).signup(signup_request())

        assert user.is_active is False
        assert user.role == "medico"
        assert user.name == "Ana Gómez"
        assert user.license_number == "123456"

    def test_signup_requires_numeric_license(self):
        with pytest.raises(ValueError):
            signup_request(license_number="MN-12")

    def test_activate_after_signup(self, db):
        service = AuthService(db)
        user = service.signup(signup_request())

        service.set_active(user.id, True)
        _, logged_in = service.login("nuevo@cedic.com", "secreto1")

        assert logged_in.is_active is True

    def test_signature_photo(self, db, medico_user):
        user = AuthService(db).set_signature_photo(medico_user.id, SIGNATURE)

        assert user.seal_signature_photo == SIGNATURE

    def test_unknown_user(self, db):
        with pytest.raises(NotFoundError):
            AuthService(db).set_active("0" * 24, True)

    def test_list_users(self, db, admin_user, medico_user):
        emails = {user.email for user in AuthService(db).list_users()}

        assert emails == {"admin@cedic.com", "medico@cedic.com"}
