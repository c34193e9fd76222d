#!/usr/bin/env python3
"""
Create (or reset) the administrator account.

An existing account with the same email is deleted first, so running the
script again resets the password.

Usage:
    cd backend
    python scripts/create_admin.py

    # Custom credentials
    python scripts/create_admin.py --email admin@example.com --password secret123
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from protocols_api.db import get_session_factory, init_schema
from protocols_api.errors import ProtocolsAPIError
from protocols_api.models.user import RegisterRequest, UserRole
from protocols_api.repositories import UserRepository
from protocols_api.services.auth_service import AuthService

import logging

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

DEFAULT_EMAIL = "admin@cedic.com"
DEFAULT_PASSWORD = "admin123"
DEFAULT_NAME = "Administrador CEDIC"


def create_admin(email: str, password: str, name: str) -> None:
    init_schema()
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        if UserRepository(db).delete_by_email(email):
            logger.info(f"Deleted existing user {email}")

        user = AuthService(db).register(
            RegisterRequest(email=email, password=password, name=name, role=UserRole.ADMIN)
        )
        logger.info(f"Administrator created: {user.email} (id {user.id})")
        logger.warning("Change the password after the first login")
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Create or reset the administrator account")
    parser.add_argument("--email", default=DEFAULT_EMAIL, help="Administrator email")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="Administrator password")
    parser.add_argument("--name", default=DEFAULT_NAME, help="Display name")
    args = parser.parse_args()

    try:
        create_admin(args.email, args.password, args.name)
    except ProtocolsAPIError as e:
        logger.error(f"Failed to create administrator: {e.message}")
        sys.exit(1)


if __name__ == "__main__":
    main()
