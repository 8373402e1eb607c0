# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication service.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, at least one uppercase, one lowercase and one digit
- Session tokens managed separately (see session_service.py)
- Self-registration always creates a customer; admins come from the CLI
"""

import logging
import re

import bcrypt
from flask import current_app

from ..errors import Conflict, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import USER_ROLES
from ..time_utils import utcnow


logger = logging.getLogger(__name__)


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""

    def __init__(self, message: str):
        super().__init__(message, field="password")


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check via bcrypt.checkpw. Malformed hashes never verify."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    name: str,
    email: str,
    phone: str,
    password: str,
    role: str = "customer",
) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        Conflict: email or phone already registered
        ValidationError: unknown role or weak password
    """
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}", field="role")

    email = email.strip().lower()
    existing = db.session.query(User).filter(
        db.or_(User.email == email, User.phone == phone)
    ).first()
    if existing:
        field = "email" if existing.email == email else "phone"
        raise Conflict(f"User with this {field} already exists", {"field": field})

    user = User(
        name=name,
        email=email,
        phone=phone,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    logger.info("Created %s user id=%s", role, user.id)
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns User if credentials are valid and the account is active,
    None otherwise. Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.email == email.strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
