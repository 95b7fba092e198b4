# Overview: Service-layer operations for auth; password hashing, user creation and login.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

MULTI-TENANT: Users belong to one company (company_id). Email is globally
unique because it is the login identifier.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters, upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re
import secrets
from functools import lru_cache

import bcrypt

from ..errors import ErrorKind, Result
from ..extensions import db
from ..models import Company, User
from ..models.tenancy import USER_STATUS_ACTIVE
from ..roles import ROLE_STAFF, is_valid_role
from ..time_utils import utcnow
from . import session_service


class PasswordValidationError(ValueError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, rounds: int = 12) -> str:
    """
    Hash password using bcrypt (cost factor 12 by default).

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    """bcrypt hash of a random secret, built once, at the production cost factor."""
    secret = secrets.token_hex(16).encode("utf-8")
    return bcrypt.hashpw(secret, bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. Malformed hashes verify as False.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    email: str,
    password: str,
    company_id: int | None,
    role: str = ROLE_STAFF,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValueError: If company doesn't exist, email is taken, or role is unknown
        PasswordValidationError: If password doesn't meet requirements
    """
    if not is_valid_role(role):
        raise ValueError(f"Unknown role: {role}")

    if company_id is not None and db.session.get(Company, company_id) is None:
        raise ValueError("Company not found")

    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        raise ValueError(f"User with email '{email}' already exists")

    user = User(
        company_id=company_id,
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
        status=USER_STATUS_ACTIVE,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(
    email: str,
    password: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> Result:
    """
    Verify credentials and issue a session token.

    Returns Result[(user, plaintext_token)].
    Unknown email and wrong password are indistinguishable to the caller,
    in the response and in time: a missing user is checked against a dummy
    hash so that bcrypt runs on every attempt.
    """
    if not isinstance(email, str) or not isinstance(password, str):
        return Result.fail(ErrorKind.UNAUTHENTICATED, "Invalid email or password")

    user = db.session.query(User).filter_by(email=email.strip().lower()).first()

    password_hash = user.password_hash if user is not None else _dummy_password_hash()
    if not verify_password(password, password_hash) or user is None:
        return Result.fail(ErrorKind.UNAUTHENTICATED, "Invalid email or password")

    if user.status != USER_STATUS_ACTIVE:
        return Result.fail(ErrorKind.ACCOUNT_INACTIVE, "Account is not active")

    _, token = session_service.create_session(user.id, user_agent=user_agent, ip_address=ip_address)
    user.last_login_at = utcnow()
    db.session.commit()

    return Result.success((user, token))
