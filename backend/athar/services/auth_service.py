# Overview: Operator accounts: password hashing, creation, login and deactivation.

"""
Dashboard operator accounts

Reviews and stock movements are attributed to the operator's email, so every
dashboard write runs behind a login. Passwords are bcrypt hashes (cost 12) and
must pass PASSWORD_RULES before they are hashed.
"""

import re

import bcrypt

from ..extensions import db
from ..models import User
from athar.time_utils import utcnow
from . import session_service


BCRYPT_ROUNDS = 12
MIN_PASSWORD_LENGTH = 8

PASSWORD_RULES = (
    (re.compile(r"[A-Z]"), "at least one uppercase letter"),
    (re.compile(r"[a-z]"), "at least one lowercase letter"),
    (re.compile(r"\d"), "at least one digit"),
    (re.compile(r"[!@#$%^&*(),.'\":{}|<>_\-+=?/\\\[\]~`;]"), "at least one special character"),
)


class PasswordValidationError(ValueError):
    """Password does not meet PASSWORD_RULES."""


def validate_password_strength(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    for pattern, requirement in PASSWORD_RULES:
        if not pattern.search(password):
            raise PasswordValidationError(f"Password must contain {requirement}")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Not a bcrypt hash
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def find_user(email: str) -> User | None:
    return User.query.filter_by(email=normalize_email(email)).first()


def create_user(email: str, password: str, display_name: str | None = None) -> User:
    """
    Create an active operator.

    Raises PasswordValidationError for a weak password and ValueError for a
    missing, malformed or already registered email.
    """
    email = normalize_email(email)
    if "@" not in email:
        raise ValueError("A valid email is required")
    if find_user(email) is not None:
        raise ValueError(f"User {email} already exists")

    user = User(
        email=email,
        display_name=display_name,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """The active operator matching these credentials (last_login_at is stamped), else None."""
    user = find_user(email)
    if user is None or not user.is_active:
        return None
    if not verify_password(password or "", user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def deactivate_user(email: str) -> tuple[User, int]:
    """
    Block an operator from logging in and end their open sessions.

    Returns (user, number_of_sessions_revoked). Raises ValueError for an
    unknown email.
    """
    user = find_user(email)
    if user is None:
        raise ValueError(f"User {normalize_email(email)} not found")

    user.is_active = False
    db.session.commit()
    revoked = session_service.revoke_user_sessions(user.id, "Operator deactivated")
    return user, revoked
