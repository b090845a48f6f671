# Overview: Bearer-token sessions for dashboard operators.

"""
Operator sessions

A login hands the operator an opaque bearer token. Only its SHA-256 digest is
kept in session_tokens; the plaintext never touches the database.

A session stops working when any of these hold:
- it is older than SESSION_ABSOLUTE_TIMEOUT (24h)
- it has not been used for SESSION_IDLE_TIMEOUT (2h)  -> revoked "Idle timeout"
- its operator has been deactivated                   -> revoked "Operator deactivated"
- it was revoked (logout, `flask users deactivate`)
"""

import hashlib
import secrets
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from athar.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)

TOKEN_BYTES = 32
USER_AGENT_MAX_LENGTH = 255


def generate_token() -> str:
    """Plaintext bearer token (64 hex chars). Returned to the client once."""
    return secrets.token_hex(TOKEN_BYTES)


def hash_token(token: str) -> str:
    # Tokens are high-entropy already; a fast digest is enough.
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _find_active(token: str) -> SessionToken | None:
    if not token:
        return None
    return SessionToken.query.filter_by(token_hash=hash_token(token), is_revoked=False).first()


def _mark_revoked(record: SessionToken, reason: str, when=None) -> None:
    record.is_revoked = True
    record.revoked_at = when or utcnow()
    record.revoked_reason = reason


def create_session(user_id: int, user_agent: str | None = None, ip_address: str | None = None):
    """
    Open a session for an operator.

    Returns (SessionToken, plaintext_token).
    """
    if db.session.get(User, user_id) is None:
        raise ValueError("User not found")

    token = generate_token()
    opened_at = utcnow()
    record = SessionToken(
        user_id=user_id,
        token_hash=hash_token(token),
        created_at=opened_at,
        last_used_at=opened_at,
        expires_at=opened_at + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=(user_agent or "")[:USER_AGENT_MAX_LENGTH] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(record)
    db.session.commit()
    return record, token


def validate_session(token: str) -> User | None:
    """Resolve a bearer token to its operator and touch last_used_at, or return None."""
    record = _find_active(token)
    if record is None:
        return None

    now = utcnow()
    if record.expires_at < now:
        return None

    reason = None
    if now - record.last_used_at > SESSION_IDLE_TIMEOUT:
        reason = "Idle timeout"
    elif record.user is None or not record.user.is_active:
        reason = "Operator deactivated"

    if reason:
        _mark_revoked(record, reason, now)
        db.session.commit()
        return None

    record.last_used_at = now
    db.session.commit()
    return record.user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke one session. False when the token is unknown or already revoked."""
    record = _find_active(token)
    if record is None:
        return False
    _mark_revoked(record, reason)
    db.session.commit()
    return True


def revoke_user_sessions(user_id: int, reason: str) -> int:
    """Revoke every open session of an operator. Returns how many were open."""
    now = utcnow()
    open_sessions = SessionToken.query.filter_by(user_id=user_id, is_revoked=False).all()
    for record in open_sessions:
        _mark_revoked(record, reason, now)
    db.session.commit()
    return len(open_sessions)
