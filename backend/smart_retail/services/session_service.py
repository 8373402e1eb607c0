# Overview: Opaque bearer tokens for the API; issue, validate, revoke.

"""
Bearer sessions.

The client holds a random 32-byte hex token; only its SHA-256 digest is
stored. Expiry is the earlier of SESSION_ABSOLUTE_TIMEOUT from login and
SESSION_IDLE_TIMEOUT since the last request; logout revokes.
"""

import hashlib
import secrets
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Sent to the client, never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> User | None:
    """
    Return the session's user if the token is valid, else None.

    Expired, idle, revoked and deactivated-user sessions are rejected;
    idle and deactivated ones are revoked on the way out. Updates
    last_used_at on success.
    """
    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    session.last_used_at = now
    db.session.commit()
    return user


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns True if session was revoked, False if not found."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True
