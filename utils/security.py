"""
security helpers:
- Argon2 password hashing via argon2-cffi
- JWT creation/verification via PyJWT
- unguessable opaque tokens for refresh / verification / reset flows
"""
from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Iterable

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from utils.exceptions import AuthenticationError

ph = PasswordHasher()

# verified against when the account does not exist, so a miss costs the same as a hit
_DUMMY_HASH = ph.hash(secrets.token_urlsafe(16))


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash or _DUMMY_HASH, password) and password_hash is not None
    except (VerificationError, InvalidHashError):
        return False


def generate_token(nbytes: int = 32) -> str:
    """Cryptographically strong, URL-safe opaque token."""
    return secrets.token_urlsafe(nbytes)


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(
    subject: str,
    roles: Iterable[str],
    secret: str,
    algorithm: str,
    expires_in: timedelta,
    issuer: str,
) -> str:
    now = _now()
    payload = {
        "iss": issuer,
        "sub": str(subject),
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
        "type": "access",
        "jti": generate_jti(),
        "roles": sorted(roles),
    }
    return jwt.encode(payload, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str, expected_type: str = "access") -> Dict[str, Any]:
    """
    Decode and validate a JWT. Raises AuthenticationError on a bad signature,
    an expired token or the wrong token type.
    """
    try:
        decoded = jwt.decode(token, secret, algorithms=[algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError as exc:
        raise AuthenticationError(f"Invalid token: {exc}")

    if decoded.get("type") != expected_type:
        raise AuthenticationError("Wrong token type")
    return decoded
