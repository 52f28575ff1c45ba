"""
Access tokens are stateless signed JWTs; refresh tokens are opaque random
strings persisted in refresh_tokens.

A user holds at most one valid refresh token: creating one revokes every
other token of that user in the same transaction, after locking the user row
so concurrent logins serialize.

Methods that take a session only flush; the caller owns the transaction.
"""
from __future__ import annotations

import logging
from datetime import timedelta

from models.base_model import utcnow
from models.refresh_token import RefreshToken
from models.user import User
from utils.exceptions import AuthenticationError
from utils.security import create_access_token, decode_token, generate_token

logger = logging.getLogger(__name__)


class TokenService:
    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        issuer: str = "identity-api",
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.issuer = issuer

    @property
    def access_expires_in(self) -> int:
        return int(self.access_ttl.total_seconds())

    def issue_access_token(self, user_id: str, roles) -> str:
        return create_access_token(
            subject=user_id,
            roles=[getattr(r, "value", r) for r in roles],
            secret=self.secret,
            algorithm=self.algorithm,
            expires_in=self.access_ttl,
            issuer=self.issuer,
        )

    def decode_access_token(self, token: str) -> dict:
        return decode_token(token, self.secret, self.algorithm, expected_type="access")

    def create_refresh_token(self, session, user_id: str) -> RefreshToken:
        # row lock on the owner; no-op on SQLite, which serializes writers anyway
        session.query(User.id).filter(User.id == user_id).with_for_update().one()
        self.revoke_all(session, user_id)

        token = RefreshToken(
            token=generate_token(48),
            user_id=user_id,
            expires_at=utcnow() + self.refresh_ttl,
        )
        session.add(token)
        session.flush()
        return token

    def verify_refresh_token(self, session, token: str) -> RefreshToken:
        rt = session.query(RefreshToken).filter(RefreshToken.token == token).first() if token else None
        if rt is None:
            raise AuthenticationError("Invalid refresh token")
        if not rt.is_valid:
            raise AuthenticationError("Refresh token is expired or revoked")
        return rt

    def revoke(self, session, token: str) -> RefreshToken | None:
        """Revoke a single token; unknown or already revoked tokens are ignored."""
        rt = session.query(RefreshToken).filter(RefreshToken.token == token).first() if token else None
        if rt is not None:
            rt.revoke()
            session.flush()
        return rt

    def revoke_all(self, session, user_id: str) -> int:
        count = (
            session.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id, RefreshToken.revoked.is_(False))
            .update({RefreshToken.revoked: True, RefreshToken.revoked_at: utcnow()}, synchronize_session="fetch")
        )
        session.flush()
        return count

    def delete_expired(self, session) -> int:
        """Hard-delete tokens already past expiry; safe next to live traffic."""
        count = (
            session.query(RefreshToken)
            .filter(RefreshToken.expires_at < utcnow())
            .delete(synchronize_session=False)
        )
        logger.info("Deleted %d expired refresh tokens", count)
        return count
