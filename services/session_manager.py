"""
Registration, email verification, login, refresh, logout and password reset.

Each operation runs in one storage transaction; email and audit side effects
are dispatched only after that transaction has committed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import func

from models.audit_log import AuditAction
from models.base_model import utcnow
from models.user import User, UserStatus
from models.user_role import Role
from utils.exceptions import (
    AuthenticationError,
    ConflictError,
    ExpiredError,
    ForbiddenError,
    NotFoundError,
)
from utils.security import generate_token, hash_password, verify_password

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass
class AuthResult:
    access_token: str
    refresh_token: str
    expires_in: int
    user: User
    token_type: str = "bearer"


class SessionManager:
    def __init__(
        self,
        storage,
        tokens,
        mailer,
        audit,
        verification_ttl: timedelta = timedelta(hours=24),
        reset_ttl: timedelta = timedelta(hours=1),
        rotate_refresh_tokens: bool = False,
        reveal_unknown_email: bool = True,
    ):
        self.storage = storage
        self.tokens = tokens
        self.mailer = mailer
        self.audit = audit
        self.verification_ttl = verification_ttl
        self.reset_ttl = reset_ttl
        self.rotate_refresh_tokens = rotate_refresh_tokens
        self.reveal_unknown_email = reveal_unknown_email

    # lookups

    def find_by_email(self, session, email: str) -> User | None:
        return (
            session.query(User)
            .filter(func.lower(User.email) == normalize_email(email), User.deleted_at.is_(None))
            .first()
        )

    def _find_by_token(self, session, column, token: str) -> User | None:
        if not token:
            return None
        return session.query(User).filter(column == token, User.deleted_at.is_(None)).first()

    # flows

    def register(self, email: str, password: str, first_name: str, last_name: str) -> User:
        email = normalize_email(email)
        with self.storage.transaction() as session:
            if self.find_by_email(session, email) is not None:
                raise ConflictError(f"Email already registered: {email}")

            user = User(
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name or "",
                status=UserStatus.INACTIVE,
                email_verified=False,
                email_verification_token=generate_token(),
                email_verification_expires_at=utcnow() + self.verification_ttl,
            )
            user.add_role(Role.USER)
            session.add(user)

        logger.info("New user registered: %s", user.email)
        self.mailer.send_verification_email(user.email, user.email_verification_token, user.first_name)
        self.audit.record(user.id, AuditAction.REGISTER, "User registered successfully")
        return user

    def verify_email(self, token: str) -> User:
        with self.storage.transaction() as session:
            user = self._find_by_token(session, User.email_verification_token, token)
            if user is None:
                raise NotFoundError("Invalid verification token")
            if user.email_verification_expires_at is None or user.email_verification_expires_at < utcnow():
                raise ExpiredError("Verification token has expired")
            if user.email_verified:
                raise ConflictError("Email already verified")

            user.email_verified = True
            user.status = UserStatus.ACTIVE
            user.email_verification_token = None
            user.email_verification_expires_at = None

        logger.info("Email verified for user: %s", user.email)
        self.mailer.send_welcome_email(user.email, user.first_name)
        self.audit.record(user.id, AuditAction.VERIFY_EMAIL, "Email verified successfully")
        return user

    def resend_verification(self, email: str) -> None:
        """Issue a fresh verification token, superseding the previous one."""
        with self.storage.transaction() as session:
            user = self.find_by_email(session, email)
            if user is None:
                raise NotFoundError(f"User not found with email: {normalize_email(email)}")
            if user.email_verified:
                raise ConflictError("Email already verified")
            user.email_verification_token = generate_token()
            user.email_verification_expires_at = utcnow() + self.verification_ttl

        self.mailer.send_verification_email(user.email, user.email_verification_token, user.first_name)

    def login(self, email: str, password: str, ip_address: str | None = None, user_agent: str | None = None) -> AuthResult:
        with self.storage.transaction() as session:
            user = self.find_by_email(session, email)
            # verify even when the user is missing so both paths cost the same
            if not verify_password(password, user.password_hash if user else None):
                raise AuthenticationError("Invalid email or password")
            result = self.start_session(session, user)

        logger.info("User logged in: %s", user.email)
        self.audit.record(
            user.id, AuditAction.LOGIN, "User logged in successfully", ip_address=ip_address, user_agent=user_agent
        )
        return result

    def start_session(self, session, user: User) -> AuthResult:
        """
        Issue tokens for a user already authenticated by other means
        (federated login), inside the caller's transaction.
        """
        self._ensure_can_authenticate(user)
        return self._open_session(session, user)

    def refresh(self, refresh_token: str) -> AuthResult:
        with self.storage.transaction() as session:
            rt = self.tokens.verify_refresh_token(session, refresh_token)
            user = rt.user
            if user is None or not user.is_active:
                raise AuthenticationError("Refresh token owner is no longer active")

            token_value = rt.token
            if self.rotate_refresh_tokens:
                token_value = self.tokens.create_refresh_token(session, user.id).token
            access = self.tokens.issue_access_token(user.id, user.role_set)

        return AuthResult(access, token_value, self.tokens.access_expires_in, user)

    def logout(self, refresh_token: str) -> None:
        with self.storage.transaction() as session:
            rt = self.tokens.revoke(session, refresh_token)
            user_id = rt.user_id if rt is not None else None

        logger.info("User logged out")
        if user_id is not None:
            self.audit.record(user_id, AuditAction.LOGOUT, "User logged out")

    def forgot_password(self, email: str) -> None:
        with self.storage.transaction() as session:
            user = self.find_by_email(session, email)
            if user is None:
                if self.reveal_unknown_email:
                    raise NotFoundError(f"User not found with email: {normalize_email(email)}")
                logger.info("Password reset requested for unknown email")
                return
            user.password_reset_token = generate_token()
            user.password_reset_expires_at = utcnow() + self.reset_ttl

        logger.info("Password reset requested for user: %s", user.email)
        self.mailer.send_password_reset_email(user.email, user.password_reset_token, user.first_name)

    def reset_password(self, token: str, new_password: str) -> None:
        with self.storage.transaction() as session:
            user = self._find_by_token(session, User.password_reset_token, token)
            if user is None:
                raise NotFoundError("Invalid password reset token")
            if user.password_reset_expires_at is None or user.password_reset_expires_at < utcnow():
                raise ExpiredError("Password reset token has expired")

            user.password_hash = hash_password(new_password)
            user.password_reset_token = None
            user.password_reset_expires_at = None
            self.tokens.revoke_all(session, user.id)

        logger.info("Password reset for user: %s", user.email)
        self.audit.record(user.id, AuditAction.RESET_PASSWORD, "Password reset successfully")

    # helpers

    @staticmethod
    def _ensure_can_authenticate(user: User):
        if user.status == UserStatus.BANNED:
            raise ForbiddenError("Your account has been banned")
        if not user.email_verified:
            raise ForbiddenError("Please verify your email before logging in")
        if user.status != UserStatus.ACTIVE:
            raise ForbiddenError("Your account is not active")

    def _open_session(self, session, user: User) -> AuthResult:
        user.last_login_at = utcnow()
        access = self.tokens.issue_access_token(user.id, user.role_set)
        refresh = self.tokens.create_refresh_token(session, user.id)
        return AuthResult(access, refresh.token, self.tokens.access_expires_in, user)
