"""
Federated login: map an OAuth2 provider's user claims onto a local user and
open a session for it.

The provider handshake (authorization code exchange, userinfo call) happens
before this layer; process_login receives the already verified claims.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from models.audit_log import AuditAction
from models.user import User, UserStatus
from models.user_role import Role
from services.session_manager import AuthResult, normalize_email
from utils.exceptions import ValidationError
from utils.security import generate_token, hash_password

logger = logging.getLogger(__name__)

GITHUB_NOREPLY_DOMAIN = "github.users.noreply.github.com"


class Provider(str, enum.Enum):
    GOOGLE = "google"
    GITHUB = "github"
    FACEBOOK = "facebook"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(f"Unsupported OAuth2 provider: {value}")


@dataclass
class ProviderProfile:
    email: str | None
    first_name: str | None
    last_name: str | None
    avatar_url: str | None


@dataclass
class OAuth2Result:
    access_token: str
    refresh_token: str
    expires_in: int
    user: User
    is_new_user: bool
    token_type: str = "bearer"


def _split_name(name):
    """First and last word of a display name; a single word has no last name."""
    parts = (name or "").split()
    if not parts:
        return None, ""
    return parts[0], (parts[-1] if len(parts) > 1 else "")


def _google_profile(claims: dict) -> ProviderProfile:
    return ProviderProfile(
        email=claims.get("email"),
        first_name=claims.get("given_name"),
        last_name=claims.get("family_name"),
        avatar_url=claims.get("picture"),
    )


def _github_profile(claims: dict) -> ProviderProfile:
    login = claims.get("login")
    email = claims.get("email")
    if not email and login:
        # no email scope granted
        email = f"{login}@{GITHUB_NOREPLY_DOMAIN}"
    first, last = _split_name(claims.get("name"))
    return ProviderProfile(
        email=email,
        first_name=first or login,
        last_name=last,
        avatar_url=claims.get("avatar_url"),
    )


def _facebook_profile(claims: dict) -> ProviderProfile:
    first, last = _split_name(claims.get("name"))
    picture = claims.get("picture")
    avatar = None
    if isinstance(picture, dict):
        avatar = (picture.get("data") or {}).get("url")
    return ProviderProfile(email=claims.get("email"), first_name=first, last_name=last, avatar_url=avatar)


PROFILE_MAPPERS = {
    Provider.GOOGLE: _google_profile,
    Provider.GITHUB: _github_profile,
    Provider.FACEBOOK: _facebook_profile,
}


def extract_profile(claims: dict, provider) -> ProviderProfile:
    provider = Provider.parse(provider)
    profile = PROFILE_MAPPERS[provider](claims or {})
    if not profile.email:
        raise ValidationError(f"Email not provided by OAuth2 provider {provider.value}")
    profile.email = normalize_email(profile.email)
    return profile


class OAuth2Service:
    def __init__(self, storage, sessions, audit):
        self.storage = storage
        self.sessions = sessions
        self.audit = audit

    def process_login(self, claims: dict, provider, ip_address: str | None = None, user_agent: str | None = None) -> OAuth2Result:
        provider = Provider.parse(provider)
        profile = extract_profile(claims, provider)

        with self.storage.transaction() as session:
            user = self.sessions.find_by_email(session, profile.email)
            is_new_user = user is None
            if is_new_user:
                user = self._create_user(profile)
                session.add(user)
                session.flush()
            else:
                if profile.avatar_url and not user.avatar_url:
                    user.avatar_url = profile.avatar_url
                if not user.email_verified and user.status == UserStatus.INACTIVE:
                    # the provider vouches for the address
                    user.email_verified = True
                    user.status = UserStatus.ACTIVE
                    user.email_verification_token = None
                    user.email_verification_expires_at = None
            # same single-session policy as password login
            result: AuthResult = self.sessions.start_session(session, user)

        if is_new_user:
            logger.info("New OAuth2 user created: %s via %s", profile.email, provider.value)
            self.audit.record(user.id, AuditAction.REGISTER, f"User registered via OAuth2 ({provider.value})")
        logger.info("OAuth2 login successful for user: %s via %s", profile.email, provider.value)
        self.audit.record(
            user.id,
            AuditAction.LOGIN,
            f"OAuth2 login via {provider.value}",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return OAuth2Result(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=result.expires_in,
            user=result.user,
            is_new_user=is_new_user,
        )

    @staticmethod
    def _create_user(profile: ProviderProfile) -> User:
        user = User(
            email=profile.email,
            # random and never disclosed, so the account cannot log in with a password
            password_hash=hash_password(generate_token()),
            first_name=profile.first_name or "User",
            last_name=profile.last_name or "",
            avatar_url=profile.avatar_url,
            status=UserStatus.ACTIVE,
            email_verified=True,
        )
        user.add_role(Role.USER)
        return user
