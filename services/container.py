"""Wires the identity services from a Flask-style config mapping."""
from __future__ import annotations

from dataclasses import dataclass

from services.audit_service import AuditService
from services.background import TaskDispatcher
from services.email_service import EmailService
from services.notification_service import NotificationService
from services.oauth2_service import OAuth2Service
from services.push_service import PushService
from services.role_service import RoleService
from services.session_manager import SessionManager
from services.token_service import TokenService
from services.user_service import UserService


@dataclass
class Services:
    storage: object
    dispatcher: TaskDispatcher
    tokens: TokenService
    mailer: EmailService
    audit: AuditService
    sessions: SessionManager
    oauth2: OAuth2Service
    roles: RoleService
    users: UserService
    push: PushService
    notifications: NotificationService

    def shutdown(self):
        self.dispatcher.shutdown()


def build_services(config, storage, mailer=None, push_sender=None) -> Services:
    """push_sender, when given, is the device transport: sender(token, title, body, data)."""
    dispatcher = TaskDispatcher(
        max_workers=config.get("BACKGROUND_WORKERS", 4),
        max_pending=config.get("BACKGROUND_MAX_PENDING", 1000),
        synchronous=config.get("SYNC_SIDE_EFFECTS", False),
    )
    tokens = TokenService(
        secret=config["JWT_SECRET"],
        algorithm=config.get("JWT_ALGORITHM", "HS256"),
        access_ttl=config["ACCESS_TOKEN_EXPIRES"],
        refresh_ttl=config["REFRESH_TOKEN_EXPIRES"],
        issuer=config.get("JWT_ISSUER", "identity-api"),
    )
    if mailer is None:
        mailer = EmailService(
            dispatcher,
            mode=config.get("MAIL_MODE", "console"),
            from_email=config.get("MAIL_FROM", "noreply@example.com"),
            from_name=config.get("MAIL_FROM_NAME", "Identity"),
            app_url=config.get("APP_URL", "http://localhost:3000"),
            api_url=config.get("API_URL", "http://localhost:8000"),
            smtp_host=config.get("SMTP_HOST"),
            smtp_port=config.get("SMTP_PORT", 587),
            smtp_user=config.get("SMTP_USER"),
            smtp_password=config.get("SMTP_PASSWORD"),
            smtp_use_tls=config.get("SMTP_USE_TLS", True),
            verification_ttl=config["EMAIL_VERIFICATION_EXPIRES"],
            reset_ttl=config["PASSWORD_RESET_EXPIRES"],
        )
    audit = AuditService(storage, dispatcher)
    sessions = SessionManager(
        storage,
        tokens,
        mailer,
        audit,
        verification_ttl=config["EMAIL_VERIFICATION_EXPIRES"],
        reset_ttl=config["PASSWORD_RESET_EXPIRES"],
        rotate_refresh_tokens=config.get("ROTATE_REFRESH_TOKENS", False),
        reveal_unknown_email=config.get("REVEAL_UNKNOWN_EMAIL", True),
    )
    push = PushService(storage, dispatcher, mode=config.get("PUSH_MODE", "console"), sender=push_sender)
    return Services(
        storage=storage,
        dispatcher=dispatcher,
        tokens=tokens,
        mailer=mailer,
        audit=audit,
        sessions=sessions,
        oauth2=OAuth2Service(storage, sessions, audit),
        roles=RoleService(storage, audit),
        users=UserService(storage, tokens, audit),
        push=push,
        notifications=NotificationService(storage, push),
    )
