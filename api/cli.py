"""
Maintenance commands, run with `flask --app api <command>`:
- cleanup-tokens: delete refresh tokens already past expiry (run from cron)
- deactivate-device-tokens: deactivate push tokens idle past DEVICE_TOKEN_MAX_IDLE
- cleanup-notifications: delete notifications older than NOTIFICATION_RETENTION
- create-admin: create or promote an active, verified ADMIN account
"""
import logging
from datetime import timedelta

import click
from flask import current_app

from models.base_model import utcnow
from models.user import User, UserStatus
from models.user_role import Role
from utils.security import hash_password

logger = logging.getLogger(__name__)


def register_commands(app):
    @app.cli.command("cleanup-tokens")
    def cleanup_tokens():
        """Delete expired refresh tokens."""
        services = current_app.extensions["identity"]
        with services.storage.transaction() as session:
            count = services.tokens.delete_expired(session)
        click.echo(f"Deleted {count} expired refresh tokens")

    @app.cli.command("deactivate-device-tokens")
    @click.option("--days", type=click.IntRange(min=1), default=None, help="Idle days; defaults to DEVICE_TOKEN_MAX_IDLE")
    def deactivate_device_tokens(days):
        """Deactivate push tokens that have not been used recently."""
        services = current_app.extensions["identity"]
        max_idle = timedelta(days=days) if days else current_app.config["DEVICE_TOKEN_MAX_IDLE"]
        with services.storage.transaction() as session:
            count = services.notifications.deactivate_stale_tokens(session, max_idle)
        logger.info("Deactivated %d device tokens idle for more than %s", count, max_idle)
        click.echo(f"Deactivated {count} stale device tokens")

    @app.cli.command("cleanup-notifications")
    @click.option("--days", type=click.IntRange(min=1), default=None, help="Retention days; defaults to NOTIFICATION_RETENTION")
    def cleanup_notifications(days):
        """Delete notifications past the retention period."""
        services = current_app.extensions["identity"]
        retention = timedelta(days=days) if days else current_app.config["NOTIFICATION_RETENTION"]
        with services.storage.transaction() as session:
            count = services.notifications.delete_old_notifications(session, retention)
        logger.info("Deleted %d notifications older than %s", count, retention)
        click.echo(f"Deleted {count} old notifications")

    @app.cli.command("create-admin")
    @click.option("--email", required=True, help="Admin email address")
    @click.option("--password", required=True, help="Password, used only when the account is created")
    @click.option("--first-name", default="Admin", show_default=True)
    @click.option("--last-name", default="", show_default=True)
    def create_admin(email, password, first_name, last_name):
        """Create an admin account, or promote an existing one."""
        services = current_app.extensions["identity"]
        with services.storage.transaction() as session:
            user = services.sessions.find_by_email(session, email)
            created = user is None
            if created:
                user = User(
                    email=email.strip().lower(),
                    password_hash=hash_password(password),
                    first_name=first_name,
                    last_name=last_name,
                )
                user.add_role(Role.USER)
                session.add(user)
            user.status = UserStatus.ACTIVE
            if not user.email_verified:
                user.email_verified = True
                user.email_verification_token = None
                user.email_verification_expires_at = None
            if not user.has_role(Role.ADMIN):
                user.add_role(Role.ADMIN)
            user.updated_at = utcnow()

        logger.info("Admin account %s: %s", "created" if created else "updated", user.email)
        click.echo(f"Admin {'created' if created else 'updated'}: {user.email} ({user.id})")
