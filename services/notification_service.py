"""
In-app notifications, device tokens for push delivery and per-user
notification settings.

Notifications are stored first; the push to the user's devices is dispatched
after the storing transaction has committed, and only when the user's
settings allow it. Users without a settings row get the defaults (everything
enabled).
"""
from __future__ import annotations

import logging
from datetime import timedelta

from models.base_model import utcnow
from models.notification import (
    DeviceToken,
    Notification,
    NotificationSettings,
    NotificationStatus,
    NotificationType,
)
from models.user import User, UserStatus
from utils.exceptions import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = (
    "push_enabled",
    "email_enabled",
    "system_notifications",
    "account_notifications",
    "security_alerts",
)
TEST_TITLE = "Test Notification"
TEST_BODY = "This is a test notification."


def parse_type(value) -> NotificationType:
    try:
        return NotificationType(value.upper() if isinstance(value, str) else value)
    except ValueError:
        raise ValidationError(f"Unknown notification type: {value}")


class NotificationService:
    def __init__(self, storage, push):
        self.storage = storage
        self.push = push

    def _get_user(self, session, user_id: str) -> User:
        user = session.get(User, user_id) if user_id else None
        if user is None or user.is_deleted:
            raise NotFoundError(f"User not found with id: {user_id}")
        return user

    def _get_owned(self, session, user_id: str, notification_id: str) -> Notification:
        notification = session.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if notification.user_id != user_id:
            raise ForbiddenError("You don't have permission to access this notification")
        return notification

    # device tokens

    def register_device_token(self, user_id: str, token: str, device_type=None, device_id=None,
                              device_name=None) -> DeviceToken:
        """
        Register a device for push. A token seen before is reused: it is
        reactivated, moved to this user and its device details refreshed.
        """
        with self.storage.transaction() as session:
            self._get_user(session, user_id)
            device = session.query(DeviceToken).filter(DeviceToken.token == token).one_or_none()
            if device is None:
                device = DeviceToken(user_id=user_id, token=token)
                session.add(device)
                logger.info("Device token registered for user: %s", user_id)
            else:
                logger.info("Device token updated for user: %s", user_id)
            device.user_id = user_id
            device.is_active = True
            device.deactivated_at = None
            device.device_type = device_type or device.device_type
            device.device_id = device_id or device.device_id
            device.device_name = device_name or device.device_name
            device.touch()
        return device

    def remove_device_token(self, user_id: str, token: str) -> bool:
        """Deactivate one of the user's tokens; False if the user has no such active token."""
        with self.storage.transaction() as session:
            device = (
                session.query(DeviceToken)
                .filter(DeviceToken.token == token, DeviceToken.user_id == user_id)
                .one_or_none()
            )
            if device is None or not device.is_active:
                return False
            device.deactivate()
        logger.info("Device token deactivated for user: %s", user_id)
        return True

    def remove_all_device_tokens(self, user_id: str) -> int:
        now = utcnow()
        with self.storage.transaction() as session:
            count = (
                session.query(DeviceToken)
                .filter(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True))
                .update({"is_active": False, "deactivated_at": now})
            )
        logger.info("All device tokens deactivated for user: %s (%d)", user_id, count)
        return count

    def deactivate_stale_tokens(self, session, max_idle: timedelta) -> int:
        """Deactivate tokens not used within max_idle; the caller commits."""
        now = utcnow()
        cutoff = now - max_idle
        return (
            session.query(DeviceToken)
            .filter(DeviceToken.is_active.is_(True), DeviceToken.last_used_at < cutoff)
            .update({"is_active": False, "deactivated_at": now})
        )

    # settings

    def _settings_for(self, session, user_id: str) -> NotificationSettings:
        settings = session.query(NotificationSettings).filter(NotificationSettings.user_id == user_id).one_or_none()
        if settings is None:
            settings = NotificationSettings(user_id=user_id)
            for field in SETTINGS_FIELDS:
                setattr(settings, field, True)
            session.add(settings)
        return settings

    def get_settings(self, user_id: str) -> NotificationSettings:
        with self.storage.transaction() as session:
            self._get_user(session, user_id)
            return self._settings_for(session, user_id)

    def update_settings(self, user_id: str, changes: dict) -> NotificationSettings:
        unknown = set(changes) - set(SETTINGS_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        with self.storage.transaction() as session:
            self._get_user(session, user_id)
            settings = self._settings_for(session, user_id)
            for field, value in changes.items():
                if value is not None:
                    setattr(settings, field, bool(value))
        logger.info("Notification settings updated for user: %s", user_id)
        return settings

    def _push_allowed(self, session, user_id: str) -> bool:
        settings = session.query(NotificationSettings).filter(NotificationSettings.user_id == user_id).one_or_none()
        return settings is None or bool(settings.push_enabled)

    # sending

    def _store(self, session, user_id, title, body, notification_type, data, action_url) -> Notification:
        notification = Notification(
            user_id=user_id,
            title=title,
            body=body,
            type=notification_type,
            status=NotificationStatus.UNREAD,
            data=data,
            action_url=action_url,
            sent_at=utcnow(),
        )
        session.add(notification)
        return notification

    def send_to_user(self, user_id: str, title: str, body: str, notification_type=NotificationType.INFO, data=None,
                     action_url=None) -> Notification:
        notification_type = parse_type(notification_type)
        with self.storage.transaction() as session:
            self._get_user(session, user_id)
            notification = self._store(session, user_id, title, body, notification_type, data, action_url)
            push = self._push_allowed(session, user_id)

        if push:
            self.push.send(user_id, title, body, data)
        else:
            logger.debug("Push notifications disabled for user: %s", user_id)
        logger.info("Notification sent to user: %s", user_id)
        return notification

    def broadcast(self, title: str, body: str, notification_type=NotificationType.INFO, data=None,
                  action_url=None) -> int:
        """Notify every live, active user; returns the number of recipients."""
        notification_type = parse_type(notification_type)
        with self.storage.transaction() as session:
            users = (
                session.query(User.id)
                .filter(User.deleted_at.is_(None), User.status == UserStatus.ACTIVE)
                .all()
            )
            muted = {
                user_id
                for (user_id,) in session.query(NotificationSettings.user_id)
                .filter(NotificationSettings.push_enabled.is_(False))
            }
            recipients = []
            for (user_id,) in users:
                self._store(session, user_id, title, body, notification_type, data, action_url)
                recipients.append((user_id, user_id not in muted))

        for user_id, push in recipients:
            if push:
                self.push.send(user_id, title, body, data)
        logger.info("Bulk notification sent to %d users", len(recipients))
        return len(recipients)

    def send_test(self, user_id: str) -> Notification:
        return self.send_to_user(user_id, TEST_TITLE, TEST_BODY, NotificationType.INFO)

    # inbox

    def list_notifications(self, user_id: str, status=None, page: int = 1, limit: int = 20):
        """Returns (rows, total) of the user's notifications, newest first."""
        session = self.storage.get_session()
        query = session.query(Notification).filter(Notification.user_id == user_id)
        if status is not None:
            query = query.filter(Notification.status == NotificationStatus(status))
        total = query.count()
        rows = (
            query.order_by(Notification.created_at.desc(), Notification.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    def stats(self, user_id: str) -> dict:
        session = self.storage.get_session()
        query = session.query(Notification).filter(Notification.user_id == user_id)
        unread = query.filter(Notification.status == NotificationStatus.UNREAD).count()
        read = query.filter(Notification.status == NotificationStatus.READ).count()
        return {"unread": unread, "read": read, "total": unread + read}

    def mark_as_read(self, user_id: str, notification_id: str) -> Notification:
        with self.storage.transaction() as session:
            notification = self._get_owned(session, user_id, notification_id)
            notification.mark_as_read()
        logger.info("Notification marked as read: %s", notification_id)
        return notification

    def mark_all_as_read(self, user_id: str) -> int:
        with self.storage.transaction() as session:
            count = (
                session.query(Notification)
                .filter(Notification.user_id == user_id, Notification.status == NotificationStatus.UNREAD)
                .update({"status": NotificationStatus.READ, "read_at": utcnow()})
            )
        logger.info("All notifications marked as read for user: %s (%d)", user_id, count)
        return count

    def delete_notification(self, user_id: str, notification_id: str) -> None:
        with self.storage.transaction() as session:
            session.delete(self._get_owned(session, user_id, notification_id))
        logger.info("Notification deleted: %s", notification_id)

    def delete_all_notifications(self, user_id: str) -> int:
        with self.storage.transaction() as session:
            count = (
                session.query(Notification)
                .filter(Notification.user_id == user_id)
                .delete()
            )
        logger.info("All notifications deleted for user: %s (%d)", user_id, count)
        return count

    def delete_old_notifications(self, session, retention: timedelta) -> int:
        """Delete notifications created before now - retention; the caller commits."""
        cutoff = utcnow() - retention
        return (
            session.query(Notification)
            .filter(Notification.created_at < cutoff)
            .delete()
        )
