"""
Notification models:
- Notification: in-app inbox entry, owned by a user
- DeviceToken: push registration token of one device (table fcm_tokens)
- NotificationSettings: per-user delivery preferences, one row per user
"""
import enum

from sqlalchemy import Column, String, Boolean, DateTime, Enum, ForeignKey, JSON, Text

from models.base_model import BaseModel, Base, utcnow


class NotificationType(str, enum.Enum):
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


class NotificationStatus(str, enum.Enum):
    UNREAD = "UNREAD"
    READ = "READ"


class Notification(BaseModel, Base):
    __tablename__ = "notifications"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    type = Column(Enum(NotificationType, name="notification_type"), nullable=False, default=NotificationType.INFO)
    status = Column(
        Enum(NotificationStatus, name="notification_status"),
        nullable=False,
        default=NotificationStatus.UNREAD,
        index=True,
    )
    data = Column(JSON, nullable=True)
    action_url = Column(String(512), nullable=True)
    read_at = Column(DateTime, nullable=True)
    sent_at = Column(DateTime, nullable=True)

    @property
    def is_read(self) -> bool:
        return self.status == NotificationStatus.READ

    def mark_as_read(self):
        if not self.is_read:
            self.status = NotificationStatus.READ
            self.read_at = utcnow()

    def __repr__(self):
        return f"<Notification {self.title!r} user={self.user_id} {self.status}>"


class DeviceToken(BaseModel, Base):
    __tablename__ = "fcm_tokens"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String(500), nullable=False, unique=True)
    device_id = Column(String(255), nullable=True)
    device_type = Column(String(50), nullable=True)  # android, ios, web
    device_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    last_used_at = Column(DateTime, nullable=True)
    deactivated_at = Column(DateTime, nullable=True)

    def touch(self):
        self.last_used_at = utcnow()

    def deactivate(self):
        if self.is_active:
            self.is_active = False
            self.deactivated_at = utcnow()

    def __repr__(self):
        return f"<DeviceToken user={self.user_id} active={self.is_active}>"


class NotificationSettings(BaseModel, Base):
    __tablename__ = "notification_settings"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    push_enabled = Column(Boolean, nullable=False, default=True)
    email_enabled = Column(Boolean, nullable=False, default=True)
    system_notifications = Column(Boolean, nullable=False, default=True)
    account_notifications = Column(Boolean, nullable=False, default=True)
    security_alerts = Column(Boolean, nullable=False, default=True)

    def __repr__(self):
        return f"<NotificationSettings user={self.user_id} push={self.push_enabled}>"
