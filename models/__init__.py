from models.user import User, UserStatus
from models.user_role import Role, UserRole
from models.refresh_token import RefreshToken
from models.audit_log import AuditAction, AuditLog
from models.notification import (
    DeviceToken,
    Notification,
    NotificationSettings,
    NotificationStatus,
    NotificationType,
)
from models.db_storage import DBStorage
