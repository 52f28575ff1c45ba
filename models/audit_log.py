import enum

from sqlalchemy import Column, String, JSON, Text, ForeignKey

from models.base_model import BaseModel, Base


class AuditAction(str, enum.Enum):
    REGISTER = "REGISTER"
    VERIFY_EMAIL = "VERIFY_EMAIL"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    RESET_PASSWORD = "RESET_PASSWORD"
    CHANGE_PASSWORD = "CHANGE_PASSWORD"
    UPDATE = "UPDATE"
    CHANGE_ROLE = "CHANGE_ROLE"
    CHANGE_STATUS = "CHANGE_STATUS"
    DELETE = "DELETE"


class AuditLog(BaseModel, Base):
    __tablename__ = "audit_logs"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    action = Column(String(32), nullable=False, index=True)
    entity_type = Column(String(64), nullable=True)
    entity_id = Column(String(36), nullable=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    description = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<AuditLog {self.action} user={self.user_id}>"
