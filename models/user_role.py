"""
UserRole model: one row per (user, role) assignment.
Fields:
- user_id (String(36)) - FK to users.id
- role (Role) - unique together with user_id
"""
import enum

from sqlalchemy import Column, String, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base


class Role(str, enum.Enum):
    USER = "USER"
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"

    @property
    def privilege(self) -> int:
        return _PRIVILEGE.index(self)

    @classmethod
    def parse(cls, value):
        """Accept "admin", "ADMIN" or "ROLE_ADMIN"; raises ValueError otherwise."""
        if isinstance(value, cls):
            return value
        name = str(value).strip().upper()
        if name.startswith("ROLE_"):
            name = name[len("ROLE_"):]
        return cls(name)


# lowest privilege first
_PRIVILEGE = [Role.USER, Role.EMPLOYEE, Role.MANAGER, Role.ADMIN]


def primary_role(roles) -> Role:
    """Highest-privilege role of an iterable of roles; USER when empty."""
    return max(roles, key=lambda r: r.privilege, default=Role.USER)


class UserRole(BaseModel, Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),)

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Enum(Role, name="user_role"), nullable=False)

    user = relationship("User", back_populates="roles")

    def __repr__(self):
        return f"<UserRole user={self.user_id} role={self.role.value}>"
