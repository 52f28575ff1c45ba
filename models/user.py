import enum

from sqlalchemy import Column, String, Boolean, Date, DateTime, Enum, Index, Text, text
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base, SoftDeleteMixin
from models.user_role import Role, UserRole, primary_role


class UserStatus(str, enum.Enum):
    INACTIVE = "INACTIVE"
    ACTIVE = "ACTIVE"
    BANNED = "BANNED"


class User(SoftDeleteMixin, BaseModel, Base):
    __tablename__ = "users"
    __table_args__ = (
        # email is unique among live (non-deleted) users only
        Index(
            "uq_users_email_alive",
            "email",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    email = Column(String(255), nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False, default="")
    phone_number = Column(String(20), nullable=True)
    address = Column(String(255), nullable=True)
    date_of_birth = Column(Date, nullable=True)
    avatar_url = Column(String(512), nullable=True)
    bio = Column(Text, nullable=True)

    status = Column(Enum(UserStatus, name="user_status"), nullable=False, default=UserStatus.INACTIVE, index=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    email_verification_token = Column(String(128), nullable=True, unique=True)
    email_verification_expires_at = Column(DateTime, nullable=True)
    password_reset_token = Column(String(128), nullable=True, unique=True)
    password_reset_expires_at = Column(DateTime, nullable=True)
    last_login_at = Column(DateTime, nullable=True)

    roles = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_active(self) -> bool:
        """Only active, verified, live users may authenticate."""
        return self.status == UserStatus.ACTIVE and bool(self.email_verified) and not self.is_deleted

    @property
    def role_set(self) -> set:
        return {assignment.role for assignment in self.roles}

    @property
    def primary_role(self) -> Role:
        return primary_role(self.role_set)

    def has_role(self, role: Role) -> bool:
        return role in self.role_set

    def add_role(self, role: Role):
        self.roles.append(UserRole(user_id=self.id, role=role))

    def remove_role(self, role: Role):
        for assignment in list(self.roles):
            if assignment.role == role:
                self.roles.remove(assignment)

    def __repr__(self):
        return f"<User {self.email}>"
