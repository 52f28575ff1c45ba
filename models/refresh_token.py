"""
RefreshToken model: stores opaque refresh tokens so sessions can be revoked
Fields:
- token (unique, unguessable value handed to the client)
- user_id (String(36)) - FK to users.id
- expires_at
- revoked, revoked_at
"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from models.base_model import BaseModel, Base, utcnow


class RefreshToken(BaseModel, Base):
    __tablename__ = "refresh_tokens"

    token = Column(String(128), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime, nullable=True)

    user = relationship("User")

    @property
    def is_expired(self) -> bool:
        return self.expires_at <= utcnow()

    @property
    def is_valid(self) -> bool:
        return not self.revoked and not self.is_expired

    def revoke(self):
        if not self.revoked:
            self.revoked = True
            self.revoked_at = utcnow()

    def __repr__(self):
        return f"<RefreshToken user={self.user_id} revoked={self.revoked}>"
