from __future__ import annotations

import logging

from sqlalchemy import func, or_

from models.audit_log import AuditAction
from models.user import User, UserStatus
from utils.exceptions import AuthenticationError, NotFoundError, ValidationError
from utils.security import hash_password, verify_password

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("first_name", "last_name", "phone_number", "address", "date_of_birth", "bio", "avatar_url")
SORT_FIELDS = {
    "email": User.email,
    "first_name": User.first_name,
    "last_name": User.last_name,
    "created_at": User.created_at,
    "last_login_at": User.last_login_at,
}


def _profile_values(user: User) -> dict:
    values = {}
    for field in PROFILE_FIELDS:
        value = getattr(user, field)
        values[field] = value.isoformat() if hasattr(value, "isoformat") else value
    return values


class UserService:
    """Profile, status and lifecycle management on top of the identity core."""

    def __init__(self, storage, tokens, audit):
        self.storage = storage
        self.tokens = tokens
        self.audit = audit

    def _get_user(self, session, user_id: str) -> User:
        user = session.get(User, user_id) if user_id else None
        if user is None or user.is_deleted:
            raise NotFoundError(f"User not found with id: {user_id}")
        return user

    def get_user(self, user_id: str) -> User:
        return self._get_user(self.storage.get_session(), user_id)

    def search_users(self, keyword=None, status=None, email_verified=None, page=1, limit=20, sort="created_at"):
        """Returns (rows, total) of live users matching every given filter."""
        session = self.storage.get_session()
        query = session.query(User).filter(User.deleted_at.is_(None))
        if keyword:
            pattern = f"%{keyword.strip().lower()}%"
            query = query.filter(
                or_(
                    func.lower(User.email).like(pattern),
                    func.lower(User.first_name).like(pattern),
                    func.lower(User.last_name).like(pattern),
                )
            )
        if status is not None:
            query = query.filter(User.status == UserStatus(status))
        if email_verified is not None:
            query = query.filter(User.email_verified.is_(bool(email_verified)))

        desc = sort.startswith("-")
        key = sort[1:] if desc else sort
        if key not in SORT_FIELDS:
            raise ValidationError(f"Unsupported sort field. Allowed: {', '.join(SORT_FIELDS)}")
        column = SORT_FIELDS[key]

        total = query.count()
        rows = (
            query.order_by(column.desc() if desc else column.asc(), User.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return rows, total

    def update_profile(self, actor_id: str | None, user_id: str, changes: dict) -> User:
        unknown = set(changes) - set(PROFILE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

        with self.storage.transaction() as session:
            user = self._get_user(session, user_id)
            old_values = _profile_values(user)
            for field, value in changes.items():
                setattr(user, field, value)
            new_values = _profile_values(user)

        description = "User profile updated" if actor_id == user_id else "User profile updated by admin"
        logger.info("User %s updated by %s", user.email, actor_id)
        self.audit.record(
            actor_id, AuditAction.UPDATE, description,
            entity_type="User", entity_id=user.id, old_value=old_values, new_value=new_values,
        )
        return user

    def change_password(self, actor_id: str, current_password: str, new_password: str) -> None:
        with self.storage.transaction() as session:
            user = self._get_user(session, actor_id)
            if not verify_password(current_password, user.password_hash):
                raise AuthenticationError("Current password is incorrect")
            user.password_hash = hash_password(new_password)

        logger.info("Password changed for user: %s", user.email)
        self.audit.record(user.id, AuditAction.CHANGE_PASSWORD, "Password changed")

    def update_status(self, actor_id: str | None, user_id: str, status) -> User:
        try:
            status = UserStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status: {status}")

        with self.storage.transaction() as session:
            user = self._get_user(session, user_id)
            old_status = user.status
            user.status = status
            if status == UserStatus.BANNED:
                self.tokens.revoke_all(session, user.id)

        logger.info("User %s status changed from %s to %s by %s", user.email, old_status.value, status.value, actor_id)
        self.audit.record(
            actor_id, AuditAction.CHANGE_STATUS, "User status updated",
            entity_type="User", entity_id=user.id,
            old_value={"status": old_status.value}, new_value={"status": status.value},
        )
        return user

    def delete_user(self, actor_id: str | None, user_id: str) -> None:
        with self.storage.transaction() as session:
            user = self._get_user(session, user_id)
            user.soft_delete()
            self.tokens.revoke_all(session, user.id)

        logger.info("User %s deleted by %s", user.email, actor_id)
        self.audit.record(actor_id, AuditAction.DELETE, "User deleted", entity_type="User", entity_id=user.id)

    def delete_users(self, actor_id: str | None, user_ids) -> int:
        deleted = 0
        for user_id in user_ids:
            try:
                self.delete_user(actor_id, user_id)
                deleted += 1
            except NotFoundError:
                logger.warning("User not found with id: %s", user_id)
        logger.info("Batch delete: %d users deleted by %s", deleted, actor_id)
        return deleted
