"""
Role assignment. Every user keeps at least one role; authorization checks test
role membership, the primary role is for display only.
"""
from __future__ import annotations

import logging

from models.audit_log import AuditAction
from models.user import User
from models.user_role import Role
from utils.exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _names(roles) -> list:
    return sorted(r.value for r in roles)


def parse_roles(values) -> set:
    try:
        return {Role.parse(v) for v in values}
    except ValueError as exc:
        raise ValidationError(f"Unknown role: {exc}")


class RoleService:
    def __init__(self, storage, audit):
        self.storage = storage
        self.audit = audit

    def _get_user(self, session, user_id: str) -> User:
        user = session.get(User, user_id)
        if user is None or user.is_deleted:
            raise NotFoundError(f"User not found with id: {user_id}")
        return user

    def add_role(self, actor_id: str | None, user_id: str, role) -> User:
        role = next(iter(parse_roles([role])))
        with self.storage.transaction() as session:
            user = self._get_user(session, user_id)
            if user.has_role(role):
                raise ConflictError(f"User already has role: {role.value}")
            user.add_role(role)

        logger.info("Role %s added to user %s by %s", role.value, user.email, actor_id)
        self.audit.record(
            actor_id, AuditAction.CHANGE_ROLE, "Role added to user",
            entity_type="User", entity_id=user.id, new_value={"role_added": role.value},
        )
        return user

    def remove_role(self, actor_id: str | None, user_id: str, role) -> User:
        role = next(iter(parse_roles([role])))
        with self.storage.transaction() as session:
            user = self._get_user(session, user_id)
            if not user.has_role(role):
                raise ConflictError(f"User does not have role: {role.value}")
            if len(user.role_set) == 1:
                raise ConflictError("Cannot remove the last role from user")
            user.remove_role(role)

        logger.info("Role %s removed from user %s by %s", role.value, user.email, actor_id)
        self.audit.record(
            actor_id, AuditAction.CHANGE_ROLE, "Role removed from user",
            entity_type="User", entity_id=user.id, old_value={"role_removed": role.value},
        )
        return user

    def replace_roles(self, actor_id: str | None, user_id: str, roles) -> User:
        """Make the user's roles exactly `roles`, in one transaction."""
        wanted = parse_roles(roles or [])
        if not wanted:
            raise ValidationError("At least one role is required")

        with self.storage.transaction() as session:
            user = self._get_user(session, user_id)
            old = user.role_set
            # diff instead of clear-and-add, so unchanged (user, role) rows stay put
            for role in old - wanted:
                user.remove_role(role)
            for role in wanted - old:
                user.add_role(role)

        logger.info("Roles updated for user %s by %s", user.email, actor_id)
        self.audit.record(
            actor_id, AuditAction.CHANGE_ROLE, "User roles updated",
            entity_type="User", entity_id=user.id,
            old_value={"roles": _names(old)}, new_value={"roles": _names(wanted)},
        )
        return user
