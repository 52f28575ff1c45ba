from __future__ import annotations

import logging

from models.audit_log import AuditAction, AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Audit sink. Rows are written in their own session, off the request path."""

    def __init__(self, storage, dispatcher):
        self.storage = storage
        self.dispatcher = dispatcher

    def record(
        self,
        actor_user_id: str | None,
        action: AuditAction,
        description: str,
        entity_type: str | None = None,
        entity_id: str | None = None,
        old_value: dict | None = None,
        new_value: dict | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> bool:
        entry = dict(
            user_id=actor_user_id,
            action=AuditAction(action).value,
            description=description,
            entity_type=entity_type,
            entity_id=entity_id,
            old_value=old_value,
            new_value=new_value,
            ip_address=ip_address,
            user_agent=(user_agent or None) and user_agent[:255],
        )
        return self.dispatcher.submit(self._write, entry)

    def _write(self, entry: dict):
        session = self.storage.new_session()
        try:
            session.add(AuditLog(**entry))
            session.commit()
            logger.debug("Audit log created: %s - %s", entry["user_id"], entry["action"])
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
