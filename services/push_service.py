"""
Push delivery to a user's registered devices.

The transport is a callable `sender(token, title, body, data)`. Without one
the service runs in console mode (log only) or disabled mode (no-op). A
sender raises InvalidDeviceTokenError for tokens the provider rejected; those
tokens are deactivated. Any other failure is logged and the next device is
tried.
"""
from __future__ import annotations

import logging

from models.notification import DeviceToken

logger = logging.getLogger(__name__)

MODES = ("console", "disabled")


class InvalidDeviceTokenError(Exception):
    """The provider no longer accepts this device token."""


class PushService:
    def __init__(self, storage, dispatcher, mode: str = "console", sender=None):
        if sender is None and mode not in MODES:
            logger.warning("Unknown push mode %r without a sender, falling back to console mode", mode)
            mode = "console"
        self.storage = storage
        self.dispatcher = dispatcher
        self._mode = "sender" if sender is not None else mode
        self._sender = sender
        logger.info("Push service initialized in %s mode", self._mode)

    @property
    def mode(self) -> str:
        return self._mode

    def send(self, user_id: str, title: str, body: str, data: dict | None = None) -> bool:
        """Queue delivery to every active device of the user; False if dropped."""
        if self._mode == "disabled":
            return False
        return self.dispatcher.submit(self._deliver, user_id, title, body, data)

    def _deliver(self, user_id: str, title: str, body: str, data: dict | None):
        session = self.storage.new_session()
        try:
            devices = (
                session.query(DeviceToken)
                .filter(DeviceToken.user_id == user_id, DeviceToken.is_active.is_(True))
                .all()
            )
            if not devices:
                logger.debug("No active device tokens for user: %s", user_id)
                return

            for device in devices:
                try:
                    self._push(device.token, title, body, data or {})
                    device.touch()
                except InvalidDeviceTokenError:
                    device.deactivate()
                    logger.info("Deactivated invalid device token for user: %s", user_id)
                except Exception:
                    logger.exception("Failed to push to a device of user: %s", user_id)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _push(self, token: str, title: str, body: str, data: dict):
        if self._sender is None:
            logger.info("[console push] token=%s... title=%s", token[:12], title)
            return
        self._sender(token, title, body, data)
