"""
Notifications blueprint (mounted at /api/v1/notifications):
- inbox: list, stats, mark read, delete
- devices: register / remove push tokens
- settings: per-user delivery preferences
- send, broadcast (admin), test
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, g, abort, current_app

from models.notification import NotificationStatus
from models.user_role import Role
from models.schemas.notification import (
    DeviceTokenSchema,
    NotificationCreateSchema,
    NotificationOutSchema,
    NotificationSettingsOutSchema,
    NotificationSettingsSchema,
    RemoveDeviceTokenSchema,
    SendNotificationSchema,
)
from utils.decorators import jwt_required, roles_required
from .users import parse_pagination

bp = Blueprint("notifications", __name__)

device_schema = DeviceTokenSchema()
remove_device_schema = RemoveDeviceTokenSchema()
settings_schema = NotificationSettingsSchema()
settings_out_schema = NotificationSettingsOutSchema()
create_schema = NotificationCreateSchema()
send_schema = SendNotificationSchema()
notification_out_schema = NotificationOutSchema()
notification_list_out_schema = NotificationOutSchema(many=True)


def _notifications():
    return current_app.extensions["identity"].notifications


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def parse_notification_status():
    raw = request.args.get("status")
    if not raw:
        return None
    try:
        return NotificationStatus(raw.upper())
    except ValueError:
        abort(400, description=f"Unsupported status. Allowed: {', '.join(s.value for s in NotificationStatus)}")


@bp.get("")
@jwt_required()
def list_notifications():
    """
    List the current user's notifications, newest first
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    parameters:
      - { in: query, name: page, type: integer, default: 1 }
      - { in: query, name: limit, type: integer, default: 20 }
      - { in: query, name: status, type: string, enum: [UNREAD, READ] }
    responses:
      200: { description: OK }
    """
    page, limit = parse_pagination()
    rows, total = _notifications().list_notifications(
        g.current_user.id, status=parse_notification_status(), page=page, limit=limit
    )
    return jsonify(
        {
            "data": notification_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total}
        }
    )


@bp.get("/stats")
@jwt_required()
def stats():
    """
    Unread, read and total counts for the current user
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    responses:
      200: { description: OK }
    """
    return jsonify({"data": _notifications().stats(g.current_user.id)}), 200


@bp.patch("/<notification_id>/read")
@jwt_required()
def mark_as_read(notification_id: str):
    """
    Mark one notification as read
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    parameters:
      - { in: path, name: notification_id, type: string, required: true }
    responses:
      200: { description: OK }
      403: { description: Not your notification }
      404: { description: Not found }
    """
    notification = _notifications().mark_as_read(g.current_user.id, notification_id)
    return jsonify({"data": notification_out_schema.dump(notification)}), 200


@bp.patch("/read-all")
@jwt_required()
def mark_all_as_read():
    """
    Mark every notification of the current user as read
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    responses:
      200: { description: OK }
    """
    count = _notifications().mark_all_as_read(g.current_user.id)
    return jsonify({"message": "All notifications marked as read", "data": {"updated": count}}), 200


@bp.delete("/<notification_id>")
@jwt_required()
def delete_notification(notification_id: str):
    """
    Delete one notification
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    parameters:
      - { in: path, name: notification_id, type: string, required: true }
    responses:
      204: { description: Deleted }
      403: { description: Not your notification }
      404: { description: Not found }
    """
    _notifications().delete_notification(g.current_user.id, notification_id)
    return ("", 204)


@bp.delete("")
@jwt_required()
def delete_all_notifications():
    """
    Delete every notification of the current user
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    responses:
      204: { description: Deleted }
    """
    _notifications().delete_all_notifications(g.current_user.id)
    return ("", 204)


@bp.post("/test")
@jwt_required()
def send_test():
    """
    Send a test notification to the current user
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    responses:
      201: { description: Sent }
    """
    notification = _notifications().send_test(g.current_user.id)
    return jsonify({"data": notification_out_schema.dump(notification)}), 201


@bp.post("/send")
@roles_required([Role.ADMIN])
def send_to_user():
    """
    Admin-only: notify one user
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [user_id, title, body]
          properties:
            user_id: { type: string }
            title: { type: string }
            body: { type: string }
            type: { type: string, enum: [INFO, SUCCESS, WARNING, ERROR] }
            data: { type: object }
            action_url: { type: string }
    responses:
      201: { description: Sent }
      404: { description: Unknown user }
    """
    data = send_schema.load(_payload())
    notification = _notifications().send_to_user(
        data["user_id"], data["title"], data["body"], data["type"], data["data"], data["action_url"]
    )
    return jsonify({"data": notification_out_schema.dump(notification)}), 201


@bp.post("/broadcast")
@roles_required([Role.ADMIN])
def broadcast():
    """
    Admin-only: notify every active user
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [title, body]
          properties:
            title: { type: string }
            body: { type: string }
            type: { type: string, enum: [INFO, SUCCESS, WARNING, ERROR] }
            data: { type: object }
            action_url: { type: string }
    responses:
      202: { description: Accepted }
    """
    data = create_schema.load(_payload())
    count = _notifications().broadcast(data["title"], data["body"], data["type"], data["data"], data["action_url"])
    return jsonify({"message": "Broadcast notification sent", "data": {"recipients": count}}), 202


@bp.post("/devices")
@jwt_required()
def register_device():
    """
    Register a push token for the current user's device
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [fcm_token]
          properties:
            fcm_token: { type: string }
            device_type: { type: string, description: "android, ios, web" }
            device_id: { type: string }
            device_name: { type: string }
    responses:
      204: { description: Registered }
    """
    data = device_schema.load(_payload())
    _notifications().register_device_token(
        g.current_user.id, data["fcm_token"], data["device_type"], data["device_id"], data["device_name"]
    )
    return ("", 204)


@bp.delete("/devices")
@jwt_required()
def remove_device():
    """
    Deactivate one push token of the current user
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            fcm_token: { type: string }
    responses:
      204: { description: Removed (idempotent) }
    """
    data = remove_device_schema.load(_payload())
    _notifications().remove_device_token(g.current_user.id, data["fcm_token"])
    return ("", 204)


@bp.delete("/devices/all")
@jwt_required()
def remove_all_devices():
    """
    Deactivate every push token of the current user
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    responses:
      204: { description: Removed }
    """
    _notifications().remove_all_device_tokens(g.current_user.id)
    return ("", 204)


@bp.get("/settings")
@jwt_required()
def get_settings():
    """
    Current user's notification settings (defaults are created on first read)
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    responses:
      200: { description: OK }
    """
    return jsonify({"data": settings_out_schema.dump(_notifications().get_settings(g.current_user.id))}), 200


@bp.patch("/settings")
@jwt_required()
def update_settings():
    """
    Update the current user's notification settings (partial)
    ---
    tags:
      - Notifications
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            push_enabled: { type: boolean }
            email_enabled: { type: boolean }
            system_notifications: { type: boolean }
            account_notifications: { type: boolean }
            security_alerts: { type: boolean }
    responses:
      200: { description: OK }
      422: { description: Validation error }
    """
    changes = settings_schema.load(_payload())
    settings = _notifications().update_settings(g.current_user.id, changes)
    return jsonify({"data": settings_out_schema.dump(settings)}), 200
