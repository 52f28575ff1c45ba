from marshmallow import Schema, fields, validate, EXCLUDE

from models.notification import NotificationStatus, NotificationType


class DeviceTokenSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    fcm_token = fields.String(required=True, validate=validate.Length(min=1, max=500))
    device_type = fields.String(load_default=None, validate=validate.Length(max=50))
    device_id = fields.String(load_default=None, validate=validate.Length(max=255))
    device_name = fields.String(load_default=None, validate=validate.Length(max=255))


class RemoveDeviceTokenSchema(Schema):
    fcm_token = fields.String(required=True)


class NotificationSettingsSchema(Schema):
    push_enabled = fields.Boolean()
    email_enabled = fields.Boolean()
    system_notifications = fields.Boolean()
    account_notifications = fields.Boolean()
    security_alerts = fields.Boolean()


class NotificationCreateSchema(Schema):
    title = fields.String(required=True, validate=validate.Length(min=1, max=255))
    body = fields.String(required=True, validate=validate.Length(min=1))
    type = fields.Enum(NotificationType, load_default=NotificationType.INFO)
    data = fields.Dict(keys=fields.String(), load_default=None, allow_none=True)
    action_url = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=512))


class SendNotificationSchema(NotificationCreateSchema):
    user_id = fields.String(required=True)


class NotificationOutSchema(Schema):
    id = fields.String()
    title = fields.String()
    body = fields.String()
    type = fields.Enum(NotificationType)
    status = fields.Enum(NotificationStatus)
    data = fields.Dict(allow_none=True)
    action_url = fields.String(allow_none=True)
    read_at = fields.DateTime(allow_none=True)
    sent_at = fields.DateTime(allow_none=True)
    created_at = fields.DateTime()


class NotificationSettingsOutSchema(Schema):
    id = fields.String()
    push_enabled = fields.Boolean()
    email_enabled = fields.Boolean()
    system_notifications = fields.Boolean()
    account_notifications = fields.Boolean()
    security_alerts = fields.Boolean()
    created_at = fields.DateTime()
    updated_at = fields.DateTime()
