from marshmallow import Schema, fields, pre_load, validates, ValidationError, EXCLUDE

from models.user import UserStatus
from models.user_role import Role

MIN_PASSWORD_LENGTH = 8


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


def _check_password(value):
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")


class UserCreateSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    first_name = fields.String(required=True, validate=lambda v: 0 < len(v.strip()) <= 50)
    last_name = fields.String(load_default="", validate=lambda v: len(v) <= 50)
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_norm_email(data["email"]))
        return data

    @validates("password")
    def validate_password(self, value, **kwargs):
        _check_password(value)


class UserUpdateSchema(Schema):
    first_name = fields.String(validate=lambda v: 0 < len(v.strip()) <= 50)
    last_name = fields.String(validate=lambda v: len(v) <= 50)
    phone_number = fields.String(allow_none=True, validate=lambda v: len(v) <= 20)
    address = fields.String(allow_none=True)
    date_of_birth = fields.Date(allow_none=True)
    bio = fields.String(allow_none=True)
    avatar_url = fields.Url(allow_none=True)


class ChangePasswordSchema(Schema):
    current_password = fields.String(required=True, load_only=True)
    new_password = fields.String(required=True, load_only=True)

    @validates("new_password")
    def validate_password(self, value, **kwargs):
        _check_password(value)


class UserStatusSchema(Schema):
    status = fields.Enum(UserStatus, required=True)


class RoleSchema(Schema):
    role = fields.String(required=True)


class RolesSchema(Schema):
    roles = fields.List(fields.String(), required=True)


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    email = fields.String()
    first_name = fields.String()
    last_name = fields.String()
    full_name = fields.String()
    phone_number = fields.String(allow_none=True)
    address = fields.String(allow_none=True)
    date_of_birth = fields.Date(allow_none=True)
    avatar_url = fields.String(allow_none=True)
    bio = fields.String(allow_none=True)
    roles = fields.Method("get_roles")
    primary_role = fields.Method("get_primary_role")
    status = fields.Enum(UserStatus)
    email_verified = fields.Boolean()
    last_login_at = fields.DateTime(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()

    def get_roles(self, obj):
        return sorted((r.value for r in obj.role_set), key=lambda name: Role(name).privilege, reverse=True)

    def get_primary_role(self, obj):
        return obj.primary_role.value
