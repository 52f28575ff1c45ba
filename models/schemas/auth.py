from marshmallow import Schema, fields, pre_load, validates

from models.schemas.user import UserOutSchema, _check_password, _norm_email


class LoginSchema(Schema):
    email = fields.String(required=True)
    password = fields.String(required=True, load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_norm_email(data["email"]))
        return data


class EmailSchema(Schema):
    email = fields.Email(required=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data = dict(data, email=_norm_email(data["email"]))
        return data


class TokenSchema(Schema):
    token = fields.String(required=True)


class RefreshTokenSchema(Schema):
    refresh_token = fields.String(required=True)


class ResetPasswordSchema(Schema):
    token = fields.String(required=True)
    new_password = fields.String(required=True, load_only=True)

    @validates("new_password")
    def validate_password(self, value, **kwargs):
        _check_password(value)


class AuthOutSchema(Schema):
    access_token = fields.String()
    refresh_token = fields.String()
    token_type = fields.String()
    expires_in = fields.Integer()
    user = fields.Nested(UserOutSchema)
