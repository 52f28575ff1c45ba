"""
Authentication blueprint:
- POST /auth/register
- GET|POST /auth/verify-email
- POST /auth/resend-verification
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout
- POST /auth/forgot-password
- POST /auth/reset-password

Request bodies are validated with marshmallow; the flows themselves live in
services.session_manager.SessionManager.
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, current_app

from models.schemas.auth import (
    AuthOutSchema,
    EmailSchema,
    LoginSchema,
    RefreshTokenSchema,
    ResetPasswordSchema,
    TokenSchema,
)
from models.schemas.user import UserCreateSchema, UserOutSchema

bp = Blueprint("auth", __name__)

user_create_schema = UserCreateSchema()
user_out_schema = UserOutSchema()
login_schema = LoginSchema()
email_schema = EmailSchema()
token_schema = TokenSchema()
refresh_schema = RefreshTokenSchema()
reset_schema = ResetPasswordSchema()
auth_out_schema = AuthOutSchema()


def _sessions():
    return current_app.extensions["identity"].sessions


def client_ip() -> str | None:
    # already rewritten by ProxyFix when TRUSTED_PROXIES is set
    return request.remote_addr


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@bp.post("/register")
def register():
    """
    Register a new user; a verification email is sent.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [email, password, first_name]
          properties:
            email: { type: string }
            password: { type: string }
            first_name: { type: string }
            last_name: { type: string }
    responses:
      201:
        description: Created
      409:
        description: Email already registered
      422:
        description: Validation error
    """
    data = user_create_schema.load(_payload())
    user = _sessions().register(data["email"], data["password"], data["first_name"], data["last_name"])
    return jsonify({"data": user_out_schema.dump(user)}), 201


@bp.route("/verify-email", methods=["GET", "POST"])
def verify_email():
    """
    Verify an email address with the token from the verification email.
    ---
    tags:
      - Auth
    parameters:
      - in: query
        name: token
        type: string
      - in: body
        name: body
        schema:
          type: object
          properties:
            token: { type: string }
    responses:
      200:
        description: Email verified, account active
      404:
        description: Unknown token
      409:
        description: Already verified
      410:
        description: Token expired
    """
    payload = {"token": request.args.get("token")} if request.method == "GET" else _payload()
    data = token_schema.load(payload)
    user = _sessions().verify_email(data["token"])
    return jsonify({"message": "Email verified successfully", "data": user_out_schema.dump(user)}), 200


@bp.post("/resend-verification")
def resend_verification():
    """
    Send a fresh verification email (the previous link stops working).
    ---
    tags:
      - Auth
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
    responses:
      202:
        description: Accepted
    """
    data = email_schema.load(_payload())
    _sessions().resend_verification(data["email"])
    return jsonify({"message": "Verification email sent"}), 202


@bp.post("/login")
def login():
    """
    Login: return access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens and the user)
      401:
        description: Invalid credentials
      403:
        description: Email not verified or account banned
    """
    data = login_schema.load(_payload())
    result = _sessions().login(
        data["email"],
        data["password"],
        ip_address=client_ip(),
        user_agent=request.headers.get("User-Agent"),
    )
    return jsonify(auth_out_schema.dump(result)), 200


@bp.post("/refresh")
def refresh():
    """
    Use a refresh token to obtain a new access token
    ---
    tags:
      - Auth
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK
      401:
        description: Unknown, expired or revoked refresh token
    """
    data = refresh_schema.load(_payload())
    result = _sessions().refresh(data["refresh_token"])
    return jsonify(auth_out_schema.dump(result)), 200


@bp.post("/logout")
def logout():
    """
    logout: revokes the refresh token (idempotent)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      204:
        description: ""
    """
    data = refresh_schema.load(_payload())
    _sessions().logout(data["refresh_token"])
    return ("", 204)


@bp.post("/forgot-password")
def forgot_password():
    """
    Send a password reset email
    ---
    tags:
      - Auth
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
    responses:
      202:
        description: Accepted
      404:
        description: Unknown email (only when REVEAL_UNKNOWN_EMAIL is on)
    """
    data = email_schema.load(_payload())
    _sessions().forgot_password(data["email"])
    return jsonify({"message": "If the account exists, a reset email has been sent"}), 202


@bp.post("/reset-password")
def reset_password():
    """
    Set a new password with the token from the reset email; signs out every session.
    ---
    tags:
      - Auth
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             token: { type: string }
             new_password: { type: string }
    responses:
      200:
        description: Password changed
      404:
        description: Unknown token
      410:
        description: Token expired
    """
    data = reset_schema.load(_payload())
    _sessions().reset_password(data["token"], data["new_password"])
    return jsonify({"message": "Password reset successfully"}), 200
