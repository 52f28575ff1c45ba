from __future__ import annotations

from typing import Tuple

from flask import Blueprint, request, jsonify, g, abort, current_app

from models.user import UserStatus
from models.user_role import Role
from models.schemas.user import (
    ChangePasswordSchema,
    RoleSchema,
    RolesSchema,
    UserOutSchema,
    UserStatusSchema,
    UserUpdateSchema,
)
from utils.decorators import jwt_required, roles_required

MAX_LIMIT = 100

bp = Blueprint("users", __name__)

user_update_schema = UserUpdateSchema()
change_password_schema = ChangePasswordSchema()
status_schema = UserStatusSchema()
role_schema = RoleSchema()
roles_schema = RolesSchema()
user_out_schema = UserOutSchema()
user_list_out_schema = UserOutSchema(many=True)


def _services():
    return current_app.extensions["identity"]


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def parse_bool(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() in ("1", "true", "yes")


def parse_status():
    raw = request.args.get("status")
    if not raw:
        return None
    try:
        return UserStatus(raw.upper())
    except ValueError:
        abort(400, description=f"Unsupported status. Allowed: {', '.join(s.value for s in UserStatus)}")


@bp.get("/users/me")
@jwt_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify({"data": user_out_schema.dump(g.current_user)}), 200


@bp.patch("/users/me")
@jwt_required()
def update_me():
    """
    Update the current user's profile (partial)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            first_name: { type: string }
            last_name: { type: string }
            phone_number: { type: string }
            address: { type: string }
            date_of_birth: { type: string, format: date }
            bio: { type: string }
            avatar_url: { type: string }
    responses:
      200: { description: OK }
      422: { description: Validation error }
    """
    changes = user_update_schema.load(_payload(), partial=True)
    user = _services().users.update_profile(g.current_user.id, g.current_user.id, changes)
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.post("/users/me/password")
@jwt_required()
def change_password():
    """
    Change the current user's password
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            current_password: { type: string }
            new_password: { type: string }
    responses:
      204: { description: Changed }
      401: { description: Current password is incorrect }
    """
    data = change_password_schema.load(_payload())
    _services().users.change_password(g.current_user.id, data["current_password"], data["new_password"])
    return ("", 204)


@bp.get("/users")
@roles_required([Role.ADMIN, Role.MANAGER])
def list_users():
    """
    Search users (admin, manager)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: query, name: page, type: integer, default: 1 }
      - { in: query, name: limit, type: integer, default: 20 }
      - in: query
        name: sort
        type: string
        default: created_at
        description: "email, first_name, last_name, created_at, last_login_at; prefix with - for descending"
      - { in: query, name: q, type: string }
      - { in: query, name: status, type: string }
      - { in: query, name: email_verified, type: boolean }
    responses:
      200: { description: OK }
    """
    page, limit = parse_pagination()
    rows, total = _services().users.search_users(
        keyword=request.args.get("q"),
        status=parse_status(),
        email_verified=parse_bool("email_verified"),
        page=page,
        limit=limit,
        sort=request.args.get("sort", "created_at"),
    )
    return jsonify(
        {
            "data": user_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total}
        }
    )


@bp.get("/users/<user_id>")
@roles_required([Role.ADMIN])
def get_user(user_id: str):
    """
    Get a user by id (admin)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    return jsonify({"data": user_out_schema.dump(_services().users.get_user(user_id))}), 200


@bp.patch("/users/<user_id>")
@roles_required([Role.ADMIN])
def update_user(user_id: str):
    """
    Update a user's profile (admin, partial)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
      - in: body
        name: body
        schema:
          type: object
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    changes = user_update_schema.load(_payload(), partial=True)
    user = _services().users.update_profile(g.current_user.id, user_id, changes)
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.delete("/users/<user_id>")
@roles_required([Role.ADMIN])
def delete_user(user_id: str):
    """
    Soft-delete a user and revoke their sessions (admin)
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
    responses:
      204: { description: Deleted }
      404: { description: Not found }
    """
    _services().users.delete_user(g.current_user.id, user_id)
    return ("", 204)


@bp.patch("/users/<user_id>/status")
@roles_required([Role.ADMIN])
def update_status(user_id: str):
    """
    Change a user's status (admin). BANNED also revokes their sessions.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
      - in: body
        name: body
        schema:
          type: object
          properties:
            status: { type: string, enum: [INACTIVE, ACTIVE, BANNED] }
    responses:
      200: { description: OK }
    """
    data = status_schema.load(_payload())
    user = _services().users.update_status(g.current_user.id, user_id, data["status"])
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.post("/users/<user_id>/roles")
@roles_required([Role.ADMIN])
def add_role(user_id: str):
    """
    Admin-only: add one role to a user.
    Body: { "role": "MANAGER" }
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
      - in: body
        name: body
        schema:
          type: object
          properties:
            role: { type: string, enum: [USER, EMPLOYEE, MANAGER, ADMIN] }
    responses:
      200: { description: OK }
      409: { description: Role already assigned }
    """
    data = role_schema.load(_payload())
    user = _services().roles.add_role(g.current_user.id, user_id, data["role"])
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.put("/users/<user_id>/roles")
@roles_required([Role.ADMIN])
def replace_roles(user_id: str):
    """
    Admin-only: replace all roles of a user.
    Body: { "roles": ["USER", "EMPLOYEE"] }
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
      - in: body
        name: body
        schema:
          type: object
          properties:
            roles: { type: array, items: { type: string } }
    responses:
      200: { description: OK }
      422: { description: Empty or unknown roles }
    """
    data = roles_schema.load(_payload())
    user = _services().roles.replace_roles(g.current_user.id, user_id, data["roles"])
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.delete("/users/<user_id>/roles/<role>")
@roles_required([Role.ADMIN])
def remove_role(user_id: str, role: str):
    """
    Admin-only: remove one role from a user (never the last one).
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
      - { in: path, name: role, type: string, required: true }
    responses:
      200: { description: OK }
      409: { description: Role not assigned, or last role }
    """
    user = _services().roles.remove_role(g.current_user.id, user_id, role)
    return jsonify({"data": user_out_schema.dump(user)}), 200
