from __future__ import annotations

from functools import wraps

from flask import request, g, current_app

from models.user import User
from models.user_role import Role
from utils.exceptions import AuthenticationError, ForbiddenError


def _services():
    return current_app.extensions["identity"]


def jwt_required():
    """
    Require a valid bearer access token and a live, active user.
    Sets g.current_user and g.current_user_roles (a set of Role).
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            auth = request.headers.get("Authorization", "")
            if not auth.startswith("Bearer "):
                raise AuthenticationError("Missing or invalid Authorization header")
            token = auth.split(" ", 1)[1].strip()

            services = _services()
            decoded = services.tokens.decode_access_token(token)

            session = services.storage.get_session()
            user = session.get(User, decoded.get("sub"))
            if user is None or not user.is_active:
                raise AuthenticationError("User not found or inactive")
            g.current_user = user
            g.current_user_roles = user.role_set
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles):
    """
    Allow access if the user has ANY of the required roles.
    Deny (403) only if there is NO overlap between user_roles and required_roles.
    """
    req = {Role.parse(r) for r in required_roles}

    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            if not (g.current_user_roles & req):
                raise ForbiddenError("Insufficient role")
            return fn(*args, **kwargs)

        return wrapper

    return decorator
