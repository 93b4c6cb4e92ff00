from collections import namedtuple
from functools import wraps
from flask import jsonify, current_app
from flask_jwt_extended import get_current_user, verify_jwt_in_request
from coursehub.extensions import db, jwt
from coursehub.errors import Unauthenticated, Unauthorized
from coursehub.models.user import User

ROLES = ("student", "instructor", "admin")

Identity = namedtuple("Identity", ["user_id", "role"])


def allows(role, required_roles):
    """True when ``role`` is one of ``required_roles``.

    An empty ``required_roles`` means any authenticated role is allowed.
    """
    if not required_roles:
        return role in ROLES
    return role in required_roles


def is_admin(user):
    return user is not None and user.role == "admin"


def resolve_identity():
    """Resolve the bearer credential of the current request.

    Raises :class:`Unauthenticated` when there is no usable credential or the
    referenced user is unknown or inactive.
    """
    verify_jwt_in_request(optional=True)
    user = get_current_user()
    if user is None:
        raise Unauthenticated("Missing authentication token", reason="missing_token")
    return Identity(user.id, user.role)


def role_required(*roles):
    """Route decorator, used below ``@jwt_required()``."""
    def wrapper(fn):
        @wraps(fn)
        def decorator(*args, **kwargs):
            identity = resolve_identity()
            if not allows(identity.role, roles):
                current_app.logger.warning(
                    f"User {identity.user_id} ({identity.role}) denied, requires {', '.join(roles)}"
                )
                raise Unauthorized("Access denied: insufficient permissions")
            return fn(*args, **kwargs)
        return decorator
    return wrapper


def _unauthenticated(message, reason):
    return jsonify(Unauthenticated(message, reason=reason).to_dict()), 401


@jwt.user_lookup_loader
def load_user(_jwt_header, jwt_data):
    identity = jwt_data["sub"]
    try:
        user = db.session.get(User, int(identity))
    except (TypeError, ValueError):
        return None
    if user is None or not user.is_active:
        return None
    return user


@jwt.user_lookup_error_loader
def user_lookup_error(_jwt_header, jwt_data):
    return _unauthenticated("User not found or inactive", "inactive_user")


@jwt.unauthorized_loader
def missing_token(reason):
    return _unauthenticated("Missing authentication token", "missing_token")


@jwt.expired_token_loader
def expired_token(_jwt_header, jwt_data):
    return _unauthenticated("Token has expired", "token_expired")


@jwt.invalid_token_loader
def invalid_token(reason):
    return _unauthenticated("Invalid token", "invalid_token")
