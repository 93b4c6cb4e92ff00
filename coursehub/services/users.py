import re

from flask import current_app
from sqlalchemy import or_

from coursehub.extensions import db
from coursehub.errors import Conflict, Unauthenticated, UserNotFound, ValidationError
from coursehub.models import User
from coursehub.utils.db import atomic
from coursehub.utils.validators import FieldErrors, text_value

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SELF_SERVICE_ROLES = ("student", "instructor")
MIN_PASSWORD_LENGTH = 6


def register(data):
    errors = FieldErrors()
    username = text_value(errors, data, "username")
    email = text_value(errors, data, "email")
    full_name = text_value(errors, data, "full_name")
    password = data.get("password") or ""
    role = data.get("role", "student")

    if username == "":
        errors.add("username", "Username is required")
    if email is not None and not EMAIL_RE.match(email):
        errors.add("email", "Email is invalid")
    if full_name == "":
        errors.add("full_name", "Full name is required")
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        errors.add("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if role not in SELF_SERVICE_ROLES:
        errors.add("role", "Role must be 'student' or 'instructor'")
    errors.raise_if_any()

    email = email.lower()
    full_name = full_name.title()
    if User.query.filter(or_(User.email == email, User.username == username)).first():
        raise Conflict("Email or username already exists")

    user = User(username=username, email=email, full_name=full_name, role=role, is_active=True)
    user.set_password(password)

    with atomic("registering user", on_integrity_error=Conflict("Email or username already exists")):
        db.session.add(user)

    current_app.logger.info(f"User {user.id} registered as {role}")
    return user


def authenticate(email, password):
    if not isinstance(email, str) or not isinstance(password, str):
        raise Unauthenticated("Invalid credentials", reason="invalid_credentials")
    user = User.query.filter_by(email=email.strip().lower()).first()
    if not user or not user.check_password(password):
        raise Unauthenticated("Invalid credentials", reason="invalid_credentials")
    if not user.is_active:
        raise Unauthenticated("Account is inactive", reason="inactive_user")
    return user


def change_password(user, current_password, new_password):
    if not isinstance(current_password, str) or not user.check_password(current_password):
        raise ValidationError.for_field("current_password", "Current password is incorrect")
    if not isinstance(new_password, str) or len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValidationError.for_field(
            "new_password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )
    with atomic("changing password"):
        user.set_password(new_password)


def get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFound()
    return user


def list_users(page, limit, role=None):
    query = User.query
    if role:
        query = query.filter(User.role == role)
    query = query.order_by(User.created_at.desc(), User.id.desc())
    return db.paginate(query, page=page, per_page=limit, error_out=False)


def set_status(user_id, action, actor):
    """Activate or suspend a user. Users are never deleted."""
    if action not in ("activate", "suspend"):
        raise ValidationError.for_field("action", "Invalid or missing 'action'. Use 'activate' or 'suspend'.")

    user = get_user(user_id)
    if user.id == actor.id:
        raise Conflict("You cannot change your own status")

    wanted = action == "activate"
    if user.is_active == wanted:
        raise Conflict(f"User already {'active' if wanted else 'suspended'}")

    with atomic("updating user status"):
        user.is_active = wanted

    current_app.logger.info(f"User {user.id} {'activated' if wanted else 'suspended'} by admin {actor.id}")
    return user
