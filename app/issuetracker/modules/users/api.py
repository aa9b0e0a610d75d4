from __future__ import annotations

from flask import Blueprint, current_app, request

from app.issuetracker.db import db_session
from app.issuetracker.errors import ApiErrors, success_response
from app.issuetracker.models import User
from app.issuetracker.modules.users.service import (
    create_user,
    deactivate_user,
    find_user_by_email,
    list_users,
    update_user,
    user_to_dict,
    validate_user_payload,
)
from app.issuetracker.rbac import check_authorization, require_user
from app.issuetracker.security import ensure_csrf_token
from app.issuetracker.utils import clean_str

bp = Blueprint("users", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _get_user_or_404(s, user_id: int) -> User:
    user = s.get(User, user_id)
    if not user:
        raise ApiErrors.not_found("User")
    return user


# ---------- Admin user management ----------
@bp.get("/users")
def users_list():
    s = db_session()
    u = require_user()
    check_authorization(u, "user", "list")
    return success_response({"users": [user_to_dict(x) for x in list_users(s)]})


@bp.get("/users/<int:user_id>")
def user_detail(user_id: int):
    s = db_session()
    u = require_user()
    check_authorization(u, "user", "view", {"user_id": user_id})
    return success_response(user_to_dict(_get_user_or_404(s, user_id)))


@bp.post("/users")
def users_create():
    s = db_session()
    u = require_user()
    check_authorization(u, "user", "create")

    payload = _payload()
    errors = validate_user_payload(payload)
    if errors:
        raise ApiErrors.validation_failed(errors)
    if find_user_by_email(s, payload["email"]):
        raise ApiErrors.conflict("A user with this email already exists")

    user = create_user(s, payload, u)
    s.commit()
    current_app.logger.info("User %s created by admin %s", user.id, u.id)
    return success_response(user_to_dict(user), 201, "User created successfully")


@bp.patch("/users/<int:user_id>")
def user_update(user_id: int):
    s = db_session()
    u = require_user()
    check_authorization(u, "user", "update", {"user_id": user_id})
    user = _get_user_or_404(s, user_id)

    payload = _payload()
    errors = validate_user_payload(payload, partial=True)
    if errors:
        raise ApiErrors.validation_failed(errors)
    if "email" in payload:
        other = find_user_by_email(s, payload["email"])
        if other and other.id != user.id:
            raise ApiErrors.conflict("A user with this email already exists")

    update_user(s, user, payload, u)
    s.commit()
    return success_response(user_to_dict(user), message="User updated successfully")


@bp.delete("/users/<int:user_id>")
def user_delete(user_id: int):
    s = db_session()
    u = require_user()
    check_authorization(u, "user", "delete", {"user_id": user_id})
    user = _get_user_or_404(s, user_id)
    if user.id == u.id:
        raise ApiErrors.bad_request("You cannot delete your own account")

    deactivate_user(s, user, u)
    s.commit()
    current_app.logger.info("User %s deactivated by admin %s", user.id, u.id)
    return success_response(user_to_dict(user), message="User deactivated successfully")


# ---------- Own profile ----------
@bp.get("/protected/user")
def profile_get():
    u = require_user()
    data = user_to_dict(u)
    data["csrf_token"] = ensure_csrf_token()
    return success_response(data)


@bp.patch("/protected/user")
def profile_update():
    s = db_session()
    u = require_user()

    payload = _payload()
    name = clean_str(payload.get("name"))
    if not name:
        raise ApiErrors.validation_failed(["Name is required."])
    if len(name) > 255:
        raise ApiErrors.validation_failed(["Name must be at most 255 characters."])

    check_authorization(u, "user", "update", {"user_id": u.id})
    update_user(s, u, {"name": name}, u)
    s.commit()
    return success_response(user_to_dict(u), message="Profile updated successfully")
