"""
Role-based authorization guards.

Every handler funnels through `check_authorization(user, resource, action, data)`:
401 when nobody is signed in, 403 when the rule for (resource, action) denies.
Rules are small predicates over the current user and a few resource fields
(reporter, assignee, author, user id); a missing rule denies.
"""
from collections.abc import Callable, Iterable
from functools import wraps
from typing import Any

from flask import g

from app.issuetracker.constants import (
    ROLE_ACCOUNT_MANAGER,
    ROLE_ADMIN,
    ROLE_DEVELOPER,
)
from app.issuetracker.errors import ApiErrors
from app.issuetracker.models import User


def _active(user: User | None) -> bool:
    return bool(user and user.is_active)


def check_role(user: User | None, roles: Iterable[str]) -> bool:
    if not _active(user) or not user.role:
        return False
    return user.role in set(roles)


def is_admin(user: User | None) -> bool:
    return check_role(user, (ROLE_ADMIN,))


def is_account_manager(user: User | None) -> bool:
    return check_role(user, (ROLE_ACCOUNT_MANAGER,))


def is_developer(user: User | None) -> bool:
    return check_role(user, (ROLE_DEVELOPER,))


def is_owner(user: User | None, owner_id: int | None) -> bool:
    return _active(user) and owner_id is not None and user.id == owner_id


def is_assigned(user: User | None, assigned_to_id: int | None) -> bool:
    return _active(user) and assigned_to_id is not None and user.id == assigned_to_id


def _authenticated(user: User | None, data: dict) -> bool:
    return _active(user)


def _admin_or_account_manager(user: User | None, data: dict) -> bool:
    return is_admin(user) or is_account_manager(user)


def _admin_only(user: User | None, data: dict) -> bool:
    return is_admin(user)


def _issue_participant(user: User | None, data: dict) -> bool:
    return (
        is_admin(user)
        or is_owner(user, data.get("reported_by_id"))
        or is_assigned(user, data.get("assigned_to_id"))
    )


AUTHORIZATION_RULES: dict[str, dict[str, Callable[[User | None, dict], bool]]] = {
    "issue": {
        "view": _issue_participant,
        "create": _authenticated,
        "update": _issue_participant,
        "update_status": lambda u, d: check_role(u, (ROLE_ADMIN, ROLE_ACCOUNT_MANAGER, ROLE_DEVELOPER)),
        "assign": _admin_or_account_manager,
        "delete": lambda u, d: is_admin(u) or is_owner(u, d.get("reported_by_id")),
        "list": _authenticated,
    },
    "client": {
        "view": _admin_or_account_manager,
        "create": _admin_or_account_manager,
        "update": _admin_or_account_manager,
        # the handler additionally requires account managers to manage the client
        "delete": _admin_or_account_manager,
        "list": _admin_or_account_manager,
    },
    "comment": {
        "create": _issue_participant,
        "delete": lambda u, d: is_admin(u) or is_owner(u, d.get("created_by_id")),
    },
    "user": {
        "view": _admin_only,
        "create": _admin_only,
        "update": lambda u, d: is_admin(u) or is_owner(u, d.get("user_id")),
        "delete": _admin_only,
        "list": _admin_only,
    },
}


def is_authorized(user: User | None, resource: str, action: str, data: dict[str, Any] | None = None) -> bool:
    if not _active(user):
        return False
    rule = AUTHORIZATION_RULES.get(resource, {}).get(action)
    if rule is None:
        return False
    return bool(rule(user, data or {}))


def check_authorization(user: User | None, resource: str, action: str, data: dict[str, Any] | None = None) -> None:
    if not _active(user):
        raise ApiErrors.unauthorized()
    if not is_authorized(user, resource, action, data):
        readable = action.replace("_", " ")
        raise ApiErrors.forbidden(f"You don't have permission to {readable} this {resource}")


def current_user() -> User | None:
    return getattr(g, "current_user", None)


def require_user() -> User:
    user = current_user()
    if not _active(user):
        raise ApiErrors.unauthorized()
    return user


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        require_user()
        return fn(*args, **kwargs)

    return wrapped


def require_roles(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user = require_user()
            if not check_role(user, roles):
                raise ApiErrors.forbidden()
            return fn(*args, **kwargs)

        return wrapped

    return decorator
