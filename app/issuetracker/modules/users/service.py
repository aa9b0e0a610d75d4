from __future__ import annotations

from typing import TYPE_CHECKING

from werkzeug.security import generate_password_hash

from app.issuetracker.audit import record_event
from app.issuetracker.constants import ROLE_USER, ROLES
from app.issuetracker.modules.clients.service import EMAIL_RE
from app.issuetracker.utils import clean_str, isoformat, parse_bool, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.issuetracker.models import User

MIN_PASSWORD_LENGTH = 8


def normalize_email(value) -> str:
    return (clean_str(value) or "").lower()


def validate_user_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "email" in payload:
        email = normalize_email(payload.get("email"))
        if not email:
            errors.append("Email is required.")
        elif not EMAIL_RE.match(email):
            errors.append("Invalid email address.")
    role = clean_str(payload.get("role"))
    if role and role not in ROLES:
        errors.append(f"Invalid role. Must be one of: {', '.join(ROLES)}")
    password = payload.get("password")
    if password and len(str(password)) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if "is_active" in payload and parse_bool(payload.get("is_active")) is None:
        errors.append("is_active must be true or false.")
    return errors


def find_user_by_email(s: "Session", email: str) -> "User | None":
    from app.issuetracker.models import User

    return s.query(User).filter(User.email == normalize_email(email)).one_or_none()


def list_users(s: "Session") -> list["User"]:
    from app.issuetracker.models import User

    return s.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def create_user(s: "Session", payload: dict, actor: "User | None") -> "User":
    from app.issuetracker.models import User

    now = utcnow()
    password = payload.get("password")
    user = User(
        email=normalize_email(payload.get("email")),
        name=clean_str(payload.get("name")),
        image=clean_str(payload.get("image")),
        role=clean_str(payload.get("role")) or ROLE_USER,
        password_hash=generate_password_hash(str(password)) if password else None,
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    record_event(
        s,
        actor=actor,
        action="user.create",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "role": user.role},
    )
    return user


def update_user(s: "Session", user: "User", payload: dict, actor: "User") -> "User":
    changes: dict[str, dict] = {}

    def _set(field: str, new) -> None:
        old = getattr(user, field)
        if new != old:
            changes[field] = {"old": old, "new": new}
            setattr(user, field, new)

    if "name" in payload:
        _set("name", clean_str(payload.get("name")))
    if "email" in payload:
        _set("email", normalize_email(payload.get("email")))
    if clean_str(payload.get("role")):
        _set("role", clean_str(payload.get("role")))
    if "is_active" in payload:
        _set("is_active", parse_bool(payload.get("is_active")))
    if payload.get("password"):
        user.password_hash = generate_password_hash(str(payload["password"]))
        changes["password"] = {"old": None, "new": "(changed)"}
    user.updated_at = utcnow()

    record_event(
        s,
        actor=actor,
        action="user.update",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "changes": changes},
    )
    return user


def deactivate_user(s: "Session", user: "User", actor: "User") -> "User":
    user.is_active = False
    user.updated_at = utcnow()
    record_event(
        s,
        actor=actor,
        action="user.deactivate",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email},
    )
    return user


def user_to_dict(u: "User") -> dict:
    return {
        "id": u.id,
        "name": u.name,
        "email": u.email,
        "image": u.image,
        "role": u.role,
        "is_active": u.is_active,
        "created_at": isoformat(u.created_at),
        "updated_at": isoformat(u.updated_at),
    }
