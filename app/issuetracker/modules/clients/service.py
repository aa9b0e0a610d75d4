from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from app.issuetracker.audit import record_event
from app.issuetracker.constants import CLIENT_STATUSES, DOMAIN_STATUSES
from app.issuetracker.date_utils import parse_datetime
from app.issuetracker.utils import clean_str, isoformat, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.issuetracker.models import User
    from app.issuetracker.modules.clients.models import Client, DomainName

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DOMAIN_RE = re.compile(r"^(?=.{1,253}$)([a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,63}$", re.IGNORECASE)

CLIENT_TEXT_FIELDS = (
    "email",
    "phone",
    "address",
    "website",
    "description",
    "primary_contact",
    "sla",
    "notes",
)


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_client_payload(payload: dict, *, partial: bool = False) -> list[str]:
    """
    Validate client create/update payload. Returns list of errors.
    With partial=True only the keys present are checked (PATCH).
    """
    errors: list[str] = []
    if not partial or "name" in payload:
        name = clean_str(payload.get("name"))
        if not name:
            errors.append("Name is required.")
        elif len(name) > 255:
            errors.append("Name must be at most 255 characters.")
    email = clean_str(payload.get("email"))
    if email and not EMAIL_RE.match(email):
        errors.append("Invalid email address.")
    website = clean_str(payload.get("website"))
    if website and not _is_url(website):
        errors.append("Invalid website URL. Include http:// or https://.")
    status = clean_str(payload.get("status"))
    if status and status not in CLIENT_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(CLIENT_STATUSES)}")
    manager_id = payload.get("manager_id")
    if manager_id not in (None, ""):
        try:
            int(manager_id)
        except (TypeError, ValueError):
            errors.append("Invalid manager_id.")
    return errors


def create_client(s: "Session", payload: dict, user: "User", manager_id: int | None = None) -> "Client":
    from app.issuetracker.modules.clients.models import Client

    now = utcnow()
    client = Client(
        name=clean_str(payload.get("name")),
        status=clean_str(payload.get("status")) or "ACTIVE",
        manager_id=manager_id if manager_id is not None else user.id,
        created_at=now,
        updated_at=now,
    )
    for field in CLIENT_TEXT_FIELDS:
        setattr(client, field, clean_str(payload.get(field)))
    s.add(client)
    s.flush()

    record_event(
        s,
        actor=user,
        action="client.create",
        entity_type="Client",
        entity_id=str(client.id),
        metadata={"name": client.name, "manager_id": client.manager_id},
    )
    return client


def update_client(s: "Session", client: "Client", payload: dict, user: "User", *, partial: bool = False) -> "Client":
    """
    PUT (partial=False) replaces every editable field; PATCH only touches keys present.
    Status and manager are left alone unless given.
    """
    changes: dict[str, dict] = {}

    def _set(field: str, new) -> None:
        old = getattr(client, field)
        if new != old:
            changes[field] = {"old": old, "new": new}
            setattr(client, field, new)

    if not partial or "name" in payload:
        _set("name", clean_str(payload.get("name")))
    for field in CLIENT_TEXT_FIELDS:
        if not partial or field in payload:
            _set(field, clean_str(payload.get(field)))
    if clean_str(payload.get("status")):
        _set("status", clean_str(payload.get("status")))
    if "manager_id" in payload:
        raw = payload.get("manager_id")
        _set("manager_id", int(raw) if raw not in (None, "") else None)

    client.updated_at = utcnow()

    record_event(
        s,
        actor=user,
        action="client.update",
        entity_type="Client",
        entity_id=str(client.id),
        metadata={"name": client.name, "changes": changes},
    )
    return client


def deactivate_client(s: "Session", client: "Client", user: "User") -> "Client":
    """Clients are never hard-deleted; issues keep pointing at them."""
    old = client.status
    client.status = "INACTIVE"
    client.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="client.delete",
        entity_type="Client",
        entity_id=str(client.id),
        metadata={"name": client.name, "old_status": old},
    )
    return client


def list_clients(
    s: "Session",
    *,
    manager_id: int | None,
    page: int,
    page_size: int,
) -> tuple[list["Client"], int]:
    """All clients when manager_id is None, otherwise only that manager's."""
    from app.issuetracker.modules.clients.models import Client

    q = s.query(Client)
    if manager_id is not None:
        q = q.filter(Client.manager_id == manager_id)
    total = q.count()
    clients = (
        q.order_by(Client.created_at.desc(), Client.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    return clients, total


# ---------- Domain names ----------
def validate_domain_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors: list[str] = []
    if not partial or "name" in payload:
        name = clean_str(payload.get("name"))
        if not name:
            errors.append("Domain name is required.")
        elif not DOMAIN_RE.match(name):
            errors.append("Invalid domain name.")
    raw = payload.get("domain_expiration")
    if raw not in (None, ""):
        try:
            parse_datetime(raw)
        except (TypeError, ValueError):
            errors.append("Invalid domain_expiration. Use an ISO-8601 date or datetime.")
    status = clean_str(payload.get("domain_status"))
    if status and status not in DOMAIN_STATUSES:
        errors.append(f"Invalid domain_status. Must be one of: {', '.join(DOMAIN_STATUSES)}")
    return errors


def create_domain(s: "Session", client: "Client", payload: dict, user: "User") -> "DomainName":
    from app.issuetracker.modules.clients.models import DomainName

    now = utcnow()
    domain = DomainName(
        name=clean_str(payload.get("name")).lower(),
        hosting_provider=clean_str(payload.get("hosting_provider")),
        domain_expiration=parse_datetime(payload.get("domain_expiration")),
        domain_status=clean_str(payload.get("domain_status")) or "ACTIVE",
        client_id=client.id,
        created_at=now,
        updated_at=now,
    )
    s.add(domain)
    s.flush()
    record_event(
        s,
        actor=user,
        action="domain.create",
        entity_type="DomainName",
        entity_id=str(domain.id),
        metadata={"client_id": client.id, "name": domain.name},
    )
    return domain


def update_domain(s: "Session", domain: "DomainName", payload: dict, user: "User") -> "DomainName":
    changes: dict[str, dict] = {}

    def _set(field: str, new) -> None:
        old = getattr(domain, field)
        if new != old:
            changes[field] = {"old": old, "new": new}
            setattr(domain, field, new)

    if "name" in payload:
        _set("name", clean_str(payload.get("name")).lower())
    if "hosting_provider" in payload:
        _set("hosting_provider", clean_str(payload.get("hosting_provider")))
    if "domain_expiration" in payload:
        _set("domain_expiration", parse_datetime(payload.get("domain_expiration")))
    if clean_str(payload.get("domain_status")):
        _set("domain_status", clean_str(payload.get("domain_status")))
    domain.updated_at = utcnow()

    record_event(
        s,
        actor=user,
        action="domain.update",
        entity_type="DomainName",
        entity_id=str(domain.id),
        metadata={"client_id": domain.client_id, "changes": changes},
    )
    return domain


def delete_domain(s: "Session", domain: "DomainName", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="domain.delete",
        entity_type="DomainName",
        entity_id=str(domain.id),
        metadata={"client_id": domain.client_id, "name": domain.name},
    )
    s.delete(domain)


def expiring_domains(
    s: "Session",
    days: int,
    *,
    manager_id: int | None = None,
    now: datetime | None = None,
) -> list["DomainName"]:
    """ACTIVE domains expiring in (now, now + days], soonest first."""
    from app.issuetracker.modules.clients.models import Client, DomainName

    now = now or utcnow()
    q = (
        s.query(DomainName)
        .filter(DomainName.domain_status == "ACTIVE")
        .filter(DomainName.domain_expiration.isnot(None))
        .filter(DomainName.domain_expiration > now)
        .filter(DomainName.domain_expiration <= now + timedelta(days=days))
    )
    if manager_id is not None:
        q = q.join(Client, DomainName.client_id == Client.id).filter(Client.manager_id == manager_id)
    return q.order_by(DomainName.domain_expiration.asc()).all()


def domain_to_dict(d: "DomainName", *, with_client: bool = False) -> dict:
    data = {
        "id": d.id,
        "name": d.name,
        "hosting_provider": d.hosting_provider,
        "domain_expiration": isoformat(d.domain_expiration),
        "domain_status": d.domain_status,
        "client_id": d.client_id,
        "created_at": isoformat(d.created_at),
        "updated_at": isoformat(d.updated_at),
    }
    if with_client:
        data["client"] = {"id": d.client.id, "name": d.client.name} if d.client else None
    return data


def client_to_dict(c: "Client") -> dict:
    manager = c.manager
    return {
        "id": c.id,
        "name": c.name,
        "email": c.email,
        "phone": c.phone,
        "address": c.address,
        "website": c.website,
        "description": c.description,
        "primary_contact": c.primary_contact,
        "sla": c.sla,
        "notes": c.notes,
        "status": c.status,
        "manager_id": c.manager_id,
        "manager": {"id": manager.id, "name": manager.name, "email": manager.email} if manager else None,
        "domain_names": [domain_to_dict(d) for d in c.domain_names],
        "created_at": isoformat(c.created_at),
        "updated_at": isoformat(c.updated_at),
    }
