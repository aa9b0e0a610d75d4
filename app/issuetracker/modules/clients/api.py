from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.issuetracker.db import db_session
from app.issuetracker.errors import ApiErrors, success_response
from app.issuetracker.models import User
from app.issuetracker.modules.clients.models import Client, DomainName
from app.issuetracker.modules.clients.service import (
    client_to_dict,
    create_client,
    create_domain,
    deactivate_client,
    delete_domain,
    domain_to_dict,
    expiring_domains,
    list_clients,
    update_client,
    update_domain,
    validate_client_payload,
    validate_domain_payload,
)
from app.issuetracker.rbac import check_authorization, is_account_manager, is_admin, require_user
from app.issuetracker.utils import parse_int

bp = Blueprint("clients", __name__)

MAX_PAGE_SIZE = 50


def _payload() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _get_client_for(s, client_id: int, user: User, action: str) -> Client:
    """Load the client and apply the rule; non-admins must also manage it."""
    check_authorization(user, "client", action)
    client = s.get(Client, client_id)
    if not client:
        raise ApiErrors.not_found("Client")
    if not is_admin(user) and client.manager_id != user.id:
        raise ApiErrors.forbidden(f"You don't have permission to {action} this client")
    return client


def _check_manager(s, payload: dict) -> None:
    raw = payload.get("manager_id")
    if raw in (None, ""):
        return
    manager = s.get(User, int(raw))
    if not manager:
        raise ApiErrors.bad_request("Manager not found")


# ---------- Clients ----------
@bp.get("/clients")
def clients_list():
    s = db_session()
    u = require_user()
    check_authorization(u, "client", "list")

    page = max(parse_int(request.args.get("page"), 1), 1)
    page_size = min(max(parse_int(request.args.get("page_size"), 10), 1), MAX_PAGE_SIZE)
    clients, total = list_clients(
        s,
        manager_id=None if is_admin(u) else u.id,
        page=page,
        page_size=page_size,
    )
    total_pages = (total + page_size - 1) // page_size

    resp = jsonify({"data": [client_to_dict(c) for c in clients]})
    resp.headers["X-Total-Count"] = str(total)
    resp.headers["X-Page"] = str(page)
    resp.headers["X-Page-Size"] = str(page_size)
    resp.headers["X-Total-Pages"] = str(total_pages)
    return resp


@bp.post("/clients")
def clients_create():
    s = db_session()
    u = require_user()
    check_authorization(u, "client", "create")

    payload = _payload()
    errors = validate_client_payload(payload)
    if errors:
        raise ApiErrors.validation_failed(errors)

    # Account managers always own the clients they create.
    manager_id = None
    if is_admin(u) and payload.get("manager_id") not in (None, ""):
        _check_manager(s, payload)
        manager_id = int(payload["manager_id"])

    client = create_client(s, payload, u, manager_id=manager_id)
    s.commit()
    return success_response(client_to_dict(client), 201, "Client created successfully")


@bp.get("/clients/<int:client_id>")
def client_detail(client_id: int):
    s = db_session()
    u = require_user()
    client = _get_client_for(s, client_id, u, "view")
    return success_response(client_to_dict(client))


def _update(client_id: int, *, partial: bool):
    s = db_session()
    u = require_user()
    client = _get_client_for(s, client_id, u, "update")

    payload = _payload()
    errors = validate_client_payload(payload, partial=partial)
    if errors:
        raise ApiErrors.unprocessable_entity(errors)
    if "manager_id" in payload:
        if not is_admin(u):
            payload.pop("manager_id")
        else:
            _check_manager(s, payload)

    update_client(s, client, payload, u, partial=partial)
    s.commit()
    s.refresh(client)
    return success_response(client_to_dict(client), message="Client updated successfully")


@bp.put("/clients/<int:client_id>")
def client_replace(client_id: int):
    return _update(client_id, partial=False)


@bp.patch("/clients/<int:client_id>")
def client_patch(client_id: int):
    return _update(client_id, partial=True)


@bp.delete("/clients/<int:client_id>")
def client_delete(client_id: int):
    s = db_session()
    u = require_user()
    client = _get_client_for(s, client_id, u, "delete")

    deactivate_client(s, client, u)
    s.commit()
    current_app.logger.info("Client %s deactivated by user %s", client.id, u.id)
    return success_response(client_to_dict(client), message="Client deleted successfully")


# ---------- Domain names ----------
@bp.get("/clients/<int:client_id>/domain-names")
def domains_list(client_id: int):
    s = db_session()
    u = require_user()
    client = _get_client_for(s, client_id, u, "view")
    return success_response([domain_to_dict(d) for d in client.domain_names])


@bp.post("/clients/<int:client_id>/domain-names")
def domains_create(client_id: int):
    s = db_session()
    u = require_user()
    client = _get_client_for(s, client_id, u, "view")

    payload = _payload()
    errors = validate_domain_payload(payload)
    if errors:
        raise ApiErrors.validation_failed(errors)

    domain = create_domain(s, client, payload, u)
    s.commit()
    return success_response(domain_to_dict(domain), 201, "Domain name created successfully")


@bp.put("/clients/<int:client_id>/domain-names")
def domains_update(client_id: int):
    s = db_session()
    u = require_user()
    client = _get_client_for(s, client_id, u, "view")

    payload = _payload()
    domain_id = parse_int(payload.get("id"), 0)
    if not domain_id:
        raise ApiErrors.validation_failed(["Domain id is required."])
    errors = validate_domain_payload(payload, partial=True)
    if errors:
        raise ApiErrors.validation_failed(errors)

    domain = s.get(DomainName, domain_id)
    if not domain or domain.client_id != client.id:
        raise ApiErrors.not_found("Domain name")

    update_domain(s, domain, payload, u)
    s.commit()
    return success_response(domain_to_dict(domain), message="Domain name updated successfully")


@bp.delete("/clients/<int:client_id>/domain-names/<int:domain_id>")
def domains_delete(client_id: int, domain_id: int):
    s = db_session()
    u = require_user()
    client = _get_client_for(s, client_id, u, "view")

    domain = s.get(DomainName, domain_id)
    if not domain or domain.client_id != client.id:
        raise ApiErrors.not_found("Domain name")

    delete_domain(s, domain, u)
    s.commit()
    return "", 204


@bp.get("/domains/expiring")
def domains_expiring():
    s = db_session()
    u = require_user()
    if is_admin(u):
        manager_id = None
    elif is_account_manager(u):
        manager_id = u.id
    else:
        raise ApiErrors.forbidden("Only admins and account managers can view expiring domains")

    days = int(current_app.config["DOMAIN_EXPIRY_DAYS"])
    domains = expiring_domains(s, days, manager_id=manager_id)
    return success_response([domain_to_dict(d, with_client=True) for d in domains])
