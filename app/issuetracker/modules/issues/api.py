from __future__ import annotations

from flask import Blueprint, current_app, request

from app.issuetracker.constants import ISSUE_STATUSES
from app.issuetracker.date_utils import is_not_past_date, parse_datetime
from app.issuetracker.db import db_session
from app.issuetracker.errors import ApiError, ApiErrors, success_response
from app.issuetracker.models import User
from app.issuetracker.modules.clients.models import Client
from app.issuetracker.modules.issues.models import Issue
from app.issuetracker.modules.issues.service import (
    PAST_DUE_DATE_MESSAGE,
    assign_issue,
    change_status,
    create_issue,
    delete_issue,
    due_soon_issues_for_user,
    get_allowed_next_statuses,
    is_valid_status_transition,
    issue_to_dict,
    list_issues,
    remove_stored_attachments,
    set_due_date,
    update_issue,
    validate_issue_payload,
    validate_issue_update_payload,
)
from app.issuetracker.modules.notifications.service import send_due_soon_notifications
from app.issuetracker.rate_limit import enforce
from app.issuetracker.rbac import check_authorization, is_account_manager, is_admin, is_developer, require_user
from app.issuetracker.storage import storage_from_config
from app.issuetracker.utils import clean_str, parse_int

bp = Blueprint("issues", __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def issue_rule_data(issue: Issue) -> dict:
    return {"reported_by_id": issue.reported_by_id, "assigned_to_id": issue.assigned_to_id}


def get_issue_or_404(s, issue_id: int) -> Issue:
    issue = s.get(Issue, issue_id)
    if not issue:
        raise ApiErrors.not_found("Issue")
    return issue


def _check_references(s, payload: dict) -> None:
    if payload.get("client_id") not in (None, "") and not s.get(Client, int(payload["client_id"])):
        raise ApiErrors.bad_request("Client not found")
    if payload.get("assigned_to_id") not in (None, "") and not s.get(User, int(payload["assigned_to_id"])):
        raise ApiErrors.bad_request("Assigned user not found")


def _filter_id(name: str) -> int | None:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise ApiErrors.bad_request(f"Invalid {name}") from e


# ---------- List / create ----------
@bp.get("/issues")
def issues_list():
    s = db_session()
    u = require_user()
    check_authorization(u, "issue", "list")

    page = max(parse_int(request.args.get("page"), 1), 1)
    limit = min(max(parse_int(request.args.get("limit"), 10), 1), 100)
    filters = {
        "status": clean_str(request.args.get("status")),
        "priority": clean_str(request.args.get("priority")),
        "assigned_to_id": _filter_id("assigned_to_id"),
        "reported_by_id": _filter_id("reported_by_id"),
        "client_id": _filter_id("client_id"),
    }
    issues, total = list_issues(s, u, is_admin=is_admin(u), filters=filters, page=page, limit=limit)
    return success_response(
        {
            "issues": [issue_to_dict(i) for i in issues],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": (total + limit - 1) // limit,
            },
        }
    )


@bp.post("/issues")
def issues_create():
    s = db_session()
    u = require_user()
    check_authorization(u, "issue", "create")
    enforce("issue_submission", str(u.id), "Too many issues submitted. Please wait a minute and try again.")

    payload = _payload()
    errors = validate_issue_payload(payload)
    if errors:
        raise ApiErrors.validation_failed(errors)
    due_date = parse_datetime(payload.get("due_date"))
    if due_date is not None and not is_not_past_date(due_date):
        raise ApiErrors.bad_request(PAST_DUE_DATE_MESSAGE)
    _check_references(s, payload)

    issue = create_issue(s, payload, u)
    s.commit()
    current_app.logger.info("Issue %s created by user %s", issue.id, u.id)
    return success_response(issue_to_dict(issue), 201, "Issue created successfully")


# ---------- Due soon ----------
@bp.get("/issues/due-soon")
def issues_due_soon():
    s = db_session()
    u = require_user()
    days = int(current_app.config["DUE_SOON_DAYS"])

    send_due_soon_notifications(s, days)
    s.commit()

    issues = due_soon_issues_for_user(s, u, days)
    return success_response({"issues": [issue_to_dict(i) for i in issues]})


# ---------- Detail ----------
@bp.get("/issues/<int:issue_id>")
def issue_detail(issue_id: int):
    s = db_session()
    u = require_user()
    issue = get_issue_or_404(s, issue_id)
    check_authorization(u, "issue", "view", issue_rule_data(issue))
    return success_response(issue_to_dict(issue))


@bp.put("/issues/<int:issue_id>")
def issue_update(issue_id: int):
    s = db_session()
    u = require_user()
    issue = get_issue_or_404(s, issue_id)
    check_authorization(u, "issue", "update", issue_rule_data(issue))

    payload = _payload()
    errors = validate_issue_update_payload(payload)
    if errors:
        raise ApiErrors.validation_failed(errors)

    if "due_date" in payload:
        new_due = parse_datetime(payload.get("due_date"))
        if new_due != issue.due_date:
            if is_developer(u):
                raise ApiErrors.forbidden("Developers cannot change due dates")
            if new_due is not None and not is_not_past_date(new_due):
                raise ApiErrors.bad_request(PAST_DUE_DATE_MESSAGE)

    new_status = clean_str(payload.get("status"))
    if new_status and not is_valid_status_transition(issue.status, new_status):
        raise ApiError(
            f"Invalid status transition from {issue.status} to {new_status}",
            400,
            {"allowed": get_allowed_next_statuses(issue.status)},
        )

    if "assigned_to_id" in payload:
        new_assignee = int(payload["assigned_to_id"]) if payload.get("assigned_to_id") not in (None, "") else None
        if new_assignee != issue.assigned_to_id and not (is_admin(u) or is_account_manager(u)):
            raise ApiErrors.forbidden("Only admins and account managers can assign issues")

    _check_references(s, payload)

    update_issue(s, issue, payload, u)
    s.commit()
    s.refresh(issue)
    return success_response(issue_to_dict(issue), message="Issue updated successfully")


@bp.delete("/issues/<int:issue_id>")
def issue_delete(issue_id: int):
    s = db_session()
    u = require_user()
    issue = get_issue_or_404(s, issue_id)
    check_authorization(u, "issue", "delete", issue_rule_data(issue))

    keys = delete_issue(s, issue, u)
    s.commit()
    # Stored objects go only once the rows are gone.
    remove_stored_attachments(storage_from_config(current_app.config), keys, issue_id)
    current_app.logger.info("Issue %s deleted by user %s", issue_id, u.id)
    return success_response(None, message="Issue deleted successfully")


# ---------- Status / assignment / due date ----------
@bp.patch("/issues/<int:issue_id>/status")
def issue_status(issue_id: int):
    s = db_session()
    u = require_user()
    issue = get_issue_or_404(s, issue_id)
    check_authorization(u, "issue", "update_status", issue_rule_data(issue))

    new_status = clean_str(_payload().get("status"))
    if not new_status or new_status not in ISSUE_STATUSES:
        raise ApiErrors.validation_failed([f"Invalid status. Must be one of: {', '.join(ISSUE_STATUSES)}"])
    if not is_valid_status_transition(issue.status, new_status):
        raise ApiError(
            f"Invalid status transition from {issue.status} to {new_status}",
            400,
            {"allowed": get_allowed_next_statuses(issue.status)},
        )

    change_status(s, issue, new_status, u)
    s.commit()
    return success_response(issue_to_dict(issue), message="Status updated successfully")


@bp.patch("/issues/<int:issue_id>/assign")
def issue_assign(issue_id: int):
    s = db_session()
    u = require_user()
    issue = get_issue_or_404(s, issue_id)
    check_authorization(u, "issue", "assign", issue_rule_data(issue))

    payload = _payload()
    if "assigned_to_id" not in payload:
        raise ApiErrors.unprocessable_entity(["assigned_to_id is required (use null to unassign)."])
    raw = payload.get("assigned_to_id")
    assigned_to_id: int | None = None
    if raw is not None:
        if isinstance(raw, bool):
            raise ApiErrors.unprocessable_entity(["assigned_to_id must be an integer or null."])
        try:
            assigned_to_id = int(raw)
        except (TypeError, ValueError) as e:
            raise ApiErrors.unprocessable_entity(["assigned_to_id must be an integer or null."]) from e
        if not s.get(User, assigned_to_id):
            raise ApiErrors.bad_request("Assigned user not found")

    assign_issue(s, issue, assigned_to_id, u)
    s.commit()
    s.refresh(issue)
    return success_response(issue_to_dict(issue), message="Issue assigned successfully")


@bp.patch("/issues/<int:issue_id>/due-date")
def issue_due_date(issue_id: int):
    s = db_session()
    u = require_user()
    issue = get_issue_or_404(s, issue_id)
    check_authorization(u, "issue", "update", issue_rule_data(issue))
    if not (is_admin(u) or is_account_manager(u)):
        raise ApiErrors.forbidden("Only admins and account managers can change due dates")

    try:
        due_date = parse_datetime(_payload().get("due_date"))
    except (TypeError, ValueError) as e:
        raise ApiErrors.validation_failed(["Invalid due_date. Use an ISO-8601 date or datetime."]) from e
    if due_date is None:
        raise ApiErrors.validation_failed(["Due date is required."])
    if not is_not_past_date(due_date):
        raise ApiErrors.bad_request(PAST_DUE_DATE_MESSAGE)

    set_due_date(s, issue, due_date, u)
    s.commit()
    return success_response(issue_to_dict(issue), message="Due date updated successfully")
