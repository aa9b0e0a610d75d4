from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import case

from app.issuetracker.audit import record_event
from app.issuetracker.constants import (
    ACTIVE_ISSUE_STATUSES,
    ALLOWED_STATUS_TRANSITIONS,
    ENVIRONMENTS,
    HOW_DISCOVERED,
    ISSUE_PRIORITIES,
    ISSUE_STATUSES,
)
from app.issuetracker.date_utils import default_due_date, is_not_past_date, parse_datetime
from app.issuetracker.modules.notifications.service import (
    notify_issue_assigned,
    notify_participants,
    notify_status_changed,
)
from app.issuetracker.utils import clean_str, isoformat, parse_bool, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.issuetracker.models import User
    from app.issuetracker.modules.issues.models import Issue
    from app.issuetracker.storage import Storage

logger = logging.getLogger(__name__)

TEXT_FIELDS = (
    "description",
    "steps_to_reproduce",
    "expected_result",
    "actual_result",
    "impact",
    "related_logs",
    "work_around_description",
)

PAST_DUE_DATE_MESSAGE = "Due date cannot be in the past"


def is_valid_status_transition(current: str, new: str) -> bool:
    if current == new:
        return True
    return new in ALLOWED_STATUS_TRANSITIONS.get(current, ())


def get_allowed_next_statuses(current: str) -> list[str]:
    return list(ALLOWED_STATUS_TRANSITIONS.get(current, ()))


def _validate_enums(payload: dict, errors: list[str]) -> None:
    for field, allowed in (
        ("status", ISSUE_STATUSES),
        ("priority", ISSUE_PRIORITIES),
        ("environment", ENVIRONMENTS),
        ("how_discovered", HOW_DISCOVERED),
    ):
        value = clean_str(payload.get(field))
        if value and value not in allowed:
            errors.append(f"Invalid {field}. Must be one of: {', '.join(allowed)}")


def _validate_due_date(payload: dict, errors: list[str]) -> None:
    if payload.get("due_date") in (None, ""):
        return
    try:
        parse_datetime(payload.get("due_date"))
    except (TypeError, ValueError):
        errors.append("Invalid due_date. Use an ISO-8601 date or datetime.")


def _validate_int(payload: dict, field: str, errors: list[str]) -> None:
    value = payload.get(field)
    if value in (None, ""):
        return
    if isinstance(value, bool):
        errors.append(f"Invalid {field}.")
        return
    try:
        int(value)
    except (TypeError, ValueError):
        errors.append(f"Invalid {field}.")


def validate_issue_payload(payload: dict) -> list[str]:
    """Validate issue creation payload. Returns list of errors."""
    errors: list[str] = []
    title = clean_str(payload.get("title"))
    if not title:
        errors.append("Title is required.")
    elif len(title) > 255:
        errors.append("Title must be at most 255 characters.")
    if payload.get("client_id") in (None, ""):
        errors.append("Client is required.")
    _validate_int(payload, "client_id", errors)
    _validate_int(payload, "assigned_to_id", errors)
    _validate_enums(payload, errors)
    _validate_due_date(payload, errors)
    return errors


def validate_issue_update_payload(payload: dict) -> list[str]:
    """Every field is optional on update, but a provided title may not be blank."""
    errors: list[str] = []
    if "title" in payload:
        title = clean_str(payload.get("title"))
        if not title:
            errors.append("Title cannot be empty.")
        elif len(title) > 255:
            errors.append("Title must be at most 255 characters.")
    if "client_id" in payload and payload.get("client_id") in (None, ""):
        errors.append("Client is required.")
    _validate_int(payload, "client_id", errors)
    _validate_int(payload, "assigned_to_id", errors)
    _validate_enums(payload, errors)
    _validate_due_date(payload, errors)
    return errors


def _optional_id(value) -> int | None:
    if value in (None, ""):
        return None
    return int(value)


def create_issue(s: "Session", payload: dict, user: "User") -> "Issue":
    """
    Create an issue reported by `user`. Callers validate the payload and check that the
    client and assignee exist; the due date defaults to ten business days out.
    """
    from app.issuetracker.modules.issues.models import Issue

    now = utcnow()
    due_date = parse_datetime(payload.get("due_date")) or default_due_date(now)
    issue = Issue(
        title=clean_str(payload.get("title")),
        status=clean_str(payload.get("status")) or "NEW",
        priority=clean_str(payload.get("priority")) or "MEDIUM",
        assigned_to_id=_optional_id(payload.get("assigned_to_id")),
        reported_by_id=user.id,
        client_id=int(payload["client_id"]),
        due_date=due_date,
        environment=clean_str(payload.get("environment")) or "LOCAL",
        how_discovered=clean_str(payload.get("how_discovered")),
        work_around_available=parse_bool(payload.get("work_around_available")),
        created_at=now,
        updated_at=now,
    )
    for field in TEXT_FIELDS:
        setattr(issue, field, clean_str(payload.get(field)))
    s.add(issue)
    s.flush()

    if issue.assigned_to_id:
        notify_issue_assigned(s, issue, issue.assigned_to_id)

    record_event(
        s,
        actor=user,
        action="issue.create",
        entity_type="Issue",
        entity_id=str(issue.id),
        metadata={"title": issue.title, "client_id": issue.client_id, "assigned_to_id": issue.assigned_to_id},
    )
    return issue


def update_issue(s: "Session", issue: "Issue", payload: dict, user: "User") -> "Issue":
    """
    Apply the fields present in `payload`. Permission checks (due date, assignee) and the
    status transition check happen in the handler; notifications for a new status or a
    new assignee are written here.
    """
    changes: dict[str, dict] = {}

    def _set(field: str, new) -> None:
        old = getattr(issue, field)
        if new != old:
            changes[field] = {"old": old, "new": new}
            setattr(issue, field, new)

    if "title" in payload:
        _set("title", clean_str(payload.get("title")))
    for field in TEXT_FIELDS:
        if field in payload:
            _set(field, clean_str(payload.get(field)))
    for field in ("priority", "environment", "how_discovered"):
        if field in payload and clean_str(payload.get(field)):
            _set(field, clean_str(payload.get(field)))
    if "client_id" in payload:
        _set("client_id", int(payload["client_id"]))
    if "work_around_available" in payload:
        _set("work_around_available", parse_bool(payload.get("work_around_available")))
    if "due_date" in payload:
        _set("due_date", parse_datetime(payload.get("due_date")))

    old_status = issue.status
    new_status = clean_str(payload.get("status"))
    if new_status and new_status != old_status:
        _set("status", new_status)

    old_assignee = issue.assigned_to_id
    if "assigned_to_id" in payload:
        _set("assigned_to_id", _optional_id(payload.get("assigned_to_id")))

    issue.updated_at = utcnow()

    if "status" in changes:
        notify_participants(s, issue, user.id, lambda uid: notify_status_changed(s, issue, issue.status, uid))
    if "assigned_to_id" in changes and issue.assigned_to_id and issue.assigned_to_id != old_assignee:
        notify_issue_assigned(s, issue, issue.assigned_to_id)

    record_event(
        s,
        actor=user,
        action="issue.update",
        entity_type="Issue",
        entity_id=str(issue.id),
        metadata={"title": issue.title, "changes": changes},
    )
    return issue


def change_status(s: "Session", issue: "Issue", new_status: str, user: "User") -> "Issue":
    """Caller has checked the transition."""
    old_status = issue.status
    if new_status == old_status:
        return issue
    issue.status = new_status
    issue.updated_at = utcnow()
    notify_participants(s, issue, user.id, lambda uid: notify_status_changed(s, issue, new_status, uid))
    record_event(
        s,
        actor=user,
        action="issue.status_change",
        entity_type="Issue",
        entity_id=str(issue.id),
        metadata={"old": old_status, "new": new_status},
    )
    return issue


def assign_issue(s: "Session", issue: "Issue", assigned_to_id: int | None, user: "User") -> "Issue":
    old = issue.assigned_to_id
    issue.assigned_to_id = assigned_to_id
    issue.updated_at = utcnow()
    if assigned_to_id and assigned_to_id != old:
        notify_issue_assigned(s, issue, assigned_to_id)
    record_event(
        s,
        actor=user,
        action="issue.assign",
        entity_type="Issue",
        entity_id=str(issue.id),
        metadata={"old": old, "new": assigned_to_id},
    )
    return issue


def set_due_date(s: "Session", issue: "Issue", due_date: datetime, user: "User") -> "Issue":
    old = issue.due_date
    issue.due_date = due_date
    issue.updated_at = utcnow()
    record_event(
        s,
        actor=user,
        action="issue.due_date",
        entity_type="Issue",
        entity_id=str(issue.id),
        metadata={"old": old, "new": due_date},
    )
    return issue


def delete_issue(s: "Session", issue: "Issue", user: "User") -> list[str]:
    """
    Delete the issue; comments, files and notifications go with it (FK cascade).
    Returns the attachment storage keys; remove them with `remove_stored_attachments`
    once the delete is committed.
    """
    keys = [f.key for f in issue.files]
    record_event(
        s,
        actor=user,
        action="issue.delete",
        entity_type="Issue",
        entity_id=str(issue.id),
        metadata={"title": issue.title, "attachments": len(keys)},
    )
    s.delete(issue)
    return keys


def remove_stored_attachments(storage: "Storage", keys: list[str], issue_id: int) -> None:
    for key in keys:
        try:
            storage.delete(key)
        except Exception:
            logger.exception("Failed to delete attachment %s for issue %s", key, issue_id)


def list_issues(
    s: "Session",
    user: "User",
    *,
    is_admin: bool,
    filters: dict,
    page: int = 1,
    limit: int = 10,
) -> tuple[list["Issue"], int]:
    from app.issuetracker.modules.issues.models import Issue

    q = s.query(Issue)
    if not is_admin:
        q = q.filter((Issue.reported_by_id == user.id) | (Issue.assigned_to_id == user.id))

    if filters.get("status"):
        q = q.filter(Issue.status == filters["status"])
    if filters.get("priority"):
        q = q.filter(Issue.priority == filters["priority"])
    for field in ("assigned_to_id", "reported_by_id", "client_id"):
        if filters.get(field) is not None:
            q = q.filter(getattr(Issue, field) == filters[field])

    total = q.count()
    issues = (
        q.order_by(Issue.updated_at.desc(), Issue.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return issues, total


def due_soon_issues_for_user(s: "Session", user: "User", days: int, now: datetime | None = None) -> list["Issue"]:
    """Active issues the user reported or is assigned to, due in (now, now + days]."""
    from app.issuetracker.modules.issues.models import Issue

    now = now or utcnow()
    priority_rank = case(
        {"CRITICAL": 0, "HIGH": 1, "MEDIUM": 2, "LOW": 3},
        value=Issue.priority,
        else_=4,
    )
    return (
        s.query(Issue)
        .filter((Issue.reported_by_id == user.id) | (Issue.assigned_to_id == user.id))
        .filter(Issue.status.in_(ACTIVE_ISSUE_STATUSES))
        .filter(Issue.due_date.isnot(None))
        .filter(Issue.due_date > now)
        .filter(Issue.due_date <= now + timedelta(days=days))
        .order_by(priority_rank.asc(), Issue.due_date.asc())
        .all()
    )


def due_date_is_valid(value: datetime | None) -> bool:
    return value is None or is_not_past_date(value)


def _user_brief(u) -> dict | None:
    if u is None:
        return None
    return {"id": u.id, "name": u.name, "email": u.email, "image": u.image}


def issue_to_dict(issue: "Issue") -> dict:
    return {
        "id": issue.id,
        "title": issue.title,
        "description": issue.description,
        "status": issue.status,
        "priority": issue.priority,
        "assigned_to_id": issue.assigned_to_id,
        "assigned_to": _user_brief(issue.assigned_to),
        "reported_by_id": issue.reported_by_id,
        "reported_by": _user_brief(issue.reported_by),
        "client_id": issue.client_id,
        "client": {"id": issue.client.id, "name": issue.client.name} if issue.client else None,
        "due_date": isoformat(issue.due_date),
        "environment": issue.environment,
        "how_discovered": issue.how_discovered,
        "steps_to_reproduce": issue.steps_to_reproduce,
        "expected_result": issue.expected_result,
        "actual_result": issue.actual_result,
        "impact": issue.impact,
        "related_logs": issue.related_logs,
        "work_around_available": issue.work_around_available,
        "work_around_description": issue.work_around_description,
        "allowed_next_statuses": get_allowed_next_statuses(issue.status),
        "created_at": isoformat(issue.created_at),
        "updated_at": isoformat(issue.updated_at),
    }
