from __future__ import annotations

import secrets

from flask import Blueprint, current_app, request

from app.issuetracker.db import db_session
from app.issuetracker.errors import ApiErrors, success_response
from app.issuetracker.modules.notifications.models import Notification
from app.issuetracker.modules.notifications.service import (
    get_user_notifications,
    mark_all_as_read,
    mark_as_read,
    notification_to_dict,
    send_due_soon_notifications,
    unread_count,
)
from app.issuetracker.rbac import require_user
from app.issuetracker.utils import isoformat, parse_bool, parse_int

bp = Blueprint("notifications", __name__)


@bp.get("/notifications")
def notifications_list():
    s = db_session()
    u = require_user()

    unread_only = bool(parse_bool(request.args.get("unread_only")))
    page = max(parse_int(request.args.get("page"), 1), 1)
    limit = min(max(parse_int(request.args.get("limit"), 10), 1), 100)

    rows, total = get_user_notifications(s, u.id, unread_only=unread_only, page=page, limit=limit)
    return success_response(
        {
            "notifications": [notification_to_dict(n) for n in rows],
            "unread_count": unread_count(s, u.id),
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": (total + limit - 1) // limit,
            },
        }
    )


@bp.patch("/notifications/<int:notification_id>/read")
def notification_mark_read(notification_id: int):
    s = db_session()
    u = require_user()
    n = s.get(Notification, notification_id)
    if not n:
        raise ApiErrors.not_found("Notification")
    if n.user_id != u.id:
        raise ApiErrors.forbidden("You can only mark your own notifications as read")

    mark_as_read(s, n)
    s.commit()
    return success_response(notification_to_dict(n), message="Notification marked as read")


@bp.post("/notifications/mark-all-read")
def notifications_mark_all_read():
    s = db_session()
    u = require_user()
    count = mark_all_as_read(s, u.id)
    s.commit()
    return success_response({"updated": count}, message="All notifications marked as read")


# ---------- Scheduler hook ----------
@bp.get("/cron/check-due-issues")
def cron_check_due_issues():
    expected = current_app.config.get("CRON_SECRET") or ""
    if expected:
        header = request.headers.get("Authorization") or ""
        token = header[len("Bearer "):] if header.startswith("Bearer ") else ""
        if not token or not secrets.compare_digest(token, expected):
            raise ApiErrors.unauthorized("Invalid cron secret")

    s = db_session()
    issues = send_due_soon_notifications(s, int(current_app.config["DUE_SOON_DAYS"]))
    s.commit()
    return success_response(
        {
            "processed": len(issues),
            "issues": [{"id": i.id, "title": i.title, "due_date": isoformat(i.due_date)} for i in issues],
        },
        message="Due-soon notifications sent",
    )
