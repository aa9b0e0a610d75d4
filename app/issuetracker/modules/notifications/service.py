"""
Notification fan-out: direct writes into the notifications table.

Writes join the caller's session and are committed with the change that caused
them. There is no delivery tracking or retry; a notification row is the feed entry.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import and_, func, or_, select, update

from app.issuetracker.constants import (
    ACTIVE_ISSUE_STATUSES,
    NOTIFICATION_COMMENT_ADDED,
    NOTIFICATION_ISSUE_ASSIGNED,
    NOTIFICATION_ISSUE_DUE_SOON,
    NOTIFICATION_STATUS_CHANGED,
)
from app.issuetracker.date_utils import start_of_day
from app.issuetracker.utils import isoformat, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.issuetracker.modules.issues.models import Issue
    from app.issuetracker.modules.notifications.models import Notification

logger = logging.getLogger(__name__)

# Read notifications stay in the feed this long after being read.
READ_RETENTION = timedelta(days=1)


def create_notification(
    s: "Session",
    type: str,
    message: str,
    user_id: int,
    issue_id: int | None = None,
) -> "Notification":
    from app.issuetracker.modules.notifications.models import Notification

    n = Notification(type=type, message=message, user_id=user_id, issue_id=issue_id, read=False)
    s.add(n)
    return n


def notify_issue_assigned(s: "Session", issue: "Issue", assigned_to_id: int) -> "Notification":
    return create_notification(
        s,
        NOTIFICATION_ISSUE_ASSIGNED,
        f"You have been assigned to issue: {issue.title}",
        assigned_to_id,
        issue.id,
    )


def notify_comment_added(s: "Session", issue: "Issue", author_name: str, user_id: int) -> "Notification":
    return create_notification(
        s,
        NOTIFICATION_COMMENT_ADDED,
        f"{author_name} commented on issue: {issue.title}",
        user_id,
        issue.id,
    )


def notify_status_changed(s: "Session", issue: "Issue", new_status: str, user_id: int) -> "Notification":
    return create_notification(
        s,
        NOTIFICATION_STATUS_CHANGED,
        f"Status changed to {new_status} for issue: {issue.title}",
        user_id,
        issue.id,
    )


def days_until(due: datetime, now: datetime | None = None) -> int:
    now = now or utcnow()
    return math.ceil((due - now).total_seconds() / 86400)


def notify_issue_due_soon(s: "Session", issue: "Issue", user_id: int, now: datetime | None = None) -> "Notification":
    return create_notification(
        s,
        NOTIFICATION_ISSUE_DUE_SOON,
        f"Issue due in {days_until(issue.due_date, now)} days: {issue.title}",
        user_id,
        issue.id,
    )


def notify_participants(s: "Session", issue: "Issue", actor_id: int | None, notify) -> list["Notification"]:
    """
    Call `notify(user_id)` once for the assignee and once for the reporter,
    skipping the acting user and never notifying the same person twice.
    """
    sent: list[Notification] = []
    seen: set[int] = set()
    for user_id in (issue.assigned_to_id, issue.reported_by_id):
        if user_id is None or user_id == actor_id or user_id in seen:
            continue
        seen.add(user_id)
        sent.append(notify(user_id))
    return sent


def _feed_filter(user_id: int, unread_only: bool, now: datetime):
    from app.issuetracker.modules.notifications.models import Notification

    if unread_only:
        return and_(Notification.user_id == user_id, Notification.read.is_(False))
    return and_(
        Notification.user_id == user_id,
        or_(
            Notification.read.is_(False),
            Notification.read_at >= now - READ_RETENTION,
        ),
    )


def get_user_notifications(
    s: "Session",
    user_id: int,
    *,
    unread_only: bool = False,
    page: int = 1,
    limit: int = 10,
    now: datetime | None = None,
) -> tuple[list["Notification"], int]:
    """One page of a user's feed, newest first, plus the total row count."""
    from app.issuetracker.modules.notifications.models import Notification

    now = now or utcnow()
    where = _feed_filter(user_id, unread_only, now)
    total = s.scalar(select(func.count()).select_from(Notification).where(where)) or 0
    rows = s.scalars(
        select(Notification)
        .where(where)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(rows), total


def unread_count(s: "Session", user_id: int) -> int:
    from app.issuetracker.modules.notifications.models import Notification

    return s.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
    ) or 0


def mark_as_read(s: "Session", notification: "Notification") -> "Notification":
    if not notification.read:
        notification.read = True
        notification.read_at = utcnow()
    return notification


def mark_all_as_read(s: "Session", user_id: int) -> int:
    from app.issuetracker.modules.notifications.models import Notification

    result = s.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True, read_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def find_due_soon_issues(s: "Session", days: int, now: datetime | None = None) -> list["Issue"]:
    """Active issues whose due date falls in (now, now + days] and that got no due-soon notice today."""
    from app.issuetracker.modules.issues.models import Issue
    from app.issuetracker.modules.notifications.models import Notification

    now = now or utcnow()
    already_notified = (
        select(Notification.id)
        .where(
            Notification.issue_id == Issue.id,
            Notification.type == NOTIFICATION_ISSUE_DUE_SOON,
            Notification.created_at >= start_of_day(now),
        )
        .exists()
    )
    return list(
        s.scalars(
            select(Issue)
            .where(
                Issue.status.in_(ACTIVE_ISSUE_STATUSES),
                Issue.due_date.isnot(None),
                Issue.due_date <= now + timedelta(days=days),
                Issue.due_date > now,
                ~already_notified,
            )
            .order_by(Issue.due_date.asc())
        ).all()
    )


def send_due_soon_notifications(s: "Session", days: int, now: datetime | None = None) -> list["Issue"]:
    """
    Daily sweep: notify the assignee (if any) and the reporter of each due-soon issue.
    Running it twice on the same day sends nothing new.
    """
    now = now or utcnow()
    issues = find_due_soon_issues(s, days, now)
    for issue in issues:
        notify_participants(s, issue, None, lambda uid, issue=issue: notify_issue_due_soon(s, issue, uid, now))
    s.flush()
    logger.info("Due-soon sweep: %d issue(s) notified", len(issues))
    return issues


def notification_to_dict(n: "Notification") -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "message": n.message,
        "read": n.read,
        "read_at": isoformat(n.read_at),
        "user_id": n.user_id,
        "issue_id": n.issue_id,
        "issue": {"id": n.issue.id, "title": n.issue.title} if n.issue else None,
        "created_at": isoformat(n.created_at),
    }
