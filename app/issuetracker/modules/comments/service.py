from __future__ import annotations

from typing import TYPE_CHECKING

from app.issuetracker.audit import record_event
from app.issuetracker.modules.notifications.service import notify_comment_added, notify_participants
from app.issuetracker.utils import clean_str, isoformat, utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.issuetracker.models import User
    from app.issuetracker.modules.comments.models import Comment
    from app.issuetracker.modules.issues.models import Issue

MAX_COMMENT_LENGTH = 10000


def validate_comment_payload(payload: dict) -> list[str]:
    errors = []
    text = clean_str(payload.get("text"))
    if not text:
        errors.append("Comment text is required.")
    elif len(text) > MAX_COMMENT_LENGTH:
        errors.append(f"Comment must be at most {MAX_COMMENT_LENGTH} characters.")
    return errors


def list_comments(s: "Session", issue: "Issue") -> list["Comment"]:
    from app.issuetracker.modules.comments.models import Comment

    return (
        s.query(Comment)
        .filter(Comment.issue_id == issue.id)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .all()
    )


def add_comment(s: "Session", issue: "Issue", payload: dict, user: "User") -> "Comment":
    """Create the comment and notify the reporter and assignee (never the author)."""
    from app.issuetracker.modules.comments.models import Comment

    now = utcnow()
    comment = Comment(
        text=clean_str(payload.get("text")),
        created_by_id=user.id,
        issue_id=issue.id,
        created_at=now,
        updated_at=now,
    )
    s.add(comment)
    s.flush()

    author = user.name or user.email
    notify_participants(s, issue, user.id, lambda uid: notify_comment_added(s, issue, author, uid))

    record_event(
        s,
        actor=user,
        action="comment.create",
        entity_type="Comment",
        entity_id=str(comment.id),
        metadata={"issue_id": issue.id},
    )
    return comment


def delete_comment(s: "Session", comment: "Comment", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="comment.delete",
        entity_type="Comment",
        entity_id=str(comment.id),
        metadata={"issue_id": comment.issue_id, "created_by_id": comment.created_by_id},
    )
    s.delete(comment)


def comment_to_dict(c: "Comment") -> dict:
    author = c.created_by
    return {
        "id": c.id,
        "text": c.text,
        "issue_id": c.issue_id,
        "created_by_id": c.created_by_id,
        "created_by": {"id": author.id, "name": author.name, "email": author.email, "image": author.image}
        if author
        else None,
        "created_at": isoformat(c.created_at),
        "updated_at": isoformat(c.updated_at),
    }
