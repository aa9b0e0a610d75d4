from __future__ import annotations

from flask import Blueprint, request

from app.issuetracker.db import db_session
from app.issuetracker.errors import ApiErrors, success_response
from app.issuetracker.modules.comments.models import Comment
from app.issuetracker.modules.comments.service import (
    add_comment,
    comment_to_dict,
    delete_comment,
    list_comments,
    validate_comment_payload,
)
from app.issuetracker.modules.issues.api import get_issue_or_404, issue_rule_data
from app.issuetracker.rbac import check_authorization, require_user

bp = Blueprint("comments", __name__)


@bp.get("/issues/<int:issue_id>/comments")
def comments_list(issue_id: int):
    s = db_session()
    u = require_user()
    issue = get_issue_or_404(s, issue_id)
    check_authorization(u, "issue", "view", issue_rule_data(issue))
    return success_response([comment_to_dict(c) for c in list_comments(s, issue)])


@bp.post("/issues/<int:issue_id>/comments")
def comments_create(issue_id: int):
    s = db_session()
    u = require_user()
    issue = get_issue_or_404(s, issue_id)
    check_authorization(u, "comment", "create", issue_rule_data(issue))

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = request.form.to_dict()
    errors = validate_comment_payload(payload)
    if errors:
        raise ApiErrors.validation_failed(errors)

    comment = add_comment(s, issue, payload, u)
    s.commit()
    return success_response(comment_to_dict(comment), 201, "Comment added successfully")


@bp.delete("/comments/<int:comment_id>")
def comment_delete(comment_id: int):
    s = db_session()
    u = require_user()
    comment = s.get(Comment, comment_id)
    if not comment:
        raise ApiErrors.not_found("Comment")
    check_authorization(u, "comment", "delete", {"created_by_id": comment.created_by_id})

    delete_comment(s, comment, u)
    s.commit()
    return success_response(None, message="Comment deleted successfully")
