from app.issuetracker.db import session_scope
from app.issuetracker.models import AuditEvent

from helpers import login, make_client, make_issue, notifications_for


def test_add_comment_notifies_participants_but_not_author(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["user"], client_id, assigned_to_id=ids["dev"], title="Cart empties")

    r = login(app, "dev").post(f"/api/issues/{issue_id}/comments", json={"text": "  Looking into it  "})
    assert r.status_code == 201
    assert r.json["message"] == "Comment added successfully"
    data = r.json["data"]
    assert data["text"] == "Looking into it"
    assert data["created_by"]["name"] == "Dana Dev"

    assert notifications_for(app, ids["user"]) == [
        ("COMMENT_ADDED", "Dana Dev commented on issue: Cart empties", issue_id)
    ]
    assert notifications_for(app, ids["dev"]) == []

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "comment.create").count() == 1


def test_list_comments_newest_first(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["user"], client_id)
    c = login(app, "user")
    for text in ("first", "second", "third"):
        assert c.post(f"/api/issues/{issue_id}/comments", json={"text": text}).status_code == 201

    r = c.get(f"/api/issues/{issue_id}/comments")
    assert r.status_code == 200
    assert [cm["text"] for cm in r.json["data"]] == ["third", "second", "first"]


def test_comment_validation_and_access(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["user"], client_id)

    c = login(app, "user")
    r = c.post(f"/api/issues/{issue_id}/comments", json={"text": "   "})
    assert r.status_code == 400
    assert "Comment text is required." in r.json["details"]

    r = c.post(f"/api/issues/{issue_id}/comments", json={"text": "x" * 10001})
    assert r.status_code == 400

    outsider = login(app, "dev2")
    assert outsider.post(f"/api/issues/{issue_id}/comments", json={"text": "hi"}).status_code == 403
    assert outsider.get(f"/api/issues/{issue_id}/comments").status_code == 403

    assert c.get("/api/issues/9999/comments").status_code == 404


def test_delete_comment_author_or_admin(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["user"], client_id, assigned_to_id=ids["dev"])
    r = login(app, "user").post(f"/api/issues/{issue_id}/comments", json={"text": "mine"})
    comment_id = r.json["data"]["id"]

    assert login(app, "dev").delete(f"/api/comments/{comment_id}").status_code == 403

    r = login(app, "admin").delete(f"/api/comments/{comment_id}")
    assert r.status_code == 200
    assert login(app, "user").get(f"/api/issues/{issue_id}/comments").json["data"] == []

    r = login(app, "admin").delete(f"/api/comments/{comment_id}")
    assert r.status_code == 404
    assert r.json["error"] == "Comment not found"
