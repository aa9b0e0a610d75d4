from datetime import timedelta

from app.issuetracker.db import session_scope
from app.issuetracker.modules.notifications.models import Notification
from app.issuetracker.modules.notifications.service import days_until, get_user_notifications
from app.issuetracker.utils import utcnow

from helpers import login, make_client, make_issue, notifications_for


def _notify(app, user_id, issue_id=None, message="hello", read=False, read_at=None, type="COMMENT_ADDED"):
    with session_scope(app) as s:
        n = Notification(type=type, message=message, user_id=user_id, issue_id=issue_id, read=read, read_at=read_at)
        s.add(n)
        s.flush()
        return n.id


def test_days_until_rounds_up():
    now = utcnow()
    assert days_until(now + timedelta(hours=1), now) == 1
    assert days_until(now + timedelta(days=2), now) == 2
    assert days_until(now + timedelta(days=2, minutes=1), now) == 3


def test_feed_lists_own_notifications_newest_first(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["user"], client_id, title="Payment stuck")
    _notify(app, ids["dev"], issue_id, message="older")
    _notify(app, ids["dev"], issue_id, message="newer")
    _notify(app, ids["dev2"], message="someone else's")

    r = login(app, "dev").get("/api/notifications")
    assert r.status_code == 200
    data = r.json["data"]
    assert [n["message"] for n in data["notifications"]] == ["newer", "older"]
    assert data["notifications"][0]["issue"] == {"id": issue_id, "title": "Payment stuck"}
    assert data["unread_count"] == 2
    assert data["pagination"] == {"page": 1, "limit": 10, "total": 2, "total_pages": 1}

    r = login(app, "dev").get("/api/notifications?limit=1&page=2")
    assert [n["message"] for n in r.json["data"]["notifications"]] == ["older"]


def test_feed_keeps_recently_read_items(app, ids):
    now = utcnow()
    _notify(app, ids["dev"], message="unread")
    _notify(app, ids["dev"], message="read an hour ago", read=True, read_at=now - timedelta(hours=1))
    _notify(app, ids["dev"], message="read last week", read=True, read_at=now - timedelta(days=7))

    r = login(app, "dev").get("/api/notifications")
    assert sorted(n["message"] for n in r.json["data"]["notifications"]) == ["read an hour ago", "unread"]
    assert r.json["data"]["unread_count"] == 1

    r = login(app, "dev").get("/api/notifications?unread_only=true")
    assert [n["message"] for n in r.json["data"]["notifications"]] == ["unread"]

    with session_scope(app) as s:
        rows, total = get_user_notifications(s, ids["dev"], now=now + timedelta(days=2))
        assert [n.message for n in rows] == ["unread"]
        assert total == 1


def test_mark_single_notification_read(app, ids):
    nid = _notify(app, ids["dev"])
    other = _notify(app, ids["dev2"])
    c = login(app, "dev")

    r = c.patch(f"/api/notifications/{nid}/read")
    assert r.status_code == 200
    assert r.json["data"]["read"] is True
    assert r.json["data"]["read_at"]

    r = c.patch(f"/api/notifications/{other}/read")
    assert r.status_code == 403
    assert r.json["error"] == "You can only mark your own notifications as read"

    assert c.patch("/api/notifications/9999/read").status_code == 404


def test_mark_all_read(app, ids):
    for _ in range(3):
        _notify(app, ids["dev"])
    _notify(app, ids["dev2"])
    c = login(app, "dev")

    r = c.post("/api/notifications/mark-all-read")
    assert r.status_code == 200
    assert r.json["data"] == {"updated": 3}
    assert c.get("/api/notifications").json["data"]["unread_count"] == 0
    assert login(app, "dev2").get("/api/notifications").json["data"]["unread_count"] == 1

    assert c.post("/api/notifications/mark-all-read").json["data"] == {"updated": 0}


def test_cron_endpoint_runs_sweep(app, ids, client):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(
        app, ids["user"], client_id, title="Expiring cert", assigned_to_id=ids["dev"], due_date=utcnow() + timedelta(days=1)
    )

    r = client.get("/api/cron/check-due-issues")
    assert r.status_code == 200
    assert r.json["data"]["processed"] == 1
    assert r.json["data"]["issues"][0]["id"] == issue_id
    assert [n[0] for n in notifications_for(app, ids["dev"])] == ["ISSUE_DUE_SOON"]
    assert [n[0] for n in notifications_for(app, ids["user"])] == ["ISSUE_DUE_SOON"]

    r = client.get("/api/cron/check-due-issues")
    assert r.json["data"]["processed"] == 0


def test_cron_endpoint_requires_secret_when_configured(app, client):
    app.config["CRON_SECRET"] = "s3cret"
    r = client.get("/api/cron/check-due-issues")
    assert r.status_code == 401
    assert r.json["error"] == "Invalid cron secret"

    r = client.get("/api/cron/check-due-issues", headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 401

    r = client.get("/api/cron/check-due-issues", headers={"Authorization": "Bearer s3cret"})
    assert r.status_code == 200
