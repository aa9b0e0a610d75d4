from datetime import timedelta

from app.issuetracker.db import session_scope
from app.issuetracker.modules.notifications.models import Notification
from app.issuetracker.utils import utcnow

from helpers import login, make_client, make_issue, notifications_for


# ---------- Status ----------
def test_status_change_notifies_assignee_and_reporter_except_actor(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["user"], client_id, assigned_to_id=ids["dev"], title="Slow search")

    r = login(app, "am").patch(f"/api/issues/{issue_id}/status", json={"status": "ASSIGNED"})
    assert r.status_code == 200
    assert r.json["data"]["status"] == "ASSIGNED"
    msg = "Status changed to ASSIGNED for issue: Slow search"
    assert notifications_for(app, ids["dev"]) == [("STATUS_CHANGED", msg, issue_id)]
    assert notifications_for(app, ids["user"]) == [("STATUS_CHANGED", msg, issue_id)]
    assert notifications_for(app, ids["am"]) == []

    r = login(app, "dev").patch(f"/api/issues/{issue_id}/status", json={"status": "IN_PROGRESS"})
    assert r.status_code == 200
    assert len(notifications_for(app, ids["dev"])) == 1
    assert len(notifications_for(app, ids["user"])) == 2


def test_status_change_rejects_invalid_transition(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["user"], client_id, status="CLOSED")
    c = login(app, "admin")

    r = c.patch(f"/api/issues/{issue_id}/status", json={"status": "NEW"})
    assert r.status_code == 400
    assert r.json["details"] == {"allowed": ["IN_PROGRESS"]}

    r = c.patch(f"/api/issues/{issue_id}/status", json={"status": "DONE"})
    assert r.status_code == 400

    r = c.patch(f"/api/issues/{issue_id}/status", json={})
    assert r.status_code == 400


def test_status_change_requires_staff_role(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["client"], client_id)
    r = login(app, "client").patch(f"/api/issues/{issue_id}/status", json={"status": "ASSIGNED"})
    assert r.status_code == 403

    assert login(app, "admin").patch("/api/issues/9999/status", json={"status": "ASSIGNED"}).status_code == 404


def test_same_status_is_a_no_op(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["user"], client_id, assigned_to_id=ids["dev"])
    r = login(app, "am").patch(f"/api/issues/{issue_id}/status", json={"status": "NEW"})
    assert r.status_code == 200
    assert notifications_for(app, ids["dev"]) == []


# ---------- Assignment ----------
def test_assign_notifies_new_assignee(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["user"], client_id, title="Dark mode")
    c = login(app, "am")

    r = c.patch(f"/api/issues/{issue_id}/assign", json={"assigned_to_id": ids["dev"]})
    assert r.status_code == 200
    assert r.json["data"]["assigned_to_id"] == ids["dev"]
    assert notifications_for(app, ids["dev"]) == [
        ("ISSUE_ASSIGNED", "You have been assigned to issue: Dark mode", issue_id)
    ]

    # re-assigning the same person sends nothing new
    r = c.patch(f"/api/issues/{issue_id}/assign", json={"assigned_to_id": ids["dev"]})
    assert r.status_code == 200
    assert len(notifications_for(app, ids["dev"])) == 1

    r = c.patch(f"/api/issues/{issue_id}/assign", json={"assigned_to_id": None})
    assert r.status_code == 200
    assert r.json["data"]["assigned_to_id"] is None
    assert r.json["data"]["assigned_to"] is None


def test_assign_requires_admin_or_account_manager(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["dev"], client_id)
    r = login(app, "dev").patch(f"/api/issues/{issue_id}/assign", json={"assigned_to_id": ids["dev"]})
    assert r.status_code == 403


def test_assign_validation(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["user"], client_id)
    c = login(app, "admin")

    assert c.patch(f"/api/issues/{issue_id}/assign", json={}).status_code == 422
    assert c.patch(f"/api/issues/{issue_id}/assign", json={"assigned_to_id": "abc"}).status_code == 422
    assert c.patch(f"/api/issues/{issue_id}/assign", json={"assigned_to_id": True}).status_code == 422

    r = c.patch(f"/api/issues/{issue_id}/assign", json={"assigned_to_id": 9999})
    assert r.status_code == 400
    assert r.json["error"] == "Assigned user not found"


# ---------- Due date ----------
def test_due_date_patch_restricted_to_managers(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["dev"], client_id)
    future = (utcnow() + timedelta(days=15)).date().isoformat()

    r = login(app, "dev").patch(f"/api/issues/{issue_id}/due-date", json={"due_date": future})
    assert r.status_code == 403

    # account managers still need the issue.update rule (admin, reporter or assignee)
    r = login(app, "am").patch(f"/api/issues/{issue_id}/due-date", json={"due_date": future})
    assert r.status_code == 403

    r = login(app, "admin").patch(f"/api/issues/{issue_id}/due-date", json={"due_date": future})
    assert r.status_code == 200
    assert r.json["data"]["due_date"].startswith(future)


def test_due_date_patch_validation(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["am"], client_id)
    c = login(app, "am")

    assert c.patch(f"/api/issues/{issue_id}/due-date", json={}).status_code == 400
    assert c.patch(f"/api/issues/{issue_id}/due-date", json={"due_date": "soon"}).status_code == 400
    r = c.patch(f"/api/issues/{issue_id}/due-date", json={"due_date": "   "})
    assert r.status_code == 400
    assert r.json["details"] == ["Due date is required."]
    r = c.patch(f"/api/issues/{issue_id}/due-date", json={"due_date": "9999-12-31T23:00:00-05:00"})
    assert r.status_code == 400
    past = (utcnow() - timedelta(days=1)).date().isoformat()
    r = c.patch(f"/api/issues/{issue_id}/due-date", json={"due_date": past})
    assert r.status_code == 400
    assert r.json["error"] == "Due date cannot be in the past"

    today = utcnow().date().isoformat()
    assert c.patch(f"/api/issues/{issue_id}/due-date", json={"due_date": today}).status_code == 200


# ---------- Due soon ----------
def test_due_soon_runs_sweep_once_per_day(app, ids):
    client_id = make_client(app, ids["am"])
    now = utcnow()
    soon = make_issue(
        app, ids["am"], client_id, title="Renew cert", assigned_to_id=ids["dev"], due_date=now + timedelta(days=2, hours=1)
    )
    make_issue(app, ids["am"], client_id, title="Far away", assigned_to_id=ids["dev"], due_date=now + timedelta(days=40))
    make_issue(
        app, ids["am"], client_id, title="Done already", assigned_to_id=ids["dev"], status="CLOSED",
        due_date=now + timedelta(days=1),
    )
    make_issue(app, ids["am"], client_id, title="Overdue", assigned_to_id=ids["dev"], due_date=now - timedelta(days=1))

    c = login(app, "dev")
    r = c.get("/api/issues/due-soon")
    assert r.status_code == 200
    assert [i["title"] for i in r.json["data"]["issues"]] == ["Renew cert"]

    expected = [("ISSUE_DUE_SOON", "Issue due in 3 days: Renew cert", soon)]
    assert notifications_for(app, ids["dev"]) == expected
    assert notifications_for(app, ids["am"]) == expected

    # second call on the same day does not duplicate
    assert c.get("/api/issues/due-soon").status_code == 200
    assert notifications_for(app, ids["dev"]) == expected


def test_due_soon_orders_by_priority_then_due_date(app, ids):
    client_id = make_client(app, ids["am"])
    now = utcnow()
    make_issue(app, ids["user"], client_id, title="low-1d", priority="LOW", due_date=now + timedelta(days=1))
    make_issue(app, ids["user"], client_id, title="crit-5d", priority="CRITICAL", due_date=now + timedelta(days=5))
    make_issue(app, ids["user"], client_id, title="high-3d", priority="HIGH", due_date=now + timedelta(days=3))
    make_issue(app, ids["user"], client_id, title="high-2d", priority="HIGH", due_date=now + timedelta(days=2))

    r = login(app, "user").get("/api/issues/due-soon")
    assert [i["title"] for i in r.json["data"]["issues"]] == ["crit-5d", "high-2d", "high-3d", "low-1d"]


def test_due_soon_skips_issue_already_notified_today(app, ids):
    client_id = make_client(app, ids["am"])
    issue_id = make_issue(app, ids["user"], client_id, due_date=utcnow() + timedelta(days=1))
    with session_scope(app) as s:
        s.add(Notification(type="ISSUE_DUE_SOON", message="earlier", user_id=ids["user"], issue_id=issue_id))

    login(app, "user").get("/api/issues/due-soon")
    assert notifications_for(app, ids["user"]) == [("ISSUE_DUE_SOON", "earlier", issue_id)]
