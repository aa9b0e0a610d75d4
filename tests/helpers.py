from datetime import timedelta

from app.issuetracker.db import session_scope
from app.issuetracker.modules.clients.models import Client
from app.issuetracker.modules.issues.models import Issue
from app.issuetracker.utils import utcnow

PASSWORD = "pw-123456"

USERS = {
    "admin": ("admin@example.com", "Admin", "ADMIN"),
    "am": ("am@example.com", "Alice Manager", "ACCOUNT_MANAGER"),
    "am2": ("am2@example.com", "Bob Manager", "ACCOUNT_MANAGER"),
    "dev": ("dev@example.com", "Dana Dev", "DEVELOPER"),
    "dev2": ("dev2@example.com", "Eli Dev", "DEVELOPER"),
    "client": ("client@example.com", "Carol Client", "CLIENT"),
    "user": ("user@example.com", "Uma User", "USER"),
}


def login(app, who: str, password: str = PASSWORD):
    """Signed-in test client that sends the session's CSRF token on every request."""
    c = app.test_client()
    r = c.post("/auth/login", json={"email": USERS[who][0], "password": password})
    assert r.status_code == 200, r.json
    c.environ_base["HTTP_X_CSRF_TOKEN"] = r.json["data"]["csrf_token"]
    return c


def make_client(app, manager_id, name="Acme Corp", **kw) -> int:
    with session_scope(app) as s:
        c = Client(name=name, manager_id=manager_id, status=kw.pop("status", "ACTIVE"), **kw)
        s.add(c)
        s.flush()
        return c.id


def make_issue(app, reported_by_id, client_id, **kw) -> int:
    with session_scope(app) as s:
        now = utcnow()
        issue = Issue(
            title=kw.pop("title", "Login page broken"),
            status=kw.pop("status", "NEW"),
            priority=kw.pop("priority", "MEDIUM"),
            reported_by_id=reported_by_id,
            client_id=client_id,
            due_date=kw.pop("due_date", now + timedelta(days=20)),
            created_at=now,
            updated_at=now,
            **kw,
        )
        s.add(issue)
        s.flush()
        return issue.id


def notifications_for(app, user_id):
    from app.issuetracker.modules.notifications.models import Notification

    with session_scope(app) as s:
        rows = s.query(Notification).filter(Notification.user_id == user_id).order_by(Notification.id).all()
        return [(n.type, n.message, n.issue_id) for n in rows]
