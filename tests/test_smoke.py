from app.issuetracker.rate_limit import SlidingWindowLimiter

from helpers import PASSWORD, USERS, login


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_login_returns_user_and_csrf_token(client):
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": PASSWORD})
    assert r.status_code == 200
    body = r.json
    assert body["success"] is True
    assert body["data"]["user"]["email"] == "admin@example.com"
    assert body["data"]["user"]["role"] == "ADMIN"
    assert body["data"]["csrf_token"]


def test_login_accepts_form_posts(client):
    r = client.post("/auth/login", data={"email": "DEV@example.com ", "password": PASSWORD})
    assert r.status_code == 200
    assert r.json["data"]["user"]["role"] == "DEVELOPER"


def test_login_rejects_bad_credentials(client):
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "wrong"})
    assert r.status_code == 401
    assert r.json == {"success": False, "error": "Invalid credentials"}

    r = client.post("/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert r.status_code == 401


def test_login_missing_fields(client):
    r = client.post("/auth/login", json={"email": "admin@example.com"})
    assert r.status_code == 400
    assert r.json["success"] is False


def test_login_is_rate_limited_per_ip(app, client):
    app.extensions["rate_limiters"]["login"] = SlidingWindowLimiter(2, 60)
    for _ in range(2):
        r = client.post("/auth/login", json={"email": "admin@example.com", "password": "wrong"})
        assert r.status_code == 401
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": PASSWORD})
    assert r.status_code == 429


def test_anonymous_api_requests_are_rejected(client):
    assert client.get("/api/issues").status_code == 401
    assert client.get("/api/protected/user").status_code == 401
    assert client.get("/api/users").status_code == 401
    assert client.get("/api/notifications").status_code == 401
    r = client.post("/api/issues", json={"title": "x", "client_id": 1})
    assert r.status_code == 401
    assert r.json["success"] is False


def test_profile_returns_csrf_token(app):
    c = login(app, "dev")
    r = c.get("/api/protected/user")
    assert r.status_code == 200
    assert r.json["data"]["email"] == USERS["dev"][0]
    assert r.json["data"]["csrf_token"] == c.environ_base["HTTP_X_CSRF_TOKEN"]


def test_profile_update_changes_only_own_name(app):
    c = login(app, "dev")
    r = c.patch("/api/protected/user", json={"name": "Dana D.", "role": "ADMIN"})
    assert r.status_code == 200
    assert r.json["data"]["name"] == "Dana D."
    assert r.json["data"]["role"] == "DEVELOPER"

    r = c.patch("/api/protected/user", json={"name": "   "})
    assert r.status_code == 400


def test_mutation_without_csrf_token_is_rejected(app):
    c = login(app, "dev")
    del c.environ_base["HTTP_X_CSRF_TOKEN"]
    r = c.patch("/api/protected/user", json={"name": "No Token"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]

    r = c.patch("/api/protected/user", json={"name": "Wrong"}, headers={"X-CSRF-Token": "nope"})
    assert r.status_code == 400


def test_logout_clears_session(app):
    c = login(app, "admin")
    assert c.get("/api/protected/user").status_code == 200
    r = c.post("/auth/logout")
    assert r.status_code == 200
    assert c.get("/api/protected/user").status_code == 401


def test_unknown_route_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["success"] is False


def test_google_login_unavailable_without_credentials(client):
    r = client.get("/auth/google")
    assert r.status_code == 404
