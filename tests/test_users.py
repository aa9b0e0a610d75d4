from helpers import PASSWORD, login


def test_user_admin_routes_are_admin_only(app, ids):
    for who in ("am", "dev", "user"):
        r = login(app, who).get("/api/users")
        assert r.status_code == 403
        assert r.json["error"] == "Forbidden: Admin access required"

    r = login(app, "admin").get("/api/users")
    assert r.status_code == 200
    emails = {u["email"] for u in r.json["data"]["users"]}
    assert {"admin@example.com", "dev@example.com", "client@example.com"} <= emails
    assert all("password_hash" not in u for u in r.json["data"]["users"])


def test_admin_creates_user_who_can_log_in(app, ids):
    c = login(app, "admin")
    r = c.post(
        "/api/users",
        json={"email": " New.Dev@Example.com ", "name": "New Dev", "role": "DEVELOPER", "password": "long-enough"},
    )
    assert r.status_code == 201
    assert r.json["data"]["email"] == "new.dev@example.com"
    assert r.json["data"]["role"] == "DEVELOPER"

    r = app.test_client().post("/auth/login", json={"email": "new.dev@example.com", "password": "long-enough"})
    assert r.status_code == 200

    r = c.post("/api/users", json={"email": "NEW.DEV@example.com"})
    assert r.status_code == 409
    assert r.json["error"] == "A user with this email already exists"


def test_create_user_defaults_and_validation(app, ids):
    c = login(app, "admin")
    r = c.post("/api/users", json={"email": "plain@example.com"})
    assert r.status_code == 201
    assert r.json["data"]["role"] == "USER"
    assert r.json["data"]["is_active"] is True

    r = c.post("/api/users", json={"email": "bad", "role": "OWNER", "password": "short"})
    assert r.status_code == 400
    details = r.json["details"]
    assert "Invalid email address." in details
    assert any(d.startswith("Invalid role") for d in details)
    assert "Password must be at least 8 characters." in details


def test_admin_updates_user(app, ids):
    c = login(app, "admin")
    r = c.patch(f"/api/users/{ids['user']}", json={"role": "CLIENT", "name": "Uma U."})
    assert r.status_code == 200
    assert (r.json["data"]["role"], r.json["data"]["name"]) == ("CLIENT", "Uma U.")

    r = c.patch(f"/api/users/{ids['user']}", json={"email": "dev@example.com"})
    assert r.status_code == 409

    r = c.patch(f"/api/users/{ids['user']}", json={"is_active": "maybe"})
    assert r.status_code == 400

    assert c.get(f"/api/users/{ids['user']}").json["data"]["role"] == "CLIENT"
    assert c.get("/api/users/9999").status_code == 404


def test_deactivated_user_cannot_sign_in(app, ids):
    dev = login(app, "dev")
    c = login(app, "admin")

    r = c.delete(f"/api/users/{ids['admin']}")
    assert r.status_code == 400
    assert r.json["error"] == "You cannot delete your own account"

    r = c.delete(f"/api/users/{ids['dev']}")
    assert r.status_code == 200
    assert r.json["data"]["is_active"] is False

    # existing session is dropped on the next request
    assert dev.get("/api/protected/user").status_code == 401
    r = app.test_client().post("/auth/login", json={"email": "dev@example.com", "password": PASSWORD})
    assert r.status_code == 401
