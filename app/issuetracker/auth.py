from __future__ import annotations

import uuid

from authlib.integrations.base_client.errors import OAuthError
from authlib.integrations.flask_client import OAuth
from flask import Blueprint, Flask, current_app, g, request, session, url_for
from werkzeug.security import check_password_hash

from app.issuetracker.audit import record_event
from app.issuetracker.constants import ROLE_USER
from app.issuetracker.db import db_session
from app.issuetracker.errors import ApiError, ApiErrors, success_response
from app.issuetracker.models import User
from app.issuetracker.modules.users.service import create_user, find_user_by_email, normalize_email, user_to_dict
from app.issuetracker.rate_limit import limiter
from app.issuetracker.security import ensure_csrf_token

bp = Blueprint("auth", __name__)

GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"


def init_oauth(app: Flask) -> None:
    """Register the Google client only when both credentials are configured."""
    oauth = OAuth(app)
    if app.config.get("GOOGLE_CLIENT_ID") and app.config.get("GOOGLE_CLIENT_SECRET"):
        oauth.register(
            name="google",
            client_id=app.config["GOOGLE_CLIENT_ID"],
            client_secret=app.config["GOOGLE_CLIENT_SECRET"],
            server_metadata_url=GOOGLE_DISCOVERY_URL,
            client_kwargs={"scope": "openid email profile"},
        )
        app.logger.info("Google OAuth provider registered")
    app.extensions["oauth"] = oauth


def _google_client():
    if not (current_app.config.get("GOOGLE_CLIENT_ID") and current_app.config.get("GOOGLE_CLIENT_SECRET")):
        raise ApiErrors.not_found("Google sign-in")
    return current_app.extensions["oauth"].create_client("google")


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/health", "/healthz")):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


def _start_session(user: User) -> str:
    # New session on sign-in; the CSRF token is rotated with it.
    session.clear()
    session["user_id"] = user.id
    session.permanent = True
    return ensure_csrf_token()


@bp.post("/login")
def login_post():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = request.form.to_dict()
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    ip = request.remote_addr or "unknown"

    if not limiter("login").hit(ip):
        current_app.logger.warning("Login rate limit hit (ip=%s)", ip)
        raise ApiErrors.too_many_requests("Too many login attempts. Please wait a minute and try again.")

    if not email or not password:
        raise ApiErrors.validation_failed(["Email and password are required."])

    try:
        s = db_session()
        user = find_user_by_email(s, email)
        if (
            not user
            or not user.is_active
            or not user.password_hash
            or not check_password_hash(user.password_hash, password)
        ):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            s.commit()
            current_app.logger.warning("Failed login (email=%s ip=%s)", email, ip)
            raise ApiErrors.unauthorized("Invalid credentials")

        csrf_token = _start_session(user)
        limiter("login").reset(ip)
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        return success_response({"user": user_to_dict(user), "csrf_token": csrf_token}, message="Logged in")
    except ApiError:
        raise
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.post("/logout")
def logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return success_response(None, message="Logged out")


@bp.get("/google")
def google_login():
    client = _google_client()
    return client.authorize_redirect(url_for("auth.google_callback", _external=True))


@bp.get("/google/callback")
def google_callback():
    client = _google_client()
    try:
        token = client.authorize_access_token()
    except OAuthError as e:
        current_app.logger.warning("Google OAuth callback failed: %s", e)
        raise ApiErrors.unauthorized("Google sign-in failed") from e

    userinfo = token.get("userinfo") or {}
    email = normalize_email(userinfo.get("email"))
    if not email or not userinfo.get("email_verified", False):
        current_app.logger.warning("Google OAuth rejected unverified or missing email")
        raise ApiErrors.unauthorized("Google account email is not verified")

    s = db_session()
    user = find_user_by_email(s, email)
    if user is None:
        user = create_user(
            s,
            {"email": email, "name": userinfo.get("name"), "image": userinfo.get("picture"), "role": ROLE_USER},
            None,
        )
        current_app.logger.info("Provisioned user %s from Google sign-in", user.id)
    elif not user.is_active:
        raise ApiErrors.forbidden("Account is deactivated")
    else:
        if not user.image and userinfo.get("picture"):
            user.image = userinfo["picture"]
        if not user.name and userinfo.get("name"):
            user.name = userinfo["name"]

    csrf_token = _start_session(user)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id), metadata={"provider": "google"})
    s.commit()
    return success_response({"user": user_to_dict(user), "csrf_token": csrf_token}, message="Logged in")
