import logging
import os
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, request, session

from app.issuetracker.auth import bp as auth_bp, init_oauth, load_current_user
from app.issuetracker.config import load_config
from app.issuetracker.db import init_db, teardown_db_session
from app.issuetracker.errors import ApiErrors, register_error_handlers
from app.issuetracker.modules.clients.api import bp as clients_bp
from app.issuetracker.modules.comments.api import bp as comments_bp
from app.issuetracker.modules.files.api import bp as files_bp
from app.issuetracker.modules.issues.api import bp as issues_bp
from app.issuetracker.modules.notifications.api import bp as notifications_bp
from app.issuetracker.modules.users.api import bp as users_bp
from app.issuetracker.rate_limit import init_rate_limits, limiter
from app.issuetracker.rbac import is_admin
from app.issuetracker.routes import bp as routes_bp
from app.issuetracker.security import ensure_csrf_token, validate_csrf

# Mutating requests to these endpoints skip the CSRF check.
CSRF_EXEMPT_ENDPOINTS = ("notifications.cron_check_due_issues",)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)
    init_rate_limits(app)
    init_oauth(app)

    def _dispose_engine_on_fork() -> None:
        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage config check (log loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(issues_bp, url_prefix="/api")
    app.register_blueprint(comments_bp, url_prefix="/api")
    app.register_blueprint(files_bp, url_prefix="/api")
    app.register_blueprint(clients_bp, url_prefix="/api")
    app.register_blueprint(notifications_bp, url_prefix="/api")
    app.register_blueprint(users_bp, url_prefix="/api")
    register_error_handlers(app)

    @app.before_request
    def _load_user():
        return load_current_user()

    @app.before_request
    def _api_guard():
        """Coarse gate before handlers run; handlers still apply the per-resource rules."""
        path = request.path
        user = getattr(g, "current_user", None)
        if path.startswith("/api/protected"):
            if not user:
                raise ApiErrors.unauthorized()
        elif path.startswith("/api/users"):
            if not user:
                raise ApiErrors.unauthorized()
            if not is_admin(user):
                app.logger.warning(
                    "Forbidden: non-admin user %s on %s request_id=%s", user.id, path, getattr(g, "request_id", None)
                )
                raise ApiErrors.forbidden("Forbidden: Admin access required")
        return None

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(("/health", "/healthz")):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            endpoint = request.endpoint or ""
            # Allow auth endpoints (login/logout) and the scheduler hook to pass through
            if endpoint.startswith("auth.") or endpoint in CSRF_EXEMPT_ENDPOINTS:
                return None
            # Nothing to forge without a signed-in session; the handler answers 401.
            if not getattr(g, "current_user", None):
                return None
            if not validate_csrf(request):
                app.logger.warning("CSRF check failed on %s request_id=%s", request.path, getattr(g, "request_id", None))
                raise ApiErrors.bad_request("CSRF token missing or invalid.")
        return None

    @app.before_request
    def _api_rate_limit():
        if not request.path.startswith("/api/"):
            return None
        user = getattr(g, "current_user", None)
        key = f"user:{user.id}" if user else f"ip:{request.remote_addr or 'unknown'}"
        if not limiter("api").hit(key):
            raise ApiErrors.too_many_requests("Too many requests. Please slow down.")
        return None

    app.teardown_appcontext(teardown_db_session)

    # Startup logging
    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
