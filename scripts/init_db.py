import os
import sys
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.issuetracker.constants import ROLE_ACCOUNT_MANAGER, ROLE_ADMIN, ROLE_DEVELOPER  # noqa: E402
from app.issuetracker.models import User  # noqa: E402

SAMPLE_USERS = (
    ("am@issuetracker.local", "Account Manager", ROLE_ACCOUNT_MANAGER),
    ("dev@issuetracker.local", "Developer", ROLE_DEVELOPER),
)


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()


def _ensure_user(s: Session, email: str, name: str, role: str, password: str | None) -> User:
    u = s.query(User).filter(User.email == email).one_or_none()
    if not u:
        u = User(
            email=email,
            name=name,
            role=role,
            password_hash=generate_password_hash(password) if password else None,
            is_active=True,
        )
        s.add(u)
        print(f"Created user {email} ({role})", flush=True)
    return u


def seed_only(*, database_url: str | None = None, with_samples: bool | None = None) -> None:
    """
    Seed the admin user (and, outside production, sample users) in an idempotent way.
    Does NOT overwrite an existing user's password or role.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@issuetracker.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///issuetracker.db").strip()
    env = (os.environ.get("ENV") or "").strip().lower()
    if with_samples is None:
        with_samples = env not in ("prod", "production")

    # Direct engine/session so this can run in release without importing app.wsgi.
    with _session_scope(db_url) as s:
        _ensure_user(s, admin_email, "Administrator", ROLE_ADMIN, admin_password)
        if with_samples:
            sample_password = os.environ.get("SAMPLE_PASSWORD") or "change-me"
            for email, name, role in SAMPLE_USERS:
                _ensure_user(s, email, name, role, sample_password)


def main() -> None:
    seed_only()
    print("Seed complete.", flush=True)


if __name__ == "__main__":
    main()
