"""
Daily due-soon sweep for schedulers that prefer a command over the HTTP hook.

Usage:
  python scripts/check_due_issues.py
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    from app.issuetracker import create_app
    from app.issuetracker.db import session_scope
    from app.issuetracker.modules.notifications.service import send_due_soon_notifications

    app = create_app()
    with session_scope(app) as s:
        issues = send_due_soon_notifications(s, int(app.config["DUE_SOON_DAYS"]))
        print(f"Processed {len(issues)} due-soon issue(s).", flush=True)


if __name__ == "__main__":
    main()
