from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Flask, current_app

from app.issuetracker.errors import ApiErrors
from app.issuetracker.utils import utcnow


class SlidingWindowLimiter:
    """
    In-memory per-key limiter: at most `limit` hits inside the trailing `window_seconds`.
    State lives in one process; multiple gunicorn workers each keep their own window.
    """

    def __init__(self, limit: int, window_seconds: int) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self._hits: dict[str, list[datetime]] = defaultdict(list)
        self._lock = threading.Lock()

    def _prune(self, key: str, now: datetime) -> list[datetime]:
        cutoff = now - timedelta(seconds=self.window_seconds)
        recent = [t for t in self._hits[key] if t > cutoff]
        if recent:
            self._hits[key] = recent
        else:
            self._hits.pop(key, None)
        return recent

    def is_limited(self, key: str) -> bool:
        with self._lock:
            return len(self._prune(key, utcnow())) >= self.limit

    def hit(self, key: str) -> bool:
        """Record one request. Returns False (and records nothing) when the key is over the limit."""
        with self._lock:
            now = utcnow()
            recent = self._prune(key, now)
            if len(recent) >= self.limit:
                return False
            self._hits[key] = recent + [now]
            return True

    def reset(self, key: str) -> None:
        with self._lock:
            self._hits.pop(key, None)


def init_rate_limits(app: Flask) -> None:
    window = int(app.config.get("RATE_LIMIT_WINDOW_SECONDS", 60))
    app.extensions["rate_limiters"] = {
        "login": SlidingWindowLimiter(int(app.config["LOGIN_RATE_LIMIT"]), window),
        "issue_submission": SlidingWindowLimiter(int(app.config["ISSUE_RATE_LIMIT"]), window),
        "api": SlidingWindowLimiter(int(app.config["API_RATE_LIMIT"]), window),
    }


def limiter(name: str) -> SlidingWindowLimiter:
    return current_app.extensions["rate_limiters"][name]


def enforce(name: str, key: str, message: str) -> None:
    if not limiter(name).hit(key):
        raise ApiErrors.too_many_requests(message)
