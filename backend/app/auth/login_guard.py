import threading
from collections import defaultdict, deque
from datetime import datetime, timedelta

MAX_FAILURES = 5
WINDOW_SECONDS = 15 * 60
LOCK_SECONDS = 15 * 60


class LoginGuard:
    """Process-local failed-login counter keyed by identifier and client address."""

    def __init__(self, max_failures: int = MAX_FAILURES, window_seconds: int = WINDOW_SECONDS,
                 lock_seconds: int = LOCK_SECONDS):
        self.max_failures = max_failures
        self.window = timedelta(seconds=window_seconds)
        self.lock = timedelta(seconds=lock_seconds)
        self._failures: dict[str, deque] = defaultdict(deque)
        self._locked_until: dict[str, datetime] = {}
        self._mutex = threading.Lock()

    def _prune(self, key: str, now: datetime) -> None:
        q = self._failures[key]
        cutoff = now - self.window
        while q and q[0] < cutoff:
            q.popleft()

    def is_locked(self, key: str, now: datetime | None = None) -> datetime | None:
        now = now or datetime.utcnow()
        with self._mutex:
            locked_until = self._locked_until.get(key)
            if not locked_until:
                return None
            if locked_until <= now:
                self._locked_until.pop(key, None)
                return None
            return locked_until

    def register_failure(self, key: str, now: datetime | None = None) -> datetime | None:
        now = now or datetime.utcnow()
        with self._mutex:
            self._prune(key, now)
            q = self._failures[key]
            q.append(now)
            if len(q) >= self.max_failures:
                locked_until = now + self.lock
                self._locked_until[key] = locked_until
                q.clear()
                return locked_until
        return None

    def clear(self, key: str) -> None:
        with self._mutex:
            self._failures.pop(key, None)
            self._locked_until.pop(key, None)


login_guard = LoginGuard()
