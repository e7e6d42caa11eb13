import threading
import time
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class CachedSession:
    token: str
    expires_at: float


class SessionCache:
    """Upstream session tokens keyed by connection id, with a fixed TTL.

    Process local. Two requests missing the same key may both log in; the
    later put wins, which is harmless since upstream login is idempotent.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CachedSession] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry.token

    def put(self, key: str, token: str) -> CachedSession:
        entry = CachedSession(token=token, expires_at=self._clock() + self.ttl_seconds)
        with self._lock:
            self._entries[key] = entry
        return entry

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
