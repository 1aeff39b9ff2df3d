import itertools
import threading
from typing import Dict, Hashable


class CompileRequestTracker:
    """Latest-request-wins bookkeeping for live compilation.

    Every request gets a token from one increasing counter, so a token is
    never reused even after a key is forgotten. A worker holding anything
    but the latest token for its key must drop its result.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._latest: Dict[Hashable, int] = {}
        self._counter = itertools.count(1)

    def begin(self, key: Hashable) -> int:
        with self._lock:
            token = next(self._counter)
            self._latest[key] = token
            return token

    def is_current(self, key: Hashable, token: int) -> bool:
        with self._lock:
            return self._latest.get(key) == token

    def forget(self, key: Hashable) -> None:
        with self._lock:
            self._latest.pop(key, None)

    def forget_scope(self, scope: Hashable) -> int:
        """Drop every (scope, key) entry; returns how many were dropped."""
        with self._lock:
            stale = [k for k in self._latest if isinstance(k, tuple) and k[:1] == (scope,)]
            for k in stale:
                del self._latest[k]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._latest)
