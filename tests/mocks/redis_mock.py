"""
MockRedis — synchronous in-memory Redis stand-in for unit tests.

Supports the calls the outcome cache makes: get, set (with ex), delete.
Expiry is enforced lazily on read. Set `fail = True` to make every call raise.
"""

import time


class MockRedis:
    def __init__(self):
        self._store: dict[str, object] = {}
        self._expiry: dict[str, float] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("redis unavailable")

    def _expired(self, key: str) -> bool:
        if key in self._expiry and time.time() > self._expiry[key]:
            self._store.pop(key, None)
            self._expiry.pop(key, None)
            return True
        return False

    def get(self, key: str):
        self._check()
        if self._expired(key):
            return None
        return self._store.get(key)

    def set(self, key: str, value, ex: int | None = None) -> bool:
        self._check()
        self._store[key] = value
        if ex:
            self._expiry[key] = time.time() + ex
        return True

    def ttl(self, key: str) -> float | None:
        if key not in self._expiry:
            return None
        return self._expiry[key] - time.time()

    def delete(self, key: str) -> int:
        self._check()
        existed = key in self._store
        self._store.pop(key, None)
        self._expiry.pop(key, None)
        return 1 if existed else 0
