"""Duplicate suppression helpers."""

from __future__ import annotations

import hashlib
import re
import threading
import time
from collections import OrderedDict
from typing import Callable, Hashable, Optional

from assistant_bot.delivery.models import Persona

_NON_ALNUM_RE = re.compile(r"[^0-9a-z]+")


class TTLCache:
    """Size-bounded map whose entries expire a fixed time after insertion.

    Access does not extend an entry's life. When full, the oldest entry is
    evicted. Safe to share between threads and asyncio tasks.
    """

    def __init__(
            self,
            ttl_seconds: float,
            max_entries: int = 500,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[Hashable, float]" = OrderedDict()
        self._lock = threading.Lock()

    def _purge_expired(self, now: float) -> None:
        # insertion order == expiry order, so stop at the first live entry
        while self._entries:
            key, expires_at = next(iter(self._entries.items()))
            if expires_at > now:
                break
            self._entries.popitem(last=False)

    def contains(self, key: Hashable) -> bool:
        with self._lock:
            self._purge_expired(self._clock())
            return key in self._entries

    def add(self, key: Hashable) -> None:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            self._entries.pop(key, None)
            self._entries[key] = now + self._ttl
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def add_if_absent(self, key: Hashable) -> bool:
        """Check-and-add under one lock: ``False`` when a live entry already exists."""
        with self._lock:
            now = self._clock()
            self._purge_expired(now)
            if key in self._entries:
                return False
            self._entries[key] = now + self._ttl
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)
            return True

    def discard(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            self._purge_expired(self._clock())
            return len(self._entries)


def normalize_for_fingerprint(text: str, prefix_chars: int) -> str:
    """Lower-case, collapse everything but letters and digits, keep a prefix."""

    return _NON_ALNUM_RE.sub(" ", (text or "").lower()).strip()[:prefix_chars]


def compute_fingerprint(target: object, text: str, persona: Optional[Persona], prefix_chars: int = 200) -> str:
    persona_value = persona.value if isinstance(persona, Persona) else str(persona or "")
    payload = f"{target}\n{normalize_for_fingerprint(text, prefix_chars)}\n{persona_value}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class DuplicateGuard:
    """Short-window memory of recent deliveries, keyed by target, content prefix and persona."""

    def __init__(
            self,
            ttl_seconds: float = 5.0,
            max_entries: int = 500,
            prefix_chars: int = 200,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.prefix_chars = prefix_chars
        self._cache = TTLCache(ttl_seconds, max_entries, clock)

    def fingerprint(self, target: object, text: str, persona: Optional[Persona]) -> str:
        return compute_fingerprint(target, text, persona, self.prefix_chars)

    def should_suppress(self, target: object, text: str, persona: Optional[Persona]) -> bool:
        return self._cache.contains(self.fingerprint(target, text, persona))

    def reserve(self, target: object, text: str, persona: Optional[Persona]) -> bool:
        """Claim the fingerprint before sending; ``False`` means the request is a duplicate."""
        return self._cache.add_if_absent(self.fingerprint(target, text, persona))

    def release(self, target: object, text: str, persona: Optional[Persona]) -> None:
        self._cache.discard(self.fingerprint(target, text, persona))

    def record(self, target: object, text: str, persona: Optional[Persona]) -> None:
        self._cache.add(self.fingerprint(target, text, persona))

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
