"""Bounded retry bookkeeping for payments whose submission failed.

Entries map a payment id (string form) to the number of failed attempts so
far. Every read-modify-write happens under one lock because the dispatch path
and the retry drain run on different schedules; callers never write back a
count they read earlier. A stored count is always
below `max_retries`: the failure that would reach it deletes the entry.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

logger = logging.getLogger(__name__)

PaymentKey = Union[int, str]


@dataclass(frozen=True)
class RetryOutcome:
    payment_id: str
    attempts: int
    exhausted: bool


def _key(payment_id: PaymentKey) -> str:
    return str(int(payment_id))


class RetryQueue:
    def __init__(self, max_retries: int = 3, path: Optional[Path] = None) -> None:
        if max_retries <= 0:
            raise ValueError("max_retries must be positive")
        self.max_retries = max_retries
        self.path = path
        self._lock = threading.Lock()
        self._entries: Dict[str, int] = {}
        self._load()

    def _load(self) -> None:
        if self.path is None:
            return
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            return
        with self.path.open("r", encoding="utf-8") as handle:
            try:
                data = json.load(handle)
            except json.JSONDecodeError:
                logger.warning("Retry queue file %s is corrupt; starting empty", self.path)
                data = {}
        if not isinstance(data, dict):
            data = {}
        for key, value in data.items():
            try:
                count = int(value)
                payment_id = _key(key)
            except (TypeError, ValueError):
                continue
            if 0 <= count < self.max_retries:
                self._entries[payment_id] = count

    def _persist(self) -> None:
        if self.path is None:
            return
        tmp = self.path.with_suffix(".tmp")
        try:
            with tmp.open("w", encoding="utf-8") as handle:
                json.dump(self._entries, handle, indent=2, sort_keys=True)
            tmp.replace(self.path)
        except OSError as exc:
            # in-memory state stays authoritative; the next write tries again
            logger.error("Failed to persist retry queue to %s: %s", self.path, exc)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, payment_id: object) -> bool:
        try:
            key = _key(payment_id)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return False
        with self._lock:
            return key in self._entries

    def get(self, payment_id: PaymentKey) -> int:
        with self._lock:
            return self._entries.get(_key(payment_id), 0)

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._entries)

    def record_failure(self, payment_id: PaymentKey) -> RetryOutcome:
        """Count a failed attempt from the count stored right now.

        Read and write happen under one lock hold, so a failure recorded by
        the dispatch path while a drain attempt was in flight is never
        overwritten. A missing entry counts from zero.
        """
        key = _key(payment_id)
        with self._lock:
            return self._advance(key, self._entries.get(key, 0))

    def _advance(self, key: str, current: int) -> RetryOutcome:
        attempts = current + 1
        exhausted = attempts >= self.max_retries
        if exhausted:
            self._entries.pop(key, None)
        else:
            self._entries[key] = attempts
        self._persist()
        return RetryOutcome(payment_id=key, attempts=attempts, exhausted=exhausted)

    def remove(self, payment_id: PaymentKey) -> bool:
        key = _key(payment_id)
        with self._lock:
            if key not in self._entries:
                return False
            del self._entries[key]
            self._persist()
            return True

    def remove_many(self, payment_ids: Iterable[PaymentKey]) -> int:
        keys = [_key(item) for item in payment_ids]
        with self._lock:
            removed = 0
            for key in keys:
                if self._entries.pop(key, None) is not None:
                    removed += 1
            if removed:
                self._persist()
            return removed
