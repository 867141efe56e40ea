"""Clock abstractions, timestamps, and elapsed-time helpers."""

from __future__ import annotations

import random
import string
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Source of wall-clock time plus a blocking sleep."""

    def now(self) -> datetime:
        """Return the current UTC time."""

    def sleep(self, seconds: float) -> None:
        """Block for `seconds`."""


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class ManualClock:
    """Deterministic clock for tests; `sleep` advances time instantly."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def sleep(self, seconds: float) -> None:
        self.advance(seconds)

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


class Stopwatch:
    """Context timer measuring wall-clock milliseconds against a `Clock`."""

    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._start = clock.now()

    def __enter__(self) -> "Stopwatch":
        self._start = self._clock.now()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        return None

    @property
    def elapsed_ms(self) -> int:
        return elapsed_ms(self._start, self._clock.now())


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def elapsed_ms(start: datetime, end: datetime) -> int:
    return max(0, int((end - start).total_seconds() * 1000))


def epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


_RUN_ID_ALPHABET = string.ascii_lowercase + string.digits
_run_id_lock = threading.Lock()
# Ids issued during the most recent millisecond.
_recent_ms = 0
_recent_run_ids: set[str] = set()


def new_run_id(clock: Clock) -> str:
    """Build a process-unique run id from the current time plus a random suffix."""
    global _recent_ms
    with _run_id_lock:
        now_ms = epoch_ms(clock.now())
        if now_ms != _recent_ms:
            _recent_ms = now_ms
            _recent_run_ids.clear()
        while True:
            suffix = "".join(random.choices(_RUN_ID_ALPHABET, k=6))
            run_id = f"run-{now_ms}-{suffix}"
            if run_id not in _recent_run_ids:
                _recent_run_ids.add(run_id)
                return run_id
