"""
IDS AND CLOCK
=============

Ids for sessions, messages and roadmap tasks are derived from the creation
time in milliseconds, like the timestamps on every message. Two ids minted in
the same millisecond would collide, so the generator never hands out a value
lower than or equal to the previous one: it bumps by one instead.
"""

import threading
import time

_lock = threading.Lock()
_last_id = 0


def now_ms() -> int:
    """Current wall-clock time in milliseconds since epoch."""
    return int(time.time() * 1000)


def new_id() -> str:
    """Return a time-derived id that is unique and strictly increasing within this process."""
    global _last_id
    with _lock:
        candidate = now_ms()
        if candidate <= _last_id:
            candidate = _last_id + 1
        _last_id = candidate
        return str(candidate)


def new_ids(count: int) -> list:
    """Mint `count` ids at once (used for roadmap tasks)."""
    return [new_id() for _ in range(count)]
