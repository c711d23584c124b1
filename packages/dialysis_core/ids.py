from __future__ import annotations
import threading
import time
from typing import Callable, Dict, Tuple

SESSION_PREFIX = "SES"
REPORT_PREFIX = "RPT"


class RecordIdGenerator:
    """
    Issues identifiers shaped ``<PREFIX>_<epoch-ms>_<owner>``.

    The millisecond part is strictly increasing per (prefix, owner) within
    this process, so two records for the same patient created in the same
    millisecond still get distinct ids. Collisions across processes are
    left to the unique index in the store.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._last: Dict[Tuple[str, str], int] = {}
        self._lock = threading.Lock()

    def next_id(self, prefix: str, owner: str) -> str:
        now_ms = int(self._clock() * 1000)
        key = (prefix, owner)
        with self._lock:
            last = self._last.get(key, 0)
            stamp = now_ms if now_ms > last else last + 1
            self._last[key] = stamp
        return f"{prefix}_{stamp}_{owner}"

    def session_id(self, patient_id: str) -> str:
        return self.next_id(SESSION_PREFIX, patient_id)

    def report_id(self, patient_id: str) -> str:
        return self.next_id(REPORT_PREFIX, patient_id)
