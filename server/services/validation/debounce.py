"""Per-caller request debouncer with escalating lockout.

Each caller identity gets a DebounceRecord. Requests closer together than
``min_interval`` count as violations; once a caller collects ``max_violations``
of them every further request is refused until the record is reset or ages
out through ``cleanup()``.
"""

import threading
import time
from collections import OrderedDict
from typing import Callable, Dict

from core.logging import get_logger
from .models import DebounceDecision, DebounceRecord, DebounceStats

logger = get_logger(__name__)

TOO_SOON_REASON = "Request too soon after previous request"
LOCKOUT_REASON = "Too many rapid requests. Please wait before trying again."


class RequestDebouncer:
    """Rate limiter keyed by caller identity.

    All methods are synchronous and never raise; caller ids are opaque keys.
    """

    def __init__(
        self,
        min_interval: float = 1.0,
        max_violations: int = 10,
        record_ttl: float = 60.0,
        max_records: int = 1000,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize debouncer.

        Args:
            min_interval: Minimum seconds between accepted requests per caller
            max_violations: Violations after which the caller is locked out
            record_ttl: Seconds of inactivity before a record may be pruned
            max_records: Upper bound on tracked callers
            clock: Wall-clock source in seconds
        """
        self.min_interval = min_interval
        self.max_violations = max_violations
        self.record_ttl = record_ttl
        self.max_records = max_records
        self._clock = clock
        # Ordered by last attempt, oldest first
        self._records: "OrderedDict[str, DebounceRecord]" = OrderedDict()
        self._lock = threading.Lock()

    def should_allow_request(self, caller_id: str) -> DebounceDecision:
        """Decide whether ``caller_id`` may proceed right now."""
        now = self._clock()
        with self._lock:
            record = self._records.get(caller_id)
            if record is None:
                record = DebounceRecord()
                self._records[caller_id] = record
                self._evict_overflow()
            else:
                self._records.move_to_end(caller_id)

            elapsed = None
            if record.last_request_at is not None:
                elapsed = now - record.last_request_at

            if elapsed is None or (
                elapsed >= self.min_interval
                and record.violation_count < self.max_violations
            ):
                record.last_request_at = now
                record.last_attempt_at = now
                record.request_count += 1
                return DebounceDecision(allowed=True)

            record.violation_count += 1
            record.last_attempt_at = now

            if record.violation_count >= self.max_violations:
                if record.violation_count == self.max_violations:
                    logger.warning("Caller locked out",
                                   caller_id=caller_id,
                                   violations=record.violation_count)
                return DebounceDecision(
                    allowed=False,
                    reason=LOCKOUT_REASON,
                    violations=record.violation_count,
                )

            return DebounceDecision(
                allowed=False,
                reason=TOO_SOON_REASON,
                wait_ms=(self.min_interval - elapsed) * 1000,
                violations=record.violation_count,
            )

    def reset_user(self, caller_id: str) -> None:
        """Forget everything about a caller."""
        with self._lock:
            self._records.pop(caller_id, None)

    def get_stats(self) -> DebounceStats:
        with self._lock:
            records = list(self._records.values())

        total_violations = sum(r.violation_count for r in records)
        average = (
            sum(r.request_count for r in records) / len(records)
            if records else 0
        )
        return DebounceStats(
            active_users=len(records),
            total_violations=total_violations,
            average_request_count=round(average, 2),
        )

    def cleanup(self) -> int:
        """Drop records idle for longer than ``record_ttl``.

        Returns:
            Number of records removed
        """
        now = self._clock()
        with self._lock:
            stale = [
                caller_id for caller_id, record in self._records.items()
                if now - record.last_attempt_at > self.record_ttl
            ]
            for caller_id in stale:
                del self._records[caller_id]
        return len(stale)

    def get_record(self, caller_id: str) -> Dict[str, float]:
        """Snapshot of a caller's record, empty when untracked."""
        with self._lock:
            record = self._records.get(caller_id)
            if record is None:
                return {}
            return {
                "last_request_at": record.last_request_at,
                "last_attempt_at": record.last_attempt_at,
                "violation_count": record.violation_count,
                "request_count": record.request_count,
            }

    def __len__(self) -> int:
        return len(self._records)

    def _evict_overflow(self) -> None:
        while len(self._records) > self.max_records:
            caller_id, _ = self._records.popitem(last=False)
            logger.debug("Debounce record evicted", caller_id=caller_id)
