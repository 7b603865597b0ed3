"""Process-wide dispatch metrics.

A MetricsRegistry is an owned value: the pipeline constructs one and hands
it to the metrics middleware and to the handlers that report on it.
"""

import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

EMPTY_PREFIX_KEY = "(empty)"


@dataclass(frozen=True)
class CommandStats:
    """Counters for one command prefix.

    Attributes:
        prefix: Command token the counters belong to
        count: Number of dispatches
        total_ns: Accumulated dispatch time in nanoseconds
        errors: Number of failed dispatches
        last_used: When the prefix was last dispatched (UTC)
    """
    prefix: str
    count: int
    total_ns: int
    errors: int
    last_used: datetime
    sequence: int = field(default=0, repr=False, compare=False)

    @property
    def average_ms(self) -> float:
        if not self.count:
            return 0.0
        return self.total_ns / self.count / 1e6

    @property
    def error_rate(self) -> float:
        """Failed dispatches as a percentage of all dispatches."""
        if not self.count:
            return 0.0
        return self.errors / self.count * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "average_ms": round(self.average_ms, 3),
            "total_ms": round(self.total_ns / 1e6, 3),
            "error_count": self.errors,
            "error_rate": round(self.error_rate, 2),
            "last_used": self.last_used.isoformat(),
        }


@dataclass(frozen=True)
class MetricsSnapshot:
    """Immutable copy of the registry, safe to serialize."""
    total: int
    successful: int
    failed: int
    uptime_s: float
    per_command: Dict[str, CommandStats]

    @property
    def success_rate(self) -> float:
        """Successful dispatches as a percentage of all dispatches."""
        if not self.total:
            return 0.0
        return self.successful / self.total * 100

    @property
    def requests_per_minute(self) -> float:
        minutes = self.uptime_s / 60
        if minutes <= 0:
            return 0.0
        return self.total / minutes

    def top(self, n: int = 5) -> List[CommandStats]:
        """Most used prefixes: count descending, ties by most recent use."""
        ranked = sorted(
            self.per_command.values(),
            key=lambda s: (s.count, s.sequence),
            reverse=True,
        )
        return ranked[:max(n, 0)]

    def slowest(self) -> Optional[CommandStats]:
        """The prefix with the highest average duration, if any."""
        if not self.per_command:
            return None
        return max(self.per_command.values(), key=lambda s: s.average_ms)

    def to_dict(self, top_n: int = 5) -> Dict[str, Any]:
        return {
            "uptime_seconds": int(self.uptime_s),
            "total_requests": self.total,
            "successful_requests": self.successful,
            "failed_requests": self.failed,
            "success_rate_percent": round(self.success_rate, 2),
            "requests_per_minute": round(self.requests_per_minute, 3),
            "command_metrics": {p: s.to_dict() for p, s in self.per_command.items()},
            "top_commands": [{"command": s.prefix, "count": s.count} for s in self.top(top_n)],
        }


class _CommandCounters:
    __slots__ = ("count", "total_ns", "errors", "last_used", "sequence")

    def __init__(self):
        self.count = 0
        self.total_ns = 0
        self.errors = 0
        self.last_used = datetime.now(timezone.utc)
        self.sequence = 0


class MetricsRegistry:
    """Thread-safe dispatch counters.

    Scalar counters are guarded by one lock; the per-prefix map by another.
    Snapshots take each lock in turn, so cross-counter ratios may be
    momentarily stale but every counter is individually consistent.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._counter_lock = threading.Lock()
        self._commands_lock = threading.Lock()
        self._total = 0
        self._successful = 0
        self._failed = 0
        self._sequence = 0
        self._started = clock()
        self._commands: Dict[str, _CommandCounters] = {}

    def record(self, prefix: str, duration_ns: int, failed: bool) -> None:
        """Record one finished dispatch."""
        key = prefix or EMPTY_PREFIX_KEY
        with self._counter_lock:
            self._total += 1
            if failed:
                self._failed += 1
            else:
                self._successful += 1

        with self._commands_lock:
            counters = self._commands.get(key)
            if counters is None:
                counters = self._commands[key] = _CommandCounters()
            self._sequence += 1
            counters.count += 1
            counters.total_ns += duration_ns
            counters.last_used = datetime.now(timezone.utc)
            counters.sequence = self._sequence
            if failed:
                counters.errors += 1

    def snapshot(self) -> MetricsSnapshot:
        with self._counter_lock:
            total, successful, failed = self._total, self._successful, self._failed
            started = self._started

        with self._commands_lock:
            per_command = {
                prefix: CommandStats(
                    prefix=prefix,
                    count=c.count,
                    total_ns=c.total_ns,
                    errors=c.errors,
                    last_used=c.last_used,
                    sequence=c.sequence,
                )
                for prefix, c in self._commands.items()
            }

        return MetricsSnapshot(
            total=total,
            successful=successful,
            failed=failed,
            uptime_s=max(0.0, self._clock() - started),
            per_command=per_command,
        )

    def top(self, n: int = 5) -> List[CommandStats]:
        return self.snapshot().top(n)

    def reset(self) -> None:
        """Zero every counter and restart the uptime clock."""
        with self._counter_lock:
            self._total = self._successful = self._failed = 0
            self._started = self._clock()
        with self._commands_lock:
            self._commands = {}
            self._sequence = 0
