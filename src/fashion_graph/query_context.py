"""
Per-query execution context: a wall-clock timeout and execution counters.

The executor calls check() between pipeline stages, so a query that runs
past its budget stops at the next stage boundary. The counters are handed
back to callers on QueryResult.stats.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import IntEnum, auto
from typing import Optional
import time


class QueryState(IntEnum):
    """Lifecycle of one query evaluation."""
    PENDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    TIMEOUT = auto()
    FAILED = auto()


class QueryTimeoutException(Exception):
    """Raised at a stage boundary once the timeout has elapsed."""
    pass


@dataclass
class QueryStats:
    """Counters collected while a query runs."""
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    state: QueryState = QueryState.PENDING
    rows_scanned: int = 0
    rows_returned: int = 0
    pattern_count: int = 0
    join_count: int = 0
    filter_count: int = 0
    error: Optional[str] = None

    @property
    def duration_ms(self) -> float:
        if self.start_time is None:
            return 0.0
        end = self.end_time or time.monotonic()
        return (end - self.start_time) * 1000

    def to_dict(self) -> dict:
        return {
            "state": self.state.name,
            "duration_ms": self.duration_ms,
            "patterns": self.pattern_count,
            "joins": self.join_count,
            "filters": self.filter_count,
            "rows_scanned": self.rows_scanned,
            "rows_returned": self.rows_returned,
            "error": self.error,
        }


@dataclass
class QueryContext:
    """
    Execution context for one query.

    A negative timeout has always elapsed, so the first check fails.
    """
    timeout_seconds: Optional[float] = None
    stats: QueryStats = field(default_factory=QueryStats)

    def start(self):
        self.stats.start_time = time.monotonic()
        self.stats.state = QueryState.RUNNING

    def complete(self, rows_returned: int = 0):
        self._finish(QueryState.COMPLETED)
        self.stats.rows_returned = rows_returned

    def fail(self, error: str):
        self._finish(QueryState.FAILED)
        self.stats.error = error

    def check(self):
        """Raise QueryTimeoutException if the timeout has elapsed."""
        if self.timeout_seconds is None or self.stats.start_time is None:
            return
        if time.monotonic() - self.stats.start_time > self.timeout_seconds:
            self._finish(QueryState.TIMEOUT)
            raise QueryTimeoutException(
                f"Query exceeded timeout of {self.timeout_seconds}s"
            )

    def _finish(self, state: QueryState):
        self.stats.end_time = time.monotonic()
        self.stats.state = state

    # Counters updated by the executor
    def record_pattern(self):
        self.stats.pattern_count += 1

    def record_join(self):
        self.stats.join_count += 1

    def record_filter(self):
        self.stats.filter_count += 1

    def add_scanned_rows(self, count: int):
        self.stats.rows_scanned += count
