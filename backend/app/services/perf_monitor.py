"""Performance monitoring for the BOQ recompute pipeline."""
import time
import logging
import threading
import functools
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("constructai-api.perf")


def timed(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for synchronous functions.

    Usage::

        @timed
        def build_sheets():
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "function timed",
                extra={
                    "function_name": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory tracker for recompute metrics.

    Tracks:
    - Full recomputes run
    - Cumulative and average recompute duration
    - Per-stage durations (grouping, valuation, certificate, analytics)
    - Slowest stage seen
    - Error count broken down by stage
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._recomputes: int = 0
        self._total_recompute_ms: float = 0.0
        self._stage_counts: Dict[str, int] = {}       # stage -> runs
        self._stage_totals_ms: Dict[str, float] = {}  # stage -> summed duration_ms
        self._error_counts: Dict[str, int] = {}       # stage -> count
        self._slowest_stage: Optional[str] = None
        self._slowest_stage_ms: float = 0.0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_recompute(self, duration_ms: float) -> None:
        """Call once when a full recompute finishes successfully."""
        with self._lock:
            self._recomputes += 1
            self._total_recompute_ms += duration_ms

    def record_stage_duration(self, stage: str, duration_ms: float) -> None:
        with self._lock:
            self._stage_counts[stage] = self._stage_counts.get(stage, 0) + 1
            self._stage_totals_ms[stage] = self._stage_totals_ms.get(stage, 0.0) + duration_ms
            if duration_ms > self._slowest_stage_ms:
                self._slowest_stage_ms = duration_ms
                self._slowest_stage = stage

    def record_stage_error(self, stage: str) -> None:
        with self._lock:
            self._error_counts[stage] = self._error_counts.get(stage, 0) + 1

    @contextmanager
    def stage(self, name: str):
        """Time a block as one pipeline stage; errors are counted and re-raised."""
        start = time.perf_counter()
        try:
            yield
        except Exception:
            self.record_stage_error(name)
            raise
        finally:
            self.record_stage_duration(name, round((time.perf_counter() - start) * 1000, 3))

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            recomputes                : int
            avg_recompute_duration_ms : float  (0 if none run)
            slowest_stage             : str | None
            slowest_stage_ms          : float
            error_count               : int   (total across all stages)
            error_count_by_stage      : dict  {stage: count}
            stage_avg_durations_ms    : dict  {stage: avg_ms}
        """
        with self._lock:
            avg = (
                round(self._total_recompute_ms / self._recomputes, 3)
                if self._recomputes > 0
                else 0.0
            )
            stage_avgs: Dict[str, float] = {
                stage: round(total / self._stage_counts[stage], 3)
                for stage, total in self._stage_totals_ms.items()
            }
            return {
                "recomputes": self._recomputes,
                "avg_recompute_duration_ms": avg,
                "slowest_stage": self._slowest_stage,
                "slowest_stage_ms": round(self._slowest_stage_ms, 3),
                "error_count": sum(self._error_counts.values()),
                "error_count_by_stage": dict(self._error_counts),
                "stage_avg_durations_ms": stage_avgs,
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._recomputes = 0
            self._total_recompute_ms = 0.0
            self._stage_counts.clear()
            self._stage_totals_ms.clear()
            self._error_counts.clear()
            self._slowest_stage = None
            self._slowest_stage_ms = 0.0


# Module-level singleton; import this instance everywhere else.
tracker = PerformanceTracker()
