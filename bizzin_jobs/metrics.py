"""In-memory per-worker processing counters."""

from datetime import date, datetime
from typing import Any, Callable, Optional

from bizzin_jobs.models import utcnow


class WorkerMetrics:
    """
    Daily job counters for one worker process.

    Counters reset when the UTC date changes. They are for monitoring only
    and are not persisted beyond the heartbeat's jobs_processed_today.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock
        self._day: Optional[date] = None
        self.jobs_today = 0
        self.success_today = 0
        self.failure_today = 0
        self.avg_processing_time = 0.0
        self._roll_over()

    def _roll_over(self) -> None:
        today = self.clock().date()
        if today != self._day:
            self._day = today
            self.jobs_today = 0
            self.success_today = 0
            self.failure_today = 0
            self.avg_processing_time = 0.0

    def record_success(self, processing_time_ms: int) -> None:
        self._roll_over()
        self.jobs_today += 1
        self.success_today += 1
        # running mean over successful jobs
        self.avg_processing_time += (
            processing_time_ms - self.avg_processing_time
        ) / self.success_today

    def record_failure(self) -> None:
        self._roll_over()
        self.jobs_today += 1
        self.failure_today += 1

    def snapshot(self) -> dict[str, Any]:
        self._roll_over()
        return {
            "date": self._day.isoformat(),
            "jobs_today": self.jobs_today,
            "success_today": self.success_today,
            "failure_today": self.failure_today,
            "avg_processing_time": round(self.avg_processing_time, 2),
        }
