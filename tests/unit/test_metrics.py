"""Unit tests for worker metrics."""

from bizzin_jobs.metrics import WorkerMetrics


def test_running_average(clock):
    metrics = WorkerMetrics(clock)

    metrics.record_success(100)
    metrics.record_success(300)
    metrics.record_failure()

    snapshot = metrics.snapshot()
    assert snapshot["jobs_today"] == 3
    assert snapshot["success_today"] == 2
    assert snapshot["failure_today"] == 1
    assert snapshot["avg_processing_time"] == 200
    assert snapshot["date"] == "2025-03-10"


def test_counters_reset_on_new_day(clock):
    metrics = WorkerMetrics(clock)
    metrics.record_success(50)
    metrics.record_failure()

    clock.advance(days=1)

    snapshot = metrics.snapshot()
    assert snapshot["jobs_today"] == 0
    assert snapshot["avg_processing_time"] == 0
    assert snapshot["date"] == "2025-03-11"

    metrics.record_success(10)
    assert metrics.success_today == 1
    assert metrics.avg_processing_time == 10
