"""Performance monitoring utilities using Prometheus metrics."""

from __future__ import annotations

import time
from contextlib import contextmanager

import psutil
from prometheus_client import Counter, Gauge, Histogram


phase_transitions_total = Counter(
    "showcase_phase_transitions_total",
    "Phases entered",
    labelnames=("phase", "source"),
)
timeline_commands_total = Counter(
    "showcase_timeline_commands_total",
    "Timeline commands applied",
    labelnames=("command", "outcome"),
)
timeline_command_duration = Histogram(
    "showcase_timeline_command_duration_seconds",
    "Time spent inside the per-event lock",
    labelnames=("command",),
)
reconcile_failures_total = Counter(
    "showcase_reconcile_failures_total",
    "Status reads that fell back to the last good snapshot",
)
concurrency_conflicts_total = Counter(
    "showcase_concurrency_conflicts_total",
    "Timeline saves rejected by the version check",
)
raffles_executed_total = Counter("showcase_raffles_executed_total", "Raffles executed")
live_viewers = Gauge("showcase_live_viewers", "Live viewer sessions", labelnames=("event_id",))
db_connections = Gauge("db_connection_pool_size", "DB connection pool size")


class PerformanceMonitor:
    def __init__(self) -> None:
        self.metrics = {
            "phase_transitions_total": phase_transitions_total,
            "timeline_commands_total": timeline_commands_total,
            "timeline_command_duration": timeline_command_duration,
            "reconcile_failures_total": reconcile_failures_total,
            "concurrency_conflicts_total": concurrency_conflicts_total,
            "raffles_executed_total": raffles_executed_total,
            "live_viewers": live_viewers,
            "db_connections": db_connections,
        }

    @contextmanager
    def track_command(self, command: str):
        start = time.perf_counter()
        outcome = "ok"
        try:
            yield
        except Exception:
            outcome = "error"
            raise
        finally:
            timeline_command_duration.labels(command=command).observe(time.perf_counter() - start)
            timeline_commands_total.labels(command=command, outcome=outcome).inc()

    def record_phase_entered(self, phase: str, source: str) -> None:
        phase_transitions_total.labels(phase=phase, source=source).inc()

    def record_viewers(self, event_id: int, count: int) -> None:
        live_viewers.labels(event_id=str(event_id)).set(count)

    def record_db_pool(self, pool_size: int) -> None:
        db_connections.set(pool_size)

    def gather_host_metrics(self) -> dict:
        process = psutil.Process()
        memory_info = process.memory_info()
        return {
            "memory_rss": memory_info.rss,
            "cpu_percent": process.cpu_percent(interval=None),
            "threads": process.num_threads(),
        }


performance_monitor = PerformanceMonitor()
