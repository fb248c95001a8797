"""CloudWatch custom metrics for the remote dependencies of a chat turn.

Every embedding request, similarity search and completion call is wrapped
in :meth:`MetricsClient.track`, which records a request count, latency and
(on failure) the exception type.

Data points are buffered in memory and pushed by a daemon thread every
``FLUSH_INTERVAL_SECONDS`` when ``METRICS_ENABLED=true``.  Otherwise they
are only logged at DEBUG level and never buffered.

>>> from agentchat.services.metrics import metrics
>>> with metrics.track("supabase", "match_documents"):
...     ...
"""

from __future__ import annotations

import atexit
import logging
import os
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

NAMESPACE = "AgentChat"
FLUSH_INTERVAL_SECONDS = 60
MAX_BATCH_SIZE = 1_000  # CloudWatch limit per PutMetricData call


class MetricsClient:
    """Batched CloudWatch publisher for remote-call metrics."""

    def __init__(self, enabled: bool | None = None) -> None:
        if enabled is None:
            enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
        self._enabled = enabled
        self._buffer: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        self._cw_client = None

        if self._enabled:
            self._start_flush_thread()

    # ── Recording ─────────────────────────────────────────────────────

    @contextmanager
    def track(self, service: str, operation: str) -> Iterator[None]:
        """Time the enclosed block and record it as a success or failure.

        The exception (if any) is re-raised untouched.
        """
        t0 = time.perf_counter()
        try:
            yield
        except Exception as exc:
            self.record(
                service, operation,
                latency_ms=(time.perf_counter() - t0) * 1000,
                error_type=type(exc).__name__,
            )
            raise
        self.record(service, operation, latency_ms=(time.perf_counter() - t0) * 1000)

    def record(
        self,
        service: str,
        operation: str,
        latency_ms: float,
        error_type: str | None = None,
    ) -> None:
        """Buffer the data points for one remote call."""
        status = "failure" if error_type else "success"
        logger.debug(
            "Metric: %s %s %s latency=%.1fms", service, operation, status, latency_ms,
        )
        if not self._enabled:
            return

        now = datetime.now(UTC)
        service_dim = {"Name": "Service", "Value": service}

        points = [
            _point(
                "RemoteCall/RequestCount",
                [service_dim, {"Name": "Status", "Value": status}],
                now, 1, "Count",
            ),
            _point(
                "RemoteCall/Latency",
                [service_dim, {"Name": "Operation", "Value": operation}],
                now, latency_ms, "Milliseconds",
            ),
        ]
        if error_type:
            points.append(
                _point(
                    "RemoteCall/ErrorCount",
                    [service_dim, {"Name": "ErrorType", "Value": error_type}],
                    now, 1, "Count",
                )
            )

        with self._lock:
            self._buffer.extend(points)

    # ── Publishing ────────────────────────────────────────────────────

    def flush(self) -> int:
        """Send buffered metrics to CloudWatch.  Returns the count sent."""
        with self._lock:
            if not self._buffer:
                return 0
            batch = self._buffer[:]
            self._buffer.clear()

        sent = 0
        try:
            cw = self._get_cw_client()
            for i in range(0, len(batch), MAX_BATCH_SIZE):
                chunk = batch[i : i + MAX_BATCH_SIZE]
                cw.put_metric_data(Namespace=NAMESPACE, MetricData=chunk)
                sent += len(chunk)
            logger.info("Flushed %d metrics to CloudWatch", sent)
        except Exception:
            logger.exception("Failed to flush metrics to CloudWatch")
        return sent

    def _get_cw_client(self):
        if self._cw_client is None:
            import boto3

            self._cw_client = boto3.client("cloudwatch")
        return self._cw_client

    def _start_flush_thread(self) -> None:
        def _loop():
            while True:
                time.sleep(FLUSH_INTERVAL_SECONDS)
                self.flush()

        threading.Thread(target=_loop, daemon=True, name="metrics-flush").start()
        atexit.register(self.flush)
        logger.info("Metrics flush thread started (interval=%ds)", FLUSH_INTERVAL_SECONDS)


def _point(
    name: str,
    dimensions: list[dict[str, str]],
    timestamp: datetime,
    value: float,
    unit: str,
) -> dict[str, Any]:
    return {
        "MetricName": name,
        "Dimensions": dimensions,
        "Timestamp": timestamp,
        "Value": value,
        "Unit": unit,
    }


metrics = MetricsClient()
