"""Prometheus metrics for the redaction pipeline.

Metrics are registered lazily by ``configure_metrics()``. Until then (or
when disabled) every helper is a no-op, so library users and tests never
touch the global Prometheus registry.

Environment Variables:
    METRICS_ENABLED: Enable/disable metrics collection (default: true)
"""

from __future__ import annotations

import os
from typing import Any

_metrics_enabled: bool = False
_metrics_initialized: bool = False

_metrics: dict[str, Any] = {}


def is_metrics_enabled() -> bool:
    """Check if metrics collection is enabled."""
    return _metrics_enabled


def configure_metrics() -> None:
    """Register pipeline metrics with the default Prometheus registry."""
    global _metrics_enabled, _metrics_initialized

    _metrics_enabled = os.environ.get("METRICS_ENABLED", "true").lower() == "true"
    if not _metrics_enabled or _metrics_initialized:
        return

    _metrics_initialized = True
    _init_metrics()


def _init_metrics() -> None:
    from prometheus_client import Counter, Histogram

    _metrics["spans_detected_total"] = Counter(
        "callredact_spans_detected_total",
        "Sensitive spans detected in transcripts",
        ["category"],
    )

    _metrics["records_total"] = Counter(
        "callredact_records_total",
        "Redaction records reaching a terminal status",
        ["status"],
    )

    _metrics["remote_replace_failures_total"] = Counter(
        "callredact_remote_replace_failures_total",
        "Remote replacement failures by the phase reached",
        ["phase"],
    )

    _metrics["audio_redaction_seconds"] = Histogram(
        "callredact_audio_redaction_seconds",
        "Time spent muting and verifying one recording",
        buckets=(0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120, 300),
    )


def inc_spans_detected(category: str, count: int = 1) -> None:
    """Increment detected span counter for a category."""
    if not _metrics_enabled or "spans_detected_total" not in _metrics:
        return
    _metrics["spans_detected_total"].labels(category=category).inc(count)


def inc_records(status: str) -> None:
    """Increment terminal record counter.

    Args:
        status: Terminal status (not_needed, completed, failed)
    """
    if not _metrics_enabled or "records_total" not in _metrics:
        return
    _metrics["records_total"].labels(status=status).inc()


def inc_remote_replace_failures(phase: str) -> None:
    if not _metrics_enabled or "remote_replace_failures_total" not in _metrics:
        return
    _metrics["remote_replace_failures_total"].labels(phase=phase).inc()


def observe_audio_redaction(duration: float) -> None:
    """Record how long one audio redaction took, in seconds."""
    if not _metrics_enabled or "audio_redaction_seconds" not in _metrics:
        return
    _metrics["audio_redaction_seconds"].observe(duration)
