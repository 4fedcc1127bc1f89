"""Threshold evaluator - maps a metric sample to at most one fault condition.

Two code paths live here on purpose:

* ``evaluate`` is the authoritative batch path. It honours the entity's
  ``ThresholdConfig``.
* ``ingest_status`` / ``ingest_condition`` is the fast path run on every
  metric push. It uses fixed 75/90 thresholds and ignores ``ThresholdConfig``,
  so a push can be "critical" while the batch path sees nothing, or the other
  way around.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..schemas.settings import ThresholdConfig
from ..utils.db_utils import utcnow

# Above this a resource alert is critical regardless of the configured threshold
CRITICAL_PERCENT = 90.0

# Fixed thresholds of the ingestion fast path
INGEST_WARNING_PERCENT = 75.0
INGEST_CRITICAL_PERCENT = 90.0

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"


@dataclass(frozen=True)
class AlertCondition:
    """A detected fault, not yet persisted."""
    type: str  # down, cpu_high, memory_high, disk_high, monitor_down, monitor_up, custom
    severity: str  # info, warning, critical
    message: str
    current_value: Optional[float] = None
    threshold_value: Optional[float] = None


def _describe_seconds(seconds: int) -> str:
    if seconds % 60 == 0:
        minutes = seconds // 60
        return "1 minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds} seconds"


def _resource_severity(value: float) -> str:
    return SEVERITY_CRITICAL if value > CRITICAL_PERCENT else SEVERITY_WARNING


def evaluate(
    cpu: Optional[float],
    memory: Optional[float],
    disk: Optional[float],
    last_seen_at: Optional[datetime],
    config: ThresholdConfig,
    now: Optional[datetime] = None,
) -> Optional[AlertCondition]:
    """Evaluate one server's latest sample against its thresholds.

    First match wins: liveness, then CPU, memory and disk. Only one condition
    is ever reported even when several thresholds are breached.
    """
    now = now or utcnow()

    if last_seen_at is None or (now - last_seen_at).total_seconds() > config.down_threshold_seconds:
        return AlertCondition(
            type="down",
            severity=SEVERITY_CRITICAL,
            message=(
                "Server is not responding. No metrics received in the last "
                f"{_describe_seconds(config.down_threshold_seconds)}."
            ),
        )

    if cpu is not None and cpu > config.cpu_threshold:
        severity = _resource_severity(cpu)
        label = "critically high" if severity == SEVERITY_CRITICAL else "high"
        return AlertCondition(
            type="cpu_high",
            severity=severity,
            message=f"CPU usage is {label} at {cpu:.1f}%",
            current_value=cpu,
            threshold_value=config.cpu_threshold,
        )

    if memory is not None and memory > config.memory_threshold:
        severity = _resource_severity(memory)
        label = "critically high" if severity == SEVERITY_CRITICAL else "high"
        return AlertCondition(
            type="memory_high",
            severity=severity,
            message=f"Memory usage is {label} at {memory:.1f}%",
            current_value=memory,
            threshold_value=config.memory_threshold,
        )

    if disk is not None and disk > config.disk_threshold:
        return AlertCondition(
            type="disk_high",
            severity=SEVERITY_CRITICAL,
            message=f"Disk usage is critically high at {disk:.1f}%",
            current_value=disk,
            threshold_value=config.disk_threshold,
        )

    return None


def ingest_status(cpu: float, memory: float, disk: float) -> str:
    """Immediate server status from a pushed sample (fixed thresholds)."""
    if cpu > INGEST_CRITICAL_PERCENT or memory > INGEST_CRITICAL_PERCENT or disk > INGEST_CRITICAL_PERCENT:
        return "critical"
    if cpu > INGEST_WARNING_PERCENT or memory > INGEST_WARNING_PERCENT or disk > INGEST_WARNING_PERCENT:
        return "warning"
    return "online"


def ingest_condition(cpu: float, memory: float, disk: float) -> Optional[AlertCondition]:
    """Fast-path alert for a critical push.

    Reports the largest of the three readings; ties go to CPU, then memory.
    """
    if ingest_status(cpu, memory, disk) != "critical":
        return None

    readings = [("cpu_high", "CPU", cpu), ("memory_high", "Memory", memory), ("disk_high", "Disk", disk)]
    peak = max(cpu, memory, disk)
    alert_type, label, value = next(r for r in readings if r[2] == peak)

    return AlertCondition(
        type=alert_type,
        severity=SEVERITY_CRITICAL,
        message=f"{label} usage is critically high at {value:.1f}%",
        current_value=value,
        threshold_value=INGEST_CRITICAL_PERCENT,
    )
