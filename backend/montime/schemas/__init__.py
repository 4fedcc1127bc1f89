"""Pydantic schemas for API request/response models."""
from .alert import (
    AlertResponse,
    AlertList,
    AlertUpdate,
)
from .monitor import (
    MonitorCheckResponse,
    MonitorCheckList,
    IncidentResponse,
    IncidentList,
    MonitorCheckRequest,
    MonitorResponse,
    MonitorStatusResponse,
    UptimeStats,
)
from .settings import (
    ThresholdConfig,
    NotificationTestRequest,
)
from .metrics import IngestResponse, MetricList, MetricResponse
from .evaluation import EvaluationSummary, MonitorCheckOutcome

__all__ = [
    "AlertResponse",
    "AlertList",
    "AlertUpdate",
    "MonitorCheckResponse",
    "MonitorCheckList",
    "IncidentResponse",
    "IncidentList",
    "MonitorCheckRequest",
    "MonitorResponse",
    "MonitorStatusResponse",
    "UptimeStats",
    "ThresholdConfig",
    "NotificationTestRequest",
    "IngestResponse",
    "MetricList",
    "MetricResponse",
    "EvaluationSummary",
    "MonitorCheckOutcome",
]
