"""Batch evaluation schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class MonitorCheckOutcome(BaseModel):
    """Outcome of probing one monitor in a batch."""
    monitor_id: int
    name: str
    status: str  # up, down
    success: bool
    response_time_ms: int
    status_code: Optional[int] = None
    message: str


class EvaluationSummary(BaseModel):
    """Result of one evaluation run."""
    success: bool = True
    servers_evaluated: int = 0
    monitors_checked: int = 0
    alerts_created: int = 0
    notifications_failed: int = 0
    errors: int = 0
    results: List[MonitorCheckOutcome] = Field(default_factory=list)
    timestamp: datetime

    def merge(self, other: "EvaluationSummary") -> "EvaluationSummary":
        return EvaluationSummary(
            success=self.success and other.success,
            servers_evaluated=self.servers_evaluated + other.servers_evaluated,
            monitors_checked=self.monitors_checked + other.monitors_checked,
            alerts_created=self.alerts_created + other.alerts_created,
            notifications_failed=self.notifications_failed + other.notifications_failed,
            errors=self.errors + other.errors,
            results=self.results + other.results,
            timestamp=max(self.timestamp, other.timestamp),
        )
