"""Metric schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class IngestResponse(BaseModel):
    """Response to a metric push."""
    success: bool = True
    status: str  # online, warning, critical
    message: str = "Metrics recorded successfully"


class MetricResponse(BaseModel):
    """One stored sample."""
    id: int
    server_id: int
    cpu_usage: Optional[float] = None
    memory_usage: Optional[float] = None
    disk_usage: Optional[float] = None
    network_in: Optional[int] = None
    network_out: Optional[int] = None
    load_average: Optional[float] = None
    uptime: Optional[int] = None
    processes: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class MetricList(BaseModel):
    metrics: List[MetricResponse]
