"""Monitor check and incident schemas for API."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class MonitorCheckResponse(BaseModel):
    """A single probe verdict."""
    id: int
    monitor_id: int
    success: bool
    response_time_ms: Optional[int] = None
    status_code: Optional[int] = None
    message: Optional[str] = None
    checked_at: datetime

    class Config:
        from_attributes = True


class MonitorCheckList(BaseModel):
    checks: List[MonitorCheckResponse]
    message: Optional[str] = None


class IncidentResponse(BaseModel):
    """A downtime span."""
    id: int
    monitor_id: int
    started_at: datetime
    resolved_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None
    status: str  # open, resolved
    message: Optional[str] = None

    class Config:
        from_attributes = True


class IncidentList(BaseModel):
    incidents: List[IncidentResponse]
    message: Optional[str] = None


class MonitorCheckRequest(BaseModel):
    """Manual check trigger. No monitor_id = all enabled monitors."""
    monitor_id: Optional[int] = None


class MonitorResponse(BaseModel):
    """Public view of a monitor."""
    id: int
    name: str
    type: str
    url: str
    status: Optional[str] = None
    last_checked_at: Optional[datetime] = None
    last_response_time_ms: Optional[int] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UptimeStats(BaseModel):
    """Uptime over the checks returned alongside it."""
    uptime_percentage: float
    total_checks: int
    successful_checks: int


class MonitorStatusResponse(BaseModel):
    """A monitor with its recent checks, incidents and uptime."""
    monitor: MonitorResponse
    checks: List[MonitorCheckResponse]
    incidents: List[IncidentResponse]
    stats: UptimeStats
