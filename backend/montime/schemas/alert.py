"""Alert schemas for API."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class AlertResponse(BaseModel):
    """Schema for an alert in API responses."""
    id: int
    server_id: Optional[int] = None
    monitor_id: Optional[int] = None
    type: str
    severity: str
    message: str
    current_value: Optional[float] = None
    threshold_value: Optional[float] = None
    acknowledged: bool
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved: bool
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AlertList(BaseModel):
    """List of alerts, with a message when the store is not set up."""
    alerts: List[AlertResponse]
    message: Optional[str] = None


class AlertUpdate(BaseModel):
    """User acknowledgement / resolution of an alert."""
    acknowledged: Optional[bool] = None
    resolved: Optional[bool] = None
    user: Optional[str] = None
