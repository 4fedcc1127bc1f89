"""MonitorCheck model - result history for monitors."""

from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.db_utils import utcnow


class MonitorCheck(Base):
    """One probe verdict."""

    __tablename__ = "monitor_checks"
    __table_args__ = (
        Index("ix_monitor_checks_monitor_checked", "monitor_id", "checked_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False)
    success = Column(Boolean, nullable=False)
    response_time_ms = Column(Integer, nullable=True)
    status_code = Column(Integer, nullable=True)  # NULL when no HTTP response was read
    message = Column(String, nullable=True)
    checked_at = Column(DateTime, default=utcnow)

    # Relationship
    monitor = relationship("Monitor", back_populates="checks")
