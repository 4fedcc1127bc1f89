"""Incident model - downtime spans of external monitors."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.db_utils import utcnow


class Incident(Base):
    """Downtime opened on an up->down transition, closed on the next down->up."""

    __tablename__ = "monitor_incidents"
    __table_args__ = (
        # At most one open incident per monitor
        Index(
            "uq_monitor_incidents_open",
            "monitor_id",
            unique=True,
            sqlite_where=text("status = 'open'"),
            postgresql_where=text("status = 'open'"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False, index=True)
    started_at = Column(DateTime, nullable=False, default=utcnow)
    resolved_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, nullable=True)
    status = Column(String, nullable=False, default="open")  # open, resolved
    message = Column(String, nullable=True)  # Probe failure reason

    # Relationship
    monitor = relationship("Monitor", back_populates="incidents")
