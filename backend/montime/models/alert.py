"""Alert model - alerts raised by the evaluation engine."""

from sqlalchemy import Boolean, Column, Float, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.db_utils import utcnow


class Alert(Base):
    """A fault condition recorded for a server or a monitor.

    Exactly one of ``server_id`` / ``monitor_id`` is set.
    """

    __tablename__ = "alerts"
    __table_args__ = (
        Index("ix_alerts_server_type_created", "server_id", "type", "created_at"),
        Index("ix_alerts_monitor_type_created", "monitor_id", "type", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    server_id = Column(Integer, ForeignKey("servers.id", ondelete="CASCADE"), nullable=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=True)
    type = Column(String, nullable=False)  # down, cpu_high, memory_high, disk_high, monitor_down, monitor_up, custom
    severity = Column(String, nullable=False)  # info, warning, critical
    message = Column(String, nullable=False)
    current_value = Column(Float, nullable=True)
    threshold_value = Column(Float, nullable=True)
    acknowledged = Column(Boolean, default=False, nullable=False)
    acknowledged_at = Column(DateTime, nullable=True)
    acknowledged_by = Column(String, nullable=True)
    resolved = Column(Boolean, default=False, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    resolved_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Relationships
    server = relationship("Server", back_populates="alerts")
    monitor = relationship("Monitor", back_populates="alerts")

    @property
    def entity_id(self):
        return self.server_id if self.server_id is not None else self.monitor_id
