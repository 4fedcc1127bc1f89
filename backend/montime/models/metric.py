"""Metric model - samples pushed by servers."""

from sqlalchemy import Column, Integer, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.db_utils import utcnow


class Metric(Base):
    """One ingestion sample. Append-only, never updated."""

    __tablename__ = "metrics"
    __table_args__ = (
        Index("ix_metrics_server_created", "server_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    server_id = Column(Integer, ForeignKey("servers.id", ondelete="CASCADE"), nullable=False)
    cpu_usage = Column(Float, nullable=True)  # percent
    memory_usage = Column(Float, nullable=True)  # percent
    disk_usage = Column(Float, nullable=True)  # percent
    network_in = Column(Integer, nullable=True)  # bytes
    network_out = Column(Integer, nullable=True)  # bytes
    load_average = Column(Float, nullable=True)
    uptime = Column(Integer, nullable=True)  # seconds
    processes = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationship
    server = relationship("Server", back_populates="metrics")
