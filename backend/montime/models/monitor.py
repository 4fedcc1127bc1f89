"""Monitor model - external endpoints probed actively."""

from sqlalchemy import Boolean, Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.db_utils import utcnow


class Monitor(Base):
    """An externally probed endpoint - http, https, keyword, ping, tcp or ssl."""

    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # http, https, keyword, ping, tcp, ssl
    url = Column(String, nullable=False)  # URL or bare host
    port = Column(Integer, nullable=True)  # tcp only
    interval_minutes = Column(Integer, default=5)
    timeout_seconds = Column(Integer, default=30)
    expected_status_code = Column(Integer, nullable=True)
    expected_keyword = Column(String, nullable=True)  # Case-sensitive substring
    enabled = Column(Boolean, default=True)
    status = Column(String, default="unknown")  # unknown, up, down
    last_checked_at = Column(DateTime, nullable=True)
    last_response_time_ms = Column(Integer, nullable=True)
    owner_email = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    checks = relationship("MonitorCheck", back_populates="monitor", cascade="all, delete-orphan")
    incidents = relationship("Incident", back_populates="monitor", cascade="all, delete-orphan")
    alerts = relationship("Alert", back_populates="monitor", cascade="all, delete-orphan")
