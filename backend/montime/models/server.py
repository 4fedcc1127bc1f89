"""Server model - hosts that push metrics to the ingestion endpoint."""
import secrets

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.db_utils import utcnow


def _new_api_key() -> str:
    return secrets.token_hex(24)


class Server(Base):
    """A monitored host identified by its ingestion bearer token."""

    __tablename__ = "servers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    hostname = Column(String, nullable=True)
    api_key = Column(String, unique=True, nullable=False, index=True, default=_new_api_key)
    status = Column(String, default="offline")  # online, warning, critical, offline
    last_seen_at = Column(DateTime, nullable=True)  # Set by ingestion
    group_id = Column(Integer, nullable=True, index=True)
    owner_email = Column(String, nullable=True)  # Fallback email recipient
    created_at = Column(DateTime, default=utcnow)

    # Relationships
    metrics = relationship("Metric", back_populates="server", cascade="all, delete-orphan")
    alerts = relationship("Alert", back_populates="server", cascade="all, delete-orphan")
