"""Database models."""
from .server import Server
from .metric import Metric
from .monitor import Monitor
from .monitor_check import MonitorCheck
from .incident import Incident
from .alert import Alert
from .alert_settings import AlertSettings

__all__ = ["Server", "Metric", "Monitor", "MonitorCheck", "Incident", "Alert", "AlertSettings"]
