"""Services for evaluation, probing, alerting and notification."""
from .alerts import AlertRecorder
from .debounce import DebounceGate
from .evaluation import EvaluationService
from .incidents import IncidentTracker
from .ingestion import IngestionService
from .notifier import NotificationDispatcher
from .probes import ProbeRunner
from .scheduler import SchedulerService

__all__ = [
    "AlertRecorder",
    "DebounceGate",
    "EvaluationService",
    "IncidentTracker",
    "IngestionService",
    "NotificationDispatcher",
    "ProbeRunner",
    "SchedulerService",
]
