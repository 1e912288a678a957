"""
Deadlinewatch: deadline prediction and risk monitoring for development tasks.

Learns developer and task-pattern profiles from completed work, predicts
effort and delivery dates with an ensemble of explainable strategies, and
sweeps active tasks for deadline, complexity, resource, dependency and
external risk.
"""

__version__ = "1.0.0"
__license__ = "MIT"

from .engine import DeadlineEngine
from .datasource import BaseDataSource, StaticDataSource
from .profiles import ProfileStore
from .prediction import PredictionEngine
from .models import Task, Prediction, RiskLevel

__all__ = [
    "DeadlineEngine", "BaseDataSource", "StaticDataSource", "ProfileStore",
    "PredictionEngine", "Task", "Prediction", "RiskLevel",
]
