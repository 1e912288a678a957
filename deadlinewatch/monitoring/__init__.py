"""
Risk monitoring module for Deadlinewatch.
"""

from .risk_engine import (
    RiskAssessmentEngine, default_monitoring_rules, build_dependency_graph, find_cyclic_tasks
)
from .alert_system import AlertManager, AlertConfig, AlertChannel
from .dashboard import RiskDashboardAggregator
from .monitor import RiskMonitor, MonitoringStatus, MonitoringMetrics, SweepResult

__all__ = [
    'RiskAssessmentEngine', 'default_monitoring_rules', 'build_dependency_graph', 'find_cyclic_tasks',
    'AlertManager', 'AlertConfig', 'AlertChannel',
    'RiskDashboardAggregator',
    'RiskMonitor', 'MonitoringStatus', 'MonitoringMetrics', 'SweepResult',
]
