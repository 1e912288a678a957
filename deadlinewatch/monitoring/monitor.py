"""
Periodic risk monitoring for Deadlinewatch.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Any, List, Optional, Tuple

from ..models import Task, TaskRiskAssessment, Alert
from ..utils import logger
from .alert_system import AlertManager
from .dashboard import RiskDashboardAggregator
from .risk_engine import RiskAssessmentEngine, build_dependency_graph, find_cyclic_tasks


class MonitoringStatus(Enum):
    """Status of the monitoring process."""
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"


@dataclass
class MonitoringMetrics:
    """Counters collected across sweeps."""
    last_sweep: Optional[datetime] = None
    sweeps_completed: int = 0
    tasks_assessed: int = 0
    assessment_errors: int = 0
    alerts_raised: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'last_sweep': self.last_sweep.isoformat() if self.last_sweep else None,
            'sweeps_completed': self.sweeps_completed,
            'tasks_assessed': self.tasks_assessed,
            'assessment_errors': self.assessment_errors,
            'alerts_raised': self.alerts_raised,
        }


@dataclass
class SweepResult:
    """Outcome of one pass over the active tasks."""
    timestamp: datetime
    assessments: List[TaskRiskAssessment] = field(default_factory=list)
    alerts: List[Alert] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)
    aborted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'assessments': [a.to_dict() for a in self.assessments],
            'alerts': [a.to_dict() for a in self.alerts],
            'errors': dict(self.errors),
            'aborted': self.aborted,
        }


class RiskMonitor:
    """Runs risk sweeps on demand or on a background thread."""

    def __init__(
        self,
        risk_engine: RiskAssessmentEngine,
        alert_manager: AlertManager,
        dashboard: RiskDashboardAggregator,
        interval: float = 60.0,
        max_workers: int = 1,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.risk_engine = risk_engine
        self.alert_manager = alert_manager
        self.dashboard = dashboard
        self.interval = interval
        self.max_workers = max_workers
        self.clock = clock

        self.status = MonitoringStatus.IDLE
        self.monitor_thread: Optional[threading.Thread] = None
        self.stop_event = threading.Event()
        self.metrics = MonitoringMetrics()
        self._metrics_lock = threading.Lock()

    def run_sweep_once(self) -> SweepResult:
        """Assess every active task once and raise the resulting alerts.

        A failure on one task is logged and recorded without affecting the
        others. Setting ``stop_event`` ends the sweep before the next task.
        """
        now = self.clock()
        result = SweepResult(timestamp=now)

        tasks = self.risk_engine.data_source.get_active_tasks()
        cyclic_tasks = find_cyclic_tasks(build_dependency_graph(tasks))
        axes = self.risk_engine.due_axes(now)

        if cyclic_tasks:
            logger.warning(f"Circular dependencies detected: {', '.join(sorted(cyclic_tasks))}")

        if self.max_workers > 1 and len(tasks) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(lambda t: self._assess_one(t, cyclic_tasks, axes), tasks))
        else:
            outcomes = []
            for task in tasks:
                outcome = self._assess_one(task, cyclic_tasks, axes)
                outcomes.append(outcome)
                if outcome is None:
                    break

        for task, outcome in zip(tasks, outcomes):
            if outcome is None:
                result.aborted = True
                continue
            assessment, alerts, error = outcome
            if error is not None:
                result.errors[task.id] = error
                continue
            result.assessments.append(assessment)
            result.alerts.extend(alerts)

        if len(outcomes) < len(tasks):
            result.aborted = True

        active_ids = {task.id for task in tasks}
        stale = [a.task_id for a in self.risk_engine.get_latest() if a.task_id not in active_ids]
        self.risk_engine.forget(stale)
        self.dashboard.record_snapshot(self.risk_engine.get_latest())

        with self._metrics_lock:
            self.metrics.last_sweep = now
            self.metrics.sweeps_completed += 1
            self.metrics.tasks_assessed += len(result.assessments)
            self.metrics.assessment_errors += len(result.errors)
            self.metrics.alerts_raised += len(result.alerts)

        logger.debug(
            f"Sweep completed: {len(result.assessments)} assessed, {len(result.errors)} failed, "
            f"{len(result.alerts)} alerts{' (aborted)' if result.aborted else ''}"
        )
        return result

    def _assess_one(
        self,
        task: Task,
        cyclic_tasks,
        axes,
    ) -> Optional[Tuple[Optional[TaskRiskAssessment], List[Alert], Optional[str]]]:
        if self.stop_event.is_set():
            return None

        try:
            assessment = self.risk_engine.assess_task(task, cyclic_tasks=cyclic_tasks, axes=axes)
            alerts = self.alert_manager.process_assessment(assessment)
            return assessment, alerts, None
        except Exception as e:
            logger.error(f"Error assessing task {task.id}: {e}", exc_info=True)
            return None, [], str(e)

    def start(self):
        """Start sweeping on a background thread."""
        if self.status == MonitoringStatus.RUNNING:
            logger.info("Monitor is already running")
            return

        self.status = MonitoringStatus.RUNNING
        self.stop_event.clear()

        self.monitor_thread = threading.Thread(target=self._monitor_loop)
        self.monitor_thread.daemon = True
        self.monitor_thread.start()

        logger.info(f"Risk monitor started (interval={self.interval}s)")

    def stop(self):
        """Stop the background thread, interrupting a running sweep."""
        if self.status not in (MonitoringStatus.RUNNING, MonitoringStatus.ERROR):
            logger.info("Monitor is not running")
            return

        self.status = MonitoringStatus.STOPPED
        self.stop_event.set()

        if self.monitor_thread:
            self.monitor_thread.join(timeout=10)

        logger.info("Risk monitor stopped")

    def _monitor_loop(self):
        """Main monitoring loop running in background thread."""
        while not self.stop_event.is_set():
            try:
                self.run_sweep_once()
                if self.status == MonitoringStatus.ERROR:
                    self.status = MonitoringStatus.RUNNING
            except Exception as e:
                logger.error(f"Error in monitoring loop: {e}", exc_info=True)
                self.status = MonitoringStatus.ERROR

            self.stop_event.wait(self.interval)

    def get_status(self) -> Dict[str, Any]:
        with self._metrics_lock:
            metrics = self.metrics.to_dict()

        return {
            'status': self.status.value,
            'interval': self.interval,
            'max_workers': self.max_workers,
            'metrics': metrics,
        }
