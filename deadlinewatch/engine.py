"""
Deadline prediction and risk monitoring facade.
"""

import threading
import statistics
from datetime import datetime, timedelta
from typing import Callable, Dict, Any, Iterable, List, Optional, Tuple, Union

from .config import Config
from .datasource import BaseDataSource, StaticDataSource
from .features import FeatureExtractor, DEFAULT_WORKLOAD, WorkloadProvider
from .models import Task, DeveloperState, Prediction, RiskLevel
from .monitoring.alert_system import AlertManager, AlertConfig, recommendations_for
from .monitoring.dashboard import RiskDashboardAggregator
from .monitoring.monitor import RiskMonitor, SweepResult
from .monitoring.risk_engine import (
    RiskAssessmentEngine, default_monitoring_rules, build_dependency_graph, find_cyclic_tasks,
    calculate_skill_match, DEFAULT_WEEKLY_CAPACITY,
)
from .prediction import PredictionEngine, Strategy
from .profiles import ProfileStore
from .utils import logger, unique_in_order


RISK_CONFIDENCE_ADJUSTMENT = {
    RiskLevel.CRITICAL: 0.3,
    RiskLevel.HIGH: 0.5,
    RiskLevel.MEDIUM: 0.7,
    RiskLevel.LOW: 1.0,
}


def data_source_workload(data_source: BaseDataSource) -> WorkloadProvider:
    """Workload provider reading utilization from live developer state."""
    def provider(developer_id: Optional[str]) -> float:
        developer = data_source.get_developer(developer_id) if developer_id else None
        if developer is None:
            return DEFAULT_WORKLOAD
        return developer.current_workload / (developer.capacity or DEFAULT_WEEKLY_CAPACITY)
    return provider


class DeadlineEngine:
    """Entry point wiring profiles, prediction and risk monitoring together."""

    def __init__(
        self,
        data_source: Optional[BaseDataSource] = None,
        config: Optional[Config] = None,
        clock: Callable[[], datetime] = datetime.now,
        workload_provider: Optional[WorkloadProvider] = None,
        third_strategy: Optional[Strategy] = None,
    ):
        self.config = config or Config()
        self.data_source = data_source or StaticDataSource()
        self.clock = clock

        prediction = self.config.prediction
        monitoring = self.config.monitoring

        self.profile_store = ProfileStore(
            max_history_days=prediction.max_history_days,
            skill_increment=prediction.skill_increment,
            skill_cap=prediction.skill_cap,
            quality_history_limit=prediction.quality_history_limit,
            clock=clock,
        )
        self.prediction_engine = PredictionEngine(
            self.profile_store,
            feature_extractor=FeatureExtractor(workload_provider or data_source_workload(self.data_source)),
            third_strategy=third_strategy,
            working_hours_per_day=prediction.working_hours_per_day,
            confidence_threshold=prediction.confidence_threshold,
            clock=clock,
        )
        self.risk_engine = RiskAssessmentEngine(
            self.data_source,
            prediction_engine=self.prediction_engine,
            profile_store=self.profile_store,
            rules=default_monitoring_rules(monitoring.risk_thresholds, monitoring.check_intervals),
            clock=clock,
        )
        self.alert_manager = AlertManager(
            AlertConfig.from_settings(self.config.alerts, monitoring), clock=clock
        )
        self.dashboard = RiskDashboardAggregator(monitoring.snapshot_retention_days, clock=clock)
        self.monitor = RiskMonitor(
            self.risk_engine,
            self.alert_manager,
            self.dashboard,
            interval=monitoring.monitoring_interval,
            max_workers=monitoring.max_workers,
            clock=clock,
        )

        self.cache_expiry = timedelta(seconds=prediction.cache_expiry)
        self._cache: Dict[Tuple, Tuple[datetime, Prediction]] = {}
        self._cache_lock = threading.Lock()

    @classmethod
    def from_data_file(cls, data_file: Optional[str] = None, config: Optional[Config] = None) -> 'DeadlineEngine':
        """Build an engine from a data file, learning its ``history`` section."""
        data_source = StaticDataSource.from_file(data_file) if data_file else StaticDataSource()
        engine = cls(data_source=data_source, config=config)

        if isinstance(data_source, StaticDataSource) and data_source.history:
            engine.load_history(data_source.history)

        return engine

    def add_historical_data(self, record: Union[Task, Dict[str, Any]]) -> Task:
        """Learn from one task record."""
        return self.profile_store.ingest(record)

    def load_history(self, records: Iterable[Union[Task, Dict[str, Any]]]) -> int:
        count = 0
        for record in records:
            self.add_historical_data(record)
            count += 1
        logger.info(f"Loaded {count} historical records")
        return count

    def predict_deadline(
        self,
        task: Union[Task, Dict[str, Any]],
        developer_id: Optional[str] = None,
        method: Optional[str] = None,
        use_cache: bool = True,
        with_risk: bool = False,
    ) -> Prediction:
        """Predict a task's effort and deadline date.

        Args:
            task: Task or raw task record
            developer_id: Developer to predict for, defaults to the assignee
            method: Prediction method, defaults to the configured method
            use_cache: Reuse a recent prediction for the same request
            with_risk: Attach a live risk assessment and scale confidence by it

        Returns:
            Prediction
        """
        if not isinstance(task, Task):
            task = Task.from_dict(task)
        method = self.prediction_engine.resolve_method(method or self.config.prediction.default_method)
        developer_id = developer_id or task.developer_id

        key = (task.id, developer_id, method, with_risk)
        now = self.clock()

        if use_cache:
            with self._cache_lock:
                cached = self._cache.get(key)
            if cached is not None and now - cached[0] < self.cache_expiry:
                logger.debug(f"Prediction cache hit for task {task.id}")
                return cached[1]

        prediction = self.prediction_engine.predict(task, developer_id, method)

        if with_risk:
            self._attach_risk(prediction, task)

        with self._cache_lock:
            self._evict_expired(now)
            self._cache[key] = (now, prediction)

        return prediction

    def _attach_risk(self, prediction: Prediction, task: Task):
        tasks = [t for t in self.data_source.get_active_tasks() if t.id != task.id] + [task]
        cyclic_tasks = find_cyclic_tasks(build_dependency_graph(tasks))
        assessment = self.risk_engine.assess_task(task, cyclic_tasks=cyclic_tasks, record=False)

        prediction.live_risk = assessment
        self.prediction_engine.adjust_confidence(
            prediction, task, RISK_CONFIDENCE_ADJUSTMENT[assessment.overall.level]
        )

        risk_actions = [
            recommendation.action
            for axis, component in assessment.components.items()
            if component.level.is_alerting
            for recommendation in recommendations_for(axis)
        ]
        prediction.recommendations = unique_in_order(prediction.recommendations + risk_actions)

    def _evict_expired(self, now: datetime):
        expired = [key for key, (stamp, _) in self._cache.items() if now - stamp >= self.cache_expiry]
        for key in expired:
            del self._cache[key]

    def clear_cache(self):
        with self._cache_lock:
            self._cache.clear()

    def batch_predict_deadlines(
        self,
        tasks: List[Union[Task, Dict[str, Any]]],
        developers: List[Union[DeveloperState, Dict[str, Any]]],
        method: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Assign each task to its best-suited developer and predict it."""
        candidates = [d if isinstance(d, DeveloperState) else DeveloperState.from_dict(d) for d in developers]
        predictions = []
        errors = []

        for record in tasks:
            task_id = record.get('id') if isinstance(record, dict) else getattr(record, 'id', None)
            try:
                task = record if isinstance(record, Task) else Task.from_dict(record)
                best = self.find_best_developer(task, candidates)
                if best is None:
                    errors.append({'task_id': task.id, 'error': 'No suitable developer found'})
                    continue

                prediction = self.predict_deadline(task, best.id, method)
                predictions.append({'task_id': task.id, 'developer_id': best.id, 'prediction': prediction})
            except ValueError as e:
                errors.append({'task_id': task_id, 'error': str(e)})

        total = len(tasks)
        return {
            'predictions': predictions,
            'errors': errors,
            'summary': {
                'total': total,
                'successful': len(predictions),
                'failed': len(errors),
                'success_rate': len(predictions) / total if total else 0.0,
            },
        }

    def find_best_developer(self, task: Task, developers: List[DeveloperState]) -> Optional[DeveloperState]:
        best_developer = None
        best_score = 0.0

        for developer in developers:
            score = self.calculate_developer_task_score(task, developer)
            if score > best_score:
                best_score = score
                best_developer = developer

        return best_developer

    @staticmethod
    def calculate_developer_task_score(task: Task, developer: DeveloperState) -> float:
        """Compatibility of a developer with a task, higher is better."""
        skill_match = calculate_skill_match(task.required_skills, developer.skills)
        experience_match = min(1.0, developer.experience_years / (task.complexity.normalized * 5 + 1))
        workload_score = 1 - developer.current_workload / (developer.capacity or DEFAULT_WEEKLY_CAPACITY)

        return (
            skill_match * 0.4
            + experience_match * 0.3
            + workload_score * 0.2
            + developer.availability * 0.1
        )

    def get_prediction_accuracy(self) -> Dict[str, Any]:
        """Agreement between estimates and actual hours of completed records."""
        completed = [
            r for r in self.profile_store.records
            if r.completed and r.actual_hours
        ]
        if not completed:
            return {'accuracy': 0.0, 'mae': 0.0, 'mape': 0.0, 'sample_size': 0}

        absolute_errors = []
        relative_errors = []
        for record in completed:
            estimate = record.predicted_hours or record.estimated_hours
            error = abs(record.actual_hours - estimate)
            absolute_errors.append(error)
            relative_errors.append(error / record.actual_hours)

        mean_relative = statistics.mean(relative_errors)
        return {
            'accuracy': max(0.0, 1 - mean_relative),
            'mae': statistics.mean(absolute_errors),
            'mape': mean_relative * 100,
            'sample_size': len(completed),
        }

    def get_analytics(self) -> Dict[str, Any]:
        return {
            'total_predictions': self.prediction_engine.total_predictions,
            'total_records': len(self.profile_store.records),
            'developer_count': self.profile_store.developer_count,
            'task_pattern_count': self.profile_store.pattern_count,
            'average_confidence': self.prediction_engine.get_average_confidence(),
            'prediction_accuracy': self.get_prediction_accuracy(),
            'model_performance': self.prediction_engine.get_method_performance(),
        }

    def get_risk_dashboard(self, alert_limit: int = 10) -> Dict[str, Any]:
        return self.dashboard.get_dashboard(
            self.risk_engine.get_latest(),
            self.alert_manager.get_recent_alerts(alert_limit),
            alert_limit=alert_limit,
        )

    def run_sweep_once(self) -> SweepResult:
        return self.monitor.run_sweep_once()

    def start_monitoring(self):
        self.monitor.start()

    def stop_monitoring(self):
        self.monitor.stop()
