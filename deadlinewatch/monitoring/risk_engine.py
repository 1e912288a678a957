"""
Per-task risk assessment along the deadline, complexity, resource,
dependency and external axes.
"""

import threading
from datetime import datetime
from typing import Callable, Dict, Any, Iterable, List, Optional, Set

import networkx as nx

from ..constants import RISK_AXES
from ..datasource import BaseDataSource
from ..models import (
    Task, DeveloperState, ProjectState, RiskLevel, RiskComponent, OverallRisk,
    TaskRiskAssessment, MonitoringRule,
)
from ..prediction import PredictionEngine
from ..profiles import ProfileStore
from ..utils import logger


DEFAULT_DAILY_CAPACITY = 8.0
DEFAULT_WEEKLY_CAPACITY = 40.0
MANY_DEPENDENCIES = 5

RULE_NAMES = {
    'deadline': 'Deadline Risk Monitoring',
    'complexity': 'Complexity Risk Monitoring',
    'resource': 'Resource Risk Monitoring',
    'dependency': 'Dependency Risk Monitoring',
    'external': 'External Risk Monitoring',
}


def default_monitoring_rules(
    thresholds: Optional[Dict[str, float]] = None,
    intervals: Optional[Dict[str, float]] = None,
) -> Dict[str, MonitoringRule]:
    """One enabled rule per risk axis."""
    thresholds = thresholds or {}
    intervals = intervals or {}

    return {
        axis: MonitoringRule(
            axis=axis,
            name=RULE_NAMES[axis],
            threshold=thresholds.get(axis, 0.5),
            check_interval=intervals.get(axis, 300.0),
        )
        for axis in RISK_AXES
    }


def build_dependency_graph(tasks: Iterable[Task]) -> nx.DiGraph:
    """Directed graph with an edge from every task to each of its dependencies."""
    graph = nx.DiGraph()
    for task in tasks:
        graph.add_node(task.id)
        for dependency in task.dependencies:
            graph.add_edge(task.id, dependency)
    return graph


def find_cyclic_tasks(graph: nx.DiGraph) -> Set[str]:
    """Ids of every task that can reach itself through dependency edges."""
    cyclic: Set[str] = set()

    for component in nx.strongly_connected_components(graph):
        if len(component) > 1:
            cyclic.update(component)

    cyclic.update(node for node, _ in nx.selfloop_edges(graph))
    return cyclic


def calculate_skill_match(required: Set[str], available: Set[str]) -> float:
    if not required:
        return 1.0
    return len(required & available) / len(required)


class RiskAssessmentEngine:
    """Scores tasks along independent risk axes and aggregates the result."""

    def __init__(
        self,
        data_source: BaseDataSource,
        prediction_engine: Optional[PredictionEngine] = None,
        profile_store: Optional[ProfileStore] = None,
        rules: Optional[Dict[str, MonitoringRule]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.data_source = data_source
        self.prediction_engine = prediction_engine
        self.profile_store = profile_store or (prediction_engine.profile_store if prediction_engine else None)
        self.rules = rules or default_monitoring_rules()
        self.clock = clock

        self.latest: Dict[str, TaskRiskAssessment] = {}
        self._latest_lock = threading.Lock()

    def due_axes(self, now: Optional[datetime] = None) -> Set[str]:
        """Axes whose rule is enabled and due, marking them checked."""
        now = now or self.clock()
        due = set()
        for axis, rule in self.rules.items():
            if rule.enabled and rule.is_due(now):
                rule.last_checked = now
                due.add(axis)
        return due

    def assess_task(
        self,
        task: Task,
        cyclic_tasks: Optional[Set[str]] = None,
        axes: Optional[Set[str]] = None,
        record: bool = True,
    ) -> TaskRiskAssessment:
        """Assess one task.

        Args:
            task: Active task
            cyclic_tasks: Ids of tasks known to sit in a dependency cycle;
                computed from the task alone when omitted
            axes: Axes to evaluate now; enabled axes outside this set reuse
                the task's previous component when one exists
            record: Store the result as the task's latest assessment

        Returns:
            TaskRiskAssessment
        """
        now = self.clock()
        if cyclic_tasks is None:
            cyclic_tasks = find_cyclic_tasks(build_dependency_graph([task]))
        if axes is None:
            axes = {axis for axis, rule in self.rules.items() if rule.enabled}

        developer = self.data_source.get_developer(task.developer_id) or DeveloperState(
            id=task.developer_id or 'unassigned'
        )
        project = self.data_source.get_project(task.project_id)

        with self._latest_lock:
            previous = self.latest.get(task.id)

        assessors = {
            'deadline': lambda: self.assess_deadline_risk(task, developer, now),
            'complexity': lambda: self.assess_complexity_risk(task, developer),
            'resource': lambda: self.assess_resource_risk(task, developer, project),
            'dependency': lambda: self.assess_dependency_risk(task, cyclic_tasks),
            'external': lambda: self.assess_external_risk(task, project),
        }

        components: Dict[str, RiskComponent] = {}
        for axis in RISK_AXES:
            rule = self.rules.get(axis)
            if rule is not None and not rule.enabled:
                continue
            if axis not in axes and previous is not None and axis in previous.components:
                components[axis] = previous.components[axis]
                continue
            components[axis] = assessors[axis]()

        assessment = TaskRiskAssessment(
            task_id=task.id,
            timestamp=now,
            components=components,
            overall=OverallRisk.from_components(components),
        )

        if record:
            with self._latest_lock:
                self.latest[task.id] = assessment

        logger.debug(
            f"Assessed task {task.id}: {assessment.overall.level.value} "
            f"(score={assessment.overall.score:.2f})"
        )
        return assessment

    def _predicted_hours(self, task: Task) -> float:
        if task.predicted_hours:
            return task.predicted_hours
        if self.prediction_engine is not None:
            try:
                return self.prediction_engine.predict(task, task.developer_id, record=False).estimated_hours
            except Exception as e:
                logger.warning(f"Prediction unavailable for task {task.id}: {e}")
        return task.estimated_hours

    def assess_deadline_risk(self, task: Task, developer: DeveloperState, now: datetime) -> RiskComponent:
        component = RiskComponent(axis='deadline')
        if task.deadline is None:
            return component

        days_remaining = (task.deadline - now).total_seconds() / 86400
        daily_capacity = developer.capacity or DEFAULT_DAILY_CAPACITY
        remaining_hours = self._predicted_hours(task) * (1 - task.progress)
        estimated_days = remaining_hours / daily_capacity
        risk_ratio = estimated_days / days_remaining if days_remaining > 0 else float('inf')

        if risk_ratio > 1.5:
            component.escalate(RiskLevel.CRITICAL, 0.9, 'insufficient_time')
        elif risk_ratio > 1.2:
            component.escalate(RiskLevel.HIGH, 0.7, 'tight_schedule')
        elif risk_ratio > 0.8:
            component.escalate(RiskLevel.MEDIUM, 0.5, 'moderate_risk')

        if days_remaining < 1:
            component.override(RiskLevel.CRITICAL, 1.0, 'urgent_deadline')

        if task.progress < 0.5 and days_remaining < 3:
            component.escalate(RiskLevel.HIGH, 0.8, 'slow_progress')

        component.details = {
            'time_remaining_days': days_remaining,
            'estimated_days': estimated_days,
            'risk_ratio': risk_ratio,
            'progress': task.progress,
        }
        return component

    def assess_complexity_risk(self, task: Task, developer: DeveloperState) -> RiskComponent:
        component = RiskComponent(axis='complexity')
        complexity = task.complexity.normalized
        skill_match = calculate_skill_match(task.required_skills, developer.skills)

        if complexity > 0.8 and skill_match < 0.5:
            component.escalate(RiskLevel.CRITICAL, 0.9, 'high_complexity_low_skills')
        elif complexity > 0.6 and skill_match < 0.7:
            component.escalate(RiskLevel.HIGH, 0.7, 'moderate_complexity_low_skills')
        elif complexity > 0.8:
            component.escalate(RiskLevel.MEDIUM, 0.5, 'high_complexity')

        if len(task.dependencies) > MANY_DEPENDENCIES:
            component.escalate(RiskLevel.HIGH, 0.6, 'many_dependencies')

        new_skills = self._unfamiliar_skills(task, developer)
        if new_skills:
            component.escalate(RiskLevel.MEDIUM, 0.4, 'new_technology')

        component.details = {
            'complexity': complexity,
            'skill_match': skill_match,
            'dependencies_count': len(task.dependencies),
            'new_skills': sorted(new_skills),
        }
        return component

    def _unfamiliar_skills(self, task: Task, developer: DeveloperState) -> Set[str]:
        known = set(developer.skills)
        if self.profile_store is not None:
            profile = self.profile_store.get_developer(developer.id)
            if profile is not None:
                known.update(profile.skill_levels)
        return task.required_skills - known

    def assess_resource_risk(
        self,
        task: Task,
        developer: DeveloperState,
        project: Optional[ProjectState],
    ) -> RiskComponent:
        component = RiskComponent(axis='resource')
        capacity = developer.capacity or DEFAULT_WEEKLY_CAPACITY
        utilization = developer.current_workload / capacity
        availability = developer.availability

        if utilization > 0.9:
            component.escalate(RiskLevel.CRITICAL, 0.9, 'overloaded')
        elif utilization > 0.7:
            component.escalate(RiskLevel.HIGH, 0.6, 'high_workload')

        if availability < 0.3:
            component.override(RiskLevel.CRITICAL, 1.0, 'very_low_availability')
        elif availability < 0.5:
            component.escalate(RiskLevel.HIGH, 0.7, 'low_availability')

        team_capacity = project.team_capacity if project else 1.0
        if team_capacity < 0.5:
            component.escalate(RiskLevel.MEDIUM, 0.5, 'limited_team_capacity')

        component.details = {
            'utilization': utilization,
            'availability': availability,
            'team_capacity': team_capacity,
        }
        return component

    def assess_dependency_risk(self, task: Task, cyclic_tasks: Set[str]) -> RiskComponent:
        component = RiskComponent(axis='dependency')
        if not task.dependencies and task.id not in cyclic_tasks:
            return component

        statuses = self.data_source.check_dependency_status(sorted(task.dependencies))
        blocked = [s.id for s in statuses if s.is_blocked]
        at_risk = [s.id for s in statuses if s.is_at_risk]

        if blocked:
            component.escalate(RiskLevel.CRITICAL, 0.9, 'blocked_dependencies')
        elif at_risk:
            component.escalate(RiskLevel.HIGH, 0.7, 'at_risk_dependencies')

        circular = task.id in cyclic_tasks
        if circular:
            component.override(RiskLevel.CRITICAL, 1.0, 'circular_dependencies')

        component.details = {
            'total_dependencies': len(task.dependencies),
            'blocked_dependencies': blocked,
            'at_risk_dependencies': at_risk,
            'circular': circular,
        }
        return component

    def assess_external_risk(self, task: Task, project: Optional[ProjectState]) -> RiskComponent:
        component = RiskComponent(axis='external')
        blocked: List[str] = []

        if task.external_dependencies:
            statuses = self.data_source.check_external_dependencies(sorted(task.external_dependencies))
            blocked = [s.ref for s in statuses if s.status == 'blocked']
            if blocked:
                component.escalate(RiskLevel.HIGH, 0.8, 'blocked_external_dependencies')

        if project is not None and project.risk_level.is_alerting:
            component.escalate(RiskLevel.MEDIUM, 0.5, 'high_risk_project')

        market_risk = self.data_source.assess_market_risk()
        if market_risk > 0.7:
            component.escalate(RiskLevel.MEDIUM, 0.4, 'market_volatility')

        component.details = {
            'external_dependencies': len(task.external_dependencies),
            'blocked_external': blocked,
            'project_risk_level': project.risk_level.value if project else RiskLevel.LOW.value,
            'market_risk': market_risk,
        }
        return component

    def get_latest(self) -> List[TaskRiskAssessment]:
        with self._latest_lock:
            return list(self.latest.values())

    def forget(self, task_ids: Iterable[str]):
        """Drop stored assessments for tasks that are no longer active."""
        with self._latest_lock:
            for task_id in task_ids:
                self.latest.pop(task_id, None)
