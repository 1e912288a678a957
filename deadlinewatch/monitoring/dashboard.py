"""
Read-side rollup of risk state across monitored tasks.
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Any, List, Optional, Sequence

from ..models import RiskLevel, RiskSnapshot, TaskRiskAssessment, Alert


def calculate_distribution(assessments: Sequence[TaskRiskAssessment]) -> Dict[str, int]:
    distribution = {level.value: 0 for level in RiskLevel}
    for assessment in assessments:
        distribution[assessment.overall.level.value] += 1
    return distribution


def calculate_trend(snapshots: Sequence[RiskSnapshot]) -> str:
    """Compare the first and last snapshot of a window."""
    if len(snapshots) < 2:
        return 'stable'

    first, last = snapshots[0], snapshots[-1]
    critical_change = last.critical - first.critical
    high_change = last.high - first.high

    if critical_change > 0 or high_change > 2:
        return 'increasing'
    if critical_change < 0 and high_change < -1:
        return 'decreasing'
    return 'stable'


def generate_overall_recommendations(distribution: Dict[str, int]) -> List[Dict[str, str]]:
    recommendations = []

    critical_count = distribution.get('critical', 0)
    if critical_count > 0:
        recommendations.append({
            'type': 'urgent_action',
            'message': f"{critical_count} tasks have critical risk levels",
            'action': 'Immediate intervention required',
        })

    high_count = distribution.get('high', 0)
    if high_count > 3:
        recommendations.append({
            'type': 'resource_review',
            'message': f"{high_count} tasks have high risk levels",
            'action': 'Review resource allocation and priorities',
        })

    return recommendations


class RiskDashboardAggregator:
    """Keeps per-sweep risk snapshots and builds dashboard views from them."""

    def __init__(self, retention_days: int = 30, clock: Callable[[], datetime] = datetime.now):
        self.retention_days = retention_days
        self.clock = clock
        self.snapshots: List[RiskSnapshot] = []
        self._lock = threading.Lock()

    def record_snapshot(self, assessments: Sequence[TaskRiskAssessment]) -> RiskSnapshot:
        now = self.clock()
        distribution = calculate_distribution(assessments)
        snapshot = RiskSnapshot(timestamp=now, **distribution)

        cutoff = now - timedelta(days=self.retention_days)
        with self._lock:
            self.snapshots.append(snapshot)
            self.snapshots = [s for s in self.snapshots if s.timestamp > cutoff]

        return snapshot

    def get_trends(self) -> Dict[str, str]:
        now = self.clock()
        with self._lock:
            snapshots = list(self.snapshots)

        last_24h = [s for s in snapshots if s.timestamp > now - timedelta(hours=24)]
        last_7d = [s for s in snapshots if s.timestamp > now - timedelta(days=7)]

        return {
            'last24h': calculate_trend(last_24h),
            'last7d': calculate_trend(last_7d),
            'overall': calculate_trend(snapshots),
        }

    def get_dashboard(
        self,
        assessments: Sequence[TaskRiskAssessment],
        alerts: Optional[Sequence[Alert]] = None,
        alert_limit: int = 10,
    ) -> Dict[str, Any]:
        """Summarise the latest assessments of the last 24 hours.

        Args:
            assessments: Latest assessment per task
            alerts: Raised alerts, in any order
            alert_limit: Number of most recent alerts to include

        Returns:
            Dashboard dictionary with counts, distribution, recent alerts,
            trends and recommendations
        """
        cutoff = self.clock() - timedelta(hours=24)
        recent = [a for a in assessments if a.timestamp > cutoff]
        distribution = calculate_distribution(recent)

        recent_alerts = sorted(alerts or [], key=lambda a: a.timestamp, reverse=True)[:alert_limit]

        return {
            'total_tasks': len(recent),
            'critical_tasks': distribution['critical'],
            'high_risk_tasks': distribution['high'],
            'risk_distribution': distribution,
            'recent_alerts': [a.to_dict() for a in recent_alerts],
            'trends': self.get_trends(),
            'recommendations': generate_overall_recommendations(distribution),
        }
