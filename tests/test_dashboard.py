"""
Tests for the risk dashboard aggregator.
"""

from datetime import timedelta

from deadlinewatch.models import (
    Alert, OverallRisk, RiskLevel, RiskSnapshot, TaskRiskAssessment,
)
from deadlinewatch.monitoring.dashboard import (
    RiskDashboardAggregator,
    calculate_distribution,
    calculate_trend,
    generate_overall_recommendations,
)


def assessment(clock, task_id, level, timestamp=None):
    scores = {RiskLevel.LOW: 0.1, RiskLevel.MEDIUM: 0.5, RiskLevel.HIGH: 0.7, RiskLevel.CRITICAL: 0.9}
    return TaskRiskAssessment(
        task_id=task_id,
        timestamp=timestamp or clock(),
        components={},
        overall=OverallRisk(level=level, score=scores[level]),
    )


def snapshot(clock, critical=0, high=0):
    return RiskSnapshot(timestamp=clock(), critical=critical, high=high)


class TestTrendHelpers:
    """Test distribution and trend helpers."""

    def test_distribution_counts_every_level(self, clock):
        assessments = [
            assessment(clock, 'T1', RiskLevel.CRITICAL),
            assessment(clock, 'T2', RiskLevel.HIGH),
            assessment(clock, 'T3', RiskLevel.HIGH),
        ]

        assert calculate_distribution(assessments) == {'low': 0, 'medium': 0, 'high': 2, 'critical': 1}

    def test_trend_needs_two_snapshots(self, clock):
        assert calculate_trend([]) == 'stable'
        assert calculate_trend([snapshot(clock, critical=5)]) == 'stable'

    def test_increasing_on_new_critical(self, clock):
        assert calculate_trend([snapshot(clock), snapshot(clock, critical=1)]) == 'increasing'

    def test_increasing_on_many_new_high(self, clock):
        assert calculate_trend([snapshot(clock), snapshot(clock, high=3)]) == 'increasing'
        assert calculate_trend([snapshot(clock), snapshot(clock, high=2)]) == 'stable'

    def test_decreasing_needs_both_to_drop(self, clock):
        assert calculate_trend([snapshot(clock, critical=2, high=4), snapshot(clock, critical=1, high=2)]) == 'decreasing'
        assert calculate_trend([snapshot(clock, critical=2, high=4), snapshot(clock, critical=1, high=3)]) == 'stable'

    def test_recommendations(self):
        assert generate_overall_recommendations({'critical': 0, 'high': 3}) == []

        recommendations = generate_overall_recommendations({'critical': 2, 'high': 4})
        assert [r['type'] for r in recommendations] == ['urgent_action', 'resource_review']
        assert recommendations[0]['message'] == '2 tasks have critical risk levels'


class TestRiskDashboardAggregator:
    """Test snapshot retention and dashboard views."""

    def test_snapshots_are_pruned_past_retention(self, clock):
        aggregator = RiskDashboardAggregator(retention_days=30, clock=clock)
        aggregator.record_snapshot([assessment(clock, 'T1', RiskLevel.HIGH)])

        clock.advance(days=31)
        aggregator.record_snapshot([])

        assert len(aggregator.snapshots) == 1
        assert aggregator.snapshots[0].high == 0

    def test_trend_windows(self, clock):
        aggregator = RiskDashboardAggregator(clock=clock)
        aggregator.record_snapshot([])
        clock.advance(days=3)
        aggregator.record_snapshot([])
        clock.advance(hours=1)
        aggregator.record_snapshot([assessment(clock, 'T1', RiskLevel.CRITICAL)])

        trends = aggregator.get_trends()

        assert trends == {'last24h': 'increasing', 'last7d': 'increasing', 'overall': 'increasing'}

        clock.advance(hours=2)
        aggregator.record_snapshot([assessment(clock, 'T1', RiskLevel.CRITICAL)])
        clock.advance(days=2)
        aggregator.record_snapshot([assessment(clock, 'T1', RiskLevel.CRITICAL)])
        assert aggregator.get_trends()['last24h'] == 'stable'

    def test_dashboard_counts_recent_assessments(self, clock):
        aggregator = RiskDashboardAggregator(clock=clock)
        assessments = [
            assessment(clock, 'T1', RiskLevel.CRITICAL),
            assessment(clock, 'T2', RiskLevel.HIGH),
            assessment(clock, 'T3', RiskLevel.LOW, timestamp=clock() - timedelta(hours=30)),
        ]

        dashboard = aggregator.get_dashboard(assessments)

        assert dashboard['total_tasks'] == 2
        assert dashboard['critical_tasks'] == 1
        assert dashboard['high_risk_tasks'] == 1
        assert dashboard['risk_distribution']['low'] == 0
        assert dashboard['recommendations'][0]['type'] == 'urgent_action'
        assert set(dashboard['trends']) == {'last24h', 'last7d', 'overall'}

    def test_dashboard_recent_alerts(self, clock):
        aggregator = RiskDashboardAggregator(clock=clock)
        alerts = []
        for n in range(12):
            alerts.append(Alert(
                alert_id=f"a{n}", task_id=f"T{n}", type='deadline', level=RiskLevel.HIGH,
                score=0.7, timestamp=clock() + timedelta(minutes=n), message='late',
            ))

        dashboard = aggregator.get_dashboard([], alerts, alert_limit=3)

        assert [a['alert_id'] for a in dashboard['recent_alerts']] == ['a11', 'a10', 'a9']
