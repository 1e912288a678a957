"""
Tests for risk alert generation and delivery.
"""

import io
import json
import threading
from types import SimpleNamespace
from unittest.mock import Mock, patch

import pytest
import requests
from rich.console import Console

from deadlinewatch.models import (
    Alert, RiskLevel, RiskComponent, OverallRisk, TaskRiskAssessment,
)
from deadlinewatch.monitoring.alert_system import (
    AlertManager,
    AlertConfig,
    AlertChannel,
    LogChannel,
    FileChannel,
    WebhookChannel,
    ConsoleChannel,
    OVERALL,
    describe_alert,
    recommendations_for,
)


def make_assessment(clock, task_id='T1', **levels):
    """Assessment with the given axis -> (level, score) components."""
    components = {}
    for axis, (level, score) in levels.items():
        components[axis] = RiskComponent(axis=axis, level=level, score=score, factors={f"{axis}_factor"})
    return TaskRiskAssessment(
        task_id=task_id,
        timestamp=clock(),
        components=components,
        overall=OverallRisk.from_components(components),
    )


def critical_dependency(clock, task_id='T1'):
    return make_assessment(
        clock, task_id,
        dependency=(RiskLevel.CRITICAL, 1.0),
        deadline=(RiskLevel.CRITICAL, 1.0),
        resource=(RiskLevel.HIGH, 0.7),
    )


def make_alert(clock, level=RiskLevel.HIGH):
    return Alert(
        alert_id='a1', task_id='T1', type='deadline', level=level, score=0.7,
        timestamp=clock(), message='Deadline risk is high',
    )


class TestAlertRaising:
    """Test which alerts an assessment raises."""

    def setup_method(self):
        self.config = AlertConfig(enabled_channels=[])

    def test_overall_and_component_alerts(self, clock):
        manager = AlertManager(self.config, clock=clock)

        alerts = manager.process_assessment(critical_dependency(clock))

        types = [a.type for a in alerts]
        assert types[0] == OVERALL
        assert set(types) == {OVERALL, 'dependency', 'deadline', 'resource'}
        assert alerts[0].level == RiskLevel.CRITICAL

        dependency = next(a for a in alerts if a.type == 'dependency')
        assert dependency.recommendations[0].action == 'Resolve blocking dependencies immediately'
        assert dependency.recommendations[0].priority == 'critical'
        assert dependency.factors == ['dependency_factor']

    def test_low_risk_raises_nothing(self, clock):
        manager = AlertManager(self.config, clock=clock)
        assessment = make_assessment(clock, deadline=(RiskLevel.LOW, 0.1), resource=(RiskLevel.MEDIUM, 0.5))

        assert manager.process_assessment(assessment) == []

    def test_threshold_opens_component_alert(self, clock):
        """Test a configured threshold alerts on medium scores too."""
        config = AlertConfig(enabled_channels=[], thresholds={'resource': 0.5})
        manager = AlertManager(config, clock=clock)
        assessment = make_assessment(clock, deadline=(RiskLevel.LOW, 0.0), resource=(RiskLevel.MEDIUM, 0.5))

        alerts = manager.process_assessment(assessment)

        assert [a.type for a in alerts] == ['resource']

    def test_zero_score_never_crosses_threshold(self, clock):
        config = AlertConfig(enabled_channels=[], thresholds={'deadline': 0.0})
        manager = AlertManager(config, clock=clock)

        assert manager.process_assessment(make_assessment(clock, deadline=(RiskLevel.LOW, 0.0))) == []

    def test_cooldown_suppresses_repeats(self, clock):
        manager = AlertManager(AlertConfig(enabled_channels=[], cooldown=300), clock=clock)

        for _ in range(5):
            manager.process_assessment(make_assessment(clock, dependency=(RiskLevel.CRITICAL, 1.0)))
            clock.advance(seconds=10)

        dependency_alerts = [a for a in manager.alert_history if a.type == 'dependency']
        assert len(dependency_alerts) == 1

        clock.advance(seconds=301)
        alerts = manager.process_assessment(make_assessment(clock, dependency=(RiskLevel.CRITICAL, 1.0)))
        assert 'dependency' in [a.type for a in alerts]

    def test_cooldown_is_per_task_and_type(self, clock):
        manager = AlertManager(self.config, clock=clock)

        first = manager.process_assessment(make_assessment(clock, 'T1', deadline=(RiskLevel.HIGH, 0.7), external=(RiskLevel.LOW, 0.0)))
        second = manager.process_assessment(make_assessment(clock, 'T2', deadline=(RiskLevel.HIGH, 0.7), external=(RiskLevel.LOW, 0.0)))
        third = manager.process_assessment(make_assessment(clock, 'T1', resource=(RiskLevel.HIGH, 0.7), external=(RiskLevel.LOW, 0.0)))

        assert [a.type for a in first] == ['deadline']
        assert [a.type for a in second] == ['deadline']
        assert [a.type for a in third] == ['resource']

    def test_concurrent_processing_raises_once(self, clock):
        """Test parallel sweeps cannot both raise the same alert."""
        manager = AlertManager(self.config, clock=clock)
        assessments = [critical_dependency(clock, task_id=f"T{n}") for n in range(10)]
        barrier = threading.Barrier(20)

        def worker(assessment):
            barrier.wait()
            manager.process_assessment(assessment)

        threads = [threading.Thread(target=worker, args=(a,)) for a in assessments * 2]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        for n in range(10):
            task_alerts = [a for a in manager.alert_history if a.task_id == f"T{n}" and a.type == 'dependency']
            assert len(task_alerts) == 1


class TestMessages:
    """Test alert message and recommendation content."""

    def test_overall_message_lists_critical_and_high_axes(self, clock):
        message = AlertManager.generate_overall_message(critical_dependency(clock))

        assert message.startswith("Task has critical risk level (score: 0.90)")
        assert "Critical risks: dependency, deadline" in message
        assert "High risks: resource" in message

    def test_component_message(self):
        component = RiskComponent(axis='deadline', level=RiskLevel.HIGH, score=0.7,
                                  factors={'tight_schedule', 'slow_progress'})

        message = AlertManager.generate_component_message(component)

        assert message == "Deadline risk is high (score: 0.70). Factors: slow_progress, tight_schedule"

    def test_overall_recommendations_cover_alerting_axes(self, clock):
        recommendations = AlertManager.generate_overall_recommendations(critical_dependency(clock))
        actions = [r.action for r in recommendations]

        assert 'Resolve blocking dependencies immediately' in actions
        assert 'Request deadline extension or additional resources' in actions
        assert 'Redistribute workload or add team members' in actions

    def test_catalogue_copies_are_independent(self):
        first = recommendations_for('complexity')
        first[0].action = 'changed'

        assert len(recommendations_for('complexity')) == 2
        assert recommendations_for('complexity')[0].action != 'changed'
        assert recommendations_for('unknown') == []


class TestChannels:
    """Test alert channels."""

    @patch('deadlinewatch.monitoring.alert_system.logger')
    def test_log_channel_levels(self, mock_logger, clock):
        channel = LogChannel()

        channel.send(make_alert(clock, RiskLevel.CRITICAL))
        channel.send(make_alert(clock, RiskLevel.HIGH))
        channel.send(make_alert(clock, RiskLevel.MEDIUM))

        mock_logger.critical.assert_called_once()
        mock_logger.error.assert_called_once()
        mock_logger.warning.assert_called_once()
        assert '[CRITICAL] deadline risk on task T1' in mock_logger.critical.call_args[0][0]

    def test_file_channel_appends_json_lines(self, tmp_path, clock):
        alert_file = tmp_path / 'alerts' / 'alerts.jsonl'
        channel = FileChannel(alert_file)

        channel.send(make_alert(clock))
        channel.send(make_alert(clock, RiskLevel.CRITICAL))

        lines = alert_file.read_text().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])['level'] == 'critical'

    @patch('requests.post')
    def test_webhook_channel_posts_alert_event(self, mock_post, clock):
        mock_post.return_value = Mock(status_code=200)
        channel = WebhookChannel({
            'webhook_url': 'https://hooks.example.com/risk',
            'headers': {'Authorization': 'Bearer token'},
        })
        alert = make_alert(clock)

        channel.send(alert)

        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        assert args[0] == 'https://hooks.example.com/risk'
        assert kwargs['json']['event'] == 'deadlinewatch.risk_alert'
        assert kwargs['json']['alert']['task_id'] == 'T1'
        assert kwargs['json']['summary'].startswith('[HIGH] deadline risk on task T1')
        assert kwargs['headers']['Authorization'] == 'Bearer token'
        assert kwargs['headers']['X-Deadlinewatch-Severity'] == 'high'
        assert kwargs['headers']['Idempotency-Key'] == alert.alert_id
        assert kwargs['timeout'] == 10

    @patch('deadlinewatch.monitoring.alert_system.logger')
    @patch('requests.post')
    def test_webhook_failure_is_logged(self, mock_post, mock_logger, clock):
        mock_post.side_effect = requests.ConnectionError("unreachable")
        channel = WebhookChannel({'webhook_url': 'https://hooks.example.com/risk'})

        channel.send(make_alert(clock))

        mock_logger.error.assert_called_once()
        assert 'a1' in mock_logger.error.call_args[0][0]

    @patch('requests.post')
    def test_webhook_without_url_does_not_post(self, mock_post, clock):
        WebhookChannel({}).send(make_alert(clock))

        mock_post.assert_not_called()

    def test_log_line_lists_factors_and_first_action(self, clock):
        alert = make_alert(clock)
        alert.factors = ['urgent_deadline']
        alert.recommendations = recommendations_for('deadline')

        summary = describe_alert(alert)

        assert 'factors: urgent_deadline' in summary
        assert summary.endswith('next: Request deadline extension or additional resources')

    def test_console_channel_renders_panel(self, clock):
        output = io.StringIO()
        channel = ConsoleChannel(Console(file=output, width=120))
        alert = make_alert(clock, RiskLevel.CRITICAL)
        alert.recommendations = recommendations_for('deadline')

        channel.send(alert)

        rendered = output.getvalue()
        assert 'CRITICAL: deadline risk on T1' in rendered
        assert 'Request deadline extension or additional resources' in rendered

    def test_manager_writes_to_configured_file(self, tmp_path, clock):
        alert_file = tmp_path / 'alerts.jsonl'
        config = AlertConfig(enabled_channels=[AlertChannel.FILE], alert_file=alert_file)
        manager = AlertManager(config, clock=clock)

        manager.process_assessment(make_assessment(clock, deadline=(RiskLevel.HIGH, 0.7), external=(RiskLevel.LOW, 0.0)))

        assert len(alert_file.read_text().splitlines()) == 1

    def test_channel_failure_does_not_stop_delivery(self, clock):
        manager = AlertManager(AlertConfig(enabled_channels=[]), clock=clock)
        broken = Mock()
        broken.send.side_effect = RuntimeError("disk full")
        working = Mock()
        manager.channels = {AlertChannel.FILE: broken, AlertChannel.LOG: working}

        alerts = manager.process_assessment(make_assessment(clock, deadline=(RiskLevel.HIGH, 0.7), external=(RiskLevel.LOW, 0.0)))

        assert len(alerts) == 1
        working.send.assert_called_once_with(alerts[0])


class TestHandlersAndSummary:
    """Test handlers, history and summaries."""

    def test_handlers_by_type_and_wildcard(self, clock):
        manager = AlertManager(AlertConfig(enabled_channels=[]), clock=clock)
        dependency_handler = Mock()
        any_handler = Mock()
        manager.register_handler('dependency', dependency_handler)
        manager.register_handler('*', any_handler)

        alerts = manager.process_assessment(critical_dependency(clock))

        assert dependency_handler.call_count == 1
        assert any_handler.call_count == len(alerts)

    def test_failing_handler_is_isolated(self, clock):
        manager = AlertManager(AlertConfig(enabled_channels=[]), clock=clock)
        manager.register_handler('*', Mock(side_effect=RuntimeError("bad handler")))

        alerts = manager.process_assessment(make_assessment(clock, deadline=(RiskLevel.HIGH, 0.7), external=(RiskLevel.LOW, 0.0)))

        assert len(alerts) == 1

    def test_recent_alerts_newest_first(self, clock):
        manager = AlertManager(AlertConfig(enabled_channels=[]), clock=clock)
        manager.process_assessment(make_assessment(clock, 'T1', deadline=(RiskLevel.HIGH, 0.7), external=(RiskLevel.LOW, 0.0)))
        clock.advance(minutes=1)
        manager.process_assessment(make_assessment(clock, 'T2', deadline=(RiskLevel.HIGH, 0.7), external=(RiskLevel.LOW, 0.0)))

        recent = manager.get_recent_alerts(limit=1)

        assert [a.task_id for a in recent] == ['T2']

    def test_alert_summary(self, clock):
        manager = AlertManager(AlertConfig(enabled_channels=[]), clock=clock)
        manager.process_assessment(make_assessment(clock, 'OLD', deadline=(RiskLevel.HIGH, 0.7), external=(RiskLevel.LOW, 0.0)))
        clock.advance(hours=25)
        manager.process_assessment(critical_dependency(clock))

        summary = manager.get_alert_summary(hours=24)

        assert summary['total_alerts'] == 4
        assert summary["by_level"]["critical"] == 3
        assert summary["by_level"]["high"] == 1
        assert summary['by_type'][OVERALL] == 1
        assert summary['by_task'] == {'T1': 4}


class TestAlertConfig:
    """Test alert configuration."""

    def test_from_settings(self, tmp_path):
        alerts = SimpleNamespace(channels=['log', 'file', 'pager'], alert_file=str(tmp_path / 'a.jsonl'),
                                 webhook_url='https://hooks.example.com')
        monitoring = SimpleNamespace(alert_cooldown=120, risk_thresholds={'deadline': 0.6})

        config = AlertConfig.from_settings(alerts, monitoring)

        assert config.enabled_channels == [AlertChannel.LOG, AlertChannel.FILE]
        assert config.alert_file == tmp_path / 'a.jsonl'
        assert config.webhook_config == {'webhook_url': 'https://hooks.example.com'}
        assert config.cooldown == 120
        assert config.thresholds == {'deadline': 0.6}

    def test_file_channel_needs_a_path(self):
        manager = AlertManager(AlertConfig(enabled_channels=[AlertChannel.FILE, AlertChannel.LOG]))

        assert list(manager.channels) == [AlertChannel.LOG]
