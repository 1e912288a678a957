"""
Tests for data models, parsing helpers and the static data source.
"""

import json
from datetime import datetime, timezone

import pytest

from deadlinewatch.datasource import StaticDataSource
from deadlinewatch.models import (
    Task, Complexity, Priority, TaskType, RiskLevel, RiskComponent, MonitoringRule,
    DeveloperState, Alert,
)
from deadlinewatch.utils import parse_datetime, moving_average, merge_dicts, unique_in_order


class TestTaskParsing:
    """Test task records and ordinal parsing."""

    def test_complexity_forms(self):
        assert Complexity.parse('high') == Complexity.HIGH
        assert Complexity.parse(4) == Complexity.CRITICAL
        assert Complexity.parse('very_high') == Complexity.CRITICAL
        assert Complexity.parse(None) == Complexity.MEDIUM

        with pytest.raises(ValueError):
            Complexity.parse(7)
        with pytest.raises(ValueError):
            Complexity.parse(True)

    def test_priority_alias(self):
        assert Priority.parse('urgent') == Priority.CRITICAL

    def test_task_type(self):
        assert TaskType.parse('Bugfix') == TaskType.BUGFIX
        assert TaskType.BUGFIX.code == 4
        with pytest.raises(ValueError, match="Invalid task type"):
            TaskType.parse('meeting')

    def test_from_dict(self):
        task = Task.from_dict({
            'id': 42, 'title': 'Search', 'complexity': 'low', 'priority': 3,
            'estimated_hours': '5', 'required_skills': ['python', 'sql'],
            'dependencies': 'T1', 'deadline': '2026-11-02T17:00:00', 'type': 'testing',
        })

        assert task.id == '42'
        assert task.complexity == Complexity.LOW
        assert task.priority == Priority.HIGH
        assert task.estimated_hours == 5.0
        assert task.required_skills == {'python', 'sql'}
        assert task.dependencies == {'T1'}
        assert task.deadline == datetime(2026, 11, 2, 17, 0)
        assert task.task_type == TaskType.TESTING

    def test_invalid_progress(self):
        with pytest.raises(ValueError, match="progress"):
            Task(id='T1', title='Fix', progress=1.5)

    def test_non_mapping_record(self):
        with pytest.raises(ValueError, match="mapping"):
            Task.from_dict(['T1'])

    def test_to_dict(self):
        data = Task(id='T1', title='Fix', tags=['b', 'a']).to_dict()

        assert data['tags'] == ['a', 'b']
        assert data['complexity'] == 'medium'
        assert data['type'] == 'development'


class TestRiskModels:
    """Test risk levels and components."""

    def test_escalate_never_lowers(self):
        component = RiskComponent(axis='resource')
        component.escalate(RiskLevel.CRITICAL, 0.9, 'overloaded')
        component.escalate(RiskLevel.MEDIUM, 0.5, 'limited_team_capacity')

        assert component.level == RiskLevel.CRITICAL
        assert component.score == 0.9
        assert component.factors == {'overloaded', 'limited_team_capacity'}

    def test_override_forces_value(self):
        component = RiskComponent(axis='deadline', level=RiskLevel.CRITICAL, score=0.9)
        component.override(RiskLevel.CRITICAL, 1.0, 'urgent_deadline')

        assert component.score == 1.0

    def test_risk_level_parse(self):
        assert RiskLevel.parse('HIGH') == RiskLevel.HIGH
        assert RiskLevel.parse(None) == RiskLevel.LOW
        with pytest.raises(ValueError):
            RiskLevel.parse('severe')

    def test_monitoring_rule_due(self):
        rule = MonitoringRule(axis='deadline', name='Deadline', check_interval=60)
        now = datetime(2026, 10, 14, 10, 0)

        assert rule.is_due(now)
        rule.last_checked = now
        assert not rule.is_due(now.replace(second=59))
        assert rule.is_due(now.replace(minute=1))

    def test_alert_json_format(self):
        alert = Alert(alert_id='a1', task_id='T1', type='deadline', level=RiskLevel.HIGH,
                      score=0.7, timestamp=datetime(2026, 10, 14, 10, 0), message='late')

        assert json.loads(alert.format_message('json'))['level'] == 'high'
        assert alert.format_message('text').startswith('[HIGH] deadline risk on task T1')

    def test_developer_skill_records(self):
        developer = DeveloperState.from_dict({'id': 'alice', 'skills': [{'name': 'python'}, 'sql']})
        assert developer.skills == {'python', 'sql'}


class TestUtils:
    """Test helper functions."""

    def test_parse_datetime(self):
        assert parse_datetime(None) is None
        assert parse_datetime('2026-10-14T10:00:00') == datetime(2026, 10, 14, 10, 0)

        aware = parse_datetime('2026-10-14T10:00:00Z')
        assert aware.tzinfo is None
        assert aware == datetime(2026, 10, 14, 10, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)

        with pytest.raises(ValueError, match="Invalid timestamp"):
            parse_datetime('next tuesday')

    def test_moving_average(self):
        assert moving_average(0.0, 10.0, 1) == 10.0
        assert moving_average(10.0, 20.0, 2) == 15.0
        with pytest.raises(ValueError):
            moving_average(1.0, 1.0, 0)

    def test_merge_dicts(self):
        merged = merge_dicts({'a': {'x': 1, 'y': 2}, 'b': 1}, {'a': {'y': 3}})
        assert merged == {'a': {'x': 1, 'y': 3}, 'b': 1}

    def test_unique_in_order(self):
        assert unique_in_order(['b', 'a', 'b', 'c', 'a']) == ['b', 'a', 'c']


class TestStaticDataSource:
    """Test the file-backed data source."""

    def test_from_json_file(self, tmp_path):
        path = tmp_path / 'work.json'
        path.write_text(json.dumps({
            'tasks': [{'id': 'T1', 'title': 'A'}, {'id': 'T2', 'title': 'B', 'completed': True}],
            'projects': [{'id': 'P1', 'risk_level': 'high', 'team_capacity': 0.4}],
            'dependency_status': {'T3': 'blocked', 'T4': {'status': 'in_progress', 'risk_level': 'critical'}},
            'external_status': {'vendor': 'blocked'},
            'market_risk': 1.7,
        }))

        source = StaticDataSource.from_file(path)

        assert [t.id for t in source.get_active_tasks()] == ['T1']
        assert source.get_project('P1').risk_level == RiskLevel.HIGH
        assert source.assess_market_risk() == 1.0

        statuses = {s.id: s for s in source.check_dependency_status(['T2', 'T3', 'T4', 'T5'])}
        assert statuses['T2'].status == 'completed'
        assert statuses['T3'].is_blocked
        assert statuses['T4'].is_at_risk
        assert statuses['T5'].status == 'pending'

        externals = source.check_external_dependencies(['vendor', 'other'])
        assert [e.status for e in externals] == ['blocked', 'pending']

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / 'work.txt'
        path.write_text('tasks: []')

        with pytest.raises(ValueError, match="Unsupported"):
            StaticDataSource.from_file(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / 'work.yaml'
        path.write_text('- just\n- a list\n')

        with pytest.raises(ValueError, match="mapping"):
            StaticDataSource.from_file(path)
