"""
Risk alert generation and delivery for Deadlinewatch.
"""

import json
import uuid
import threading
from pathlib import Path
from typing import Dict, Any, List, Optional, Callable, Tuple
from datetime import datetime, timedelta
from dataclasses import dataclass, field
from enum import Enum

import requests
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from ..models import Alert, Recommendation, RiskLevel, RiskComponent, TaskRiskAssessment
from ..utils import logger


OVERALL = 'overall'


class AlertChannel(Enum):
    """Alert delivery channels."""
    LOG = "log"
    FILE = "file"
    WEBHOOK = "webhook"
    CONSOLE = "console"


@dataclass
class AlertConfig:
    """Configuration for the alert manager."""
    enabled_channels: List[AlertChannel] = field(default_factory=lambda: [AlertChannel.LOG])
    alert_file: Optional[Path] = None
    webhook_config: Optional[Dict[str, Any]] = None
    cooldown: float = 300.0
    thresholds: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, alerts, monitoring) -> 'AlertConfig':
        """Build from the pydantic alert and monitoring settings."""
        channels = []
        for name in alerts.channels:
            try:
                channels.append(AlertChannel(name))
            except ValueError:
                logger.warning(f"Unknown alert channel ignored: {name}")

        return cls(
            enabled_channels=channels,
            alert_file=Path(alerts.alert_file) if alerts.alert_file else None,
            webhook_config={'webhook_url': alerts.webhook_url} if alerts.webhook_url else None,
            cooldown=monitoring.alert_cooldown,
            thresholds=dict(monitoring.risk_thresholds),
        )


RECOMMENDATION_CATALOGUE: Dict[str, List[Recommendation]] = {
    'deadline': [
        Recommendation('Request deadline extension or additional resources', 'high', 'Ensure successful completion'),
    ],
    'complexity': [
        Recommendation('Break down task into smaller, manageable parts', 'high', 'Reduce complexity and risk'),
        Recommendation('Provide additional training or pair programming', 'medium', 'Improve skill match'),
    ],
    'resource': [
        Recommendation('Redistribute workload or add team members', 'high', 'Ensure adequate resources'),
    ],
    'dependency': [
        Recommendation('Resolve blocking dependencies immediately', 'critical', 'Unblock task progress'),
    ],
    'external': [
        Recommendation('Escalate blocked external dependencies with their owners', 'high', 'Reduce exposure to outside delays'),
    ],
}


def recommendations_for(axis: str) -> List[Recommendation]:
    return [Recommendation(r.action, r.priority, r.impact) for r in RECOMMENDATION_CATALOGUE.get(axis, [])]


class BaseAlertChannel:
    """Base class for alert channels."""

    def send(self, alert: Alert):
        """Send alert through channel."""
        raise NotImplementedError


def describe_alert(alert: Alert) -> str:
    """One-line summary: level, axis, task, contributing factors and first action."""
    summary = f"[{alert.level.value.upper()}] {alert.type} risk on task {alert.task_id} (score {alert.score:.2f})"
    if alert.factors:
        summary += f" factors: {', '.join(alert.factors)}"
    if alert.recommendations:
        summary += f"; next: {alert.recommendations[0].action}"
    return summary


class LogChannel(BaseAlertChannel):
    """Writes alerts to the deadlinewatch logger at a level matching the risk."""

    LOG_METHODS = {
        RiskLevel.CRITICAL: 'critical',
        RiskLevel.HIGH: 'error',
        RiskLevel.MEDIUM: 'warning',
        RiskLevel.LOW: 'info',
    }

    def send(self, alert: Alert):
        log = getattr(logger, self.LOG_METHODS[alert.level])
        log(describe_alert(alert))


class FileChannel(BaseAlertChannel):
    """Appends alerts to a JSON-lines file."""

    def __init__(self, alert_file: Path):
        self.alert_file = Path(alert_file)
        self.alert_file.parent.mkdir(parents=True, exist_ok=True)

    def send(self, alert: Alert):
        with open(self.alert_file, 'a') as f:
            f.write(json.dumps(alert.to_dict()) + '\n')


class WebhookChannel(BaseAlertChannel):
    """Posts alerts as a JSON event to an HTTP endpoint.

    The alert id doubles as an idempotency key so receivers can drop
    redelivered events.
    """

    EVENT = 'deadlinewatch.risk_alert'

    def __init__(self, config: Dict[str, Any]):
        self.webhook_url = config.get('webhook_url')
        self.headers = dict(config.get('headers', {}))
        self.timeout = config.get('timeout', 10)

    def build_payload(self, alert: Alert) -> Dict[str, Any]:
        return {
            'event': self.EVENT,
            'summary': describe_alert(alert),
            'alert': alert.to_dict(),
        }

    def build_headers(self, alert: Alert) -> Dict[str, str]:
        return {
            **self.headers,
            'X-Deadlinewatch-Event': self.EVENT,
            'X-Deadlinewatch-Severity': alert.level.value,
            'Idempotency-Key': alert.alert_id,
        }

    def send(self, alert: Alert):
        if not self.webhook_url:
            logger.warning(f"Alert {alert.alert_id} not posted: no webhook URL configured")
            return

        try:
            response = requests.post(
                self.webhook_url,
                json=self.build_payload(alert),
                headers=self.build_headers(alert),
                timeout=self.timeout,
            )
            response.raise_for_status()
            logger.debug(f"Posted {alert.type} alert for task {alert.task_id} to webhook")
        except requests.RequestException as e:
            logger.error(f"Webhook delivery of alert {alert.alert_id} failed: {e}")


class ConsoleChannel(BaseAlertChannel):
    """Prints each alert as a rich panel with its factors and actions."""

    BORDER_STYLES = {
        RiskLevel.LOW: 'blue',
        RiskLevel.MEDIUM: 'yellow',
        RiskLevel.HIGH: 'red',
        RiskLevel.CRITICAL: 'bold red',
    }

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def send(self, alert: Alert):
        lines = [alert.message]
        if alert.factors:
            lines.append(f"Factors: {', '.join(alert.factors)}")
        for recommendation in alert.recommendations:
            lines.append(f"- [{recommendation.priority}] {recommendation.action}")

        self.console.print(Panel(
            Text('\n'.join(lines)),
            title=f"{alert.level.value.upper()}: {alert.type} risk on {alert.task_id}",
            subtitle=alert.timestamp.strftime('%Y-%m-%d %H:%M:%S'),
            border_style=self.BORDER_STYLES[alert.level],
        ))


class AlertManager:
    """Raises de-duplicated risk alerts from task assessments.

    For every (task id, alert type) pair at most one alert is raised per
    cooldown window. The check-and-set on the cooldown table is atomic, so
    concurrent sweeps cannot both raise the same alert.
    """

    def __init__(self, config: Optional[AlertConfig] = None, clock: Callable[[], datetime] = datetime.now):
        self.config = config or AlertConfig()
        self.clock = clock
        self.channels: Dict[AlertChannel, BaseAlertChannel] = {}
        self.alert_history: List[Alert] = []
        self.last_raised: Dict[Tuple[str, str], datetime] = {}
        self.handlers: Dict[str, List[Callable]] = {}

        self._cooldown_lock = threading.Lock()
        self._history_lock = threading.Lock()

        self._initialize_channels()

    def _initialize_channels(self):
        """Initialize alert channels based on configuration."""
        for channel_type in self.config.enabled_channels:
            if channel_type == AlertChannel.LOG:
                self.channels[channel_type] = LogChannel()
            elif channel_type == AlertChannel.FILE:
                if self.config.alert_file:
                    self.channels[channel_type] = FileChannel(self.config.alert_file)
            elif channel_type == AlertChannel.WEBHOOK:
                if self.config.webhook_config:
                    self.channels[channel_type] = WebhookChannel(self.config.webhook_config)
            elif channel_type == AlertChannel.CONSOLE:
                self.channels[channel_type] = ConsoleChannel()

    def process_assessment(self, assessment: TaskRiskAssessment) -> List[Alert]:
        """Raise the overall and per-axis alerts an assessment calls for."""
        raised = []

        if assessment.overall.level.is_alerting:
            alert = self._try_raise(
                assessment.task_id,
                OVERALL,
                assessment.overall.level,
                assessment.overall.score,
                self.generate_overall_message(assessment),
                self.generate_overall_recommendations(assessment),
                [],
            )
            if alert:
                raised.append(alert)

        for axis, component in assessment.components.items():
            if not self._component_alerting(axis, component):
                continue
            alert = self._try_raise(
                assessment.task_id,
                axis,
                component.level,
                component.score,
                self.generate_component_message(component),
                recommendations_for(axis),
                sorted(component.factors),
            )
            if alert:
                raised.append(alert)

        return raised

    def _component_alerting(self, axis: str, component: RiskComponent) -> bool:
        if component.level.is_alerting:
            return True
        threshold = self.config.thresholds.get(axis)
        return threshold is not None and component.score > 0 and component.score >= threshold

    def _reserve(self, key: Tuple[str, str], now: datetime) -> bool:
        """Atomically claim the cooldown slot for key."""
        with self._cooldown_lock:
            last = self.last_raised.get(key)
            if last is not None and now - last < timedelta(seconds=self.config.cooldown):
                return False
            self.last_raised[key] = now
            return True

    def _try_raise(self, task_id, alert_type, level, score, message, recommendations, factors) -> Optional[Alert]:
        now = self.clock()
        if not self._reserve((task_id, alert_type), now):
            logger.debug(f"Alert suppressed by cooldown: {alert_type} on {task_id}")
            return None

        alert = Alert(
            alert_id=self._generate_alert_id(),
            task_id=task_id,
            type=alert_type,
            level=level,
            score=score,
            timestamp=now,
            message=message,
            recommendations=recommendations,
            factors=factors,
        )

        with self._history_lock:
            self.alert_history.append(alert)

        self._deliver(alert)
        self._call_handlers(alert)
        return alert

    def _deliver(self, alert: Alert):
        for channel_type, channel in self.channels.items():
            try:
                channel.send(alert)
                logger.debug(f"Alert sent via {channel_type.value}: {alert.alert_id}")
            except Exception as e:
                logger.error(f"Failed to send alert via {channel_type.value}: {e}")

    def register_handler(self, alert_type: str, handler: Callable[[Alert], None]):
        """Register a handler for an alert type, or '*' for every alert."""
        if alert_type not in self.handlers:
            self.handlers[alert_type] = []
        self.handlers[alert_type].append(handler)

    def _call_handlers(self, alert: Alert):
        for key in (alert.type, '*'):
            for handler in self.handlers.get(key, []):
                try:
                    handler(alert)
                except Exception as e:
                    logger.error(f"Handler error for {key}: {e}")

    def _generate_alert_id(self) -> str:
        return str(uuid.uuid4())

    @staticmethod
    def generate_overall_message(assessment: TaskRiskAssessment) -> str:
        overall = assessment.overall
        message = f"Task has {overall.level.value} risk level (score: {overall.score:.2f})"

        critical = [axis for axis, c in assessment.components.items() if c.level == RiskLevel.CRITICAL]
        high = [axis for axis, c in assessment.components.items() if c.level == RiskLevel.HIGH]

        if critical:
            message += f". Critical risks: {', '.join(critical)}"
        if high:
            message += f". High risks: {', '.join(high)}"

        return message

    @staticmethod
    def generate_component_message(component: RiskComponent) -> str:
        message = f"{component.axis.capitalize()} risk is {component.level.value} (score: {component.score:.2f})"
        if component.factors:
            message += f". Factors: {', '.join(sorted(component.factors))}"
        return message

    @staticmethod
    def generate_overall_recommendations(assessment: TaskRiskAssessment) -> List[Recommendation]:
        recommendations = []
        for axis, component in assessment.components.items():
            if component.level.is_alerting:
                recommendations.extend(recommendations_for(axis))
        return recommendations

    def get_recent_alerts(self, limit: int = 10) -> List[Alert]:
        with self._history_lock:
            alerts = list(self.alert_history)
        return sorted(alerts, key=lambda a: a.timestamp, reverse=True)[:limit]

    def get_alert_summary(self, hours: int = 24) -> Dict[str, Any]:
        """Get summary of recent alerts."""
        cutoff = self.clock() - timedelta(hours=hours)
        with self._history_lock:
            recent_alerts = [a for a in self.alert_history if a.timestamp > cutoff]

        summary = {
            'total_alerts': len(recent_alerts),
            'by_level': {level.value: 0 for level in RiskLevel},
            'by_type': {},
            'by_task': {},
        }

        for alert in recent_alerts:
            summary['by_level'][alert.level.value] += 1
            summary['by_type'][alert.type] = summary['by_type'].get(alert.type, 0) + 1
            summary['by_task'][alert.task_id] = summary['by_task'].get(alert.task_id, 0) + 1

        return summary
