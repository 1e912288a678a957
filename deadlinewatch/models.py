"""Data models for tasks, developer profiles, predictions, risks and alerts."""

import json
from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
from typing import Dict, List, Optional, Set, Any

from .utils import as_string_set, parse_datetime


def _parse_ordinal(enum_cls, value, aliases: Optional[Dict[str, str]] = None):
    """Parse an enum member from a member, its name, its value or an alias."""
    if value is None:
        return enum_cls.MEDIUM
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid {enum_cls.__name__.lower()}: {value!r}")
    if isinstance(value, (int, float)):
        for member in enum_cls:
            if member.value == int(value):
                return member
        raise ValueError(f"Invalid {enum_cls.__name__.lower()}: {value!r} (expected 1-4)")

    name = str(value).strip().lower().replace('_', '-')
    if aliases and name in aliases:
        name = aliases[name]
    for member in enum_cls:
        if member.name.lower() == name:
            return member
    raise ValueError(f"Invalid {enum_cls.__name__.lower()}: {value!r}")


def _float_or(value: Any, default: Optional[float], name: str = "value") -> Optional[float]:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(f"Invalid {name}: {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {name}: {value!r} (expected a number)") from None


class Complexity(Enum):
    """Ordinal task complexity."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, value: Any) -> 'Complexity':
        return _parse_ordinal(cls, value, aliases={'very-high': 'critical'})

    @property
    def normalized(self) -> float:
        """Complexity on the 0-1 scale used by risk assessment."""
        return {1: 0.2, 2: 0.5, 3: 0.8, 4: 1.0}[self.value]


class Priority(Enum):
    """Ordinal task priority."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    @classmethod
    def parse(cls, value: Any) -> 'Priority':
        return _parse_ordinal(cls, value, aliases={'urgent': 'critical'})


class TaskType(Enum):
    """Kinds of work a task can represent."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    DOCUMENTATION = "documentation"
    BUGFIX = "bugfix"
    REFACTORING = "refactoring"

    @classmethod
    def parse(cls, value: Any) -> 'TaskType':
        if value is None:
            return cls.DEVELOPMENT
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid task type: {value!r}")

    @property
    def code(self) -> int:
        """Fixed numeric encoding used as a prediction feature."""
        return {
            TaskType.DEVELOPMENT: 1,
            TaskType.TESTING: 2,
            TaskType.DOCUMENTATION: 3,
            TaskType.BUGFIX: 4,
            TaskType.REFACTORING: 5,
        }[self]


class RiskLevel(Enum):
    """Risk levels, ordered low to critical."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    @classmethod
    def from_score(cls, score: float) -> 'RiskLevel':
        """Map a score through the fixed cut points."""
        if score > 0.8:
            return cls.CRITICAL
        if score > 0.6:
            return cls.HIGH
        if score > 0.3:
            return cls.MEDIUM
        return cls.LOW

    @classmethod
    def parse(cls, value: Any) -> 'RiskLevel':
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.LOW
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Invalid risk level: {value!r}")

    def at_least(self, other: 'RiskLevel') -> 'RiskLevel':
        """Return the higher of this level and other."""
        return self if self.rank >= other.rank else other

    @property
    def is_alerting(self) -> bool:
        return self in (RiskLevel.HIGH, RiskLevel.CRITICAL)


_RISK_RANK = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}


@dataclass
class Task:
    """A schedulable unit of work, active or completed."""
    id: str
    title: str
    complexity: Complexity = Complexity.MEDIUM
    priority: Priority = Priority.MEDIUM
    estimated_hours: float = 8.0
    actual_hours: Optional[float] = None
    quality: Optional[float] = None
    required_skills: Set[str] = field(default_factory=set)
    dependencies: Set[str] = field(default_factory=set)
    external_dependencies: Set[str] = field(default_factory=set)
    deadline: Optional[datetime] = None
    progress: float = 0.0
    task_type: TaskType = TaskType.DEVELOPMENT
    difficulty: float = 5.0
    developer_id: Optional[str] = None
    project_id: Optional[str] = None
    completed: bool = False
    tags: Set[str] = field(default_factory=set)
    predicted_hours: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.id:
            raise ValueError("Task requires a non-empty id")
        self.complexity = Complexity.parse(self.complexity)
        self.priority = Priority.parse(self.priority)
        self.task_type = TaskType.parse(self.task_type)
        if self.estimated_hours is None or self.estimated_hours <= 0:
            raise ValueError(
                f"Task {self.id}: estimated_hours must be positive, got {self.estimated_hours!r}"
            )
        if not 0.0 <= self.progress <= 1.0:
            raise ValueError(f"Task {self.id}: progress must be within [0, 1], got {self.progress!r}")
        if self.actual_hours is not None and self.actual_hours <= 0:
            raise ValueError(f"Task {self.id}: actual_hours must be positive, got {self.actual_hours!r}")
        if self.quality is not None and not 0.0 <= self.quality <= 1.0:
            raise ValueError(f"Task {self.id}: quality must be within [0, 1], got {self.quality!r}")
        if self.predicted_hours is not None and self.predicted_hours <= 0:
            raise ValueError(
                f"Task {self.id}: predicted_hours must be positive, got {self.predicted_hours!r}"
            )
        self.required_skills = as_string_set(self.required_skills)
        self.dependencies = as_string_set(self.dependencies)
        self.external_dependencies = as_string_set(self.external_dependencies)
        self.tags = as_string_set(self.tags)
        if self.created_at is None:
            self.created_at = datetime.now()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Task':
        """Build a task from an external record, failing fast on malformed input."""
        if not isinstance(data, dict):
            raise ValueError(f"Task record must be a mapping, got {type(data).__name__}")

        missing = [key for key in ('id', 'title') if data.get(key) in (None, '')]
        if missing:
            raise ValueError(f"Task record missing required fields: {', '.join(missing)}")

        return cls(
            id=str(data['id']),
            title=str(data['title']),
            complexity=data.get('complexity'),
            priority=data.get('priority'),
            estimated_hours=_float_or(data.get('estimated_hours'), 8.0, 'estimated_hours'),
            actual_hours=_float_or(data.get('actual_hours'), None, 'actual_hours'),
            quality=_float_or(data.get('quality'), None, 'quality'),
            required_skills=data.get('required_skills', []),
            dependencies=data.get('dependencies', []),
            external_dependencies=data.get('external_dependencies', []),
            deadline=parse_datetime(data.get('deadline')),
            progress=_float_or(data.get('progress'), 0.0, 'progress'),
            task_type=data.get('type', data.get('task_type')),
            difficulty=_float_or(data.get('difficulty'), 5.0, 'difficulty'),
            developer_id=data.get('developer_id'),
            project_id=data.get('project_id'),
            completed=bool(data.get('completed', False)),
            tags=data.get('tags', []),
            predicted_hours=_float_or(data.get('predicted_hours'), None, 'predicted_hours'),
            start_date=parse_datetime(data.get('start_date')),
            end_date=parse_datetime(data.get('end_date')),
            created_at=parse_datetime(data.get('created_at')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'complexity': self.complexity.name.lower(),
            'priority': self.priority.name.lower(),
            'estimated_hours': self.estimated_hours,
            'actual_hours': self.actual_hours,
            'quality': self.quality,
            'required_skills': sorted(self.required_skills),
            'dependencies': sorted(self.dependencies),
            'external_dependencies': sorted(self.external_dependencies),
            'deadline': self.deadline.isoformat() if self.deadline else None,
            'progress': self.progress,
            'type': self.task_type.value,
            'difficulty': self.difficulty,
            'developer_id': self.developer_id,
            'project_id': self.project_id,
            'completed': self.completed,
            'tags': sorted(self.tags),
        }


@dataclass
class PerformanceEntry:
    """One completed task in a developer's performance history."""
    date: datetime
    hours: float
    quality: float
    complexity: int


@dataclass
class DeveloperProfile:
    """Historical performance profile learned from completed tasks."""
    id: str
    total_tasks: int = 0
    completed_tasks: int = 0
    average_completion_time: float = 0.0
    average_quality: float = 0.0
    skill_levels: Dict[str, float] = field(default_factory=dict)
    performance_history: List[PerformanceEntry] = field(default_factory=list)
    accuracy: float = 0.5
    accuracy_samples: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'total_tasks': self.total_tasks,
            'completed_tasks': self.completed_tasks,
            'average_completion_time': self.average_completion_time,
            'average_quality': self.average_quality,
            'skill_levels': dict(self.skill_levels),
            'history_length': len(self.performance_history),
            'accuracy': self.accuracy,
        }


@dataclass
class TaskPattern:
    """Aggregate statistics for tasks of one type and complexity."""
    task_type: TaskType
    complexity: Complexity
    total_tasks: int = 0
    completed_tasks: int = 0
    average_hours: float = 0.0
    variance: float = 0.0
    completion_rate: float = 0.0
    quality_scores: List[float] = field(default_factory=list)

    @property
    def key(self) -> str:
        return pattern_key(self.task_type, self.complexity)


def pattern_key(task_type: TaskType, complexity: Complexity) -> str:
    return f"{task_type.value}_{complexity.value}"


@dataclass
class FactorAnalysis:
    """Contribution of one named factor to a prediction."""
    weight: float
    impact: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return {'weight': self.weight, 'impact': self.impact, 'description': self.description}


@dataclass
class ConfidenceInterval:
    lower: float
    upper: float

    @property
    def range(self) -> float:
        return self.upper - self.lower

    def to_dict(self) -> Dict[str, float]:
        return {'lower': self.lower, 'upper': self.upper, 'range': self.range}


@dataclass
class PredictionRisk:
    """Risk embedded in a prediction by post-processing."""
    level: RiskLevel
    factors: List[str] = field(default_factory=list)
    mitigation: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'level': self.level.value, 'factors': list(self.factors), 'mitigation': list(self.mitigation)}


@dataclass
class PredictionAlternative:
    """A second opinion on a prediction: a buffered bound or another method's estimate."""
    kind: str
    estimated_hours: float
    estimated_completion: datetime
    confidence: float
    reasoning: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.kind,
            'estimated_hours': round(self.estimated_hours, 2),
            'estimated_completion': self.estimated_completion.isoformat(),
            'confidence': round(self.confidence, 3),
            'reasoning': self.reasoning,
        }


@dataclass
class TimelinePhase:
    phase: str
    description: str
    estimated_hours: float
    start: datetime
    end: datetime
    deliverables: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phase': self.phase,
            'description': self.description,
            'estimated_hours': round(self.estimated_hours, 2),
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'deliverables': list(self.deliverables),
        }


@dataclass
class Prediction:
    """Hours estimate for a task, with confidence and explanation."""
    estimated_hours: float
    confidence: float
    method: str
    factors: Dict[str, FactorAnalysis] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)
    risk_assessment: Optional[PredictionRisk] = None
    confidence_interval: Optional[ConfidenceInterval] = None
    recommendations: List[str] = field(default_factory=list)
    deadline_date: Optional[date] = None
    sub_predictions: List['Prediction'] = field(default_factory=list)
    alternatives: List[PredictionAlternative] = field(default_factory=list)
    timeline: List[TimelinePhase] = field(default_factory=list)
    task_id: Optional[str] = None
    developer_id: Optional[str] = None
    live_risk: Optional['TaskRiskAssessment'] = None
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task_id': self.task_id,
            'developer_id': self.developer_id,
            'estimated_hours': round(self.estimated_hours, 2),
            'confidence': round(self.confidence, 3),
            'method': self.method,
            'factors': {name: f.to_dict() for name, f in self.factors.items()},
            'details': self.details,
            'risk_assessment': self.risk_assessment.to_dict() if self.risk_assessment else None,
            'confidence_interval': self.confidence_interval.to_dict() if self.confidence_interval else None,
            'recommendations': list(self.recommendations),
            'deadline_date': self.deadline_date.isoformat() if self.deadline_date else None,
            'sub_predictions': [
                {'method': p.method, 'estimated_hours': round(p.estimated_hours, 2), 'confidence': p.confidence}
                for p in self.sub_predictions
            ],
            'alternatives': [a.to_dict() for a in self.alternatives],
            'timeline': [p.to_dict() for p in self.timeline],
            'live_risk': self.live_risk.to_dict() if self.live_risk else None,
            'created_at': self.created_at.isoformat(),
        }


@dataclass
class RiskComponent:
    """Risk along a single axis."""
    axis: str
    level: RiskLevel = RiskLevel.LOW
    score: float = 0.0
    factors: Set[str] = field(default_factory=set)
    details: Dict[str, Any] = field(default_factory=dict)

    def escalate(self, level: RiskLevel, score: float, factor: str):
        """Raise to at least level/score, never lowering either."""
        self.level = self.level.at_least(level)
        self.score = max(self.score, score)
        self.factors.add(factor)

    def override(self, level: RiskLevel, score: float, factor: str):
        """Force level and score regardless of earlier findings."""
        self.level = level
        self.score = score
        self.factors.add(factor)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'level': self.level.value,
            'score': self.score,
            'factors': sorted(self.factors),
            'details': self.details,
        }


@dataclass
class OverallRisk:
    level: RiskLevel
    score: float

    @classmethod
    def from_components(cls, components: Dict[str, RiskComponent]) -> 'OverallRisk':
        """Mean of component scores mapped through the cut points."""
        if not components:
            return cls(level=RiskLevel.LOW, score=0.0)
        score = sum(c.score for c in components.values()) / len(components)
        return cls(level=RiskLevel.from_score(score), score=score)


@dataclass
class TaskRiskAssessment:
    """Risk assessment of one task in one sweep."""
    task_id: str
    timestamp: datetime
    components: Dict[str, RiskComponent]
    overall: OverallRisk

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task_id': self.task_id,
            'timestamp': self.timestamp.isoformat(),
            'overall': {'level': self.overall.level.value, 'score': round(self.overall.score, 3)},
            'components': {axis: c.to_dict() for axis, c in self.components.items()},
        }


@dataclass
class Recommendation:
    action: str
    priority: str
    impact: str

    def to_dict(self) -> Dict[str, str]:
        return {'action': self.action, 'priority': self.priority, 'impact': self.impact}


@dataclass
class Alert:
    """A raised risk alert. Never retracted once raised."""
    alert_id: str
    task_id: str
    type: str
    level: RiskLevel
    score: float
    timestamp: datetime
    message: str
    recommendations: List[Recommendation] = field(default_factory=list)
    factors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'alert_id': self.alert_id,
            'task_id': self.task_id,
            'type': self.type,
            'level': self.level.value,
            'score': self.score,
            'timestamp': self.timestamp.isoformat(),
            'message': self.message,
            'recommendations': [r.to_dict() for r in self.recommendations],
            'factors': list(self.factors),
        }

    def format_message(self, format_type: str = 'text') -> str:
        """Format alert message."""
        if format_type == 'text':
            return f"[{self.level.value.upper()}] {self.type} risk on task {self.task_id}\n{self.message}"
        elif format_type == 'json':
            return json.dumps(self.to_dict(), indent=2)
        else:
            return str(self)


@dataclass
class MonitoringRule:
    """Declarative control of how often a risk axis is evaluated."""
    axis: str
    name: str
    enabled: bool = True
    threshold: float = 0.5
    check_interval: float = 300.0
    last_checked: Optional[datetime] = None

    def is_due(self, now: datetime) -> bool:
        if self.last_checked is None:
            return True
        return (now - self.last_checked).total_seconds() >= self.check_interval


@dataclass
class DeveloperState:
    """Live developer record supplied by an external collaborator."""
    id: str
    capacity: Optional[float] = None
    availability: float = 1.0
    current_workload: float = 0.0
    skills: Set[str] = field(default_factory=set)
    experience_years: float = 1.0

    def __post_init__(self):
        self.skills = as_string_set(self.skills)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeveloperState':
        skills = data.get('skills', [])
        # Skill records may be plain names or {name: ...} mappings
        skills = [s.get('name') if isinstance(s, dict) else s for s in skills]
        return cls(
            id=str(data['id']),
            capacity=data.get('capacity'),
            availability=float(data.get('availability', 1.0)),
            current_workload=float(data.get('current_workload', 0.0)),
            skills=[s for s in skills if s],
            experience_years=float(data.get('experience_years', 1.0)),
        )


@dataclass
class ProjectState:
    id: str
    risk_level: RiskLevel = RiskLevel.LOW
    team_capacity: float = 1.0

    def __post_init__(self):
        self.risk_level = RiskLevel.parse(self.risk_level)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectState':
        return cls(
            id=str(data['id']),
            risk_level=data.get('risk_level', 'low'),
            team_capacity=float(data.get('team_capacity', 1.0)),
        )


@dataclass
class DependencyStatus:
    id: str
    status: str = "pending"
    risk_level: RiskLevel = RiskLevel.LOW

    def __post_init__(self):
        self.risk_level = RiskLevel.parse(self.risk_level)

    @property
    def is_blocked(self) -> bool:
        return self.status == "blocked"

    @property
    def is_at_risk(self) -> bool:
        return not self.is_blocked and self.risk_level.is_alerting


@dataclass
class ExternalDependencyStatus:
    ref: str
    status: str = "pending"


@dataclass
class RiskSnapshot:
    """Risk distribution counts taken once per sweep."""
    timestamp: datetime
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'critical': self.critical,
            'high': self.high,
            'medium': self.medium,
            'low': self.low,
        }
