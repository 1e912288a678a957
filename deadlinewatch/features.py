"""Feature extraction for deadline prediction."""

from dataclasses import dataclass, asdict
from typing import Callable, Dict, Optional

from .models import Task, DeveloperProfile


# Signal used when no workload source is wired in
DEFAULT_WORKLOAD = 0.5

WorkloadProvider = Callable[[Optional[str]], float]


def constant_workload(value: float = DEFAULT_WORKLOAD) -> WorkloadProvider:
    """Workload provider that reports the same utilization for everyone."""
    def provider(developer_id: Optional[str]) -> float:
        return value
    return provider


@dataclass(frozen=True)
class FeatureVector:
    """The only input prediction strategies are allowed to see."""
    complexity: float
    priority: float
    estimated_hours: float
    difficulty: float
    skill_match: float
    developer_experience: float
    current_workload: float
    historical_accuracy: float
    task_type_code: float
    has_dependencies: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def calculate_skill_match(task: Task, profile: Optional[DeveloperProfile]) -> float:
    """Fraction of required skills the developer has practised."""
    if not task.required_skills:
        return 1.0
    if profile is None:
        return 0.5

    matches = sum(1 for skill in task.required_skills if skill in profile.skill_levels)
    return matches / len(task.required_skills)


class FeatureExtractor:
    """Build feature vectors from a task and a developer profile."""

    def __init__(self, workload_provider: Optional[WorkloadProvider] = None):
        self.workload_provider = workload_provider or constant_workload()

    def extract(self, task: Task, profile: Optional[DeveloperProfile]) -> FeatureVector:
        developer_id = profile.id if profile else task.developer_id

        return FeatureVector(
            complexity=float(task.complexity.value),
            priority=float(task.priority.value),
            estimated_hours=float(task.estimated_hours),
            difficulty=float(task.difficulty),
            skill_match=calculate_skill_match(task, profile),
            developer_experience=profile.average_completion_time if profile else 0.0,
            current_workload=float(self.workload_provider(developer_id)),
            historical_accuracy=profile.accuracy if profile else 0.5,
            task_type_code=float(task.task_type.code),
            has_dependencies=1.0 if task.dependencies else 0.0,
        )
