"""Developer and task-pattern profiles learned from historical task records."""

import threading
import statistics
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Union, Any

from .models import (
    Task, DeveloperProfile, TaskPattern, PerformanceEntry,
    TaskType, Complexity, pattern_key,
)
from .utils import logger, moving_average


class ProfileStore:
    """Owns developer profiles and task patterns.

    Writes are serialized per developer through lock shards, so ingests for
    different developers never wait on each other. Reads take no locks.
    """

    def __init__(
        self,
        max_history_days: int = 365,
        skill_increment: float = 0.1,
        skill_cap: Optional[float] = None,
        quality_history_limit: int = 100,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.max_history_days = max_history_days
        self.skill_increment = skill_increment
        self.skill_cap = skill_cap
        self.quality_history_limit = quality_history_limit
        self.clock = clock

        self.developers: Dict[str, DeveloperProfile] = {}
        self.patterns: Dict[str, TaskPattern] = {}
        self.records: List[Task] = []

        self._registry_lock = threading.Lock()
        self._developer_locks: Dict[str, threading.Lock] = {}
        self._pattern_lock = threading.Lock()
        self._records_lock = threading.Lock()

    def ingest(self, record: Union[Task, Dict[str, Any]]) -> Task:
        """Learn from a task record, completed or still in flight."""
        if isinstance(record, Task):
            task = record
        else:
            if isinstance(record, dict) and record.get('created_at') is None:
                record = {**record, 'created_at': self.clock()}
            task = Task.from_dict(record)

        self.prune_older_than()

        with self._records_lock:
            self.records.append(task)

        if task.developer_id:
            self._update_developer(task)

        self._update_pattern(task)

        logger.debug(f"Ingested task {task.id} (developer={task.developer_id}, completed={task.completed})")
        return task

    def get_developer(self, developer_id: Optional[str]) -> Optional[DeveloperProfile]:
        if developer_id is None:
            return None
        return self.developers.get(developer_id)

    def get_pattern(self, task_type: TaskType, complexity: Complexity) -> Optional[TaskPattern]:
        return self.patterns.get(pattern_key(task_type, complexity))

    def prune_older_than(self, days: Optional[int] = None) -> int:
        """Drop history entries older than the retention window.

        Profiles themselves are kept. Returns the number of entries removed.
        """
        days = self.max_history_days if days is None else days
        cutoff = self.clock() - timedelta(days=days)
        removed = 0

        with self._records_lock:
            kept = [r for r in self.records if r.created_at >= cutoff]
            removed += len(self.records) - len(kept)
            self.records = kept

        for developer_id in list(self.developers):
            with self._lock_for(developer_id):
                profile = self.developers[developer_id]
                kept_history = [e for e in profile.performance_history if e.date >= cutoff]
                removed += len(profile.performance_history) - len(kept_history)
                profile.performance_history = kept_history

        if removed:
            logger.debug(f"Pruned {removed} history entries older than {days} days")
        return removed

    @property
    def developer_count(self) -> int:
        return len(self.developers)

    @property
    def pattern_count(self) -> int:
        return len(self.patterns)

    def _lock_for(self, developer_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._developer_locks.get(developer_id)
            if lock is None:
                lock = threading.Lock()
                self._developer_locks[developer_id] = lock
            return lock

    def _update_developer(self, task: Task):
        developer_id = task.developer_id

        with self._lock_for(developer_id):
            profile = self.developers.get(developer_id)
            if profile is None:
                profile = DeveloperProfile(id=developer_id)
                self.developers[developer_id] = profile

            profile.total_tasks += 1

            if task.completed and task.actual_hours:
                quality = task.quality or 0.0
                profile.completed_tasks += 1
                profile.average_completion_time = moving_average(
                    profile.average_completion_time, task.actual_hours, profile.completed_tasks
                )
                profile.average_quality = moving_average(
                    profile.average_quality, quality, profile.completed_tasks
                )
                profile.performance_history.append(PerformanceEntry(
                    date=task.end_date or self.clock(),
                    hours=task.actual_hours,
                    quality=quality,
                    complexity=task.complexity.value,
                ))
                self._update_accuracy(profile, task)

            if task.completed:
                for tag in task.tags:
                    level = profile.skill_levels.get(tag, 0.0) + self.skill_increment
                    if self.skill_cap is not None:
                        level = min(level, self.skill_cap)
                    profile.skill_levels[tag] = level

    def _update_accuracy(self, profile: DeveloperProfile, task: Task):
        """Fold estimate-vs-actual agreement of this task into profile accuracy."""
        relative_error = abs(task.estimated_hours - task.actual_hours) / task.actual_hours
        sample = max(0.0, 1.0 - relative_error)
        profile.accuracy_samples += 1
        profile.accuracy = moving_average(profile.accuracy, sample, profile.accuracy_samples)

    def _update_pattern(self, task: Task):
        key = pattern_key(task.task_type, task.complexity)

        with self._pattern_lock:
            pattern = self.patterns.get(key)
            if pattern is None:
                pattern = TaskPattern(task_type=task.task_type, complexity=task.complexity)
                self.patterns[key] = pattern

            pattern.total_tasks += 1

            if task.completed and task.actual_hours:
                pattern.completed_tasks += 1
                pattern.average_hours = moving_average(
                    pattern.average_hours, task.actual_hours, pattern.completed_tasks
                )
                pattern.quality_scores.append(task.quality or 0.0)
                if len(pattern.quality_scores) > self.quality_history_limit:
                    pattern.quality_scores = pattern.quality_scores[-self.quality_history_limit:]
                pattern.variance = statistics.pvariance(pattern.quality_scores)

            pattern.completion_rate = len(pattern.quality_scores) / pattern.total_tasks
