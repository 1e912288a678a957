"""
Data sources supplying live task, developer and project state to the engine.
"""

import json
from pathlib import Path
from typing import Dict, Any, Iterable, List, Optional, Union

import yaml

from .models import (
    Task, DeveloperState, ProjectState, DependencyStatus, ExternalDependencyStatus,
)
from .utils import logger, clamp


class BaseDataSource:
    """Base class for collaborators that feed the risk sweep.

    Subclasses must implement the task, developer, project and dependency
    lookups. External dependencies and market risk are optional signals.
    """

    def get_active_tasks(self) -> List[Task]:
        raise NotImplementedError

    def get_developer(self, developer_id: Optional[str]) -> Optional[DeveloperState]:
        raise NotImplementedError

    def get_project(self, project_id: Optional[str]) -> Optional[ProjectState]:
        raise NotImplementedError

    def check_dependency_status(self, dependency_ids: Iterable[str]) -> List[DependencyStatus]:
        raise NotImplementedError

    def check_external_dependencies(self, refs: Iterable[str]) -> List[ExternalDependencyStatus]:
        return []

    def assess_market_risk(self) -> float:
        return 0.0


class StaticDataSource(BaseDataSource):
    """In-memory data source, typically loaded from a YAML or JSON file."""

    def __init__(
        self,
        tasks: Optional[List[Task]] = None,
        developers: Optional[Dict[str, DeveloperState]] = None,
        projects: Optional[Dict[str, ProjectState]] = None,
        dependency_status: Optional[Dict[str, DependencyStatus]] = None,
        external_status: Optional[Dict[str, ExternalDependencyStatus]] = None,
        market_risk: float = 0.0,
        history: Optional[List[Dict[str, Any]]] = None,
    ):
        self.tasks = tasks or []
        self.developers = developers or {}
        self.projects = projects or {}
        self.dependency_status = dependency_status or {}
        self.external_status = external_status or {}
        self.market_risk = clamp(market_risk, 0.0, 1.0)
        self.history = history or []

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StaticDataSource':
        """Build a data source from the sections of a data file."""
        tasks = [Task.from_dict(t) for t in data.get('tasks') or []]
        developers = {
            str(d['id']): DeveloperState.from_dict(d) for d in data.get('developers') or []
        }
        projects = {
            str(p['id']): ProjectState.from_dict(p) for p in data.get('projects') or []
        }

        dependency_status = {}
        for dep_id, status in (data.get('dependency_status') or {}).items():
            if isinstance(status, dict):
                dependency_status[str(dep_id)] = DependencyStatus(
                    id=str(dep_id),
                    status=status.get('status', 'pending'),
                    risk_level=status.get('risk_level', 'low'),
                )
            else:
                dependency_status[str(dep_id)] = DependencyStatus(id=str(dep_id), status=str(status))

        external_status = {
            str(ref): ExternalDependencyStatus(ref=str(ref), status=str(status))
            for ref, status in (data.get('external_status') or {}).items()
        }

        return cls(
            tasks=tasks,
            developers=developers,
            projects=projects,
            dependency_status=dependency_status,
            external_status=external_status,
            market_risk=float(data.get('market_risk') or 0.0),
            history=list(data.get('history') or []),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'StaticDataSource':
        """Load a data file in YAML or JSON format."""
        path = Path(path)
        if not path.exists():
            raise ValueError(f"Data file not found: {path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                data = yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported data file format: {path.suffix}")

        if not isinstance(data, dict):
            raise ValueError(f"Data file {path} must contain a mapping at the top level")

        logger.debug(f"Loaded data file: {path}")
        return cls.from_dict(data)

    def get_active_tasks(self) -> List[Task]:
        return [task for task in self.tasks if not task.completed]

    def get_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def get_developer(self, developer_id: Optional[str]) -> Optional[DeveloperState]:
        if developer_id is None:
            return None
        return self.developers.get(developer_id)

    def get_project(self, project_id: Optional[str]) -> Optional[ProjectState]:
        if project_id is None:
            return None
        return self.projects.get(project_id)

    def check_dependency_status(self, dependency_ids: Iterable[str]) -> List[DependencyStatus]:
        statuses = []
        for dep_id in dependency_ids:
            status = self.dependency_status.get(dep_id)
            if status is None:
                dependency = self.get_task(dep_id)
                done = dependency is not None and dependency.completed
                status = DependencyStatus(id=dep_id, status='completed' if done else 'pending')
            statuses.append(status)
        return statuses

    def check_external_dependencies(self, refs: Iterable[str]) -> List[ExternalDependencyStatus]:
        return [self.external_status.get(ref, ExternalDependencyStatus(ref=ref)) for ref in refs]

    def assess_market_risk(self) -> float:
        return self.market_risk
