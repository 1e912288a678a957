"""Deadline prediction: estimation strategies, ensemble combination and post-processing.

Every strategy is a plain function of a ``FeatureVector`` and an immutable
snapshot of the developer's performance history. A strategy returns ``None``
when it cannot produce an estimate; the engine then degrades to the
fallback estimate instead of failing the request.
"""

import statistics
import threading
from collections import defaultdict
from datetime import datetime, timedelta
from functools import partial
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union, Any

import numpy as np

from .features import FeatureExtractor, FeatureVector
from .models import (
    Task, Prediction, PredictionRisk, ConfidenceInterval, FactorAnalysis,
    PerformanceEntry, RiskLevel, TaskType, PredictionAlternative, TimelinePhase,
)
from .profiles import ProfileStore
from .utils import logger, clamp, add_working_days


History = Sequence[PerformanceEntry]
Strategy = Callable[[FeatureVector, History, datetime], Optional[Prediction]]

# Magnitudes of the linear model. Skill match and historical accuracy
# shorten estimates, everything else lengthens them.
LINEAR_WEIGHTS = {
    'complexity': 1.2,
    'priority': 0.8,
    'estimated_hours': 0.9,
    'difficulty': 1.1,
    'skill_match': -0.7,
    'developer_experience': 0.6,
    'current_workload': 1.3,
    'historical_accuracy': -0.5,
    'task_type_code': 0.4,
    'has_dependencies': 1.2,
}

FACTOR_WEIGHTS = {
    'developer_experience': 0.25,
    'task_complexity': 0.20,
    'historical_performance': 0.20,
    'current_workload': 0.15,
    'skill_match': 0.10,
    'external_factors': 0.10,
}

ENSEMBLE_WEIGHTS = (0.4, 0.4, 0.2)

TREND_WINDOW = 10
MIN_TIME_SERIES_HISTORY = 3
MIN_SEASONALITY_HISTORY = 7
FALLBACK_CONFIDENCE = 0.3

CONSERVATIVE_FACTOR = 1.2
OPTIMISTIC_FACTOR = 0.8

# (name, description, share of total hours, deliverables); shares sum to 1.
TASK_PHASES = {
    TaskType.DEVELOPMENT: [
        ('analysis', 'Clarify requirements and design the change', 0.15, ['design notes']),
        ('implementation', 'Write the code', 0.55, ['working code']),
        ('testing', 'Write and run tests', 0.2, ['passing tests']),
        ('review', 'Code review and merge', 0.1, ['merged change']),
    ],
    TaskType.TESTING: [
        ('planning', 'Decide what to cover', 0.2, ['test plan']),
        ('execution', 'Write and run the tests', 0.6, ['test suite']),
        ('reporting', 'Report and triage failures', 0.2, ['test report']),
    ],
    TaskType.DOCUMENTATION: [
        ('outline', 'Gather material and outline', 0.25, ['outline']),
        ('writing', 'Write the documentation', 0.55, ['draft']),
        ('review', 'Review and publish', 0.2, ['published docs']),
    ],
    TaskType.BUGFIX: [
        ('reproduction', 'Reproduce and locate the bug', 0.35, ['failing test']),
        ('fix', 'Fix the root cause', 0.4, ['fix']),
        ('verification', 'Verify the fix and check for regressions', 0.25, ['passing tests']),
    ],
    TaskType.REFACTORING: [
        ('analysis', 'Map the affected code', 0.2, ['refactoring plan']),
        ('restructuring', 'Restructure the code', 0.5, ['refactored code']),
        ('verification', 'Confirm behavior is unchanged', 0.3, ['passing tests']),
    ],
}


def calculate_confidence(features: FeatureVector) -> float:
    """Confidence shared by every non-fallback strategy."""
    confidence = 0.5

    if features.developer_experience > 0:
        confidence += 0.2
    if features.skill_match > 0.7:
        confidence += 0.2
    if features.historical_accuracy > 0.7:
        confidence += 0.1

    if features.complexity > 3:
        confidence -= 0.1
    if features.has_dependencies:
        confidence -= 0.1

    return clamp(confidence, 0.1, 0.95)


def analyze_factors(features: FeatureVector) -> Dict[str, FactorAnalysis]:
    """Explain the named factors behind a prediction."""
    impacts = {
        'developer_experience': features.developer_experience,
        'task_complexity': features.complexity / 4,
        'historical_performance': features.historical_accuracy,
        'current_workload': features.current_workload,
        'skill_match': features.skill_match,
        'external_factors': 0.5 if features.has_dependencies else 1.0,
    }
    descriptions = {
        'developer_experience': f"Developer experience level: {features.developer_experience:.2f}",
        'task_complexity': f"Task complexity: {int(features.complexity)}/4",
        'historical_performance': f"Historical accuracy: {features.historical_accuracy * 100:.1f}%",
        'current_workload': f"Current workload: {features.current_workload * 100:.1f}%",
        'skill_match': f"Skill match: {features.skill_match * 100:.1f}%",
        'external_factors': 'Has dependencies' if features.has_dependencies else 'No dependencies',
    }

    return {
        name: FactorAnalysis(weight=weight, impact=impacts[name], description=descriptions[name])
        for name, weight in FACTOR_WEIGHTS.items()
    }


def _floor(features: FeatureVector) -> float:
    return features.estimated_hours * 0.5


def predict_linear(features: FeatureVector, history: History = (), now: Optional[datetime] = None) -> Prediction:
    """Weighted sum of features, floored at half the task's own estimate."""
    values = features.to_dict()
    hours = sum(weight * values[name] for name, weight in LINEAR_WEIGHTS.items())

    return Prediction(
        estimated_hours=max(hours, _floor(features)),
        confidence=calculate_confidence(features),
        method='linear',
        factors=analyze_factors(features),
        details={'raw_estimate': hours},
    )


def predict_neural_stub(features: FeatureVector, history: History = (), now: Optional[datetime] = None) -> Prediction:
    """Deterministic placeholder for a learned model.

    Scales the mean feature value to hours. Replace through
    ``PredictionEngine(third_strategy=...)`` with a real regressor.
    """
    values = list(features.to_dict().values())
    hours = statistics.mean(values) * 10

    return Prediction(
        estimated_hours=max(hours, _floor(features)),
        confidence=calculate_confidence(features),
        method='neural-stub',
        factors=analyze_factors(features),
    )


def calculate_trend(history: History) -> float:
    """Least-squares slope of hours over time, relative to the first value."""
    hours = [entry.hours for entry in history]
    if len(hours) < 2 or hours[0] == 0:
        return 0.0

    x = np.arange(len(hours), dtype=float)
    slope = np.polyfit(x, np.asarray(hours, dtype=float), 1)[0]
    return float(slope / hours[0])


def calculate_seasonality(history: History, now: datetime) -> float:
    """Relative deviation of today's weekday average from the overall average."""
    if len(history) < MIN_SEASONALITY_HISTORY:
        return 0.0

    same_day = [entry.hours for entry in history if entry.date.weekday() == now.weekday()]
    if not same_day:
        return 0.0

    overall = statistics.mean(entry.hours for entry in history)
    if overall == 0:
        return 0.0
    return (statistics.mean(same_day) - overall) / overall


def calculate_base_prediction(features: FeatureVector) -> float:
    complexity_multiplier = features.complexity ** 1.2
    skill_multiplier = 2 - features.skill_match
    experience_multiplier = 1.5 - (features.developer_experience / 40) * 0.5
    return features.estimated_hours * complexity_multiplier * skill_multiplier * experience_multiplier


def predict_time_series(features: FeatureVector, history: History = (), now: Optional[datetime] = None) -> Optional[Prediction]:
    """Trend and weekday-seasonality adjusted estimate from recent history."""
    if len(history) < MIN_TIME_SERIES_HISTORY:
        return None

    now = now or datetime.now()
    recent = list(history)[-TREND_WINDOW:]
    trend = calculate_trend(recent)
    seasonality = calculate_seasonality(recent, now)
    base = calculate_base_prediction(features)
    hours = base * (1 + trend) * (1 + seasonality)

    return Prediction(
        estimated_hours=max(hours, _floor(features)),
        confidence=calculate_confidence(features),
        method='time-series',
        factors=analyze_factors(features),
        details={'trend': trend, 'seasonality': seasonality, 'base_prediction': base},
    )


def predict_fallback(features: FeatureVector, history: History = (), now: Optional[datetime] = None) -> Prediction:
    """Last-resort estimate scaled by the developer's average completion time."""
    base_hours = features.estimated_hours
    multiplier = 1.0
    if features.developer_experience > 0:
        multiplier = features.developer_experience / base_hours

    return Prediction(
        estimated_hours=base_hours * multiplier,
        confidence=FALLBACK_CONFIDENCE,
        method='fallback',
        factors=analyze_factors(features),
        details={'base_estimate': base_hours, 'developer_multiplier': multiplier},
    )


def predict_ensemble(
    features: FeatureVector,
    history: History = (),
    now: Optional[datetime] = None,
    members: Optional[Sequence[Tuple[Strategy, float]]] = None,
) -> Optional[Prediction]:
    """Weighted combination of the member strategies that succeeded.

    Failed members are dropped and the surviving weights renormalised, so the
    result always lies between the smallest and largest member estimate.
    """
    if members is None:
        members = list(zip((predict_linear, predict_time_series, predict_neural_stub), ENSEMBLE_WEIGHTS))

    results: List[Tuple[Prediction, float]] = []
    for strategy, weight in members:
        name = getattr(strategy, '__name__', repr(strategy))
        try:
            prediction = strategy(features, history, now)
        except Exception as e:
            logger.warning(f"Prediction strategy {name} failed: {e}")
            continue
        if prediction is not None:
            results.append((prediction, weight))

    if not results:
        return None

    total_weight = sum(weight for _, weight in results)
    hours = sum(p.estimated_hours * weight for p, weight in results) / total_weight
    confidence = sum(p.confidence * weight for p, weight in results) / total_weight

    return Prediction(
        estimated_hours=hours,
        confidence=confidence,
        method='ensemble',
        factors=analyze_factors(features),
        details={'members': [p.method for p, _ in results]},
        sub_predictions=[p for p, _ in results],
    )


def generate_timeline(task_type: TaskType, hours: float, start: datetime) -> List[TimelinePhase]:
    """Split the estimate into back-to-back phase windows starting at ``start``."""
    timeline = []
    current = start

    for name, description, share, deliverables in TASK_PHASES[task_type]:
        phase_hours = hours * share
        end = current + timedelta(hours=phase_hours)
        timeline.append(TimelinePhase(
            phase=name,
            description=description,
            estimated_hours=phase_hours,
            start=current,
            end=end,
            deliverables=list(deliverables),
        ))
        current = end

    return timeline


class PredictionEngine:
    """Produces deadline predictions from profiles learned by a ProfileStore."""

    METHOD_ALIASES = {
        'linear-regression': 'linear',
        'neural-network': 'neural-stub',
    }

    def __init__(
        self,
        profile_store: ProfileStore,
        feature_extractor: Optional[FeatureExtractor] = None,
        third_strategy: Optional[Strategy] = None,
        working_hours_per_day: float = 8.0,
        confidence_threshold: float = 0.7,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.profile_store = profile_store
        self.feature_extractor = feature_extractor or FeatureExtractor()
        self.third_strategy = third_strategy or predict_neural_stub
        self.working_hours_per_day = working_hours_per_day
        self.confidence_threshold = confidence_threshold
        self.clock = clock

        self.strategies: Dict[str, Strategy] = {
            'linear': predict_linear,
            'time-series': predict_time_series,
            'neural-stub': self.third_strategy,
            'ensemble': partial(predict_ensemble, members=[
                (predict_linear, ENSEMBLE_WEIGHTS[0]),
                (predict_time_series, ENSEMBLE_WEIGHTS[1]),
                (self.third_strategy, ENSEMBLE_WEIGHTS[2]),
            ]),
        }

        # Running count and confidence sum per method.
        self._issued_lock = threading.Lock()
        self._issued_counts: Dict[str, int] = defaultdict(int)
        self._issued_confidence: Dict[str, float] = defaultdict(float)

    def resolve_method(self, method: str) -> str:
        name = self.METHOD_ALIASES.get(method, method)
        if name not in self.strategies:
            available = ', '.join(sorted(self.strategies))
            raise ValueError(f"Unknown prediction method: {method} (available: {available})")
        return name

    def predict(
        self,
        task: Union[Task, Dict[str, Any]],
        developer_id: Optional[str] = None,
        method: str = 'ensemble',
        record: bool = True,
    ) -> Prediction:
        """Predict how long a task will take and when it will be done.

        Args:
            task: Task or raw task record
            developer_id: Developer to predict for, defaults to the task's assignee
            method: Strategy name
            record: Count the prediction in method performance statistics

        Returns:
            Enhanced Prediction; degraded inputs yield a low-confidence
            fallback instead of an error

        Raises:
            ValueError: For unknown methods or malformed task records
        """
        method = self.resolve_method(method)
        if not isinstance(task, Task):
            task = Task.from_dict(task)

        developer_id = developer_id or task.developer_id
        profile = self.profile_store.get_developer(developer_id)
        features = self.feature_extractor.extract(task, profile)
        history = tuple(profile.performance_history) if profile else ()
        now = self.clock()

        try:
            prediction = self.strategies[method](features, history, now)
        except Exception as e:
            logger.warning(f"Prediction method {method} failed for task {task.id}: {e}")
            prediction = None

        if prediction is None:
            logger.debug(f"Falling back for task {task.id} (method={method}, developer={developer_id})")
            prediction = predict_fallback(features, history, now)

        prediction.task_id = task.id
        prediction.developer_id = developer_id
        prediction.created_at = now

        enhanced = self.enhance_prediction(prediction, task, features, history)

        if record:
            with self._issued_lock:
                self._issued_counts[enhanced.method] += 1
                self._issued_confidence[enhanced.method] += enhanced.confidence

        return enhanced

    def enhance_prediction(
        self,
        prediction: Prediction,
        task: Task,
        features: FeatureVector,
        history: History = (),
    ) -> Prediction:
        """Attach risk, confidence interval, recommendations, deadline date,
        alternative estimates and a phase timeline."""
        self._refresh_confidence_outputs(prediction, task)
        prediction.deadline_date = add_working_days(
            prediction.created_at, prediction.estimated_hours, self.working_hours_per_day
        )
        prediction.alternatives = self.generate_alternatives(prediction, features, history)
        prediction.timeline = generate_timeline(task.task_type, prediction.estimated_hours, prediction.created_at)
        return prediction

    def adjust_confidence(self, prediction: Prediction, task: Task, factor: float) -> Prediction:
        """Scale confidence and recompute everything derived from it."""
        prediction.confidence = clamp(prediction.confidence * factor, 0.1, 0.95)
        self._refresh_confidence_outputs(prediction, task)
        return prediction

    def _refresh_confidence_outputs(self, prediction: Prediction, task: Task):
        prediction.risk_assessment = self.assess_risk(prediction, task)
        prediction.confidence_interval = self.calculate_confidence_interval(prediction)
        prediction.recommendations = self.generate_recommendations(prediction, task)

    def generate_alternatives(
        self,
        prediction: Prediction,
        features: FeatureVector,
        history: History = (),
    ) -> List[PredictionAlternative]:
        """Buffered bounds around the estimate plus each single method's estimate."""
        start = prediction.created_at
        hours = prediction.estimated_hours

        alternatives = [
            PredictionAlternative(
                kind='conservative',
                estimated_hours=hours * CONSERVATIVE_FACTOR,
                estimated_completion=start + timedelta(hours=hours * CONSERVATIVE_FACTOR),
                confidence=0.9,
                reasoning='Conservative estimate with buffer time',
            ),
            PredictionAlternative(
                kind='optimistic',
                estimated_hours=hours * OPTIMISTIC_FACTOR,
                estimated_completion=start + timedelta(hours=hours * OPTIMISTIC_FACTOR),
                confidence=0.6,
                reasoning='Optimistic estimate assuming best conditions',
            ),
        ]

        for method in ('linear', 'time-series', 'neural-stub'):
            try:
                alternative = self.strategies[method](features, history, start)
            except Exception as e:
                logger.debug(f"No {method} alternative for task {prediction.task_id}: {e}")
                continue
            if alternative is None:
                continue
            alternatives.append(PredictionAlternative(
                kind=method,
                estimated_hours=alternative.estimated_hours,
                estimated_completion=start + timedelta(hours=alternative.estimated_hours),
                confidence=alternative.confidence,
                reasoning=f"Prediction using the {method} method",
            ))

        return alternatives

    def assess_risk(self, prediction: Prediction, task: Task) -> PredictionRisk:
        level = RiskLevel.LOW
        factors = []

        if prediction.confidence < 0.5:
            level = RiskLevel.HIGH
            factors.append('Low confidence prediction')

        if task.complexity.value > 3:
            level = level.at_least(RiskLevel.MEDIUM)
            factors.append('High complexity task')

        if task.dependencies:
            level = level.at_least(RiskLevel.MEDIUM)
            factors.append('Task has dependencies')

        return PredictionRisk(level=level, factors=factors, mitigation=self.suggest_mitigation(factors))

    @staticmethod
    def suggest_mitigation(risk_factors: List[str]) -> List[str]:
        mitigations = []

        if 'Low confidence prediction' in risk_factors:
            mitigations.append('Gather more historical data')
            mitigations.append('Use ensemble prediction methods')

        if 'High complexity task' in risk_factors:
            mitigations.append('Break down into smaller tasks')
            mitigations.append('Assign senior developer')

        if 'Task has dependencies' in risk_factors:
            mitigations.append('Create dependency timeline')
            mitigations.append('Identify critical path')

        return mitigations

    @staticmethod
    def calculate_confidence_interval(prediction: Prediction) -> ConfidenceInterval:
        hours = prediction.estimated_hours
        std_dev = hours * (1 - prediction.confidence)

        return ConfidenceInterval(
            lower=max(hours - 2 * std_dev, hours * 0.5),
            upper=hours + 2 * std_dev,
        )

    def generate_recommendations(self, prediction: Prediction, task: Task) -> List[str]:
        recommendations = []

        if prediction.confidence < self.confidence_threshold:
            recommendations.append('Consider breaking down the task into smaller parts')
            recommendations.append('Assign a more experienced developer')

        if task.complexity.value > 3:
            recommendations.append('Allocate additional time for testing and debugging')
            recommendations.append('Consider pair programming for complex parts')

        if task.dependencies:
            recommendations.append('Ensure all dependencies are completed before starting')
            recommendations.append('Plan for potential delays in dependent tasks')

        return recommendations

    def get_method_performance(self) -> Dict[str, Dict[str, float]]:
        """Count and mean confidence of predictions issued per method."""
        with self._issued_lock:
            issued = {
                method: (count, self._issued_confidence[method])
                for method, count in self._issued_counts.items()
            }

        return {
            method: {
                'predictions': count,
                'average_confidence': total / count if count else 0.0,
            }
            for method, (count, total) in issued.items()
        }

    def get_average_confidence(self) -> float:
        with self._issued_lock:
            count = sum(self._issued_counts.values())
            total = sum(self._issued_confidence.values())
        return total / count if count else 0.0

    @property
    def total_predictions(self) -> int:
        with self._issued_lock:
            return sum(self._issued_counts.values())
