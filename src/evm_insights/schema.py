"""
Data schemas for the project insight engine.

Defines:
- Project / Task: input records supplied by the data-access layer
- MetricSet / Unavailable: output of the metric engine
- Insight (+ InsightMetric, InsightAction): output of the rule engines
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

DateLike = Union[datetime, date, str]

PROJECT_STATUSES = frozenset({"planning", "active", "on-hold", "completed"})
TASK_STATUSES = frozenset({"todo", "in-progress", "review", "completed"})
PRIORITIES = ("low", "medium", "high", "critical")
INSIGHT_TYPES = frozenset(
    {"info", "success", "warning", "recommendation", "prediction"}
)


def to_utc_datetime(value: DateLike) -> datetime:
    """
    Normalize a date-like value to a timezone-aware UTC datetime.

    Accepts datetime, date (midnight) or an ISO-8601 string. Naive values
    are treated as UTC.
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            raise ValueError(f"Unparseable date: {value!r}") from None
    else:
        raise ValueError(f"Unsupported date value: {value!r}")

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _optional_float(value: Any, name: str) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be numeric, got {value!r}") from None


@dataclass
class Project:
    """
    A project as supplied by the data-access layer.

    budget is optional; without a positive budget no earned value metrics
    are available. progress is a percentage in [0, 100].
    """

    id: str
    start_date: DateLike
    end_date: DateLike
    progress: float = 0.0
    budget: Optional[float] = None
    status: str = "active"
    priority: str = "medium"
    name: str = ""

    # Person ids; team size is len(assigned_to)
    assigned_to: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.id = str(self.id)
        self.start_date = to_utc_datetime(self.start_date)
        self.end_date = to_utc_datetime(self.end_date)
        progress = _optional_float(self.progress, "progress")
        self.progress = 0.0 if progress is None else progress
        self.budget = _optional_float(self.budget, "budget")
        self.assigned_to = [str(p) for p in self.assigned_to]
        if self.status not in PROJECT_STATUSES:
            raise ValueError(f"Unknown project status: {self.status!r}")
        if self.priority not in PRIORITIES:
            raise ValueError(f"Unknown project priority: {self.priority!r}")

    @property
    def team_size(self) -> int:
        return len(self.assigned_to)


@dataclass
class Task:
    """
    A task belonging to a project.

    Hours are optional; missing values count as zero in aggregates.
    """

    id: Optional[str] = None
    status: str = "todo"
    progress: float = 0.0
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    end_date: Optional[DateLike] = None
    dependencies: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.id is not None:
            self.id = str(self.id)
        progress = _optional_float(self.progress, "progress")
        self.progress = 0.0 if progress is None else progress
        self.estimated_hours = _optional_float(
            self.estimated_hours, "estimated_hours"
        )
        self.actual_hours = _optional_float(self.actual_hours, "actual_hours")
        if self.end_date is not None:
            self.end_date = to_utc_datetime(self.end_date)
        self.dependencies = [str(d) for d in self.dependencies]
        if self.status not in TASK_STATUSES:
            raise ValueError(f"Unknown task status: {self.status!r}")


@dataclass(frozen=True)
class MetricSet:
    """
    Earned value metrics for one project at one point in time.

    All values are finite floats. Only schedule_variance, cost_variance
    and variance_at_completion may be negative.
    """

    planned_value: float
    earned_value: float
    actual_cost: float
    schedule_variance: float
    cost_variance: float
    schedule_performance_index: float
    cost_performance_index: float
    estimate_at_completion: float
    estimate_to_complete: float
    variance_at_completion: float
    to_complete_performance_index: float

    # Inputs and intermediates, kept for rule templates
    budget: float = 0.0
    planned_progress: float = 0.0
    cost_per_hour: float = 0.0
    remaining_work: float = 0.0
    total_estimated_hours: float = 0.0
    total_actual_hours: float = 0.0

    available = True

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["available"] = True
        return data


@dataclass(frozen=True)
class Unavailable:
    """Returned instead of a MetricSet when a project has no usable budget."""

    reason: str = "project has no budget"

    available = False

    def to_dict(self) -> Dict[str, Any]:
        return {"available": False, "reason": self.reason}


UNAVAILABLE = Unavailable()

MetricResult = Union[MetricSet, Unavailable]


@dataclass(frozen=True)
class InsightMetric:
    """
    A number shown alongside an insight.

    unit is a hint for the renderer (currency, percent, ratio, hours,
    days, count); change is a signed percentage where one applies.
    """

    label: str
    value: float
    unit: str = "count"
    change: Optional[float] = None


@dataclass(frozen=True)
class InsightAction:
    label: str
    effect_id: str


@dataclass(frozen=True)
class Insight:
    """
    A prioritized finding produced by a rule.

    id is "{rule}-{entity id}", so the same rule on the same entity always
    yields the same id across recomputations.
    """

    type: str
    priority: str
    title: str
    description: str
    details: Optional[str] = None
    metrics: Tuple[InsightMetric, ...] = ()
    actions: Tuple[InsightAction, ...] = ()
    dismissible: bool = True

    # Stamped by the evaluator from the rule name and entity id
    id: str = ""
    rule: str = ""

    def __post_init__(self) -> None:
        if self.type not in INSIGHT_TYPES:
            raise ValueError(f"Unknown insight type: {self.type!r}")
        if self.priority not in PRIORITIES:
            raise ValueError(f"Unknown insight priority: {self.priority!r}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
