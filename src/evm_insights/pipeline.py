"""
One-call pipeline: metrics -> rules -> presentation for a single project.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Container, Optional, Sequence, Tuple

from .metrics import DEFAULT_COST_PER_HOUR, compute
from .presentation import Presentation, present
from .rules import DEFAULT_THRESHOLDS, Thresholds, evaluate
from .schema import Insight, MetricResult, Project, Task


@dataclass(frozen=True)
class ProjectAnalysis:
    metrics: MetricResult
    insights: Tuple[Insight, ...]
    presentation: Presentation

    def to_dict(self) -> dict:
        data = self.presentation.to_dict()
        data["metrics"] = self.metrics.to_dict()
        data["insights"] = [i.to_dict() for i in self.insights]
        return data


def analyze_project(
    project: Project,
    tasks: Sequence[Task],
    as_of: datetime,
    *,
    max_visible: Optional[int] = None,
    dismissed_ids: Container[str] = frozenset(),
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
    fallback_cost_per_hour: float = DEFAULT_COST_PER_HOUR,
) -> ProjectAnalysis:
    """
    Compute metrics, evaluate the project rules and present the result.

    insights keeps rule-catalog order; presentation holds the sorted,
    dismissal-filtered and capped view.
    """
    metrics = compute(
        project, tasks, as_of, fallback_cost_per_hour=fallback_cost_per_hour
    )
    insights = evaluate(project, tasks, metrics, as_of, thresholds=thresholds)
    return ProjectAnalysis(
        metrics=metrics,
        insights=tuple(insights),
        presentation=present(
            insights, max_visible=max_visible, dismissed_ids=dismissed_ids
        ),
    )
