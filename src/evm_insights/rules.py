"""
Rule catalog and evaluator for project insights.

Each rule is a plain function taking a RuleContext and returning an
Insight or None. RULES fixes the evaluation order; evaluate() runs every
rule in that order and concatenates the results. A rule that raises is
logged and skipped so one defect never suppresses the other rules.

Rules flagged requires_metrics only run when the project has a MetricSet.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from .metrics import clamp_percent, days_until, full_days_until, total_hours
from .schema import (
    Insight,
    InsightAction,
    InsightMetric,
    MetricResult,
    MetricSet,
    Project,
    Task,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Thresholds:
    """Trigger levels for the project rules. Ratios are fractions of budget."""

    schedule_variance_ratio: float = 0.10
    cost_variance_ratio: float = 0.05
    tcpi_limit: float = 1.2
    spi_risk_floor: float = 0.8
    budget_overrun_high_ratio: float = 0.15
    low_progress: float = 30.0
    on_track_progress: float = 70.0
    hours_overrun_factor: float = 1.1
    velocity_completion_rate: float = 60.0
    velocity_max_in_progress: int = 3
    min_team_size: int = 2
    large_task_count: int = 10
    deadline_days: int = 7
    deadline_progress: float = 90.0
    upcoming_window_days: int = 14
    upcoming_min_tasks: int = 3


DEFAULT_THRESHOLDS = Thresholds()


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may look at. Built once per evaluate() call."""

    project: Project
    tasks: Sequence[Task]
    metrics: Optional[MetricSet]
    as_of: datetime
    thresholds: Thresholds = DEFAULT_THRESHOLDS

    completed_count: int = 0
    in_progress_count: int = 0
    completion_rate: float = 0.0
    total_estimated_hours: float = 0.0
    total_actual_hours: float = 0.0
    days_to_end: int = 0
    blocked_count: int = 0
    upcoming_count: int = 0

    @classmethod
    def build(
        cls,
        project: Project,
        tasks: Sequence[Task],
        metrics: MetricResult,
        as_of: datetime,
        thresholds: Thresholds = DEFAULT_THRESHOLDS,
    ) -> "RuleContext":
        tasks = list(tasks)
        completed = sum(1 for t in tasks if t.status == "completed")
        in_progress = sum(1 for t in tasks if t.status == "in-progress")
        rate = completed / len(tasks) * 100.0 if tasks else 0.0
        estimated, actual = total_hours(tasks)
        return cls(
            project=project,
            tasks=tasks,
            metrics=metrics if isinstance(metrics, MetricSet) else None,
            as_of=as_of,
            thresholds=thresholds,
            completed_count=completed,
            in_progress_count=in_progress,
            completion_rate=rate,
            total_estimated_hours=estimated,
            total_actual_hours=actual,
            days_to_end=days_until(project.end_date, as_of),
            blocked_count=len(blocked_tasks(tasks)),
            upcoming_count=len(
                upcoming_tasks(tasks, as_of, thresholds.upcoming_window_days)
            ),
        )

    @property
    def progress(self) -> float:
        return clamp_percent(self.project.progress)

    @property
    def task_count(self) -> int:
        return len(self.tasks)


@dataclass(frozen=True)
class Rule:
    name: str
    build: Callable[[RuleContext], Optional[Insight]]
    requires_metrics: bool = False

    def insight_id(self, entity_id: str) -> str:
        return f"{self.name}-{entity_id}"

    def apply(self, ctx: RuleContext, entity_id: str) -> Optional[Insight]:
        insight = self.build(ctx)
        if insight is None:
            return None
        return replace(insight, id=self.insight_id(entity_id), rule=self.name)


def _pct_of(value: float, whole: float) -> float:
    return value / whole * 100.0 if whole else 0.0


def _at_or_below(value: float, limit: float) -> bool:
    return value < limit or math.isclose(value, limit, rel_tol=1e-9)


def blocked_tasks(tasks: Sequence[Task]) -> List[Task]:
    """
    Unstarted tasks waiting on a dependency that is not completed.

    Dependency ids that match no task in the list are ignored.
    """
    status_by_id = {t.id: t.status for t in tasks if t.id is not None}
    return [
        t
        for t in tasks
        if t.status == "todo"
        and any(
            dep in status_by_id and status_by_id[dep] != "completed"
            for dep in t.dependencies
        )
    ]


def upcoming_tasks(
    tasks: Sequence[Task], as_of: datetime, window_days: int
) -> List[Task]:
    """Open tasks due within the next window_days full days (today excluded)."""
    return [
        t
        for t in tasks
        if t.end_date is not None
        and t.status != "completed"
        and 0 < full_days_until(t.end_date, as_of) <= window_days
    ]


# --- EVM rules ---------------------------------------------------------------


def schedule_critical(ctx: RuleContext) -> Optional[Insight]:
    m = ctx.metrics
    limit = -ctx.thresholds.schedule_variance_ratio * m.budget
    if not _at_or_below(m.schedule_variance, limit):
        return None
    spi = m.schedule_performance_index
    return Insight(
        type="warning",
        priority="critical",
        title="Critical Schedule Delay Detected",
        description=(
            f"Project is {abs(m.schedule_variance):,.0f} behind schedule in "
            "earned value terms. Significant deadline risk."
        ),
        details=(
            f"With an SPI of {spi:.2f}, the project is earning value at "
            f"{round(spi * 100)}% of the planned rate. To recover, consider "
            "adding resources, reducing scope or negotiating a timeline extension."
        ),
        metrics=(
            InsightMetric(
                "Schedule Variance",
                m.schedule_variance,
                unit="currency",
                change=_pct_of(m.schedule_variance, m.budget),
            ),
            InsightMetric("SPI", spi, unit="ratio"),
        ),
        actions=(InsightAction("Recovery Plan", "schedule.recovery-plan"),),
    )


def cost_warning(ctx: RuleContext) -> Optional[Insight]:
    m = ctx.metrics
    if not m.cost_variance < -ctx.thresholds.cost_variance_ratio * m.budget:
        return None
    cpi = m.cost_performance_index
    return Insight(
        type="warning",
        priority="high",
        title="Cost Overrun in Progress",
        description=(
            f"Project is {abs(m.cost_variance):,.0f} over budget. Estimate at "
            f"completion is {m.estimate_at_completion:,.0f}."
        ),
        details=(
            f"A CPI of {cpi:.2f} means {round(cpi * 100)} cents of value for every "
            "unit spent. Consider cost reduction measures or a budget revision."
        ),
        metrics=(
            InsightMetric(
                "Cost Variance",
                m.cost_variance,
                unit="currency",
                change=_pct_of(m.cost_variance, m.budget),
            ),
            InsightMetric("VAC", m.variance_at_completion, unit="currency"),
        ),
        actions=(InsightAction("Cost Optimization", "cost.optimize"),),
    )


def tcpi_high(ctx: RuleContext) -> Optional[Insight]:
    tcpi = ctx.metrics.to_complete_performance_index
    if not tcpi > ctx.thresholds.tcpi_limit:
        return None
    return Insight(
        type="warning",
        priority="high",
        title="High Efficiency Required to Meet Budget",
        description=(
            f"TCPI of {tcpi:.2f} means the remaining work must run at "
            f"{round(tcpi * 100)}% efficiency to stay on budget."
        ),
        details=(
            "This level of efficiency is rarely achieved. Revise the budget "
            "baseline or find significant cost reductions now."
        ),
        metrics=(InsightMetric("TCPI", tcpi, unit="ratio"),),
        actions=(InsightAction("Budget Revision", "budget.revise"),),
    )


def excellent_performance(ctx: RuleContext) -> Optional[Insight]:
    m = ctx.metrics
    if not (m.schedule_variance > 0 and m.cost_variance > 0):
        return None
    return Insight(
        type="success",
        priority="low",
        title="Excellent Project Performance",
        description=(
            "Project is both ahead of schedule "
            f"(SPI: {m.schedule_performance_index:.2f}) and under budget "
            f"(CPI: {m.cost_performance_index:.2f})."
        ),
        details="Document what worked here so other projects can reuse it.",
        metrics=(
            InsightMetric("SPI", m.schedule_performance_index, unit="ratio"),
            InsightMetric("CPI", m.cost_performance_index, unit="ratio"),
        ),
        actions=(
            InsightAction("Document Best Practices", "report.best-practices"),
        ),
    )


def schedule_risk_prediction(ctx: RuleContext) -> Optional[Insight]:
    spi = ctx.metrics.schedule_performance_index
    if not (ctx.thresholds.spi_risk_floor < spi < 1.0):
        return None
    return Insight(
        type="prediction",
        priority="medium",
        title="Schedule Risk Emerging",
        description=(
            "Schedule performance is declining. Early intervention can "
            "prevent critical delays."
        ),
        details=(
            f"While not critical yet, an SPI of {spi:.2f} suggests the project "
            "is slowing down. Check task blockers and resource availability."
        ),
        metrics=(InsightMetric("SPI", spi, unit="ratio"),),
        actions=(InsightAction("Analyze Blockers", "schedule.analyze-blockers"),),
    )


def budget_forecast(ctx: RuleContext) -> Optional[Insight]:
    m = ctx.metrics
    vac = m.variance_at_completion
    if not vac < 0:
        return None
    overrun = abs(vac) / m.budget
    if overrun > ctx.thresholds.budget_overrun_high_ratio:
        priority = "high"
    else:
        priority = "medium"
    return Insight(
        type="recommendation",
        priority=priority,
        title="Budget Forecast Adjustment Needed",
        description=(
            f"Forecast is a {round(overrun * 100)}% budget overrun "
            f"({abs(vac):,.0f})."
        ),
        details=(
            "At the current cost performance the project will exceed its "
            "budget. Notify stakeholders and start corrective actions."
        ),
        metrics=(
            InsightMetric("VAC", vac, unit="currency", change=-overrun * 100.0),
            InsightMetric("EAC", m.estimate_at_completion, unit="currency"),
        ),
        actions=(
            InsightAction("Stakeholder Report", "report.stakeholder-forecast"),
            InsightAction("Corrective Actions", "budget.corrective-actions"),
        ),
    )


# --- Entity-state rules ------------------------------------------------------


def progress_below_target(ctx: RuleContext) -> Optional[Insight]:
    if not (
        ctx.progress < ctx.thresholds.low_progress
        and ctx.project.status == "active"
    ):
        return None
    return Insight(
        type="warning",
        priority="high",
        title="Project Progress Below Target",
        description=(
            f"Project is {ctx.progress:g}% complete and may be at risk. "
            "Review task assignments and remove blockers."
        ),
        metrics=(
            InsightMetric("Current Progress", ctx.progress, unit="percent"),
            InsightMetric("Tasks Complete", ctx.completed_count),
            InsightMetric("Total Tasks", ctx.task_count),
        ),
    )


def on_track_success(ctx: RuleContext) -> Optional[Insight]:
    if not ctx.progress >= ctx.thresholds.on_track_progress:
        return None
    return Insight(
        type="success",
        priority="low",
        title="Project on Track for Success",
        description=(
            f"Excellent progress at {ctx.progress:g}%. Keep up the momentum "
            "to deliver on time."
        ),
        metrics=(
            InsightMetric("Progress", ctx.progress, unit="percent"),
            InsightMetric("Completed Tasks", ctx.completed_count),
        ),
    )


def hours_over_estimate(ctx: RuleContext) -> Optional[Insight]:
    estimated = ctx.total_estimated_hours
    actual = ctx.total_actual_hours
    if not actual > estimated * ctx.thresholds.hours_overrun_factor:
        return None
    change = (actual - estimated) / estimated * 100.0 if estimated > 0 else None
    return Insight(
        type="warning",
        priority="medium",
        title="Hours Over Estimate",
        description=(
            "Actual hours are exceeding estimates. Review task complexity "
            "and resource allocation."
        ),
        details=(
            "Consider redistributing workload or adjusting the project "
            "timeline to prevent burnout."
        ),
        metrics=(
            InsightMetric("Estimated Hours", estimated, unit="hours"),
            InsightMetric("Actual Hours", actual, unit="hours", change=change),
        ),
    )


def strong_velocity(ctx: RuleContext) -> Optional[Insight]:
    t = ctx.thresholds
    if not (
        ctx.completion_rate > t.velocity_completion_rate
        and ctx.in_progress_count < t.velocity_max_in_progress
    ):
        return None
    return Insight(
        type="recommendation",
        priority="medium",
        title="Strong Task Completion Velocity",
        description=(
            "Team is completing tasks efficiently. Consider starting "
            "additional work items to maintain momentum."
        ),
        metrics=(
            InsightMetric("Completion Rate", ctx.completion_rate, unit="percent"),
            InsightMetric("In Progress", ctx.in_progress_count),
        ),
    )


def consider_team_expansion(ctx: RuleContext) -> Optional[Insight]:
    t = ctx.thresholds
    if not (
        ctx.project.team_size < t.min_team_size
        and ctx.task_count > t.large_task_count
    ):
        return None
    return Insight(
        type="info",
        priority="low",
        title="Consider Team Expansion",
        description=(
            f"Project has {ctx.task_count} tasks with a small team. "
            "Adding people would speed up delivery."
        ),
        metrics=(
            InsightMetric("Tasks", ctx.task_count),
            InsightMetric("Team Members", ctx.project.team_size),
        ),
    )


def deadline_approaching(ctx: RuleContext) -> Optional[Insight]:
    t = ctx.thresholds
    days = ctx.days_to_end
    if not (0 < days < t.deadline_days and ctx.progress < t.deadline_progress):
        return None
    remaining = 100.0 - ctx.progress
    return Insight(
        type="warning",
        priority="critical",
        title="Project Deadline Approaching",
        description=(
            f"Only {days} day{'s' if days != 1 else ''} remaining with "
            f"{remaining:g}% of work incomplete. Immediate action required."
        ),
        details=(
            "Focus on critical path tasks and request a timeline extension "
            "if needed."
        ),
        metrics=(
            InsightMetric("Days Left", days, unit="days"),
            InsightMetric("Remaining Work", remaining, unit="percent"),
        ),
        dismissible=False,
    )


# --- Task schedule rules -----------------------------------------------------


def blocked_by_dependencies(ctx: RuleContext) -> Optional[Insight]:
    count = ctx.blocked_count
    if not count > 0:
        return None
    return Insight(
        type="warning",
        priority="medium",
        title=f"{count} Task{'s' if count != 1 else ''} Blocked by Dependencies",
        description=(
            "Tasks are waiting on incomplete dependencies. Resolving the "
            "blockers would let them start."
        ),
        metrics=(InsightMetric("Blocked Tasks", count),),
        actions=(
            InsightAction("View Blockers", "schedule.view-blockers"),
            InsightAction("Suggest Workarounds", "schedule.suggest-workarounds"),
        ),
    )


def upcoming_activity(ctx: RuleContext) -> Optional[Insight]:
    t = ctx.thresholds
    count = ctx.upcoming_count
    if not count > t.upcoming_min_tasks:
        return None
    return Insight(
        type="prediction",
        priority="medium",
        title="High Activity Period Ahead",
        description=(
            f"{count} tasks are due in the next {t.upcoming_window_days} days. "
            "Consider load balancing to prevent bottlenecks."
        ),
        metrics=(
            InsightMetric("Tasks Due Soon", count),
            InsightMetric("Window", t.upcoming_window_days, unit="days"),
        ),
        actions=(
            InsightAction("View Timeline", "schedule.view-timeline"),
            InsightAction("Balance Workload", "team.balance-workload"),
        ),
    )


RULES: Tuple[Rule, ...] = (
    Rule("schedule-critical", schedule_critical, requires_metrics=True),
    Rule("cost-warning", cost_warning, requires_metrics=True),
    Rule("tcpi-high", tcpi_high, requires_metrics=True),
    Rule("excellent-performance", excellent_performance, requires_metrics=True),
    Rule("schedule-risk-prediction", schedule_risk_prediction, requires_metrics=True),
    Rule("budget-forecast", budget_forecast, requires_metrics=True),
    Rule("progress-below-target", progress_below_target),
    Rule("on-track-success", on_track_success),
    Rule("hours-over-estimate", hours_over_estimate),
    Rule("strong-velocity", strong_velocity),
    Rule("consider-team-expansion", consider_team_expansion),
    Rule("deadline-approaching", deadline_approaching),
    Rule("blocked-by-dependencies", blocked_by_dependencies),
    Rule("upcoming-activity", upcoming_activity),
)


def evaluate(
    project: Project,
    tasks: Sequence[Task],
    metrics: MetricResult,
    as_of: datetime,
    *,
    rules: Sequence[Rule] = RULES,
    thresholds: Thresholds = DEFAULT_THRESHOLDS,
) -> List[Insight]:
    """
    Run every rule against one project and collect the insights.

    Output order follows the order of `rules`. Metric rules are skipped
    when `metrics` is Unavailable.
    """
    ctx = RuleContext.build(project, tasks, metrics, as_of, thresholds)

    insights: List[Insight] = []
    for rule in rules:
        if rule.requires_metrics and ctx.metrics is None:
            logger.debug(
                "Skipping rule %s for project %s: metrics unavailable",
                rule.name,
                project.id,
            )
            continue
        try:
            insight = rule.apply(ctx, project.id)
        except Exception:
            logger.exception(
                "Rule %s failed for project %s; skipping", rule.name, project.id
            )
            continue
        if insight is not None:
            insights.append(insight)
    return insights
