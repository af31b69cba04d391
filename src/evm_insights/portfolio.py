"""
Portfolio-wide insight rules.

Same shape as the project rules: an ordered catalog of plain functions
over a PortfolioContext, evaluated with per-rule fault isolation. Insight
ids are "{rule}-{portfolio_id}".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, List, Optional, Sequence, Tuple

from .metrics import clamp_percent, days_until
from .schema import Insight, InsightAction, InsightMetric, Project

logger = logging.getLogger(__name__)

AT_RISK_DAYS = 7
AT_RISK_PROGRESS = 80.0
CAPACITY_MIN_ACTIVE = 3
CAPACITY_LOW_PROGRESS = 50.0
SUCCESS_MIN_COMPLETED = 2


@dataclass(frozen=True)
class PortfolioContext:
    projects: Sequence[Project]
    as_of: datetime

    def with_status(self, status: str) -> List[Project]:
        return [p for p in self.projects if p.status == status]


@dataclass(frozen=True)
class PortfolioRule:
    name: str
    build: Callable[[PortfolioContext], Optional[Insight]]

    def apply(self, ctx: PortfolioContext, portfolio_id: str) -> Optional[Insight]:
        insight = self.build(ctx)
        if insight is None:
            return None
        return replace(insight, id=f"{self.name}-{portfolio_id}", rule=self.name)


def _average_progress(projects: Sequence[Project]) -> float:
    if not projects:
        return 0.0
    return sum(clamp_percent(p.progress) for p in projects) / len(projects)


def _names(projects: Sequence[Project]) -> str:
    return ", ".join(p.name or p.id for p in projects)


def portfolio_at_risk(ctx: PortfolioContext) -> Optional[Insight]:
    at_risk = [
        p
        for p in ctx.with_status("active")
        if days_until(p.end_date, ctx.as_of) < AT_RISK_DAYS
        and clamp_percent(p.progress) < AT_RISK_PROGRESS
    ]
    if not at_risk:
        return None
    count = len(at_risk)
    plural = count > 1
    return Insight(
        type="warning",
        priority="high",
        title=f"{count} Project{'s' if plural else ''} at Risk",
        description=(
            f"{_names(at_risk)} {'are' if plural else 'is'} behind schedule "
            "with less than a week until the deadline."
        ),
        details=(
            "At the current progress rate these projects may miss their "
            "deadlines. Reallocate resources or adjust timelines."
        ),
        metrics=(
            InsightMetric("Projects at Risk", count),
            InsightMetric("Avg. Progress", _average_progress(at_risk), unit="percent"),
        ),
        actions=(
            InsightAction("View Projects", "portfolio.view-at-risk"),
            InsightAction("Generate Recovery Plan", "schedule.recovery-plan"),
        ),
    )


def portfolio_capacity(ctx: PortfolioContext) -> Optional[Insight]:
    active = ctx.with_status("active")
    if len(active) < CAPACITY_MIN_ACTIVE:
        return None
    average = _average_progress(active)
    if not average < CAPACITY_LOW_PROGRESS:
        return None
    return Insight(
        type="recommendation",
        priority="medium",
        title="Resource Optimization Opportunity",
        description=(
            f"Average progress across active projects is {round(average)}%. "
            "Focus resources on the two or three highest-priority projects."
        ),
        details=(
            "Spreading people across many projects lowers overall "
            "throughput. Prioritize critical projects to raise completion rates."
        ),
        metrics=(
            InsightMetric("Active Projects", len(active)),
            InsightMetric("Avg. Progress", average, unit="percent"),
        ),
        actions=(InsightAction("See Recommendations", "portfolio.rebalance"),),
    )


def portfolio_success_pattern(ctx: PortfolioContext) -> Optional[Insight]:
    completed = ctx.with_status("completed")
    if len(completed) < SUCCESS_MIN_COMPLETED:
        return None
    return Insight(
        type="success",
        priority="low",
        title="Success Pattern Detected",
        description=(
            f"{len(completed)} completed projects share traits worth "
            "applying to active work."
        ),
        metrics=(InsightMetric("Completed Projects", len(completed)),),
        actions=(
            InsightAction("Apply to Active Projects", "portfolio.apply-patterns"),
        ),
    )


def portfolio_on_hold(ctx: PortfolioContext) -> Optional[Insight]:
    on_hold = ctx.with_status("on-hold")
    if not on_hold:
        return None
    count = len(on_hold)
    return Insight(
        type="info",
        priority="low",
        title=f"{count} Project{'s' if count > 1 else ''} On Hold",
        description=(
            "Review on-hold projects quarterly to decide whether to "
            "reactivate or close them."
        ),
        metrics=(InsightMetric("On Hold", count),),
        actions=(InsightAction("Review Projects", "portfolio.review-on-hold"),),
    )


PORTFOLIO_RULES: Tuple[PortfolioRule, ...] = (
    PortfolioRule("portfolio-at-risk", portfolio_at_risk),
    PortfolioRule("portfolio-capacity", portfolio_capacity),
    PortfolioRule("portfolio-success-pattern", portfolio_success_pattern),
    PortfolioRule("portfolio-on-hold", portfolio_on_hold),
)


def evaluate_portfolio(
    projects: Sequence[Project],
    as_of: datetime,
    *,
    portfolio_id: str = "portfolio",
    rules: Sequence[PortfolioRule] = PORTFOLIO_RULES,
) -> List[Insight]:
    """Run the portfolio rules in catalog order and collect their insights."""
    ctx = PortfolioContext(projects=list(projects), as_of=as_of)

    insights: List[Insight] = []
    for rule in rules:
        try:
            insight = rule.apply(ctx, portfolio_id)
        except Exception:
            logger.exception(
                "Portfolio rule %s failed for %s; skipping", rule.name, portfolio_id
            )
            continue
        if insight is not None:
            insights.append(insight)
    return insights
