"""
Pure math for earned value management (EVM).

No I/O, no clock reads. Just:
- Planned progress from the project's date window and an explicit as_of
- Hour aggregation over tasks
- The MetricSet computation with its degenerate-input policies
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Iterable, Sequence, Tuple

import numpy as np

from .schema import (
    DateLike,
    MetricResult,
    MetricSet,
    Project,
    Task,
    UNAVAILABLE,
    to_utc_datetime,
)

logger = logging.getLogger(__name__)

# Cost per hour used when no task carries an hour estimate.
DEFAULT_COST_PER_HOUR = 100.0

_SECONDS_PER_DAY = 24 * 60 * 60


def clamp_percent(value: float) -> float:
    """Clamp a percentage to [0, 100]. Non-finite values become 0."""
    if not math.isfinite(value):
        return 0.0
    return min(100.0, max(0.0, value))


def _finite(value: float) -> float:
    return float(value) if np.isfinite(value) else 0.0


def planned_progress(
    start: DateLike,
    end: DateLike,
    as_of: DateLike,
) -> float:
    """
    Share of the schedule elapsed at as_of, as a percentage.

    A zero-length (or inverted) schedule counts as fully planned.
    """
    start_dt = to_utc_datetime(start)
    end_dt = to_utc_datetime(end)
    now = to_utc_datetime(as_of)

    total = (end_dt - start_dt).total_seconds()
    if total <= 0.0:
        return 100.0
    elapsed = (now - start_dt).total_seconds()
    return clamp_percent(elapsed / total * 100.0)


def days_until(moment: DateLike, as_of: DateLike) -> int:
    """
    Whole days from as_of until moment, rounded up.

    Negative once the moment has passed.
    """
    delta = to_utc_datetime(moment) - to_utc_datetime(as_of)
    return math.ceil(delta.total_seconds() / _SECONDS_PER_DAY)


def full_days_until(moment: DateLike, as_of: DateLike) -> int:
    """Whole days from as_of until moment, rounded down."""
    delta = to_utc_datetime(moment) - to_utc_datetime(as_of)
    return math.floor(delta.total_seconds() / _SECONDS_PER_DAY)


def total_hours(tasks: Iterable[Task]) -> Tuple[float, float]:
    """
    Sum estimated and actual hours over tasks.

    Missing, negative or non-finite values count as zero.
    """
    tasks = list(tasks)
    estimated = np.fromiter(
        (t.estimated_hours or 0.0 for t in tasks), dtype=float, count=len(tasks)
    )
    actual = np.fromiter(
        (t.actual_hours or 0.0 for t in tasks), dtype=float, count=len(tasks)
    )
    estimated = np.where(np.isfinite(estimated) & (estimated > 0.0), estimated, 0.0)
    actual = np.where(np.isfinite(actual) & (actual > 0.0), actual, 0.0)
    return float(estimated.sum()), float(actual.sum())


def compute(
    project: Project,
    tasks: Sequence[Task],
    as_of: datetime,
    *,
    fallback_cost_per_hour: float = DEFAULT_COST_PER_HOUR,
) -> MetricResult:
    """
    Compute the earned value metrics for a project.

    Returns UNAVAILABLE when the project has no positive budget. Otherwise:

        PV   = budget * planned% / 100
        EV   = budget * progress% / 100
        AC   = actual_hours * cost_per_hour
        SV   = EV - PV                  CV   = EV - AC
        SPI  = EV / PV  (1 if PV = 0)   CPI  = EV / AC  (1 if AC = 0)
        EAC  = budget / CPI             ETC  = max(0, EAC - AC)
        VAC  = budget - EAC
        TCPI = (budget - EV) / (EAC - AC)  (1 if EAC - AC <= 0)

    cost_per_hour is budget / estimated_hours, or fallback_cost_per_hour
    when nothing is estimated. Non-finite results are reported as 0.
    """
    budget = project.budget
    if budget is None or not math.isfinite(budget) or budget <= 0.0:
        logger.debug("Metrics unavailable for project %s: no budget", project.id)
        return UNAVAILABLE

    planned = planned_progress(project.start_date, project.end_date, as_of)
    pv = budget * planned / 100.0
    ev = budget * clamp_percent(project.progress) / 100.0

    estimated_hours, actual_hours = total_hours(tasks)
    if estimated_hours > 0.0:
        cost_per_hour = budget / estimated_hours
    else:
        cost_per_hour = fallback_cost_per_hour
    ac = actual_hours * cost_per_hour

    sv = ev - pv
    cv = ev - ac

    spi = ev / pv if pv > 0.0 else 1.0
    cpi = ev / ac if ac > 0.0 else 1.0

    eac = budget / cpi if cpi > 0.0 else budget
    etc = max(0.0, eac - ac)
    vac = budget - eac
    remaining_work = eac - ac
    tcpi = (budget - ev) / remaining_work if remaining_work > 0.0 else 1.0

    return MetricSet(
        planned_value=_finite(pv),
        earned_value=_finite(ev),
        actual_cost=_finite(ac),
        schedule_variance=_finite(sv),
        cost_variance=_finite(cv),
        schedule_performance_index=_finite(spi),
        cost_performance_index=_finite(cpi),
        estimate_at_completion=_finite(eac),
        estimate_to_complete=_finite(etc),
        variance_at_completion=_finite(vac),
        to_complete_performance_index=_finite(tcpi),
        budget=_finite(budget),
        planned_progress=_finite(planned),
        cost_per_hour=_finite(cost_per_hour),
        remaining_work=_finite(max(0.0, remaining_work)),
        total_estimated_hours=_finite(estimated_hours),
        total_actual_hours=_finite(actual_hours),
    )
