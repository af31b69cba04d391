"""
FastAPI app for the project insight engine.

Endpoints:
- POST /metrics
- POST /insights
- POST /portfolio/insights
- GET  /health

The dashboard front end posts the records it already holds; this layer
only validates payloads and calls the engine.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

# --- Make src/ importable ----------------------------------------------------

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from evm_insights.config import get_config
from evm_insights.metrics import compute
from evm_insights.pipeline import analyze_project
from evm_insights.portfolio import evaluate_portfolio
from evm_insights.presentation import present
from evm_insights.schema import Project, Task

config = get_config()
logging.basicConfig(
    level=getattr(logging, config.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Project Insights API")


# --- Request / Response schemas ----------------------------------------------


class ProjectPayload(BaseModel):
    """
    A project record as held by the dashboard.

    Dates may be ISO-8601 dates or datetimes. budget is optional; without
    it no earned value metrics are produced.
    """

    id: str
    name: str = ""
    start_date: str
    end_date: str
    progress: float = 0.0
    budget: Optional[float] = None
    status: str = "active"
    priority: str = "medium"
    assigned_to: List[str] = Field(default_factory=list)


class TaskPayload(BaseModel):
    id: Optional[str] = None
    status: str = "todo"
    progress: float = 0.0
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    end_date: Optional[str] = None
    dependencies: List[str] = Field(default_factory=list)


class MetricsRequest(BaseModel):
    project: ProjectPayload
    tasks: List[TaskPayload] = Field(default_factory=list)
    as_of: datetime


class InsightsRequest(MetricsRequest):
    max_visible: Optional[int] = None
    dismissed_ids: List[str] = Field(default_factory=list)


class PortfolioRequest(BaseModel):
    projects: List[ProjectPayload]
    as_of: datetime
    portfolio_id: str = "portfolio"
    max_visible: Optional[int] = None
    dismissed_ids: List[str] = Field(default_factory=list)


# --- Helpers -----------------------------------------------------------------


def _to_project(payload: ProjectPayload) -> Project:
    return Project(**payload.model_dump())


def _to_tasks(payloads: List[TaskPayload]) -> List[Task]:
    return [Task(**t.model_dump()) for t in payloads]


def _max_visible(requested: Optional[int]) -> Optional[int]:
    return requested if requested is not None else config.max_visible


# --- Endpoints ---------------------------------------------------------------


@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/metrics")
def metrics(payload: MetricsRequest) -> Dict[str, Any]:
    """
    Earned value metrics for one project.

    Returns {"available": false, "reason": ...} when the project has no
    budget.
    """
    try:
        project = _to_project(payload.project)
        tasks = _to_tasks(payload.tasks)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = compute(
        project,
        tasks,
        payload.as_of,
        fallback_cost_per_hour=config.fallback_cost_per_hour,
    )
    return result.to_dict()


@app.post("/insights")
def insights(payload: InsightsRequest) -> Dict[str, Any]:
    """
    Metrics, raw insights and the presented (sorted, filtered, capped) view.

    Body example:
    {
      "project": {"id": "P-1", "start_date": "2026-01-01",
                  "end_date": "2026-03-01", "progress": 40, "budget": 100000},
      "tasks": [{"estimated_hours": 500, "actual_hours": 300}],
      "as_of": "2026-01-31T00:00:00Z",
      "dismissed_ids": ["budget-forecast-P-1"]
    }
    """
    try:
        project = _to_project(payload.project)
        tasks = _to_tasks(payload.tasks)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    analysis = analyze_project(
        project,
        tasks,
        payload.as_of,
        max_visible=_max_visible(payload.max_visible),
        dismissed_ids=frozenset(payload.dismissed_ids),
        fallback_cost_per_hour=config.fallback_cost_per_hour,
    )
    logger.info(
        "Project %s: %d insights, %d visible",
        project.id,
        len(analysis.insights),
        len(analysis.presentation.visible),
    )
    return analysis.to_dict()


@app.post("/portfolio/insights")
def portfolio_insights(payload: PortfolioRequest) -> Dict[str, Any]:
    if not config.include_portfolio:
        raise HTTPException(status_code=404, detail="Portfolio insights disabled")
    try:
        projects = [_to_project(p) for p in payload.projects]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    found = evaluate_portfolio(
        projects, payload.as_of, portfolio_id=payload.portfolio_id
    )
    presentation = present(
        found,
        max_visible=_max_visible(payload.max_visible),
        dismissed_ids=frozenset(payload.dismissed_ids),
    )
    data = presentation.to_dict()
    data["insights"] = [i.to_dict() for i in found]
    return data


# Convenience for local dev:
# uvicorn app.api:app --reload
if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.api:app", host="0.0.0.0", port=8000, reload=True)
