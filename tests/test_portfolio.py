"""
Tests for portfolio-wide insights and the single-project pipeline.
"""
from evm_insights.pipeline import analyze_project
from evm_insights.portfolio import PORTFOLIO_RULES, PortfolioRule, evaluate_portfolio
from evm_insights.schema import MetricSet, Unavailable


def _rules(insights):
    return [i.rule for i in insights]


class TestPortfolio:
    """Portfolio rules over a list of projects."""

    def test_catalog_holds_portfolio_rules(self):
        """The portfolio catalog is a tuple of PortfolioRule entries in order."""
        assert isinstance(PORTFOLIO_RULES, tuple)
        assert all(isinstance(r, PortfolioRule) for r in PORTFOLIO_RULES)
        assert [r.name for r in PORTFOLIO_RULES] == [
            "portfolio-at-risk",
            "portfolio-capacity",
            "portfolio-success-pattern",
            "portfolio-on-hold",
        ]

    def test_at_risk_projects(self, make_project, as_of):
        """Active projects near their deadline and below 80% are at risk."""
        projects = [
            make_project(id="P-1", name="Mobile App", progress=40),
            make_project(id="P-2", name="Portal", progress=85),
            make_project(id="P-3", name="Infra", end_date="2026-03-01", progress=10),
        ]
        insights = evaluate_portfolio(projects, as_of)
        risk = insights[0]
        assert risk.id == "portfolio-at-risk-portfolio"
        assert risk.title == "1 Project at Risk"
        assert "Mobile App is behind schedule" in risk.description

    def test_capacity_needs_three_active(self, make_project, as_of):
        """Low average progress across three active projects suggests focus."""
        far = "2026-06-01"
        projects = [make_project(id=f"P-{n}", end_date=far, progress=20) for n in range(3)]
        assert _rules(evaluate_portfolio(projects, as_of)) == ["portfolio-capacity"]
        assert evaluate_portfolio(projects[:2], as_of) == []

    def test_completed_and_on_hold(self, make_project, as_of):
        """Completed and on-hold projects produce low-priority insights."""
        projects = [
            make_project(id="P-1", status="completed", progress=100),
            make_project(id="P-2", status="completed", progress=100),
            make_project(id="P-3", status="on-hold"),
        ]
        insights = evaluate_portfolio(projects, as_of, portfolio_id="acme")
        assert [i.id for i in insights] == [
            "portfolio-success-pattern-acme",
            "portfolio-on-hold-acme",
        ]
        assert all(i.priority == "low" for i in insights)

    def test_failing_rule_is_skipped(self, make_project, as_of):
        """A broken portfolio rule does not stop the others."""
        def broken(ctx):
            raise KeyError("missing")

        rules = (PortfolioRule("broken", broken),) + PORTFOLIO_RULES
        projects = [make_project(status="on-hold")]
        assert _rules(evaluate_portfolio(projects, as_of, rules=rules)) == [
            "portfolio-on-hold"
        ]


class TestPipeline:
    """analyze_project runs metrics, rules and presentation together."""

    def test_analysis(self, scenario_a, as_of):
        """The presented view is sorted and capped; raw insights keep rule order."""
        project, tasks = scenario_a
        analysis = analyze_project(project, tasks, as_of, max_visible=2)

        assert isinstance(analysis.metrics, MetricSet)
        assert [i.rule for i in analysis.insights] == [
            "schedule-critical",
            "cost-warning",
            "budget-forecast",
            "deadline-approaching",
        ]
        assert [i.rule for i in analysis.presentation.visible] == [
            "schedule-critical",
            "deadline-approaching",
        ]
        assert analysis.presentation.hidden_count == 2

    def test_analysis_without_budget(self, make_project, as_of):
        """No budget still yields entity-state insights."""
        analysis = analyze_project(make_project(budget=None, progress=20), [], as_of)
        assert isinstance(analysis.metrics, Unavailable)
        data = analysis.to_dict()
        assert data["metrics"] == {"available": False, "reason": "project has no budget"}
        assert "progress-below-target" in [i["rule"] for i in data["insights"]]

    def test_analysis_respects_dismissal(self, scenario_a, as_of):
        """Dismissed ids are filtered from the presented view only."""
        project, tasks = scenario_a
        analysis = analyze_project(
            project, tasks, as_of, dismissed_ids={"cost-warning-P-1"}
        )
        assert len(analysis.insights) == 4
        assert "cost-warning-P-1" not in [i.id for i in analysis.presentation.visible]
