"""
Tests for ordering, capping and dismissal of insights.
"""
import pytest

from evm_insights.presentation import DismissalSet, present, sort_by_priority
from evm_insights.rules import evaluate
from evm_insights.metrics import compute
from evm_insights.schema import Insight


def _insight(n, priority, dismissible=True):
    return Insight(
        type="info",
        priority=priority,
        title=f"Insight {n}",
        description="",
        dismissible=dismissible,
        id=f"rule-{n}-P-1",
        rule=f"rule-{n}",
    )


@pytest.fixture
def mixed():
    """Priorities low, critical, high, medium, critical in generation order."""
    return [
        _insight(0, "low"),
        _insight(1, "critical"),
        _insight(2, "high"),
        _insight(3, "medium"),
        _insight(4, "critical"),
    ]


class TestOrdering:
    """Priority sort is stable."""

    def test_priority_order(self, mixed):
        """Critical first, then high, medium, low."""
        result = present(mixed)
        assert [i.priority for i in result.visible] == [
            "critical", "critical", "high", "medium", "low",
        ]

    def test_ties_keep_generation_order(self, mixed):
        """Equal priorities stay in the order the rules produced them."""
        result = present(mixed)
        assert [i.id for i in result.visible[:2]] == ["rule-1-P-1", "rule-4-P-1"]

    def test_sort_does_not_mutate_input(self, mixed):
        """The caller's list keeps its order."""
        before = list(mixed)
        sort_by_priority(mixed)
        assert mixed == before


class TestCapping:
    """max_visible truncates and reports the remainder."""

    def test_no_cap_shows_everything(self, mixed):
        """Without max_visible nothing is hidden."""
        result = present(mixed)
        assert len(result.visible) == 5
        assert result.hidden_count == 0

    @pytest.mark.parametrize("cap, shown, hidden", [(2, 2, 3), (5, 5, 0), (9, 5, 0), (0, 0, 5)])
    def test_hidden_count(self, mixed, cap, shown, hidden):
        """hidden_count is total minus the cap when the cap is exceeded."""
        result = present(mixed, max_visible=cap)
        assert len(result.visible) == shown
        assert result.hidden_count == hidden
        assert result.total == 5

    def test_cap_keeps_highest_priorities(self, mixed):
        """Truncation happens after sorting."""
        result = present(mixed, max_visible=3)
        assert [i.priority for i in result.visible] == ["critical", "critical", "high"]


class TestDismissal:
    """Dismissed insights drop out unless they are not dismissible."""

    def test_dismissed_insight_removed(self, mixed):
        """A dismissed id disappears from the visible list."""
        result = present(mixed, dismissed_ids={"rule-2-P-1"})
        assert "rule-2-P-1" not in [i.id for i in result.visible]
        assert result.dismissed_count == 1

    def test_hidden_count_excludes_dismissed(self, mixed):
        """Dismissed insights are not counted as hidden by the cap."""
        result = present(mixed, max_visible=2, dismissed_ids={"rule-0-P-1"})
        assert result.hidden_count == 2

    def test_non_dismissible_ignores_dismissal(self):
        """A non-dismissible insight stays visible even if its id is dismissed."""
        pinned = _insight(9, "critical", dismissible=False)
        result = present([pinned], dismissed_ids={pinned.id})
        assert result.visible == (pinned,)
        assert result.dismissed_count == 0

    def test_dismissal_set_refuses_non_dismissible(self):
        """Dismissing a pinned insight is a no-op."""
        dismissed = DismissalSet()
        assert dismissed.dismiss(_insight(9, "critical", dismissible=False)) is False
        assert len(dismissed) == 0

    def test_dismissal_set_operations(self, mixed):
        """Ids can be dismissed, restored and cleared."""
        dismissed = DismissalSet()
        assert dismissed.dismiss(mixed[0]) is True
        dismissed.dismiss_id("rule-3-P-1")
        assert "rule-0-P-1" in dismissed
        assert list(dismissed) == ["rule-0-P-1", "rule-3-P-1"]

        dismissed.restore("rule-0-P-1")
        assert dismissed.ids == frozenset({"rule-3-P-1"})

        dismissed.clear()
        assert len(dismissed) == 0

    def test_dismissal_survives_recomputation(self, scenario_a, as_of):
        """Recomputed insights keep their ids, so dismissal still applies."""
        project, tasks = scenario_a
        first = evaluate(project, tasks, compute(project, tasks, as_of), as_of)

        dismissed = DismissalSet()
        cost = next(i for i in first if i.rule == "cost-warning")
        dismissed.dismiss(cost)
        deadline = next(i for i in first if i.rule == "deadline-approaching")
        assert dismissed.dismiss(deadline) is False
        dismissed.dismiss_id(deadline.id)

        again = evaluate(project, tasks, compute(project, tasks, as_of), as_of)
        visible_ids = [i.id for i in present(again, dismissed_ids=dismissed).visible]
        assert cost.id not in visible_ids
        assert deadline.id in visible_ids
        assert visible_ids[:2] == ["schedule-critical-P-1", "deadline-approaching-P-1"]
