"""
Ordering, capping and dismissal of insights for display.

present() is pure: it stable-sorts by priority (critical first, ties keep
generation order), drops dismissed insights that allow dismissal, then
truncates to max_visible.

DismissalSet is the caller-owned store of dismissed insight ids. It lives
for the session; recomputing insights never clears it because insight ids
are stable for the same rule and entity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Container, FrozenSet, Iterable, Iterator, Optional, Tuple

from .schema import Insight, PRIORITIES

logger = logging.getLogger(__name__)

PRIORITY_RANK = {name: rank for rank, name in enumerate(PRIORITIES)}


@dataclass(frozen=True)
class Presentation:
    visible: Tuple[Insight, ...]
    hidden_count: int = 0
    dismissed_count: int = 0

    @property
    def total(self) -> int:
        """Insights left after dismissal, shown or not."""
        return len(self.visible) + self.hidden_count

    def to_dict(self) -> dict:
        return {
            "visible": [i.to_dict() for i in self.visible],
            "hidden_count": self.hidden_count,
            "dismissed_count": self.dismissed_count,
        }


def sort_by_priority(insights: Iterable[Insight]) -> list:
    """Highest priority first; equal priorities keep their input order."""
    return sorted(insights, key=lambda i: -PRIORITY_RANK[i.priority])


def present(
    insights: Iterable[Insight],
    max_visible: Optional[int] = None,
    dismissed_ids: Container[str] = frozenset(),
) -> Presentation:
    """
    Build the display view of a batch of insights.

    Insights whose id is in dismissed_ids are removed unless they are not
    dismissible. max_visible=None shows everything; hidden_count is the
    number of remaining insights cut off by the cap.
    """
    ordered = sort_by_priority(insights)

    kept = [i for i in ordered if not (i.dismissible and i.id in dismissed_ids)]
    dismissed_count = len(ordered) - len(kept)

    if max_visible is None:
        shown = kept
    else:
        shown = kept[: max(0, max_visible)]

    return Presentation(
        visible=tuple(shown),
        hidden_count=len(kept) - len(shown),
        dismissed_count=dismissed_count,
    )


class DismissalSet:
    """
    Session-scoped set of dismissed insight ids.

    Single writer; concurrent dismissals resolve last-write-wins. Dismissing
    a non-dismissible insight is a no-op.
    """

    def __init__(self, ids: Iterable[str] = ()) -> None:
        self._ids = set(ids)

    def dismiss(self, insight: Insight) -> bool:
        """Dismiss an insight. Returns False if it cannot be dismissed."""
        if not insight.dismissible:
            logger.debug("Ignoring dismissal of non-dismissible %s", insight.id)
            return False
        self._ids.add(insight.id)
        return True

    def dismiss_id(self, insight_id: str) -> None:
        # present() still keeps non-dismissible insights with this id
        self._ids.add(insight_id)

    def restore(self, insight_id: str) -> None:
        self._ids.discard(insight_id)

    def clear(self) -> None:
        self._ids.clear()

    @property
    def ids(self) -> FrozenSet[str]:
        return frozenset(self._ids)

    def __contains__(self, insight_id: object) -> bool:
        return insight_id in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._ids))

    def __len__(self) -> int:
        return len(self._ids)
