"""Priority classification and ordering of obligations.

Classes are paid in ascending order:
1. Past-due recurring dues
2. Past-due metered consumption
3. Current-period recurring dues
4. Current-period metered consumption
5. Future recurring dues due within the look-ahead window

Within a class obligations are ordered by due date, then id.
"""

import logging
from dataclasses import replace
from datetime import date

from condo_billing.services.obligations import ModuleType, Obligation

logger = logging.getLogger(__name__)

PAST_DUE_DUES = 1
PAST_DUE_WATER = 2
CURRENT_DUES = 3
CURRENT_WATER = 4
FUTURE_DUES = 5


class PriorityClassifier:
    """Assigns priority classes and produces the distribution order."""

    def __init__(self, dues_lookahead_days: int = 15):
        self.dues_lookahead_days = dues_lookahead_days

    def classify(self, obligation: Obligation, as_of: date) -> int | None:
        """Return the obligation's priority class, or None if it is not payable yet.

        Past due means the due date is before ``as_of``. A bill not yet due is
        current when it falls in the same calendar month as ``as_of``.
        """
        due = obligation.due_date
        past_due = due < as_of

        if obligation.module_type == ModuleType.METERED_CONSUMPTION:
            # An existing water bill is always payable
            return PAST_DUE_WATER if past_due else CURRENT_WATER

        if past_due:
            return PAST_DUE_DUES
        if (due.year, due.month) == (as_of.year, as_of.month):
            return CURRENT_DUES
        if (due - as_of).days <= self.dues_lookahead_days:
            return FUTURE_DUES
        return None

    def sort(self, obligations: list[Obligation], as_of: date) -> list[Obligation]:
        """Classify and order obligations, dropping dues beyond the look-ahead window.

        Returns:
            New obligations with ``priority_class`` set, in payment order
        """
        classified = []
        for ob in obligations:
            priority_class = self.classify(ob, as_of)
            if priority_class is None:
                logger.debug("Excluding %s due %s: beyond look-ahead window", ob.id, ob.due_date)
                continue
            classified.append(replace(ob, priority_class=priority_class))
        classified.sort(key=lambda ob: (ob.priority_class, ob.due_date, ob.id))
        return classified


__all__ = [
    "PriorityClassifier",
    "PAST_DUE_DUES",
    "PAST_DUE_WATER",
    "CURRENT_DUES",
    "CURRENT_WATER",
    "FUTURE_DUES",
]
