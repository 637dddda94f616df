"""Unit tests for priority classification and ordering."""

from datetime import date

import pytest

from condo_billing.services.obligations import ModuleType, Obligation
from condo_billing.services.priority_service import (
    CURRENT_DUES,
    CURRENT_WATER,
    FUTURE_DUES,
    PAST_DUE_DUES,
    PAST_DUE_WATER,
    PriorityClassifier,
)

AS_OF = date(2026, 3, 5)


def dues(month: int, year: int = 2026) -> Obligation:
    return Obligation(
        id=f"dues:{year}:{month:02d}",
        module_type=ModuleType.RECURRING_DUES,
        original_base=95000,
        penalty=0,
        base_paid=0,
        penalty_paid=0,
        due_date=date(year, month, 1),
        label=f"{month:02d}/{year}",
    )


def water(period: str, due_date: date) -> Obligation:
    return Obligation(
        id=f"water:{period}",
        module_type=ModuleType.METERED_CONSUMPTION,
        original_base=40000,
        penalty=0,
        base_paid=0,
        penalty_paid=0,
        due_date=due_date,
        label=f"Water {period}",
    )


@pytest.mark.unit
class TestPriorityClassifier:
    """Test priority classes."""

    @pytest.fixture
    def classifier(self):
        return PriorityClassifier(dues_lookahead_days=15)

    def test_past_due_dues(self, classifier):
        assert classifier.classify(dues(2), AS_OF) == PAST_DUE_DUES
        assert classifier.classify(dues(12, 2025), AS_OF) == PAST_DUE_DUES

    def test_past_due_water(self, classifier):
        assert classifier.classify(water("2026-01", date(2026, 2, 20)), AS_OF) == PAST_DUE_WATER

    def test_current_dues(self, classifier):
        assert classifier.classify(dues(3), date(2026, 3, 1)) == CURRENT_DUES

    def test_dues_past_due_once_due_date_passes(self, classifier):
        assert classifier.classify(dues(3), AS_OF) == PAST_DUE_DUES

    def test_current_water(self, classifier):
        assert classifier.classify(water("2026-02", date(2026, 3, 10)), AS_OF) == CURRENT_WATER

    def test_future_dues_within_lookahead(self, classifier):
        assert classifier.classify(dues(4), date(2026, 3, 20)) == FUTURE_DUES

    def test_future_dues_beyond_lookahead_excluded(self, classifier):
        # Due 2026-04-01 is 27 days after 2026-03-05
        assert classifier.classify(dues(4), AS_OF) is None

    def test_water_is_never_future(self, classifier):
        assert classifier.classify(water("2026-04", date(2026, 5, 1)), AS_OF) == CURRENT_WATER

    def test_lookahead_is_configurable(self):
        classifier = PriorityClassifier(dues_lookahead_days=30)
        assert classifier.classify(dues(4), AS_OF) == FUTURE_DUES


@pytest.mark.unit
class TestPrioritySort:
    """Test ordering across classes."""

    def test_sort_orders_by_class_then_due_date(self):
        classifier = PriorityClassifier(dues_lookahead_days=15)
        obligations = [
            water("2026-02", date(2026, 3, 10)),
            dues(3),
            water("2026-01", date(2026, 2, 20)),
            dues(2),
            dues(1),
            dues(5),
        ]

        ordered = classifier.sort(obligations, AS_OF)

        assert [ob.id for ob in ordered] == [
            "dues:2026:01",
            "dues:2026:02",
            "dues:2026:03",
            "water:2026-01",
            "water:2026-02",
        ]
        assert [ob.priority_class for ob in ordered] == [1, 1, 1, 2, 4]

    def test_past_due_dues_always_first(self):
        classifier = PriorityClassifier()
        obligations = [water("2025-11", date(2025, 12, 1)), dues(12, 2025)]

        ordered = classifier.sort(obligations, AS_OF)

        assert ordered[0].module_type == ModuleType.RECURRING_DUES

    def test_overdue_dues_in_same_month_precede_overdue_water(self):
        classifier = PriorityClassifier()
        obligations = [water("2026-01", date(2026, 2, 28)), dues(3)]

        ordered = classifier.sort(obligations, date(2026, 3, 20))

        assert [ob.id for ob in ordered] == ["dues:2026:03", "water:2026-01"]
        assert [ob.priority_class for ob in ordered] == [PAST_DUE_DUES, PAST_DUE_WATER]

    def test_ties_broken_by_id(self):
        classifier = PriorityClassifier()
        a = water("2026-01", date(2026, 2, 20))
        b = water("2025-12", date(2026, 2, 20))

        ordered = classifier.sort([a, b], AS_OF)

        assert [ob.id for ob in ordered] == ["water:2025-12", "water:2026-01"]

    def test_sort_does_not_mutate_input(self):
        classifier = PriorityClassifier()
        original = dues(1)

        classifier.sort([original], AS_OF)

        assert original.priority_class is None
