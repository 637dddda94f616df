"""Late-penalty calculation shared by every billing module.

Penalty rules:
- A bill is due on its due date; penalties start once the grace period ends
- Only whole elapsed 30-day units count (units = days_past_grace // 30), so
  no penalty accrues until a full unit has passed after grace
- Penalty = units x rate x outstanding base, rounded half-up to a minor unit

The calculation is a pure function of (outstanding base, due date, as-of date,
config), so recomputing it for the same as-of date always yields the same
value. That makes it safe to run for previews and ahead of backdated payments.
"""

import logging
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal

from condo_billing.services.billing_config import PenaltyConfig
from condo_billing.services.obligations import Obligation

logger = logging.getLogger(__name__)

PENALTY_UNIT_DAYS = 30


class PenaltyCalculator:
    """Idempotent late-penalty calculator."""

    def grace_period_end(self, due_date: date, config: PenaltyConfig) -> date:
        return due_date + timedelta(days=config.grace_days)

    def units_overdue(self, due_date: date, as_of: date, config: PenaltyConfig) -> int:
        """Count whole penalty units elapsed past the grace period.

        Args:
            due_date: Bill due date
            as_of: Date penalties are calculated for (payment date)
            config: Penalty configuration

        Returns:
            Number of complete units past grace (0 within grace)
        """
        grace_end = self.grace_period_end(due_date, config)
        if as_of <= grace_end:
            return 0
        days_past_grace = (as_of - grace_end).days
        return days_past_grace // PENALTY_UNIT_DAYS

    def calculate(self, outstanding_base: int, due_date: date, as_of: date, config: PenaltyConfig) -> int:
        """Calculate the penalty owed on an outstanding base amount.

        Args:
            outstanding_base: Unpaid base charge in minor units
            due_date: Bill due date
            as_of: Calculation date
            config: Penalty configuration

        Returns:
            Penalty in minor units
        """
        if outstanding_base <= 0:
            return 0
        units = self.units_overdue(due_date, as_of, config)
        if units == 0:
            return 0
        penalty = (Decimal(units) * config.rate * Decimal(outstanding_base)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
        return int(penalty)

    def penalty_for(self, obligation: Obligation, as_of: date, config: PenaltyConfig) -> int:
        """Recompute an obligation's penalty as of a date.

        Once the base is fully paid the penalty stops accruing and the
        stored value is kept. The result never drops below what has already
        been paid against the penalty.
        """
        if obligation.base_remaining == 0:
            return obligation.penalty
        penalty = self.calculate(obligation.base_remaining, obligation.due_date, as_of, config)
        if penalty < obligation.penalty_paid:
            logger.debug(
                "Penalty for %s recomputed below amount already paid (%d < %d), keeping paid amount",
                obligation.id,
                penalty,
                obligation.penalty_paid,
            )
            return obligation.penalty_paid
        return penalty


def split_with_largest_remainder(total: int, weights: list[int], remainder_index: int | None = None) -> list[int]:
    """Split an integer total proportionally to weights, losing nothing.

    Each part gets the floor of its exact share. Leftover units go to
    ``remainder_index`` when given, otherwise to the parts with the largest
    fractional remainders, earliest part first on ties. With all-zero weights
    the whole total goes to the first part.

    Ensures: sum(result) == total

    Args:
        total: Amount in minor units (non-negative)
        weights: Non-negative integer weights, one per part
        remainder_index: Part that absorbs every leftover unit

    Returns:
        List of parts aligned with weights
    """
    if not weights:
        return []
    total_weight = sum(weights)
    if total_weight <= 0:
        parts = [0] * len(weights)
        parts[remainder_index or 0] = total
        return parts

    parts = []
    remainders = []
    for index, weight in enumerate(weights):
        share, remainder = divmod(total * weight, total_weight)
        parts.append(share)
        remainders.append((remainder, index))

    leftover = total - sum(parts)
    if remainder_index is not None:
        parts[remainder_index] += leftover
        return parts

    # Largest remainder first; earliest index wins ties
    for _, index in sorted(remainders, key=lambda item: (-item[0], item[1]))[:leftover]:
        parts[index] += 1

    return parts


__all__ = ["PenaltyCalculator", "split_with_largest_remainder", "PENALTY_UNIT_DAYS"]
