"""Multi-pass payment distributor.

Pure function of (sorted obligations, payment, credit balance, as-of date).
No I/O happens here, which is what lets a preview be replayed exactly inside
a commit.

Algorithm:
1. Funds pool = payment + existing credit
2. Process priority classes in ascending order; within a class pay each
   obligation's penalty first, then its base, clamped to what is owed
3. Whatever is left after one class carries into the next
4. Payment is consumed before credit; unapplied payment becomes new credit
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date
from itertools import groupby
from typing import Any

from condo_billing.services.errors import ValidationError
from condo_billing.services.obligations import ModuleType, Obligation, ObligationStatus, derive_status

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ObligationAllocation:
    """Funds allocated to one obligation in a run (zero allocations included)."""

    obligation_id: str
    module_type: ModuleType
    priority_class: int
    label: str
    due_date: date
    penalty: int
    base_allocated: int
    penalty_allocated: int
    new_status: ObligationStatus

    @property
    def total_allocated(self) -> int:
        return self.base_allocated + self.penalty_allocated

    def to_dict(self) -> dict[str, Any]:
        return {
            "obligation_id": self.obligation_id,
            "module_type": self.module_type.value,
            "priority_class": self.priority_class,
            "label": self.label,
            "due_date": self.due_date.isoformat(),
            "penalty": self.penalty,
            "base_allocated": self.base_allocated,
            "penalty_allocated": self.penalty_allocated,
            "new_status": self.new_status.value,
        }


@dataclass(frozen=True)
class DistributionResult:
    """Outcome of distributing one payment.

    Invariant: payment_amount + credit_used == total_applied + credit_added
    """

    as_of: date
    payment_amount: int
    credit_balance: int
    total_applied: int
    credit_used: int
    credit_added: int
    per_obligation: tuple[ObligationAllocation, ...] = ()
    degraded_modules: dict[str, str] = field(default_factory=dict)

    @property
    def net_credit_added(self) -> int:
        return self.credit_added - self.credit_used

    @property
    def new_credit_balance(self) -> int:
        return self.credit_balance + self.net_credit_added

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_modules)

    def allocation_for(self, obligation_id: str) -> ObligationAllocation | None:
        for allocation in self.per_obligation:
            if allocation.obligation_id == obligation_id:
                return allocation
        return None

    def to_dict(self) -> dict[str, Any]:
        """Canonical plain-dict form; identical inputs give identical dicts."""
        return {
            "as_of": self.as_of.isoformat(),
            "payment_amount": self.payment_amount,
            "credit_balance": self.credit_balance,
            "total_applied": self.total_applied,
            "credit_used": self.credit_used,
            "credit_added": self.credit_added,
            "net_credit_added": self.net_credit_added,
            "new_credit_balance": self.new_credit_balance,
            "per_obligation": [allocation.to_dict() for allocation in self.per_obligation],
            "degraded_modules": dict(sorted(self.degraded_modules.items())),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


def _require_minor_units(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer amount in minor units, got {value!r}")
    if value < 0:
        raise ValidationError(f"{name} must not be negative, got {value}")
    return value


class PaymentDistributor:
    """Allocates a payment plus credit across prioritized obligations."""

    def distribute(
        self,
        obligations: list[Obligation],
        payment_amount: int,
        credit_balance: int,
        as_of: date,
        degraded_modules: dict[str, str] | None = None,
    ) -> DistributionResult:
        """Distribute funds across obligations already sorted by priority.

        Args:
            obligations: Obligations with ``priority_class`` set, in payment order
            payment_amount: Incoming payment in minor units
            credit_balance: Unit's existing credit in minor units
            as_of: Payment date
            degraded_modules: Modules that could not be loaded, carried through

        Returns:
            DistributionResult

        Raises:
            ValidationError: If an amount is negative or not an integer, or an
                obligation has no priority class
        """
        _require_minor_units(payment_amount, "payment_amount")
        _require_minor_units(credit_balance, "credit_balance")
        for ob in obligations:
            if ob.priority_class is None:
                raise ValidationError(f"Obligation {ob.id} has no priority class")

        ordered = sorted(obligations, key=lambda ob: (ob.priority_class, ob.due_date, ob.id))

        # Zero payment previews the shape only; credit is left untouched
        pool = payment_amount + credit_balance if payment_amount > 0 else 0

        allocations: list[ObligationAllocation] = []
        for priority_class, members in groupby(ordered, key=lambda ob: ob.priority_class):
            class_allocations, pool = self._allocate_pass(list(members), pool)
            allocations.extend(class_allocations)
            logger.debug("Priority class %d done, %d left in pool", priority_class, pool)

        total_applied = sum(allocation.total_allocated for allocation in allocations)
        credit_used = max(0, total_applied - payment_amount)
        credit_added = max(0, payment_amount - total_applied)

        result = DistributionResult(
            as_of=as_of,
            payment_amount=payment_amount,
            credit_balance=credit_balance,
            total_applied=total_applied,
            credit_used=credit_used,
            credit_added=credit_added,
            per_obligation=tuple(allocations),
            degraded_modules=dict(degraded_modules or {}),
        )
        assert result.payment_amount + result.credit_used == result.total_applied + result.credit_added
        return result

    def _allocate_pass(self, obligations: list[Obligation], pool: int) -> tuple[list[ObligationAllocation], int]:
        """Single pass over one priority class: penalty first, then base."""
        allocations = []
        for ob in obligations:
            penalty_allocated = min(pool, ob.penalty_remaining)
            pool -= penalty_allocated
            base_allocated = min(pool, ob.base_remaining)
            pool -= base_allocated

            allocations.append(
                ObligationAllocation(
                    obligation_id=ob.id,
                    module_type=ob.module_type,
                    priority_class=ob.priority_class,
                    label=ob.label,
                    due_date=ob.due_date,
                    penalty=ob.penalty,
                    base_allocated=base_allocated,
                    penalty_allocated=penalty_allocated,
                    new_status=derive_status(
                        ob.total_due,
                        ob.total_paid + base_allocated + penalty_allocated,
                    ),
                )
            )
        return allocations, pool


__all__ = ["PaymentDistributor", "DistributionResult", "ObligationAllocation"]
