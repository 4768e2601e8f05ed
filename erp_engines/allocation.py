"""
Module: erp_engines.allocation
Responsibility:
    Distribute a monetary total across weighted, pro-rata or equal targets
    without losing or inventing a single minor unit.  Used for the budget
    monthly breakdown and for spreading fixed discounts.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import erp_kernel/domain.

Invariants enforced:
    - Conservation: Σ allocated == source amount exactly.
    - One documented tie-break: every target receives its share truncated
      toward zero at the currency minor unit, and the whole remainder goes
      to the LAST target with a non-zero weight (December for a twelve-month
      budget).  Delegates to ``Money.allocate``.
    - Currency consistency between source and eligible amounts.

Failure modes:
    - ValueError on zero total weight, negative weights or a currency
      mismatch between source and targets.

Usage:
    from erp_engines.allocation import AllocationEngine, AllocationMethod, AllocationTarget
    from erp_kernel.domain.values import Money

    engine = AllocationEngine()
    result = engine.allocate(
        amount=Money.of("1000.00", "IDR"),
        targets=[AllocationTarget("jan"), AllocationTarget("feb"), AllocationTarget("mar")],
        method=AllocationMethod.EQUAL,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from enum import Enum

from erp_engines.tracer import traced_engine
from erp_kernel.domain.values import Money
from erp_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")

MONTHS = (
    "jan", "feb", "mar", "apr", "may", "jun",
    "jul", "aug", "sep", "oct", "nov", "dec",
)


class AllocationMethod(str, Enum):
    """Method for allocating amounts."""

    PRORATA = "prorata"  # By relative eligible amount
    WEIGHTED = "weighted"  # By explicit weight factor
    EQUAL = "equal"  # Split evenly


@dataclass(frozen=True)
class AllocationTarget:
    """
    A target that can receive an allocation.

    Guarantees:
        - ``weight`` is non-negative.
    """

    target_id: str
    weight: Decimal = Decimal("1")
    eligible_amount: Money | None = None

    def __post_init__(self) -> None:
        if self.weight < Decimal("0"):
            raise ValueError("Weight cannot be negative")


@dataclass(frozen=True)
class AllocationLine:
    """Result of allocation to a single target."""

    target_id: str
    allocated: Money


@dataclass(frozen=True)
class AllocationResult:
    """
    Complete allocation result.

    Guarantees:
        - Σ lines.allocated == source_amount.
        - ``rounding_adjustment`` is what the remainder target received on
          top of its truncated share.
    """

    source_amount: Money
    method: AllocationMethod
    lines: tuple[AllocationLine, ...]
    rounding_adjustment: Money

    @property
    def amounts(self) -> tuple[Money, ...]:
        return tuple(line.allocated for line in self.lines)

    def for_target(self, target_id: str) -> Money:
        for line in self.lines:
            if line.target_id == target_id:
                return line.allocated
        raise KeyError(target_id)


class AllocationEngine:
    """
    Allocate amounts across multiple targets.

    Contract:
        Pure, deterministic.  No I/O, no database access.
    """

    @traced_engine("allocation", "1.0", fingerprint_fields=("amount", "method"))
    def allocate(
        self,
        amount: Money,
        targets: Sequence[AllocationTarget],
        method: AllocationMethod,
    ) -> AllocationResult:
        """
        Allocate amount to targets using the specified method.

        Raises:
            ValueError: no targets, zero total weight, or currency mismatch.
        """
        if not targets:
            raise ValueError("allocation requires at least one target")

        match method:
            case AllocationMethod.EQUAL:
                weights = [Decimal("1")] * len(targets)
            case AllocationMethod.WEIGHTED:
                weights = [t.weight for t in targets]
            case AllocationMethod.PRORATA:
                weights = []
                for t in targets:
                    if t.eligible_amount is None:
                        raise ValueError(f"Target {t.target_id} missing eligible_amount for prorata")
                    if t.eligible_amount.currency != amount.currency:
                        raise ValueError(
                            f"Currency mismatch: {t.eligible_amount.currency} vs {amount.currency}"
                        )
                    weights.append(t.eligible_amount.amount)
            case _:
                raise ValueError(f"Unknown allocation method: {method}")

        if sum(weights, Decimal("0")) <= 0:
            raise ValueError("Total weight cannot be zero")

        buckets = amount.allocate(weights)
        remainder_index = max(i for i, w in enumerate(weights) if w > 0)
        total_weight = sum(weights, Decimal("0"))
        share = amount.amount * weights[remainder_index] / total_weight
        adjustment = buckets[remainder_index].amount - share.quantize(
            amount.currency.minor_unit, rounding=ROUND_DOWN
        )

        logger.info(
            "allocation_completed",
            extra={
                "amount": str(amount.amount),
                "currency": amount.currency.code,
                "method": method.value,
                "target_count": len(targets),
                "rounding_adjustment": str(adjustment),
            },
        )
        return AllocationResult(
            source_amount=amount,
            method=method,
            lines=tuple(
                AllocationLine(target_id=t.target_id, allocated=b)
                for t, b in zip(targets, buckets, strict=True)
            ),
            rounding_adjustment=Money(adjustment, amount.currency),
        )

    def monthly_breakdown(
        self, annual: Money, periods: Sequence[str] = MONTHS
    ) -> AllocationResult:
        """Split an annual amount equally across periods; the last one (December) absorbs the remainder."""
        return self.allocate(
            annual,
            [AllocationTarget(p) for p in periods],
            AllocationMethod.EQUAL,
        )
