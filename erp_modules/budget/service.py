"""
Budget breakdown (``erp_modules.budget.service``).

Responsibility
--------------
Spreads each budget account's annual amount across the fiscal periods
with ``AllocationEngine``.  The split is exact: every period gets its
share truncated at the currency minor unit and the final period absorbs
the remainder.
"""

from __future__ import annotations

from collections.abc import Sequence

from erp_engines.allocation import MONTHS, AllocationEngine, AllocationResult
from erp_kernel.domain.documents import Document
from erp_kernel.domain.values import Money
from erp_kernel.logging_config import get_logger

logger = get_logger("modules.budget.service")


def annual_amounts(document: Document) -> dict[str, Money]:
    """Annual amount per account (quantity x unit price, rounded, summed per account)."""
    amounts: dict[str, Money] = {}
    for line in document.lines:
        key = line.account_id or line.line_id
        annual = (line.unit_price * line.quantity).round()
        amounts[key] = amounts[key] + annual if key in amounts else annual
    return amounts


def monthly_breakdown(
    document: Document,
    periods: Sequence[str] = MONTHS,
    engine: AllocationEngine | None = None,
) -> dict[str, AllocationResult]:
    """Per-account period split of a budget document."""
    engine = engine or AllocationEngine()
    breakdown = {
        account: engine.monthly_breakdown(annual, periods)
        for account, annual in annual_amounts(document).items()
    }
    logger.info(
        "budget_breakdown_computed",
        extra={
            "budget_id": document.document_id,
            "account_count": len(breakdown),
            "period_count": len(periods),
        },
    )
    return breakdown
