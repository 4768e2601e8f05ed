"""
ErpSettings schema.

The human-authored configuration the document core runs under.  YAML is
parsed into these frozen types by ``erp_config.loader``; services receive
the resulting ``ErpSettings`` explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

DEFAULT_PERIODS = (
    "jan", "feb", "mar", "apr", "may", "jun",
    "jul", "aug", "sep", "oct", "nov", "dec",
)


@dataclass(frozen=True)
class RoundingSettings:
    """Decimal rounding mode at the minor unit, plus optional cash rounding."""

    mode: str = "ROUND_HALF_UP"
    cash_increment: Decimal | None = None


@dataclass(frozen=True)
class TaxSettings:
    """Defaults applied to new lines by callers; the engine reads each line's rate."""

    default_rate: Decimal = Decimal("11")
    mode: str = "exclusive"  # exclusive | inclusive


@dataclass(frozen=True)
class MatchingSettings:
    """Bank reconciliation suggestion window and amount tolerance."""

    amount_tolerance: Decimal = Decimal("0")
    date_window_days: int = 7


@dataclass(frozen=True)
class BudgetSettings:
    """Period labels for the budget breakdown; the last period absorbs the remainder."""

    periods: tuple[str, ...] = DEFAULT_PERIODS


@dataclass(frozen=True)
class ErpSettings:
    """Root configuration object."""

    base_currency: str = "IDR"
    rounding: RoundingSettings = field(default_factory=RoundingSettings)
    tax: TaxSettings = field(default_factory=TaxSettings)
    matching: MatchingSettings = field(default_factory=MatchingSettings)
    budget: BudgetSettings = field(default_factory=BudgetSettings)
