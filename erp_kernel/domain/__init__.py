"""
Pure domain layer.

Immutable value objects and workflow declarations with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock
- I/O
"""

from erp_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from erp_kernel.domain.documents import (
    BALANCE_LINE_ID,
    ConversionLink,
    Direction,
    DiscountType,
    Document,
    DocumentType,
    JournalLine,
    LineItem,
    LinkKind,
    Payment,
    TaxMode,
    Totals,
)
from erp_kernel.domain.snapshot import (
    document_from_snapshot,
    money_from_ui,
    money_to_payload,
    rehydrate,
    totals_to_payload,
)
from erp_kernel.domain.values import Currency, ExchangeRate, Money, Quantity
from erp_kernel.domain.workflow import (
    EffectSpec,
    Guard,
    Origin,
    SideEffect,
    Transition,
    TransitionContext,
    TransitionResult,
    Workflow,
)

__all__ = [
    # Value objects
    "Currency",
    "Money",
    "Quantity",
    "ExchangeRate",
    "CurrencyInfo",
    "CurrencyRegistry",
    # Documents
    "BALANCE_LINE_ID",
    "ConversionLink",
    "Direction",
    "DiscountType",
    "Document",
    "DocumentType",
    "JournalLine",
    "LineItem",
    "LinkKind",
    "Payment",
    "TaxMode",
    "Totals",
    # Snapshot boundary
    "document_from_snapshot",
    "money_from_ui",
    "money_to_payload",
    "rehydrate",
    "totals_to_payload",
    # Workflow
    "EffectSpec",
    "Guard",
    "Origin",
    "SideEffect",
    "Transition",
    "TransitionContext",
    "TransitionResult",
    "Workflow",
]
