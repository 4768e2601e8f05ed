"""
ERP Modules.

Declarative document lifecycles over the ERP kernel and engines.
Each module contains:
- Workflows (transition tables: states, guards, effect declarations)
- Guard evaluators and effect builders referenced by those tables

Modules:
- Sales: Quotation, Invoice, Delivery Order, Sales Return
- Procurement: Purchase Order, Goods Receipt Note, Bill, Purchase Return
- Budget: Annual budget and its monthly breakdown
- Cash: Bank Transaction, Down Payment
- GL: Journal Entry

Actual processing logic lives in the engines and the workflow executor.
"""

from __future__ import annotations

from collections.abc import Sequence

from erp_engines.allocation import MONTHS
from erp_engines.calculation import DEFAULT_ROUNDING, RoundingPolicy
from erp_kernel.domain.documents import DocumentType
from erp_kernel.domain.workflow import EffectBuilder, GuardEvaluator, Workflow
from erp_kernel.logging_config import get_logger
from erp_modules import budget, cash, gl, procurement, sales
from erp_modules._guards import shared_guard_evaluators

logger = get_logger("modules")

_MODULES = (sales, procurement, budget, cash, gl)

WORKFLOWS: dict[DocumentType, Workflow] = {}
for _module in _MODULES:
    WORKFLOWS.update(_module.WORKFLOWS)


def guard_evaluators(policy: RoundingPolicy = DEFAULT_ROUNDING) -> dict[str, GuardEvaluator]:
    """Every guard evaluator referenced by the registered workflows."""
    evaluators = shared_guard_evaluators(policy)
    for module in _MODULES:
        evaluators.update(module.guard_evaluators(policy))
    return evaluators


def effect_builders(
    policy: RoundingPolicy = DEFAULT_ROUNDING,
    budget_periods: Sequence[str] = MONTHS,
) -> dict[str, EffectBuilder]:
    """Every effect builder referenced by the registered workflows."""
    builders: dict[str, EffectBuilder] = {}
    for module in _MODULES:
        if module is budget:
            builders.update(module.effect_builders(policy, budget_periods))
        else:
            builders.update(module.effect_builders(policy))
    return builders


logger.info(
    "modules_registered",
    extra={
        "document_types": sorted(t.value for t in WORKFLOWS),
        "workflow_count": len(WORKFLOWS),
    },
)

__all__ = [
    "WORKFLOWS",
    "budget",
    "cash",
    "effect_builders",
    "gl",
    "guard_evaluators",
    "procurement",
    "sales",
]
