"""Budget Module: annual budget lifecycle and monthly breakdown."""

from erp_kernel.domain.documents import DocumentType
from erp_modules.budget.guards import effect_builders, guard_evaluators
from erp_modules.budget.service import annual_amounts, monthly_breakdown
from erp_modules.budget.workflows import BUDGET_WORKFLOW

WORKFLOWS = {DocumentType.BUDGET: BUDGET_WORKFLOW}

__all__ = [
    "BUDGET_WORKFLOW",
    "WORKFLOWS",
    "annual_amounts",
    "effect_builders",
    "guard_evaluators",
    "monthly_breakdown",
]
