"""
Cash Module (``erp_modules.cash``).

Responsibility
--------------
Bank transaction reconciliation and down payment lifecycles.
"""

from erp_kernel.domain.documents import DocumentType
from erp_modules.cash.guards import effect_builders, guard_evaluators
from erp_modules.cash.workflows import BANK_TRANSACTION_WORKFLOW, DOWN_PAYMENT_WORKFLOW

WORKFLOWS = {
    DocumentType.BANK_TRANSACTION: BANK_TRANSACTION_WORKFLOW,
    DocumentType.DOWN_PAYMENT: DOWN_PAYMENT_WORKFLOW,
}

__all__ = [
    "BANK_TRANSACTION_WORKFLOW",
    "DOWN_PAYMENT_WORKFLOW",
    "WORKFLOWS",
    "effect_builders",
    "guard_evaluators",
]
