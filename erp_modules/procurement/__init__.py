"""
Procurement Module (``erp_modules.procurement``).

Responsibility
--------------
Procure-to-pay document lifecycles: Purchase Order, Goods Receipt Note,
Bill and Purchase Return.

Architecture position
---------------------
**Modules layer** -- declarations only.  Receipt progress is driven by
``erp_services.conversion`` through system-only transitions.
"""

from erp_kernel.domain.documents import DocumentType
from erp_modules.procurement.guards import effect_builders, guard_evaluators
from erp_modules.procurement.workflows import (
    BILL_WORKFLOW,
    GOODS_RECEIPT_WORKFLOW,
    PURCHASE_ORDER_WORKFLOW,
    PURCHASE_RETURN_WORKFLOW,
)

WORKFLOWS = {
    DocumentType.PURCHASE_ORDER: PURCHASE_ORDER_WORKFLOW,
    DocumentType.GOODS_RECEIPT_NOTE: GOODS_RECEIPT_WORKFLOW,
    DocumentType.BILL: BILL_WORKFLOW,
    DocumentType.PURCHASE_RETURN: PURCHASE_RETURN_WORKFLOW,
}

__all__ = [
    "BILL_WORKFLOW",
    "GOODS_RECEIPT_WORKFLOW",
    "PURCHASE_ORDER_WORKFLOW",
    "PURCHASE_RETURN_WORKFLOW",
    "WORKFLOWS",
    "effect_builders",
    "guard_evaluators",
]
