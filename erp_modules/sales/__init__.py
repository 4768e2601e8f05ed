"""
Sales Module (``erp_modules.sales``).

Responsibility
--------------
Order-to-cash document lifecycles: Quotation, Invoice, Delivery Order and
Sales Return.  Declarative workflows plus the guard evaluators and effect
builders they reference.

Architecture position
---------------------
**Modules layer** -- declarations only.  All totals come from
``erp_engines.calculation``; all transition execution from
``erp_services.workflow_executor``.
"""

from erp_kernel.domain.documents import DocumentType
from erp_modules.sales.guards import effect_builders, guard_evaluators
from erp_modules.sales.workflows import (
    DELIVERY_ORDER_WORKFLOW,
    INVOICE_WORKFLOW,
    QUOTATION_WORKFLOW,
    SALES_RETURN_WORKFLOW,
)

WORKFLOWS = {
    DocumentType.QUOTATION: QUOTATION_WORKFLOW,
    DocumentType.INVOICE: INVOICE_WORKFLOW,
    DocumentType.DELIVERY_ORDER: DELIVERY_ORDER_WORKFLOW,
    DocumentType.SALES_RETURN: SALES_RETURN_WORKFLOW,
}

__all__ = [
    "DELIVERY_ORDER_WORKFLOW",
    "INVOICE_WORKFLOW",
    "QUOTATION_WORKFLOW",
    "SALES_RETURN_WORKFLOW",
    "WORKFLOWS",
    "effect_builders",
    "guard_evaluators",
]
