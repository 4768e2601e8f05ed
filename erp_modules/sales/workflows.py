"""
Sales Workflows (``erp_modules.sales.workflows``).

Responsibility
--------------
Declares the state-machine definitions for the order-to-cash documents:
Quotation, Invoice, Delivery Order and Sales Return.  Guards express
preconditions; effects declare what the caller must do after a transition
(create an invoice, move stock, issue a credit note).

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.  Imports canonical
Guard, Transition, Workflow from ``erp_kernel.domain.workflow``.
Consumed by the workflow executor at runtime.

Invariants enforced
-------------------
* All ``Workflow``, ``Transition`` and ``Guard`` instances are frozen.
* Invoice ``partial`` / ``paid`` are reachable only by system origin
  (payment application), never by a direct user action.
* Delivery Order inventory effects fire exactly once, on ``ship``.
* Cancelling a Delivery Order or Sales Return releases the invoice
  quantity it consumed.

Audit relevance
---------------
Workflow definitions logged at module-load time with state counts and
transition counts for configuration audit.
"""

from erp_kernel.domain.workflow import EffectSpec, Guard, Transition, Workflow
from erp_kernel.logging_config import get_logger
from erp_modules._guards import (
    BALANCE_OUTSTANDING,
    BALANCE_SETTLED,
    DECLARED_TOTALS_MATCH,
    HAS_LINES,
    NO_PAYMENTS,
    RELEASE_CONVERSION_LINKS,
)

logger = get_logger("modules.sales.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

QUOTATION_VALID = Guard(
    name="quotation_valid",
    description="Quotation has not passed its valid-until date",
    violation="QuotationExpired",
)


# -----------------------------------------------------------------------------
# Effects
# -----------------------------------------------------------------------------

CREATE_INVOICE = EffectSpec("create_invoice", "Create an invoice from the quotation")
POST_RECEIVABLE = EffectSpec("post_receivable", "Book the customer receivable")
REVERSE_RECEIVABLE = EffectSpec("reverse_receivable", "Reverse the customer receivable")
DECREMENT_INVENTORY = EffectSpec("decrement_inventory", "Remove shipped stock")
INCREMENT_DELIVERED_QUANTITY = EffectSpec(
    "increment_delivered_quantity", "Count shipped quantity against the invoice line"
)
CONFIRM_DELIVERY = EffectSpec("confirm_delivery", "Record customer receipt of goods")
RESTOCK_INVENTORY = EffectSpec("restock_inventory", "Put returned stock back")
ISSUE_CREDIT_NOTE = EffectSpec("issue_credit_note", "Credit the customer for the return")


# -----------------------------------------------------------------------------
# Quotation Workflow
# -----------------------------------------------------------------------------

logger.info(
    "sales_workflow_guards_defined",
    extra={"guards": [HAS_LINES.name, QUOTATION_VALID.name, DECLARED_TOTALS_MATCH.name]},
)

QUOTATION_WORKFLOW = Workflow(
    name="quotation",
    description="Customer quotation from draft to conversion",
    initial_state="draft",
    states=(
        "draft",
        "submitted",
        "approved",
        "rejected",
        "converted",
        "expired",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "submitted", action="submit", guards=(HAS_LINES,)),
        Transition("draft", "cancelled", action="cancel"),
        Transition("submitted", "approved", action="approve", guards=(HAS_LINES,)),
        Transition("submitted", "rejected", action="reject"),
        Transition("submitted", "expired", action="expire", system_only=True),
        Transition("submitted", "cancelled", action="cancel"),
        Transition("rejected", "draft", action="revise"),
        Transition(
            "approved",
            "converted",
            action="convert",
            guards=(QUOTATION_VALID,),
            effects=(CREATE_INVOICE,),
            system_only=True,
        ),
        Transition("approved", "expired", action="expire", system_only=True),
        Transition("approved", "cancelled", action="cancel"),
    ),
)

logger.info(
    "quotation_workflow_registered",
    extra={
        "workflow_name": QUOTATION_WORKFLOW.name,
        "state_count": len(QUOTATION_WORKFLOW.states),
        "transition_count": len(QUOTATION_WORKFLOW.transitions),
        "initial_state": QUOTATION_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Invoice Workflow
# -----------------------------------------------------------------------------

INVOICE_WORKFLOW = Workflow(
    name="invoice",
    description="Customer invoice from draft to settlement",
    initial_state="draft",
    states=("draft", "posted", "partial", "paid", "void"),
    transitions=(
        Transition(
            "draft",
            "posted",
            action="post",
            guards=(HAS_LINES, DECLARED_TOTALS_MATCH),
            effects=(POST_RECEIVABLE,),
        ),
        Transition("draft", "void", action="void"),
        Transition(
            "posted", "partial", action="record_partial_payment",
            guards=(BALANCE_OUTSTANDING,), system_only=True,
        ),
        Transition(
            "posted", "paid", action="settle",
            guards=(BALANCE_SETTLED,), system_only=True,
        ),
        Transition(
            "posted", "void", action="void",
            guards=(NO_PAYMENTS,), effects=(REVERSE_RECEIVABLE,),
        ),
        Transition(
            "partial", "partial", action="record_partial_payment",
            guards=(BALANCE_OUTSTANDING,), system_only=True,
        ),
        Transition(
            "partial", "paid", action="settle",
            guards=(BALANCE_SETTLED,), system_only=True,
        ),
    ),
)

logger.info(
    "invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
        "initial_state": INVOICE_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Delivery Order Workflow
# -----------------------------------------------------------------------------

DELIVERY_ORDER_WORKFLOW = Workflow(
    name="delivery_order",
    description="Shipment of invoiced goods",
    initial_state="draft",
    states=("draft", "confirmed", "shipped", "delivered", "cancelled"),
    transitions=(
        Transition("draft", "confirmed", action="confirm", guards=(HAS_LINES,)),
        Transition("draft", "cancelled", action="cancel", effects=(RELEASE_CONVERSION_LINKS,)),
        Transition(
            "confirmed", "cancelled", action="cancel", effects=(RELEASE_CONVERSION_LINKS,)
        ),
        Transition(
            "confirmed",
            "shipped",
            action="ship",
            effects=(DECREMENT_INVENTORY, INCREMENT_DELIVERED_QUANTITY),
        ),
        Transition("shipped", "delivered", action="deliver", effects=(CONFIRM_DELIVERY,)),
    ),
)


# -----------------------------------------------------------------------------
# Sales Return Workflow
# -----------------------------------------------------------------------------

SALES_RETURN_WORKFLOW = Workflow(
    name="sales_return",
    description="Customer return against an invoice",
    initial_state="draft",
    states=("draft", "pending", "approved", "completed", "rejected", "cancelled"),
    transitions=(
        Transition("draft", "pending", action="submit", guards=(HAS_LINES,)),
        Transition("draft", "cancelled", action="cancel", effects=(RELEASE_CONVERSION_LINKS,)),
        Transition("pending", "approved", action="approve", guards=(HAS_LINES,)),
        Transition("pending", "rejected", action="reject"),
        Transition("pending", "cancelled", action="cancel", effects=(RELEASE_CONVERSION_LINKS,)),
        Transition(
            "approved",
            "completed",
            action="complete",
            effects=(RESTOCK_INVENTORY, ISSUE_CREDIT_NOTE),
        ),
        Transition(
            "approved", "cancelled", action="cancel", effects=(RELEASE_CONVERSION_LINKS,)
        ),
    ),
)

for wf in (DELIVERY_ORDER_WORKFLOW, SALES_RETURN_WORKFLOW):
    logger.info(
        "sales_workflow_registered",
        extra={
            "workflow_name": wf.name,
            "state_count": len(wf.states),
            "transition_count": len(wf.transitions),
            "initial_state": wf.initial_state,
        },
    )
