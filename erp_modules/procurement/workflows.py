"""
Procurement Workflows (``erp_modules.procurement.workflows``).

Responsibility
--------------
Declares the state-machine definitions for the procure-to-pay documents:
Purchase Order, Goods Receipt Note, Bill (vendor invoice) and Purchase
Return.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.  Imports canonical
Guard, Transition, Workflow from ``erp_kernel.domain.workflow``.

Invariants enforced
-------------------
* Purchase Order ``partial`` / ``received`` are reachable only by system
  origin: the conversion orchestrator drives them after each receipt.
* A Purchase Order can be cancelled only before any receipt.
* Cancelling a receipt releases its quantity: a ``partial`` order goes back
  to ``approved`` once nothing is counted as received.  ``received`` is
  terminal and stays put.
* A Goods Receipt completes only with something received and never more
  than the source order line has left.

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

logger = get_logger("modules.procurement.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PARTIALLY_RECEIVED = Guard(
    name="partially_received",
    description="Some, but not all, ordered quantity has been received",
    violation="NotPartiallyReceived",
)

FULLY_RECEIVED = Guard(
    name="fully_received",
    description="Every order line has been received in full",
    violation="NotFullyReceived",
)

HAS_RECEIVED_QUANTITY = Guard(
    name="has_received_quantity",
    description="At least one line has an accepted quantity above zero",
    violation="NothingReceived",
)

WITHIN_SOURCE_REMAINING = Guard(
    name="within_source_remaining",
    description="Received quantity does not exceed what the order line has left",
    violation="OverConsumption",
)

NOTHING_RECEIVED = Guard(
    name="nothing_received",
    description="No ordered quantity is still counted as received",
    violation="HasReceipts",
)

logger.info(
    "procurement_workflow_guards_defined",
    extra={
        "guards": [
            PARTIALLY_RECEIVED.name,
            FULLY_RECEIVED.name,
            HAS_RECEIVED_QUANTITY.name,
            WITHIN_SOURCE_REMAINING.name,
            NOTHING_RECEIVED.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Effects
# -----------------------------------------------------------------------------

INCREMENT_INVENTORY = EffectSpec("increment_inventory", "Add accepted stock")
POST_PAYABLE = EffectSpec("post_payable", "Book the vendor payable")
REVERSE_PAYABLE = EffectSpec("reverse_payable", "Reverse the vendor payable")
REMOVE_INVENTORY = EffectSpec("remove_inventory", "Take returned stock out")
REQUEST_DEBIT_NOTE = EffectSpec("request_debit_note", "Ask the vendor for a debit note")


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order from draft to full receipt",
    initial_state="draft",
    states=(
        "draft",
        "pending",
        "approved",
        "rejected",
        "partial",
        "received",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "pending", action="submit", guards=(HAS_LINES,)),
        Transition("draft", "cancelled", action="cancel"),
        Transition("pending", "approved", action="approve", guards=(HAS_LINES,)),
        Transition("pending", "rejected", action="reject"),
        Transition("pending", "cancelled", action="cancel"),
        Transition("approved", "cancelled", action="cancel"),
        Transition(
            "approved", "partial", action="receive_partial",
            guards=(PARTIALLY_RECEIVED,), system_only=True,
        ),
        Transition(
            "approved", "received", action="receive_full",
            guards=(FULLY_RECEIVED,), system_only=True,
        ),
        Transition(
            "partial", "partial", action="receive_partial",
            guards=(PARTIALLY_RECEIVED,), system_only=True,
        ),
        Transition(
            "partial", "received", action="receive_full",
            guards=(FULLY_RECEIVED,), system_only=True,
        ),
        Transition(
            "partial", "approved", action="release",
            guards=(NOTHING_RECEIVED,), system_only=True,
        ),
    ),
)

logger.info(
    "purchase_order_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
        "initial_state": PURCHASE_ORDER_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Goods Receipt Note Workflow
# -----------------------------------------------------------------------------

GOODS_RECEIPT_WORKFLOW = Workflow(
    name="goods_receipt_note",
    description="Receipt of goods against a purchase order",
    initial_state="draft",
    states=("draft", "receiving", "completed", "cancelled"),
    transitions=(
        Transition("draft", "receiving", action="start_receiving", guards=(HAS_LINES,)),
        Transition("draft", "cancelled", action="cancel", effects=(RELEASE_CONVERSION_LINKS,)),
        Transition(
            "receiving",
            "completed",
            action="complete",
            guards=(HAS_RECEIVED_QUANTITY, WITHIN_SOURCE_REMAINING),
            effects=(INCREMENT_INVENTORY,),
        ),
        Transition(
            "receiving", "cancelled", action="cancel", effects=(RELEASE_CONVERSION_LINKS,)
        ),
    ),
    editable_states=("draft", "receiving"),
)


# -----------------------------------------------------------------------------
# Bill Workflow
# -----------------------------------------------------------------------------

BILL_WORKFLOW = Workflow(
    name="bill",
    description="Vendor bill from draft to settlement",
    initial_state="draft",
    states=("draft", "pending", "approved", "partial", "paid", "void"),
    transitions=(
        Transition("draft", "pending", action="submit", guards=(HAS_LINES,)),
        Transition("draft", "void", action="void"),
        Transition(
            "pending",
            "approved",
            action="approve",
            guards=(HAS_LINES, DECLARED_TOTALS_MATCH),
            effects=(POST_PAYABLE,),
        ),
        Transition("pending", "draft", action="reject"),
        Transition("pending", "void", action="void"),
        Transition(
            "approved", "partial", action="record_partial_payment",
            guards=(BALANCE_OUTSTANDING,), system_only=True,
        ),
        Transition(
            "approved", "paid", action="settle",
            guards=(BALANCE_SETTLED,), system_only=True,
        ),
        Transition(
            "approved", "void", action="void",
            guards=(NO_PAYMENTS,), effects=(REVERSE_PAYABLE,),
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


# -----------------------------------------------------------------------------
# Purchase Return Workflow
# -----------------------------------------------------------------------------

PURCHASE_RETURN_WORKFLOW = Workflow(
    name="purchase_return",
    description="Return of goods to a vendor against a bill",
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
            effects=(REMOVE_INVENTORY, REQUEST_DEBIT_NOTE),
        ),
        Transition(
            "approved", "cancelled", action="cancel", effects=(RELEASE_CONVERSION_LINKS,)
        ),
    ),
)

for wf in (GOODS_RECEIPT_WORKFLOW, BILL_WORKFLOW, PURCHASE_RETURN_WORKFLOW):
    logger.info(
        "procurement_workflow_registered",
        extra={
            "workflow_name": wf.name,
            "state_count": len(wf.states),
            "transition_count": len(wf.transitions),
            "initial_state": wf.initial_state,
        },
    )
