"""
Cash Workflows (``erp_modules.cash.workflows``).

Responsibility
--------------
State machines for Bank Transactions (reconciliation) and Down Payments
(customer/vendor advances).

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.

Invariants enforced
-------------------
* A reconciled bank transaction is terminal: no edit, delete or unmatch.
* Down payment ``applied`` / ``refunded`` are reachable only by system
  origin, once the available balance reaches zero.
"""

from erp_kernel.domain.workflow import EffectSpec, Guard, Transition, Workflow
from erp_kernel.logging_config import get_logger

logger = get_logger("modules.cash.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_MATCH_TARGET = Guard(
    name="has_match_target",
    description="A payment has been proposed for the match",
    violation="NoMatchTarget",
)

AMOUNT_WITHIN_TOLERANCE = Guard(
    name="amount_within_tolerance",
    description="Payment amount is within tolerance of the bank amount",
    violation="AmountMismatch",
)

HAS_AMOUNT = Guard(
    name="has_amount",
    description="Down payment carries a positive amount",
    violation="NoAmount",
)

BALANCE_EXHAUSTED = Guard(
    name="balance_exhausted",
    description="Nothing of the down payment remains available",
    violation="HasAvailableBalance",
)

logger.info(
    "cash_workflow_guards_defined",
    extra={
        "guards": [
            HAS_MATCH_TARGET.name,
            AMOUNT_WITHIN_TOLERANCE.name,
            HAS_AMOUNT.name,
            BALANCE_EXHAUSTED.name,
        ],
    },
)


# -----------------------------------------------------------------------------
# Effects
# -----------------------------------------------------------------------------

LINK_PAYMENT = EffectSpec("link_payment", "Attach the payment to the bank transaction")
UNLINK_PAYMENT = EffectSpec("unlink_payment", "Detach the matched payment")
MARK_RECONCILED = EffectSpec("mark_reconciled", "Lock the bank transaction as reconciled")
POST_DOWN_PAYMENT = EffectSpec("post_down_payment", "Book the advance received or paid")


# -----------------------------------------------------------------------------
# Bank Transaction Workflow
# -----------------------------------------------------------------------------

BANK_TRANSACTION_WORKFLOW = Workflow(
    name="bank_transaction",
    description="Bank statement line reconciliation",
    initial_state="unmatched",
    states=("unmatched", "matched", "reconciled"),
    transitions=(
        Transition(
            "unmatched",
            "matched",
            action="match",
            guards=(HAS_MATCH_TARGET, AMOUNT_WITHIN_TOLERANCE),
            effects=(LINK_PAYMENT,),
        ),
        Transition("matched", "unmatched", action="unmatch", effects=(UNLINK_PAYMENT,)),
        Transition("matched", "reconciled", action="reconcile", effects=(MARK_RECONCILED,)),
    ),
)

logger.info(
    "bank_transaction_workflow_registered",
    extra={
        "workflow_name": BANK_TRANSACTION_WORKFLOW.name,
        "state_count": len(BANK_TRANSACTION_WORKFLOW.states),
        "transition_count": len(BANK_TRANSACTION_WORKFLOW.transitions),
        "initial_state": BANK_TRANSACTION_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Down Payment Workflow
# -----------------------------------------------------------------------------

DOWN_PAYMENT_WORKFLOW = Workflow(
    name="down_payment",
    description="Advance payment from receipt to full application or refund",
    initial_state="draft",
    states=("draft", "confirmed", "applied", "refunded", "voided"),
    transitions=(
        Transition(
            "draft", "confirmed", action="confirm",
            guards=(HAS_AMOUNT,), effects=(POST_DOWN_PAYMENT,),
        ),
        Transition("draft", "voided", action="void"),
        Transition(
            "confirmed", "applied", action="apply",
            guards=(BALANCE_EXHAUSTED,), system_only=True,
        ),
        Transition(
            "confirmed", "refunded", action="refund",
            guards=(BALANCE_EXHAUSTED,), system_only=True,
        ),
    ),
)

logger.info(
    "down_payment_workflow_registered",
    extra={
        "workflow_name": DOWN_PAYMENT_WORKFLOW.name,
        "state_count": len(DOWN_PAYMENT_WORKFLOW.states),
        "transition_count": len(DOWN_PAYMENT_WORKFLOW.transitions),
        "initial_state": DOWN_PAYMENT_WORKFLOW.initial_state,
    },
)
