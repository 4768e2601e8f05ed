"""
erp_services.reconciliation_service -- Bank transaction matching and reconciliation.

Responsibility:
    Suggests payments for a bank transaction (via ReconciliationMatcher)
    and performs the explicit, user-confirmed ``match``, ``unmatch`` and
    ``reconcile`` transitions.

Architecture position:
    Services -- orchestration over the matching engine and the
    WorkflowExecutor.  No I/O; the caller persists the returned document.

Invariants enforced:
    - Suggestions never change state; only ``match`` links a payment.
    - ``match`` re-checks the amount tolerance through the workflow guard,
      so a suggestion that drifted out of tolerance cannot be confirmed.
    - ``reconciled`` is terminal: no unmatch, edit or delete afterwards.

Failure modes:
    - Business failures are RETURNED as TransitionResult.error
      (NoMatchTarget, AmountMismatch, TerminalState, ...).
    - ValueError from the matcher when the transaction lacks amount,
      date or direction.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from erp_engines.matching import MatchCandidate, MatchTolerance, ReconciliationMatcher
from erp_kernel.domain.documents import Document, Payment
from erp_kernel.domain.values import Money
from erp_kernel.domain.workflow import TransitionContext, TransitionResult
from erp_kernel.logging_config import get_logger
from erp_services.workflow_executor import WorkflowExecutor

logger = get_logger("services.reconciliation")

MATCHED_PAYMENT_LINK = "matched_payment_id"


class BankReconciliationService:
    """
    Suggest, match, unmatch and reconcile bank transactions.

    Contract:
        Every state change goes through WorkflowExecutor.apply_transition;
        on success the returned document carries (or drops) the
        ``matched_payment_id`` link.
    """

    def __init__(
        self,
        executor: WorkflowExecutor | None = None,
        matcher: ReconciliationMatcher | None = None,
        date_window_days: int = 7,
    ):
        self.executor = executor or WorkflowExecutor()
        self.matcher = matcher or ReconciliationMatcher()
        self.date_window_days = date_window_days

    def _tolerance(self, transaction: Document, tolerance: MatchTolerance | Money | None) -> MatchTolerance:
        if isinstance(tolerance, MatchTolerance):
            return tolerance
        if tolerance is None:
            assert transaction.amount is not None
            tolerance = Money.zero(transaction.amount.currency)
        return MatchTolerance(amount=tolerance, date_window_days=self.date_window_days)

    def suggest(
        self,
        transaction: Document,
        payments: Sequence[Payment],
        tolerance: MatchTolerance | Money | None = None,
    ) -> list[MatchCandidate]:
        """Candidates best-first.  A zero tolerance admits exact amounts only."""
        if transaction.amount is None:
            raise ValueError(f"Bank transaction {transaction.document_id} has no amount")
        return self.matcher.suggest_matches(
            transaction, payments, self._tolerance(transaction, tolerance)
        )

    def match(
        self,
        transaction: Document,
        payment: Payment | None,
        tolerance: Money | None = None,
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Confirm a payment as the counterpart of the bank transaction."""
        context = TransitionContext(
            matched_payment=payment,
            match_tolerance=tolerance,
            expected_version=expected_version,
        )
        result = self.executor.apply_transition(transaction, "match", context)
        if not result.success:
            return result

        assert payment is not None
        links = dict(result.document.links)
        links[MATCHED_PAYMENT_LINK] = payment.payment_id
        logger.info(
            "bank_transaction_matched",
            extra={
                "transaction_id": transaction.document_id,
                "payment_id": payment.payment_id,
            },
        )
        return replace(result, document=replace(result.document, links=links))

    def unmatch(
        self,
        transaction: Document,
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Undo a match; refused once the transaction is reconciled."""
        result = self.executor.apply_transition(
            transaction, "unmatch", TransitionContext(expected_version=expected_version)
        )
        if not result.success:
            return result

        links = {k: v for k, v in result.document.links.items() if k != MATCHED_PAYMENT_LINK}
        logger.info(
            "bank_transaction_unmatched",
            extra={
                "transaction_id": transaction.document_id,
                "payment_id": transaction.links.get(MATCHED_PAYMENT_LINK),
            },
        )
        return replace(result, document=replace(result.document, links=links))

    def reconcile(
        self,
        transaction: Document,
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Terminal: a reconciled transaction cannot be unmatched, edited or deleted."""
        result = self.executor.apply_transition(
            transaction, "reconcile", TransitionContext(expected_version=expected_version)
        )
        if result.success:
            logger.info(
                "bank_transaction_reconciled",
                extra={
                    "transaction_id": transaction.document_id,
                    "payment_id": transaction.links.get(MATCHED_PAYMENT_LINK),
                },
            )
        return result
