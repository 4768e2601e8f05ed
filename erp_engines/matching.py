"""
erp_engines.matching -- Bank transaction to payment match suggestions.

Responsibility:
    Score recorded payments as candidates for a bank transaction and
    return them best-first.  Suggestions only; confirming a match is an
    explicit ``match`` transition on the bank transaction.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import erp_kernel/domain.

Invariants enforced:
    - Identical inputs produce identical, identically-ordered output.
    - Confidence is a Decimal in [0, 100]:
        amount score: exact amount 70; within tolerance 50 down to 30,
                      scaled linearly by |delta| / tolerance;
        date score:   30 on the same day, decaying linearly to 0 at the
                      edge of the date window.
    - Candidates are EXCLUDED when the amount delta exceeds the tolerance,
      the currency differs, or the cash direction is opposite.
    - Ordering: confidence descending, then smaller date delta, then
      payment_id ascending.

Failure modes:
    - ValueError when the transaction lacks amount, date or direction.

Usage:
    from erp_engines.matching import MatchTolerance, ReconciliationMatcher

    suggestions = ReconciliationMatcher().suggest_matches(
        transaction=bank_txn,
        candidates=payments,
        tolerance=MatchTolerance(amount=Money.of("1000", "IDR"), date_window_days=7),
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from erp_engines.tracer import traced_engine
from erp_kernel.domain.documents import Document, Payment
from erp_kernel.domain.values import Money
from erp_kernel.logging_config import get_logger

logger = get_logger("engines.matching")

EXACT_AMOUNT_SCORE = Decimal("70")
TOLERANCE_MAX_SCORE = Decimal("50")
TOLERANCE_MIN_SCORE = Decimal("30")
DATE_MAX_SCORE = Decimal("30")
_CONFIDENCE_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class MatchTolerance:
    """Absolute amount tolerance and the date window scored against."""

    amount: Money
    date_window_days: int = 7

    def __post_init__(self) -> None:
        if self.amount.is_negative:
            raise ValueError("Amount tolerance cannot be negative")
        if self.date_window_days < 0:
            raise ValueError("Date window cannot be negative")


@dataclass(frozen=True)
class MatchCandidate:
    """A scored suggestion.  Ephemeral; never persisted."""

    payment_id: str
    confidence: Decimal
    amount_delta: Money
    date_delta_days: int

    @property
    def is_exact_amount(self) -> bool:
        return self.amount_delta.is_zero


class ReconciliationMatcher:
    """
    Suggest payments for a bank transaction.

    Contract:
        Pure and deterministic; candidates are never mutated.
    """

    def _amount_score(self, delta: Money, tolerance: Money) -> Decimal | None:
        magnitude = abs(delta.amount)
        if magnitude == 0:
            return EXACT_AMOUNT_SCORE
        if magnitude > tolerance.amount:
            return None
        span = TOLERANCE_MAX_SCORE - TOLERANCE_MIN_SCORE
        return TOLERANCE_MAX_SCORE - span * magnitude / tolerance.amount

    def _date_score(self, days: int, window: int) -> Decimal:
        if days >= window:
            return DATE_MAX_SCORE if days == 0 else Decimal("0")
        return DATE_MAX_SCORE * (Decimal(window - days) / Decimal(window))

    def score(
        self,
        transaction: Document,
        payment: Payment,
        tolerance: MatchTolerance,
    ) -> MatchCandidate | None:
        """Score one payment, or None when it is excluded."""
        amount = transaction.amount
        if amount is None or transaction.transaction_date is None or transaction.direction is None:
            raise ValueError(
                f"Bank transaction {transaction.document_id} needs amount, date and direction"
            )
        if payment.amount.currency != amount.currency:
            return None
        if payment.direction != transaction.direction:
            return None
        if tolerance.amount.currency != amount.currency:
            raise ValueError(
                f"Tolerance currency {tolerance.amount.currency} differs from {amount.currency}"
            )

        delta = payment.amount - amount
        amount_score = self._amount_score(delta, tolerance.amount)
        if amount_score is None:
            return None
        days = abs((payment.payment_date - transaction.transaction_date).days)
        confidence = amount_score + self._date_score(days, tolerance.date_window_days)
        return MatchCandidate(
            payment_id=payment.payment_id,
            confidence=confidence.quantize(_CONFIDENCE_QUANTUM),
            amount_delta=delta,
            date_delta_days=days,
        )

    @traced_engine("reconciliation_matcher", "1.0", fingerprint_fields=("transaction", "tolerance"))
    def suggest_matches(
        self,
        transaction: Document,
        candidates: Sequence[Payment],
        tolerance: MatchTolerance,
    ) -> list[MatchCandidate]:
        """
        Score every candidate and return the survivors best-first.

        Postconditions:
            - No excluded candidate appears.
            - Sorted by (-confidence, date_delta_days, payment_id).
        """
        scored = [
            c for c in (self.score(transaction, p, tolerance) for p in candidates)
            if c is not None
        ]
        scored.sort(key=lambda c: (-c.confidence, c.date_delta_days, c.payment_id))
        logger.info(
            "match_suggestions_computed",
            extra={
                "transaction_id": transaction.document_id,
                "candidate_count": len(candidates),
                "suggestion_count": len(scored),
            },
        )
        return scored


def suggest_matches(
    transaction: Document,
    candidates: Sequence[Payment],
    tolerance: MatchTolerance,
) -> list[MatchCandidate]:
    """Module-level shorthand for ``ReconciliationMatcher().suggest_matches``."""
    return ReconciliationMatcher().suggest_matches(transaction, candidates, tolerance)
