"""
Shared guards and effect builders for module workflows.

Used by erp_modules/*/guards.py so that the guards every document type
needs (at least one line, declared totals agree, payment balance) are
declared and evaluated once.

Architecture: Modules layer. Imports only from erp_kernel and erp_engines.
"""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal

from erp_engines.calculation import DEFAULT_ROUNDING, RoundingPolicy, calculate_for
from erp_kernel.domain.documents import Document
from erp_kernel.domain.values import Money
from erp_kernel.domain.workflow import (
    EffectSpec,
    Guard,
    GuardEvaluator,
    SideEffect,
    TransitionContext,
)
from erp_kernel.exceptions import TransitionError, UnbalancedEntryError

# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_LINES = Guard(
    name="has_lines",
    description="Document has at least one line item",
    violation="NoLineItems",
)

DECLARED_TOTALS_MATCH = Guard(
    name="declared_totals_match",
    description="Declared totals equal the recomputed totals",
    violation="UnbalancedEntry",
)

BALANCE_OUTSTANDING = Guard(
    name="balance_outstanding",
    description="Some, but not all, of the grand total has been paid",
    violation="NoOutstandingBalance",
)

BALANCE_SETTLED = Guard(
    name="balance_settled",
    description="Payments cover the grand total",
    violation="HasOutstandingBalance",
)

NO_PAYMENTS = Guard(
    name="no_payments",
    description="No payment has been applied",
    violation="HasPayments",
)


# -----------------------------------------------------------------------------
# Effects
# -----------------------------------------------------------------------------

RELEASE_CONVERSION_LINKS = EffectSpec(
    "release_conversion_links", "Give the consumed quantity back to the source document"
)

# Link keys naming the document a partial conversion consumed from.
SOURCE_LINK_KEYS = ("source_purchase_order_id", "source_invoice_id", "source_bill_id")


# -----------------------------------------------------------------------------
# Evaluators
# -----------------------------------------------------------------------------


def _has_lines(document: Document, context: TransitionContext) -> bool:
    return document.has_lines


def grand_total(document: Document, policy: RoundingPolicy = DEFAULT_ROUNDING) -> Money | None:
    """Recomputed grand total, or None when the lines do not calculate."""
    result = calculate_for(document, policy)
    if not result.is_success:
        return None
    assert result.totals is not None
    return result.totals.grand_total


def _paid(document: Document, context: TransitionContext) -> Money:
    return context.paid_amount if context.paid_amount is not None else Money.zero(document.currency)


def make_declared_totals_match(policy: RoundingPolicy) -> GuardEvaluator:
    """Declared totals, when present, must equal the engine's recomputation."""

    def evaluate(document: Document, context: TransitionContext) -> bool | TransitionError:
        declared = document.declared_totals
        if declared is None:
            return True
        result = calculate_for(document, policy)
        if not result.is_success:
            assert result.error is not None
            return TransitionError("InvalidLineItem", str(result.error))
        computed = result.totals
        assert computed is not None
        pairs = (
            (declared.subtotal, computed.subtotal),
            (declared.tax_amount, computed.tax_amount),
            (declared.grand_total, computed.grand_total),
        )
        for expected, actual in pairs:
            if expected.amount != actual.amount or expected.currency != actual.currency:
                return UnbalancedEntryError(
                    str(expected.amount), str(actual.amount), actual.currency.code
                )
        return True

    return evaluate


def make_balance_outstanding(policy: RoundingPolicy) -> GuardEvaluator:
    def evaluate(document: Document, context: TransitionContext) -> bool:
        total = grand_total(document, policy)
        if total is None:
            return False
        paid = _paid(document, context)
        return paid.is_positive and paid < total

    return evaluate


def make_balance_settled(policy: RoundingPolicy) -> GuardEvaluator:
    def evaluate(document: Document, context: TransitionContext) -> bool:
        total = grand_total(document, policy)
        if total is None:
            return False
        return _paid(document, context) >= total

    return evaluate


def _no_payments(document: Document, context: TransitionContext) -> bool:
    return not _paid(document, context).is_positive


def shared_guard_evaluators(policy: RoundingPolicy) -> dict[str, GuardEvaluator]:
    return {
        HAS_LINES.name: _has_lines,
        DECLARED_TOTALS_MATCH.name: make_declared_totals_match(policy),
        BALANCE_OUTSTANDING.name: make_balance_outstanding(policy),
        BALANCE_SETTLED.name: make_balance_settled(policy),
        NO_PAYMENTS.name: _no_payments,
    }


# -----------------------------------------------------------------------------
# Effect builders
# -----------------------------------------------------------------------------


def document_effect(
    document: Document, context: TransitionContext, spec: EffectSpec
) -> tuple[SideEffect, ...]:
    """One effect targeting the document itself."""
    return (
        SideEffect(
            kind=spec.kind,
            target_id=document.document_id,
            payload={
                "document_type": document.document_type.value,
                "status": document.status,
            },
        ),
    )


def per_line_effect(
    quantity_of: Callable[[Decimal, Decimal], Decimal] | None = None,
) -> Callable[[Document, TransitionContext, EffectSpec], tuple[SideEffect, ...]]:
    """
    One effect per line with a positive quantity, targeting the product.

    ``quantity_of(quantity, rejected)`` picks the effective quantity; the
    default is the accepted quantity (quantity minus rejected).
    """
    pick = quantity_of or (lambda quantity, rejected: quantity - rejected)

    def build(
        document: Document, context: TransitionContext, spec: EffectSpec
    ) -> tuple[SideEffect, ...]:
        effects = []
        for line in document.lines:
            quantity = pick(line.quantity, line.rejected_quantity)
            if quantity <= 0:
                continue
            effects.append(
                SideEffect(
                    kind=spec.kind,
                    target_id=line.product_id or line.line_id,
                    payload={
                        "document_id": document.document_id,
                        "line_id": line.line_id,
                        "source_line_id": line.source_line_id,
                        "quantity": str(quantity),
                    },
                )
            )
        return tuple(effects)

    return build


def make_amount_effect(
    policy: RoundingPolicy, counterpart_link: str
) -> Callable[[Document, TransitionContext, EffectSpec], tuple[SideEffect, ...]]:
    """Credit/debit note request carrying the document's recomputed grand total."""

    def build(
        document: Document, context: TransitionContext, spec: EffectSpec
    ) -> tuple[SideEffect, ...]:
        total = grand_total(document, policy) or Money.zero(document.currency)
        return (
            SideEffect(
                kind=spec.kind,
                target_id=document.links.get(counterpart_link, document.document_id),
                payload={
                    "document_id": document.document_id,
                    "amount": str(total.amount),
                    "currency": total.currency.code,
                },
            ),
        )

    return build


def release_links(
    document: Document, context: TransitionContext, spec: EffectSpec
) -> tuple[SideEffect, ...]:
    """Tell the caller to stop counting this document's links against its source."""
    source_id = next(
        (document.links[key] for key in SOURCE_LINK_KEYS if document.links.get(key)), None
    )
    return (
        SideEffect(
            kind=spec.kind,
            target_id=document.document_id,
            payload={
                "source_document_id": source_id,
                "line_ids": [line.line_id for line in document.lines],
            },
        ),
    )
