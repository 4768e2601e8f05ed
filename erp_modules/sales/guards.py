"""Guard evaluators and effect builders for the sales documents."""

from __future__ import annotations

from erp_engines.calculation import RoundingPolicy
from erp_kernel.domain.documents import Document
from erp_kernel.domain.workflow import (
    EffectBuilder,
    EffectSpec,
    GuardEvaluator,
    SideEffect,
    TransitionContext,
)
from erp_modules._guards import (
    RELEASE_CONVERSION_LINKS,
    document_effect,
    make_amount_effect,
    per_line_effect,
    release_links,
)
from erp_modules.sales.workflows import (
    CONFIRM_DELIVERY,
    CREATE_INVOICE,
    DECREMENT_INVENTORY,
    INCREMENT_DELIVERED_QUANTITY,
    ISSUE_CREDIT_NOTE,
    POST_RECEIVABLE,
    QUOTATION_VALID,
    RESTOCK_INVENTORY,
    REVERSE_RECEIVABLE,
)


def _quotation_valid(document: Document, context: TransitionContext) -> bool:
    """No valid-until date, or no business date given, means still valid."""
    if document.valid_until is None or context.as_of is None:
        return True
    return context.as_of <= document.valid_until


def _create_invoice(
    document: Document, context: TransitionContext, spec: EffectSpec
) -> tuple[SideEffect, ...]:
    return (
        SideEffect(
            kind=spec.kind,
            target_id=document.document_id,
            payload={
                "source_quotation_id": document.document_id,
                "line_ids": [line.line_id for line in document.lines],
            },
        ),
    )


def _increment_delivered(
    document: Document, context: TransitionContext, spec: EffectSpec
) -> tuple[SideEffect, ...]:
    invoice_id = document.links.get("source_invoice_id")
    return tuple(
        SideEffect(
            kind=spec.kind,
            target_id=line.source_line_id or line.line_id,
            payload={
                "invoice_id": invoice_id,
                "delivery_order_id": document.document_id,
                "quantity": str(line.quantity),
            },
        )
        for line in document.lines
        if line.quantity > 0
    )


def guard_evaluators(policy: RoundingPolicy) -> dict[str, GuardEvaluator]:
    return {QUOTATION_VALID.name: _quotation_valid}


def effect_builders(policy: RoundingPolicy) -> dict[str, EffectBuilder]:
    amount_to_customer = make_amount_effect(policy, "customer_id")
    return {
        CREATE_INVOICE.kind: _create_invoice,
        POST_RECEIVABLE.kind: amount_to_customer,
        REVERSE_RECEIVABLE.kind: amount_to_customer,
        DECREMENT_INVENTORY.kind: per_line_effect(),
        INCREMENT_DELIVERED_QUANTITY.kind: _increment_delivered,
        CONFIRM_DELIVERY.kind: document_effect,
        RESTOCK_INVENTORY.kind: per_line_effect(),
        ISSUE_CREDIT_NOTE.kind: make_amount_effect(policy, "source_invoice_id"),
        RELEASE_CONVERSION_LINKS.kind: release_links,
    }
