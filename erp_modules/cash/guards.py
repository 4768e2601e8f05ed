"""Guard evaluators and effect builders for bank transactions and down payments."""

from __future__ import annotations

from erp_engines.calculation import RoundingPolicy
from erp_kernel.domain.documents import Document
from erp_kernel.domain.values import Money
from erp_kernel.domain.workflow import (
    EffectBuilder,
    EffectSpec,
    GuardEvaluator,
    SideEffect,
    TransitionContext,
)
from erp_modules._guards import document_effect
from erp_modules.cash.workflows import (
    AMOUNT_WITHIN_TOLERANCE,
    BALANCE_EXHAUSTED,
    HAS_AMOUNT,
    HAS_MATCH_TARGET,
    LINK_PAYMENT,
    MARK_RECONCILED,
    POST_DOWN_PAYMENT,
    UNLINK_PAYMENT,
)


def _has_match_target(document: Document, context: TransitionContext) -> bool:
    return context.matched_payment is not None


def _amount_within_tolerance(document: Document, context: TransitionContext) -> bool:
    payment = context.matched_payment
    if payment is None or document.amount is None:
        return False
    if payment.amount.currency != document.amount.currency:
        return False
    tolerance = context.match_tolerance or Money.zero(document.amount.currency)
    return abs(payment.amount - document.amount) <= tolerance


def _has_amount(document: Document, context: TransitionContext) -> bool:
    return document.amount is not None and document.amount.is_positive


def _balance_exhausted(document: Document, context: TransitionContext) -> bool:
    return context.available_balance is not None and context.available_balance.is_zero


def _payment_effect(
    document: Document, context: TransitionContext, spec: EffectSpec
) -> tuple[SideEffect, ...]:
    payment_id = (
        context.matched_payment.payment_id
        if context.matched_payment is not None
        else document.links.get("matched_payment_id")
    )
    return (
        SideEffect(
            kind=spec.kind,
            target_id=document.document_id,
            payload={"payment_id": payment_id},
        ),
    )


def guard_evaluators(policy: RoundingPolicy) -> dict[str, GuardEvaluator]:
    return {
        HAS_MATCH_TARGET.name: _has_match_target,
        AMOUNT_WITHIN_TOLERANCE.name: _amount_within_tolerance,
        HAS_AMOUNT.name: _has_amount,
        BALANCE_EXHAUSTED.name: _balance_exhausted,
    }


def effect_builders(policy: RoundingPolicy) -> dict[str, EffectBuilder]:
    return {
        LINK_PAYMENT.kind: _payment_effect,
        UNLINK_PAYMENT.kind: _payment_effect,
        MARK_RECONCILED.kind: document_effect,
        POST_DOWN_PAYMENT.kind: document_effect,
    }
