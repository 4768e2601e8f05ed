"""Effect builders for the budget document."""

from __future__ import annotations

from collections.abc import Sequence

from erp_engines.allocation import MONTHS
from erp_engines.calculation import RoundingPolicy
from erp_kernel.domain.documents import Document
from erp_kernel.domain.workflow import (
    EffectBuilder,
    EffectSpec,
    GuardEvaluator,
    SideEffect,
    TransitionContext,
)
from erp_modules._guards import document_effect
from erp_modules.budget.service import monthly_breakdown
from erp_modules.budget.workflows import PUBLISH_MONTHLY_BREAKDOWN, WITHDRAW_BUDGET


def make_publish_breakdown(periods: Sequence[str]) -> EffectBuilder:
    def build(
        document: Document, context: TransitionContext, spec: EffectSpec
    ) -> tuple[SideEffect, ...]:
        return tuple(
            SideEffect(
                kind=spec.kind,
                target_id=account,
                payload={
                    "budget_id": document.document_id,
                    "currency": result.source_amount.currency.code,
                    "annual": str(result.source_amount.amount),
                    "periods": {
                        line.target_id: str(line.allocated.amount) for line in result.lines
                    },
                },
            )
            for account, result in monthly_breakdown(document, periods).items()
        )

    return build


def guard_evaluators(policy: RoundingPolicy) -> dict[str, GuardEvaluator]:
    return {}


def effect_builders(
    policy: RoundingPolicy, periods: Sequence[str] = MONTHS
) -> dict[str, EffectBuilder]:
    return {
        PUBLISH_MONTHLY_BREAKDOWN.kind: make_publish_breakdown(periods),
        WITHDRAW_BUDGET.kind: document_effect,
    }
