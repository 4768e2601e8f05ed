"""Guard evaluators and effect builders for journal entries."""

from __future__ import annotations

from erp_engines.calculation import RoundingPolicy
from erp_kernel.domain.documents import Document
from erp_kernel.domain.values import sum_money
from erp_kernel.domain.workflow import (
    EffectBuilder,
    EffectSpec,
    GuardEvaluator,
    SideEffect,
    TransitionContext,
)
from erp_kernel.exceptions import CurrencyMismatchError, TransitionError, UnbalancedEntryError
from erp_modules.gl.workflows import CREATE_REVERSAL_ENTRY, ENTRY_BALANCED, POST_JOURNAL


def _entry_balanced(document: Document, context: TransitionContext) -> bool | TransitionError:
    try:
        debits = sum_money([line.debit for line in document.journal_lines], document.currency)
        credits = sum_money([line.credit for line in document.journal_lines], document.currency)
    except CurrencyMismatchError as exc:
        return TransitionError("CurrencyMismatch", str(exc))
    if debits != credits:
        return UnbalancedEntryError(
            str(debits.amount), str(credits.amount), document.currency.code
        )
    return True


def _journal_effect(
    document: Document, context: TransitionContext, spec: EffectSpec
) -> tuple[SideEffect, ...]:
    reverse = spec.kind == CREATE_REVERSAL_ENTRY.kind
    lines = []
    for line in document.journal_lines:
        debit, credit = (line.credit, line.debit) if reverse else (line.debit, line.credit)
        lines.append({
            "account_id": line.account_id,
            "debit": str(debit.amount),
            "credit": str(credit.amount),
            "memo": line.memo,
        })
    return (
        SideEffect(
            kind=spec.kind,
            target_id=document.document_id,
            payload={"currency": document.currency.code, "lines": lines},
        ),
    )


def guard_evaluators(policy: RoundingPolicy) -> dict[str, GuardEvaluator]:
    return {ENTRY_BALANCED.name: _entry_balanced}


def effect_builders(policy: RoundingPolicy) -> dict[str, EffectBuilder]:
    return {
        POST_JOURNAL.kind: _journal_effect,
        CREATE_REVERSAL_ENTRY.kind: _journal_effect,
    }
