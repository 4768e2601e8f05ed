"""Guard evaluators and effect builders for the procurement documents."""

from __future__ import annotations

from decimal import Decimal

from erp_engines.calculation import RoundingPolicy
from erp_kernel.domain.documents import Document
from erp_kernel.domain.workflow import EffectBuilder, GuardEvaluator, TransitionContext
from erp_kernel.exceptions import TransitionError
from erp_modules._guards import (
    RELEASE_CONVERSION_LINKS,
    make_amount_effect,
    per_line_effect,
    release_links,
)
from erp_modules.procurement.workflows import (
    FULLY_RECEIVED,
    HAS_RECEIVED_QUANTITY,
    INCREMENT_INVENTORY,
    NOTHING_RECEIVED,
    PARTIALLY_RECEIVED,
    POST_PAYABLE,
    REMOVE_INVENTORY,
    REQUEST_DEBIT_NOTE,
    REVERSE_PAYABLE,
    WITHIN_SOURCE_REMAINING,
)

_ZERO = Decimal("0")


def _received(document: Document, context: TransitionContext) -> dict[str, Decimal]:
    return {
        line.line_id: context.consumed.get(line.line_id, _ZERO)
        for line in document.lines
    }


def _fully_received(document: Document, context: TransitionContext) -> bool:
    """Every ordered line has consumed quantity >= ordered quantity."""
    if not document.lines:
        return False
    received = _received(document, context)
    return all(received[line.line_id] >= line.quantity for line in document.lines)


def _partially_received(document: Document, context: TransitionContext) -> bool:
    received = _received(document, context)
    return any(q > 0 for q in received.values()) and not _fully_received(document, context)


def _nothing_received(document: Document, context: TransitionContext) -> bool:
    return not any(q > 0 for q in _received(document, context).values())


def _accepted(quantity: Decimal, rejected: Decimal) -> Decimal:
    return quantity - rejected


def _has_received_quantity(document: Document, context: TransitionContext) -> bool:
    return any(_accepted(line.quantity, line.rejected_quantity) > 0 for line in document.lines)


def _within_source_remaining(
    document: Document, context: TransitionContext
) -> bool | TransitionError:
    """
    ``context.source_remaining`` holds, per source order line, what is left
    EXCLUDING this receipt's own links.  Lines without a source are not
    checked; a sourced line without a remaining figure fails.
    """
    for line in document.lines:
        if line.source_line_id is None:
            continue
        remaining = context.source_remaining.get(line.source_line_id)
        if remaining is None:
            return TransitionError(
                "MissingSourceRemaining",
                f"Line {line.line_id}: no remaining quantity supplied "
                f"for source line {line.source_line_id}",
            )
        if line.quantity > remaining:
            return TransitionError(
                "OverConsumption",
                f"Line {line.line_id}: receiving {line.quantity}, "
                f"source line {line.source_line_id} has {remaining} remaining",
            )
    return True


def guard_evaluators(policy: RoundingPolicy) -> dict[str, GuardEvaluator]:
    return {
        PARTIALLY_RECEIVED.name: _partially_received,
        FULLY_RECEIVED.name: _fully_received,
        NOTHING_RECEIVED.name: _nothing_received,
        HAS_RECEIVED_QUANTITY.name: _has_received_quantity,
        WITHIN_SOURCE_REMAINING.name: _within_source_remaining,
    }


def effect_builders(policy: RoundingPolicy) -> dict[str, EffectBuilder]:
    amount_to_vendor = make_amount_effect(policy, "vendor_id")
    return {
        INCREMENT_INVENTORY.kind: per_line_effect(_accepted),
        RELEASE_CONVERSION_LINKS.kind: release_links,
        POST_PAYABLE.kind: amount_to_vendor,
        REVERSE_PAYABLE.kind: amount_to_vendor,
        REMOVE_INVENTORY.kind: per_line_effect(),
        REQUEST_DEBIT_NOTE.kind: make_amount_effect(policy, "source_bill_id"),
    }
