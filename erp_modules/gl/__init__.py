"""General Ledger Module: manual journal entries."""

from erp_kernel.domain.documents import DocumentType
from erp_modules.gl.guards import effect_builders, guard_evaluators
from erp_modules.gl.workflows import JOURNAL_ENTRY_WORKFLOW

WORKFLOWS = {DocumentType.JOURNAL_ENTRY: JOURNAL_ENTRY_WORKFLOW}

__all__ = [
    "JOURNAL_ENTRY_WORKFLOW",
    "WORKFLOWS",
    "effect_builders",
    "guard_evaluators",
]
