"""
Module: erp_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  The canonical import surface for higher layers
    (erp_services, erp_modules).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import erp_kernel/domain (and sibling engine modules).
    MUST NOT import erp_services or erp_modules.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Dates are passed in as explicit parameters.
    - Decimal-only arithmetic: floats are forbidden.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via the ``@traced_engine`` decorator
    (see ``erp_engines.tracer``), emitting ERP_ENGINE_TRACE log records.

Usage:
    from erp_engines.calculation import calculate_document
    from erp_engines.allocation import AllocationEngine
    from erp_engines.matching import ReconciliationMatcher
"""

from erp_engines.allocation import (
    AllocationEngine,
    AllocationLine,
    AllocationMethod,
    AllocationResult,
    AllocationTarget,
)
from erp_engines.calculation import (
    CalculationResult,
    DocumentAdjustments,
    LineCalculation,
    RoundingPolicy,
    calculate_document,
    calculate_for,
    calculate_line,
)
from erp_engines.matching import (
    MatchCandidate,
    MatchTolerance,
    ReconciliationMatcher,
    suggest_matches,
)
from erp_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Allocation
    "AllocationEngine",
    "AllocationLine",
    "AllocationMethod",
    "AllocationResult",
    "AllocationTarget",
    # Calculation
    "CalculationResult",
    "DocumentAdjustments",
    "LineCalculation",
    "RoundingPolicy",
    "calculate_document",
    "calculate_for",
    "calculate_line",
    # Matching
    "MatchCandidate",
    "MatchTolerance",
    "ReconciliationMatcher",
    "suggest_matches",
    # Tracer
    "compute_input_fingerprint",
    "traced_engine",
]
