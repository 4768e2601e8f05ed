"""
Canonical workflow types (``erp_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for document lifecycle state machines.  Every document
type declares one ``Workflow`` built from these types, so Guard, Transition
and Workflow are defined once and no document type re-implements the
lifecycle rules.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/`` or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* A ``(from_state, action)`` pair appears at most once.
* ``edit`` and ``delete`` are reserved actions governed by
  ``editable_states`` / ``deletable_states``; tables may not declare them.
* Terminal states are DERIVED: a state with no outgoing transition.

Failure modes
-------------
* ``MalformedWorkflowError`` at construction (module import) time when a
  table violates any invariant above.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from erp_kernel.domain.documents import Document, Payment
from erp_kernel.domain.values import Money
from erp_kernel.exceptions import MalformedWorkflowError, TransitionError

EDIT_ACTION = "edit"
DELETE_ACTION = "delete"
RESERVED_ACTIONS = frozenset({EDIT_ACTION, DELETE_ACTION})


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.  ``name`` keys the evaluator in the
    guard executor; ``violation`` is the ``violated_guard`` reported when the
    condition fails.
    Non-goals: does not evaluate the condition -- the workflow executor does.
    """
    name: str
    description: str
    violation: str


@dataclass(frozen=True)
class EffectSpec:
    """A side effect a transition declares.  Built, never executed, by the core."""
    kind: str
    description: str = ""


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    Contract: frozen.  ``system_only=True`` marks transitions reachable only
    through orchestrator-driven origin (payment application, receipt
    progress), never through a direct user action.
    """
    from_state: str
    to_state: str
    action: str
    guards: tuple[Guard, ...] = ()
    effects: tuple[EffectSpec, ...] = ()
    system_only: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for a document lifecycle.

    Contract: frozen; validated at construction.
    Guarantees: ``initial_state`` is a member of ``states``; editable and
    deletable states default to the initial state only.
    """
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    editable_states: tuple[str, ...] | None = None
    deletable_states: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        if self.editable_states is None:
            object.__setattr__(self, "editable_states", (self.initial_state,))
        if self.deletable_states is None:
            object.__setattr__(self, "deletable_states", (self.initial_state,))
        self._validate()

    def _validate(self) -> None:
        known = set(self.states)
        if len(known) != len(self.states):
            raise MalformedWorkflowError(self.name, "duplicate state")
        if self.initial_state not in known:
            raise MalformedWorkflowError(
                self.name, f"initial state '{self.initial_state}' not in states"
            )
        seen: set[tuple[str, str]] = set()
        for t in self.transitions:
            for state in (t.from_state, t.to_state):
                if state not in known:
                    raise MalformedWorkflowError(
                        self.name, f"transition '{t.action}' references unknown state '{state}'"
                    )
            if t.action in RESERVED_ACTIONS:
                raise MalformedWorkflowError(
                    self.name, f"action '{t.action}' is reserved"
                )
            key = (t.from_state, t.action)
            if key in seen:
                raise MalformedWorkflowError(
                    self.name, f"duplicate transition ({t.from_state}, {t.action})"
                )
            seen.add(key)
        for state in (*self.editable_states, *self.deletable_states):
            if state not in known:
                raise MalformedWorkflowError(
                    self.name, f"editable/deletable state '{state}' not in states"
                )

    @property
    def terminal_states(self) -> tuple[str, ...]:
        sources = {t.from_state for t in self.transitions}
        return tuple(s for s in self.states if s not in sources)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states

    def find(self, state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == state and t.action == action:
                return t
        return None

    def outgoing(self, state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == state)

    @property
    def actions(self) -> tuple[str, ...]:
        ordered: dict[str, None] = {}
        for t in self.transitions:
            ordered.setdefault(t.action, None)
        return tuple(ordered)


@dataclass(frozen=True)
class SideEffect:
    """Declared consequence of a transition; the caller persists or executes it."""

    kind: str
    target_id: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {"kind": self.kind, "target_id": self.target_id, "payload": dict(self.payload)}


class Origin(str, Enum):
    """Who is driving a transition."""

    USER = "user"
    SYSTEM = "system"


@dataclass(frozen=True)
class TransitionContext:
    """
    External facts a guard may need.  Guards read ONLY the document and this.

    Attributes:
        origin: USER for direct actions, SYSTEM for orchestrator-driven ones.
        as_of: Business date for validity checks (quotation expiry).
        consumed: Quantity already consumed per line of THIS document
            (purchase-order receipt progress).
        source_remaining: Remaining quantity per SOURCE line id
            (goods-receipt completion).
        paid_amount: Total payments applied to this document.
        available_balance: Unapplied balance (down payments).
        matched_payment: Payment proposed for a bank-transaction match.
        match_tolerance: Absolute amount tolerance for that match.
        expected_version: Server version the caller's snapshot was read at.
        attributes: Free-form facts for caller-registered guards.
    """

    origin: Origin = Origin.USER
    as_of: date | None = None
    consumed: Mapping[str, Decimal] = field(default_factory=dict)
    source_remaining: Mapping[str, Decimal] = field(default_factory=dict)
    paid_amount: Money | None = None
    available_balance: Money | None = None
    matched_payment: Payment | None = None
    match_tolerance: Money | None = None
    expected_version: int | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def system(cls, **kwargs: Any) -> TransitionContext:
        return cls(origin=Origin.SYSTEM, **kwargs)

    @property
    def is_system(self) -> bool:
        return self.origin == Origin.SYSTEM


@dataclass(frozen=True)
class TransitionResult:
    """Result of evaluating (and, on success, applying) a transition.

    On success ``document`` is the document in ``next_state``; on failure it
    is the unchanged input and ``error`` names the violated guard.
    """

    success: bool
    document: Document
    next_state: str | None = None
    side_effects: tuple[SideEffect, ...] = ()
    error: TransitionError | None = None
    action: str = ""

    def to_payload(self) -> dict[str, Any]:
        if not self.success:
            assert self.error is not None
            return self.error.to_payload()
        return {
            "next_state": self.next_state,
            "side_effects": [e.to_payload() for e in self.side_effects],
        }


# A guard evaluator passes (True), fails generically (False), or fails with
# a specific error carrying structured detail (e.g. UnbalancedEntryError).
GuardEvaluator = Callable[[Document, TransitionContext], "bool | TransitionError"]

# An effect builder expands one declared EffectSpec into concrete side
# effects for the document as it stands AFTER the transition.
EffectBuilder = Callable[[Document, TransitionContext, EffectSpec], tuple[SideEffect, ...]]
