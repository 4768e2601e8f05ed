"""
erp_services.workflow_executor -- Document lifecycle transition execution.

Responsibility:
    The generic lifecycle state machine.  Looks up the document type's
    workflow, evaluates guards against the document and its
    TransitionContext, computes the next state and builds the declared
    side effects.  ``can_transition`` and every ``can_*`` permission flag
    are derived from the same evaluation as ``apply_transition``, so a
    check and an apply on an unchanged document can never disagree.

Architecture position:
    Services layer.  May import from erp_engines/ (pure engines),
    erp_modules/ (workflow declarations) and erp_kernel/.

Invariants enforced:
    - Undefined (state, action) pairs fail closed (``NoSuchTransition``);
      terminal states refuse every transition (``TerminalState``).
    - Guards are re-evaluated on every call; nothing is cached.
    - System-only transitions refuse user origin (``SystemDriven``).
    - ``edit`` / ``delete`` are governed by the workflow's editable and
      deletable states (``NotEditable`` / ``NotDeletable``).
    - No I/O: side effects are declared, never executed.

Failure modes:
    - Business-rule failures are RETURNED as TransitionResult.error.
    - UnknownDocumentTypeError is RAISED for a type with no workflow.
    - MalformedWorkflowError is RAISED when a workflow references a guard
      with no registered evaluator.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from erp_engines.calculation import DEFAULT_ROUNDING, RoundingPolicy
from erp_kernel.domain.documents import Document, DocumentType
from erp_kernel.domain.workflow import (
    DELETE_ACTION,
    EDIT_ACTION,
    EffectBuilder,
    EffectSpec,
    Guard,
    GuardEvaluator,
    SideEffect,
    Transition,
    TransitionContext,
    TransitionResult,
    Workflow,
)
from erp_kernel.exceptions import (
    MalformedWorkflowError,
    TransitionError,
    UnknownDocumentTypeError,
)
from erp_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.workflow_executor")

# Trace message and outcome codes for structured logging and traceability
TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_GUARD_FAILED = "guard_failed"
OUTCOME_NO_TRANSITION = "no_transition"
OUTCOME_REJECTED = "rejected"


def _emit_workflow_trace(
    workflow_name: str,
    action: str,
    document: Document,
    outcome: str,
    reason: str,
    duration_ms: float,
    to_state: str | None = None,
    violated_guard: str | None = None,
    outcome_sink: Callable[[dict], None] | None = None,
) -> None:
    """Emit a structured workflow transition record for traceability."""
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "ts": datetime.now(UTC).isoformat(),
        "workflow": workflow_name,
        "action": action,
        "document_type": document.document_type.value,
        "document_id": document.document_id,
        "from_state": document.status,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    if to_state is not None:
        record["to_state"] = to_state
    if violated_guard is not None:
        record["violated_guard"] = violated_guard
    record.update(LogContext.get_all())
    logger.info("workflow_transition", extra=record)
    if outcome_sink is not None:
        outcome_sink(record)


# ---------------------------------------------------------------------------
# Guard evaluation
# ---------------------------------------------------------------------------


class GuardExecutor:
    """Evaluates workflow guards against a document and its context.

    Guards are declared on transitions (name + description + violation).
    This executor holds the evaluation logic per guard name.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, GuardEvaluator] = {}

    def register(self, guard_name: str, evaluator: GuardEvaluator) -> None:
        """Register an evaluator for a guard by name."""
        self._evaluators[guard_name] = evaluator

    def register_all(self, evaluators: Mapping[str, GuardEvaluator]) -> None:
        for name, evaluator in evaluators.items():
            self.register(name, evaluator)

    def has_evaluator(self, guard_name: str) -> bool:
        return guard_name in self._evaluators

    def evaluate(
        self, guard: Guard, document: Document, context: TransitionContext
    ) -> TransitionError | None:
        """Return None when the guard passes, the violation otherwise."""
        fn = self._evaluators.get(guard.name)
        if fn is None:
            raise MalformedWorkflowError(guard.name, "no evaluator registered for guard")
        outcome = fn(document, context)
        if outcome is True:
            return None
        if isinstance(outcome, TransitionError):
            return outcome
        return TransitionError(guard.violation, f"Guard not satisfied: {guard.description}")


class EffectRegistry:
    """Expands declared EffectSpecs into concrete SideEffects.

    Kinds without a registered builder produce one effect targeting the
    document itself.
    """

    def __init__(self) -> None:
        self._builders: dict[str, EffectBuilder] = {}

    def register(self, kind: str, builder: EffectBuilder) -> None:
        self._builders[kind] = builder

    def register_all(self, builders: Mapping[str, EffectBuilder]) -> None:
        for kind, builder in builders.items():
            self.register(kind, builder)

    def build(
        self, spec: EffectSpec, document: Document, context: TransitionContext
    ) -> tuple[SideEffect, ...]:
        builder = self._builders.get(spec.kind)
        if builder is None:
            return (
                SideEffect(
                    kind=spec.kind,
                    target_id=document.document_id,
                    payload={"document_type": document.document_type.value},
                ),
            )
        return builder(document, context, spec)


def default_guard_executor(policy: RoundingPolicy = DEFAULT_ROUNDING) -> GuardExecutor:
    """Return a GuardExecutor with every module evaluator registered."""
    from erp_modules import guard_evaluators

    ex = GuardExecutor()
    ex.register_all(guard_evaluators(policy))
    return ex


def default_effect_registry(
    policy: RoundingPolicy = DEFAULT_ROUNDING,
    budget_periods: Sequence[str] | None = None,
) -> EffectRegistry:
    """Return an EffectRegistry with every module builder registered."""
    from erp_modules import effect_builders

    registry = EffectRegistry()
    if budget_periods is None:
        registry.register_all(effect_builders(policy))
    else:
        registry.register_all(effect_builders(policy, tuple(budget_periods)))
    return registry


def default_workflows() -> dict[DocumentType, Workflow]:
    from erp_modules import WORKFLOWS

    return dict(WORKFLOWS)


# ---------------------------------------------------------------------------
# WorkflowExecutor
# ---------------------------------------------------------------------------


class WorkflowExecutor:
    """Evaluates and applies document transitions.

    Thin coordinator: transition tables come from the modules, guard
    evaluation from GuardExecutor, effect construction from EffectRegistry.
    """

    def __init__(
        self,
        workflows: Mapping[DocumentType, Workflow] | None = None,
        guard_executor: GuardExecutor | None = None,
        effect_registry: EffectRegistry | None = None,
    ) -> None:
        self._workflows = dict(workflows) if workflows is not None else default_workflows()
        self._guard_executor = guard_executor or default_guard_executor()
        self._effects = effect_registry or default_effect_registry()
        self._check_guards_registered()

    def _check_guards_registered(self) -> None:
        for workflow in self._workflows.values():
            for t in workflow.transitions:
                for guard in t.guards:
                    if not self._guard_executor.has_evaluator(guard.name):
                        raise MalformedWorkflowError(
                            workflow.name, f"guard '{guard.name}' has no evaluator"
                        )

    def workflow_for(self, document_type: DocumentType) -> Workflow:
        """Raises UnknownDocumentTypeError when no workflow is registered."""
        try:
            return self._workflows[document_type]
        except KeyError:
            raise UnknownDocumentTypeError(str(getattr(document_type, "value", document_type))) from None

    def initial_state(self, document_type: DocumentType) -> str:
        return self.workflow_for(document_type).initial_state

    def new_document(self, document: Document) -> Document:
        """The document placed in its workflow's initial state."""
        return replace(document, status=self.initial_state(document.document_type))

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _fail(
        self,
        document: Document,
        action: str,
        violated_guard: str,
        message: str,
    ) -> TransitionError:
        return TransitionError(
            violated_guard,
            message,
            document_type=document.document_type.value,
            state=document.status,
            action=action,
        )

    def _evaluate(
        self,
        document: Document,
        action: str,
        context: TransitionContext,
    ) -> tuple[Workflow, Transition | None, TransitionError | None]:
        """Decide an action without building effects.  Pure."""
        workflow = self.workflow_for(document.document_type)

        if document.status not in workflow.states:
            return workflow, None, self._fail(
                document, action, "UnknownState",
                f"State '{document.status}' is not part of workflow '{workflow.name}'",
            )
        if context.expected_version is not None and context.expected_version != document.version:
            return workflow, None, self._fail(
                document, action, "StaleSnapshot",
                f"Snapshot version {context.expected_version} is behind "
                f"server version {document.version}",
            )
        if document.deleted:
            return workflow, None, self._fail(
                document, action, "DocumentDeleted", f"Document {document.document_id} is deleted"
            )

        if action == EDIT_ACTION:
            if document.status not in workflow.editable_states:
                return workflow, None, self._fail(
                    document, action, "NotEditable",
                    f"{workflow.name} in state '{document.status}' cannot be edited",
                )
            return workflow, None, None
        if action == DELETE_ACTION:
            if document.status not in workflow.deletable_states:
                return workflow, None, self._fail(
                    document, action, "NotDeletable",
                    f"{workflow.name} in state '{document.status}' cannot be deleted",
                )
            return workflow, None, None

        transition = workflow.find(document.status, action)
        if transition is None:
            if workflow.is_terminal(document.status):
                return workflow, None, self._fail(
                    document, action, "TerminalState",
                    f"{workflow.name} in terminal state '{document.status}' allows no action",
                )
            return workflow, None, self._fail(
                document, action, "NoSuchTransition",
                f"No transition from '{document.status}' via action '{action}' "
                f"in workflow '{workflow.name}'",
            )
        if transition.system_only and not context.is_system:
            return workflow, transition, self._fail(
                document, action, "SystemDriven",
                f"Action '{action}' on {workflow.name} is driven by the system",
            )

        for guard in transition.guards:
            violation = self._guard_executor.evaluate(guard, document, context)
            if violation is not None:
                return workflow, transition, violation.located(
                    document.document_type.value, document.status, action
                )

        return workflow, transition, None

    def can_transition(
        self,
        document: Document,
        action: str,
        context: TransitionContext | None = None,
    ) -> bool:
        """True iff ``apply_transition`` with the same inputs would succeed."""
        _, _, error = self._evaluate(document, action, context or TransitionContext())
        return error is None

    def apply_transition(
        self,
        document: Document,
        action: str,
        context: TransitionContext | None = None,
        outcome_sink: Callable[[dict], None] | None = None,
    ) -> TransitionResult:
        """
        Evaluate guards and, when they pass, return the document in its
        next state with the declared side effects.

        Postconditions:
            - success  -> result.document.status == result.next_state
            - failure  -> result.document is the input, result.error names
                          the violated guard
        """
        ctx = context or TransitionContext()
        t0 = time.monotonic()
        workflow, transition, error = self._evaluate(document, action, ctx)

        if error is not None:
            outcome = OUTCOME_NO_TRANSITION if transition is None else OUTCOME_GUARD_FAILED
            _emit_workflow_trace(
                workflow_name=workflow.name,
                action=action,
                document=document,
                outcome=outcome,
                reason=str(error),
                duration_ms=(time.monotonic() - t0) * 1000,
                violated_guard=error.violated_guard,
                outcome_sink=outcome_sink,
            )
            return TransitionResult(success=False, document=document, error=error, action=action)

        if transition is None:
            # Reserved actions: edit keeps the state; delete soft-deletes.
            if action == DELETE_ACTION:
                next_doc = replace(document, deleted=True)
                effects: tuple[SideEffect, ...] = (
                    SideEffect(
                        kind="delete_document",
                        target_id=document.document_id,
                        payload={"document_type": document.document_type.value},
                    ),
                )
            else:
                next_doc = document
                effects = ()
            next_state = document.status
        else:
            next_state = transition.to_state
            next_doc = document.with_status(next_state)
            built: list[SideEffect] = []
            for spec in transition.effects:
                built.extend(self._effects.build(spec, next_doc, ctx))
            effects = tuple(built)

        _emit_workflow_trace(
            workflow_name=workflow.name,
            action=action,
            document=document,
            to_state=next_state,
            outcome=OUTCOME_SUCCESS,
            reason=f"{document.status} -> {next_state}",
            duration_ms=(time.monotonic() - t0) * 1000,
            outcome_sink=outcome_sink,
        )
        return TransitionResult(
            success=True,
            document=next_doc,
            next_state=next_state,
            side_effects=effects,
            action=action,
        )

    # ------------------------------------------------------------------
    # Derived permissions
    # ------------------------------------------------------------------

    def available_actions(
        self,
        document: Document,
        context: TransitionContext | None = None,
    ) -> tuple[str, ...]:
        """Actions (including edit/delete) that would currently succeed."""
        ctx = context or TransitionContext()
        workflow = self.workflow_for(document.document_type)
        candidates = (EDIT_ACTION, DELETE_ACTION) + tuple(
            t.action for t in workflow.outgoing(document.status)
        )
        return tuple(a for a in candidates if self.can_transition(document, a, ctx))

    def permissions(
        self,
        document: Document,
        context: TransitionContext | None = None,
    ) -> dict[str, bool]:
        """``can_<action>`` flags for every action the workflow knows, plus edit/delete."""
        ctx = context or TransitionContext()
        workflow = self.workflow_for(document.document_type)
        return {
            f"can_{action}": self.can_transition(document, action, ctx)
            for action in (EDIT_ACTION, DELETE_ACTION, *workflow.actions)
        }
