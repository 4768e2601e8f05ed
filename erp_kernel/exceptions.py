"""
Typed Exception Hierarchy for the ERP Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The UI layer renders a specific message per failure kind. Parsing message
strings for that is fragile, so every failure has:
  1. A TYPED class (catch or dispatch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (not just a message string)

Business-rule failures (bad line item, illegal transition, over-consumption)
are RETURNED inside result objects (CalculationResult, TransitionResult,
ConversionResult). They are still Exception subclasses so a caller that wants
to abort can simply ``raise result.error``.

Programmer errors (unknown document type, malformed transition table) are
RAISED: they indicate a defect, not a business-rule violation.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ErpKernelError (base)
    |
    +-- InvalidLineItemError        returned by the calculation engine
    |
    +-- CurrencyError
    |   +-- InvalidCurrencyError
    |   +-- CurrencyMismatchError
    |
    +-- TransitionError             returned by the workflow executor
    |   +-- UnbalancedEntryError
    |
    +-- OverConsumptionError        returned by the conversion orchestrator
    |
    +-- ImmutabilityViolationError  raised by the conversion-link ORM model
    |
    +-- ProgrammerError             raised, never returned
        +-- UnknownDocumentTypeError
        +-- MalformedWorkflowError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                     | When
-------------------------|----------------------------------------------------
INVALID_LINE_ITEM        | Negative quantity/price/tax, bad discount
INVALID_CURRENCY         | Not a registered ISO 4217 code
CURRENCY_MISMATCH        | Money operands in different currencies
TRANSITION_ERROR         | Undefined (state, action) pair or failing guard
UNBALANCED_ENTRY         | Declared totals differ from recomputed / Dr != Cr
OVER_CONSUMPTION         | Conversion exceeds the source line's remaining
IMMUTABILITY_VIOLATION   | Attempt to modify or delete a persisted link
UNKNOWN_DOCUMENT_TYPE    | No workflow registered for a document type
MALFORMED_WORKFLOW       | Transition table references unknown states, etc.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any


class ErpKernelError(Exception):
    """
    Base exception for all ERP kernel errors.

    All subclasses have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "ERP_KERNEL_ERROR"

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the boundary error shape ``{code, message, ...}``."""
        payload: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if key.startswith("_"):
                continue
            payload[key] = str(value) if isinstance(value, Decimal) else value
        return payload


# Line items


class InvalidLineItemError(ErpKernelError):
    """A line item carries data the calculation engine refuses."""

    code: str = "INVALID_LINE_ITEM"

    def __init__(self, line_id: str, field: str, reason: str):
        self.line_id = line_id
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid line item {line_id}: {field} {reason}")


# Currency


class CurrencyError(ErpKernelError):
    """Base exception for currency errors."""

    code: str = "CURRENCY_ERROR"


class InvalidCurrencyError(CurrencyError):
    """Currency code is not a registered ISO 4217 code."""

    code: str = "INVALID_CURRENCY"

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: {currency}")


class CurrencyMismatchError(CurrencyError):
    """Two Money operands carry different currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, left: str, right: str, operation: str = "combine"):
        self.left = left
        self.right = right
        self.operation = operation
        super().__init__(
            f"Cannot {operation} Money with different currencies: {left} and {right}"
        )


# Workflow


class TransitionError(ErpKernelError):
    """
    A requested state change is not allowed.

    ``violated_guard`` names the rule that failed, e.g. ``NotEditable``,
    ``NoLineItems``, ``NoSuchTransition``, ``TerminalState``.
    """

    code: str = "TRANSITION_ERROR"

    def __init__(
        self,
        violated_guard: str,
        message: str,
        *,
        document_type: str | None = None,
        state: str | None = None,
        action: str | None = None,
    ):
        self.violated_guard = violated_guard
        self.document_type = document_type
        self.state = state
        self.action = action
        super().__init__(message)

    def located(self, document_type: str, state: str, action: str) -> TransitionError:
        """A copy naming where the violation occurred.  ``self`` is not modified."""
        clone = type(self).__new__(type(self))
        clone.__dict__.update(vars(self))
        clone.args = self.args
        clone.document_type = document_type
        clone.state = state
        clone.action = action
        return clone


class UnbalancedEntryError(TransitionError):
    """
    Two sides of a document do not agree.

    Journal entries: expected = debits, actual = credits.
    Invoices and bills: expected = declared total, actual = recomputed total.
    """

    code: str = "UNBALANCED_ENTRY"

    def __init__(
        self,
        expected: str,
        actual: str,
        currency: str,
        *,
        document_type: str | None = None,
        state: str | None = None,
        action: str | None = None,
    ):
        self.expected = expected
        self.actual = actual
        self.currency = currency
        super().__init__(
            "UnbalancedEntry",
            f"Unbalanced entry in {currency}: {expected} != {actual}",
            document_type=document_type,
            state=state,
            action=action,
        )


# Conversion


class OverConsumptionError(ErpKernelError):
    """A conversion would consume more than the source line has left."""

    code: str = "OVER_CONSUMPTION"

    def __init__(self, source_line_id: str, requested: Decimal, remaining: Decimal):
        self.source_line_id = source_line_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Source line {source_line_id}: requested {requested}, "
            f"only {remaining} remaining"
        )


# Persistence


class ImmutabilityViolationError(ErpKernelError):
    """Persisted conversion links are append-only."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Cannot modify {entity_type} {entity_id}: {reason}")


# Programmer errors


class ProgrammerError(ErpKernelError):
    """Defects in wiring or declarations. Always raised."""

    code: str = "PROGRAMMER_ERROR"


class UnknownDocumentTypeError(ProgrammerError, LookupError):
    """No workflow is registered for the document type."""

    code: str = "UNKNOWN_DOCUMENT_TYPE"

    def __init__(self, document_type: str):
        self.document_type = document_type
        super().__init__(f"No workflow registered for document type: {document_type}")


class MalformedWorkflowError(ProgrammerError, ValueError):
    """A transition table is internally inconsistent."""

    code: str = "MALFORMED_WORKFLOW"

    def __init__(self, workflow_name: str, reason: str):
        self.workflow_name = workflow_name
        self.reason = reason
        super().__init__(f"Malformed workflow {workflow_name}: {reason}")
