"""
erp_services.server_errors -- Map server rejections onto the kernel error taxonomy.

The server is the sole arbiter of whether an intended mutation is still
valid.  When it rejects one, the rejection must surface as the same typed
errors the core returns locally (TransitionError, OverConsumptionError,
UnbalancedEntryError), never as a generic failure.

Payload shape (JSON):
    {"code": "GUARD_FAILED", "message": "...", "violated_guard": "HasPayments",
     "document_type": "invoice", "state": "posted", "action": "void", ...}
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from erp_kernel.exceptions import (
    ErpKernelError,
    OverConsumptionError,
    TransitionError,
    UnbalancedEntryError,
)
from erp_kernel.logging_config import get_logger

logger = get_logger("services.server_errors")


def _decimal(payload: Mapping[str, Any], key: str) -> Decimal:
    raw = payload.get(key)
    if raw is None or isinstance(raw, float):
        raise ValueError(f"Server rejection field '{key}' must be a decimal string, got {raw!r}")
    try:
        return Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValueError(f"Server rejection field '{key}' is not a decimal: {raw!r}") from exc


def _context(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "document_type": payload.get("document_type"),
        "state": payload.get("state"),
        "action": payload.get("action"),
    }


def _invalid_transition(payload: Mapping[str, Any]) -> ErpKernelError:
    return TransitionError(
        payload.get("violated_guard") or "NoSuchTransition",
        payload.get("message", "Transition rejected by server"),
        **_context(payload),
    )


def _guard_failed(payload: Mapping[str, Any]) -> ErpKernelError:
    return TransitionError(
        payload.get("violated_guard") or "GuardFailed",
        payload.get("message", "Guard rejected by server"),
        **_context(payload),
    )


def _version_conflict(payload: Mapping[str, Any]) -> ErpKernelError:
    return TransitionError(
        "StaleSnapshot",
        payload.get("message", "Document changed on the server; reload and retry"),
        **_context(payload),
    )


def _over_consumption(payload: Mapping[str, Any]) -> ErpKernelError:
    return OverConsumptionError(
        str(payload.get("source_line_id", "")),
        _decimal(payload, "requested"),
        _decimal(payload, "remaining"),
    )


def _unbalanced_entry(payload: Mapping[str, Any]) -> ErpKernelError:
    return UnbalancedEntryError(
        str(payload.get("expected", "")),
        str(payload.get("actual", "")),
        str(payload.get("currency", "")),
        **_context(payload),
    )


_MAPPERS = {
    "INVALID_TRANSITION": _invalid_transition,
    "TRANSITION_ERROR": _invalid_transition,
    "GUARD_FAILED": _guard_failed,
    "VERSION_CONFLICT": _version_conflict,
    "OVER_CONSUMPTION": _over_consumption,
    "UNBALANCED_ENTRY": _unbalanced_entry,
}


def error_from_server(payload: Mapping[str, Any]) -> ErpKernelError:
    """
    Translate a server rejection payload into a kernel error.

    Unknown codes become ``TransitionError("ServerRejected")`` carrying the
    server's message.

    Raises:
        ValueError: an OVER_CONSUMPTION payload without decimal
            ``requested`` / ``remaining`` fields.
    """
    code = str(payload.get("code", ""))
    mapper = _MAPPERS.get(code)
    if mapper is None:
        error: ErpKernelError = TransitionError(
            "ServerRejected",
            payload.get("message", f"Server rejected the request ({code or 'no code'})"),
            **_context(payload),
        )
    else:
        error = mapper(payload)
    logger.info(
        "server_rejection_mapped",
        extra={"server_code": code, "error_code": error.code, "reason": str(error)},
    )
    return error
