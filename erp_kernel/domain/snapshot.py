"""
Snapshot boundary -- JSON-shaped payloads in, Documents out (and back).

Responsibility:
    The single, explicit place where the UI/server numeric representation
    (plain JSON numbers and strings) becomes Money, Decimal and Document,
    and where Totals are serialised as minor-unit integers plus currency.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - JSON numbers are read through ``Decimal(str(value))``; a binary
      float never reaches arithmetic.
    - ``money_from_ui`` rounds half-up to the currency's minor unit.
    - ``rehydrate`` never mutates: it returns a new Document built from the
      server's canonical snapshot.

Failure modes:
    - ValueError for an unparseable number or date, or when ``rehydrate``
      receives a snapshot of another document.
    - KeyError when a required key (status, currency, line_id, ...) is missing.
    - InvalidCurrencyError for an unknown currency code.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from erp_kernel.domain.documents import (
    DiscountType,
    Direction,
    Document,
    JournalLine,
    LineItem,
    TaxMode,
    Totals,
)
from erp_kernel.domain.values import Currency, Money


def ui_decimal(value: Any, what: str = "value") -> Decimal:
    """Parse a JSON number or numeric string.  Floats go through ``str``."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{what} must be numeric, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{what} is not a number: {value!r}") from exc


def money_from_ui(value: Any, currency: str | Currency) -> Money:
    """
    Convert a UI amount (number or string) to Money.

    Rounded half-up to the currency minor unit, so ``0.1 + 0.2`` style
    float noise from the UI does not leak into calculations.
    """
    cur = Currency(currency) if isinstance(currency, str) else currency
    amount = ui_decimal(value, "amount").quantize(cur.minor_unit, rounding=ROUND_HALF_UP)
    return Money(amount, cur)


def money_to_payload(money: Money) -> dict[str, Any]:
    """``{"minor_units": 25530000, "currency": "IDR"}``"""
    return {"minor_units": money.to_minor_units(), "currency": money.currency.code}


def money_from_payload(payload: Any, currency: str | Currency) -> Money:
    """Inverse of ``money_to_payload``; a bare number is read as a UI amount."""
    if isinstance(payload, Mapping):
        return Money.from_minor_units(int(payload["minor_units"]), payload.get("currency", currency))
    return money_from_ui(payload, currency)


def totals_to_payload(totals: Totals) -> dict[str, Any]:
    return {
        "subtotal": money_to_payload(totals.subtotal),
        "discount_amount": money_to_payload(totals.discount_amount),
        "tax_amount": money_to_payload(totals.tax_amount),
        "grand_total": money_to_payload(totals.grand_total),
        "line_discount_total": money_to_payload(totals.line_discount_total),
        "rounding_adjustment": money_to_payload(totals.rounding_adjustment),
        "base_currency_total": (
            money_to_payload(totals.base_currency_total)
            if totals.base_currency_total is not None
            else None
        ),
        "tax_by_rate": {
            str(rate): money_to_payload(amount) for rate, amount in totals.tax_by_rate.items()
        },
    }


def totals_from_payload(payload: Mapping[str, Any], currency: str | Currency) -> Totals:
    zero = Money.zero(currency)

    def money(key: str) -> Money:
        raw = payload.get(key)
        return zero if raw is None else money_from_payload(raw, currency)

    base_raw = payload.get("base_currency_total")
    return Totals(
        subtotal=money("subtotal"),
        discount_amount=money("discount_amount"),
        tax_amount=money("tax_amount"),
        grand_total=money("grand_total"),
        line_discount_total=money("line_discount_total"),
        rounding_adjustment=money("rounding_adjustment"),
        base_currency_total=(
            money_from_payload(base_raw, currency) if base_raw is not None else None
        ),
        tax_by_rate={
            ui_decimal(rate, "tax rate"): money_from_payload(amount, currency)
            for rate, amount in (payload.get("tax_by_rate") or {}).items()
        },
    )


def _date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return date.fromisoformat(value[:10])
    raise ValueError(f"Cannot parse date from {value!r}")


def _line(data: Mapping[str, Any], currency: Currency) -> LineItem:
    return LineItem(
        line_id=str(data.get("line_id", data.get("id"))),
        quantity=ui_decimal(data["quantity"], "quantity"),
        unit_price=money_from_ui(data["unit_price"], currency),
        discount_value=ui_decimal(data.get("discount", data.get("discount_value", 0)), "discount"),
        tax_rate=ui_decimal(data.get("tax_rate", 0), "tax rate"),
        description=data.get("description") or "",
        product_id=data.get("product_id"),
        source_line_id=data.get("source_line_id"),
        rejected_quantity=ui_decimal(data.get("rejected_quantity", 0), "rejected quantity"),
        account_id=data.get("account_id"),
    )


def _journal_line(data: Mapping[str, Any], currency: Currency) -> JournalLine:
    return JournalLine(
        line_id=str(data.get("line_id", data.get("id"))),
        account_id=str(data["account_id"]),
        debit=money_from_ui(data.get("debit", 0), currency),
        credit=money_from_ui(data.get("credit", 0), currency),
        memo=data.get("memo") or "",
    )


def document_from_snapshot(payload: Mapping[str, Any]) -> Document:
    """
    Build a Document from a JSON-shaped snapshot.

    Accepted keys mirror the Document fields; ``id`` / ``type`` are
    accepted as aliases of ``document_id`` / ``document_type``, ``totals``
    of ``declared_totals``.
    """
    currency = Currency(payload["currency"])
    base = payload.get("base_currency")
    totals_raw = payload.get("declared_totals", payload.get("totals"))
    amount_raw = payload.get("amount")
    direction_raw = payload.get("direction")
    return Document(
        document_id=str(payload.get("document_id", payload.get("id"))),
        document_type=payload.get("document_type", payload.get("type")),
        status=payload["status"],
        currency=currency,
        lines=tuple(_line(line, currency) for line in payload.get("lines") or ()),
        line_discount_type=DiscountType(payload.get("line_discount_type", "percent")),
        discount_type=DiscountType(payload.get("discount_type", "percent")),
        discount_value=ui_decimal(payload.get("discount_value", 0), "discount"),
        tax_mode=TaxMode(payload.get("tax_mode", "exclusive")),
        exchange_rate=ui_decimal(payload.get("exchange_rate", 1), "exchange rate"),
        base_currency=Currency(base) if base else None,
        links={str(k): str(v) for k, v in (payload.get("links") or {}).items() if v is not None},
        declared_totals=(
            totals_from_payload(totals_raw, currency) if totals_raw is not None else None
        ),
        amount=money_from_payload(amount_raw, currency) if amount_raw is not None else None,
        direction=Direction(direction_raw) if direction_raw else None,
        transaction_date=_date(payload.get("transaction_date")),
        valid_until=_date(payload.get("valid_until")),
        journal_lines=tuple(
            _journal_line(line, currency) for line in payload.get("journal_lines") or ()
        ),
        reference=payload.get("reference") or "",
        version=int(payload.get("version", 0)),
        deleted=bool(payload.get("deleted", False)),
        metadata=dict(payload.get("metadata") or {}),
    )


def rehydrate(document: Document, payload: Mapping[str, Any]) -> Document:
    """
    Replace a local document with the server's canonical snapshot.

    Keys the server omits (document type, currency) are taken from the
    local document; everything else comes from the payload.

    Raises:
        ValueError: the snapshot belongs to a different document.
    """
    merged: dict[str, Any] = {
        "document_id": document.document_id,
        "document_type": document.document_type.value,
        "currency": document.currency.code,
        "status": document.status,
    }
    merged.update(payload)
    if "id" in payload and "document_id" not in payload:
        merged["document_id"] = payload["id"]
    fresh = document_from_snapshot(merged)
    if fresh.document_id != document.document_id:
        raise ValueError(
            f"Snapshot for {fresh.document_id} cannot rehydrate {document.document_id}"
        )
    if fresh.document_type != document.document_type:
        raise ValueError(
            f"Snapshot type {fresh.document_type.value} does not match "
            f"{document.document_type.value}"
        )
    return fresh
