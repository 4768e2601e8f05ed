"""
Documents -- the generic envelope for every business document.

Responsibility:
    Immutable value objects for Quotation, Invoice, Bill, Purchase Order,
    Goods Receipt Note, Delivery Order, Sales/Purchase Return, Budget,
    Bank Transaction, Down Payment and Journal Entry. Document types are
    tagged variants of ONE Document class; behaviour differences live in
    per-type transition tables, not subclasses.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.

Invariants enforced:
    - Totals are never stored as authoritative state. ``declared_totals``
      only records what the server last reported; the calculation engine
      recomputes the real values.
    - Numeric fields are Decimal (floats refused at construction).
    - A ConversionLink consumes either a quantity or an amount, never both.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from erp_kernel.domain.values import Currency, Money, as_decimal


class DocumentType(str, Enum):
    """Document-type tag."""

    QUOTATION = "quotation"
    INVOICE = "invoice"
    BILL = "bill"
    PURCHASE_ORDER = "purchase_order"
    GOODS_RECEIPT_NOTE = "goods_receipt_note"
    DELIVERY_ORDER = "delivery_order"
    SALES_RETURN = "sales_return"
    PURCHASE_RETURN = "purchase_return"
    BUDGET = "budget"
    BANK_TRANSACTION = "bank_transaction"
    DOWN_PAYMENT = "down_payment"
    JOURNAL_ENTRY = "journal_entry"


class DiscountType(str, Enum):
    """How a discount value is interpreted."""

    PERCENT = "percent"  # 0-100 of the base
    AMOUNT = "amount"  # Fixed amount in document currency


class TaxMode(str, Enum):
    """Whether unit prices exclude or include tax."""

    EXCLUSIVE = "exclusive"
    INCLUSIVE = "inclusive"


class Direction(str, Enum):
    """Cash direction for bank transactions, payments and down payments."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"


@dataclass(frozen=True)
class LineItem:
    """
    One line of a document.

    ``discount_value`` is a percentage or a fixed amount depending on the
    owning document's ``line_discount_type``; a line never carries both.
    ``tax_rate`` is a percentage (11 means 11%).

    Range checks (negative quantity, negative price) are the calculation
    engine's job so that they come back as InvalidLineItemError results.
    """

    line_id: str
    quantity: Decimal
    unit_price: Money
    discount_value: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    description: str = ""
    product_id: str | None = None
    source_line_id: str | None = None
    rejected_quantity: Decimal = Decimal("0")
    account_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantity", as_decimal(self.quantity, "quantity"))
        object.__setattr__(self, "discount_value", as_decimal(self.discount_value, "discount"))
        object.__setattr__(self, "tax_rate", as_decimal(self.tax_rate, "tax rate"))
        object.__setattr__(
            self, "rejected_quantity", as_decimal(self.rejected_quantity, "rejected quantity")
        )


@dataclass(frozen=True)
class JournalLine:
    """Debit/credit line of a journal entry. One side is zero."""

    line_id: str
    account_id: str
    debit: Money
    credit: Money
    memo: str = ""


@dataclass(frozen=True)
class Totals:
    """
    Computed document totals.

    Guarantees (when produced by the calculation engine):
        - grand_total == subtotal - discount_amount + tax_amount + rounding_adjustment
        - subtotal is post line-discount, pre-tax
        - discount_amount is the DOCUMENT-level discount only
    """

    subtotal: Money
    discount_amount: Money
    tax_amount: Money
    grand_total: Money
    line_discount_total: Money
    rounding_adjustment: Money
    base_currency_total: Money | None = None
    tax_by_rate: Mapping[Decimal, Money] = field(default_factory=dict)


@dataclass(frozen=True)
class Document:
    """
    Generic document envelope.

    Contract:
        Frozen. Every mutation (status change, line edit, rehydration from
        the server) produces a new Document via ``dataclasses.replace``.
    """

    document_id: str
    document_type: DocumentType
    status: str
    currency: Currency
    lines: tuple[LineItem, ...] = ()
    line_discount_type: DiscountType = DiscountType.PERCENT
    discount_type: DiscountType = DiscountType.PERCENT
    discount_value: Decimal = Decimal("0")
    tax_mode: TaxMode = TaxMode.EXCLUSIVE
    exchange_rate: Decimal = Decimal("1")
    base_currency: Currency | None = None
    links: Mapping[str, str] = field(default_factory=dict)
    declared_totals: Totals | None = None
    amount: Money | None = None
    direction: Direction | None = None
    transaction_date: date | None = None
    valid_until: date | None = None
    journal_lines: tuple[JournalLine, ...] = ()
    reference: str = ""
    version: int = 0
    deleted: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        if isinstance(self.base_currency, str):
            object.__setattr__(self, "base_currency", Currency(self.base_currency))
        if not isinstance(self.document_type, DocumentType):
            object.__setattr__(self, "document_type", DocumentType(self.document_type))
        object.__setattr__(self, "discount_value", as_decimal(self.discount_value, "discount"))
        object.__setattr__(self, "exchange_rate", as_decimal(self.exchange_rate, "exchange rate"))
        object.__setattr__(self, "lines", tuple(self.lines))
        object.__setattr__(self, "journal_lines", tuple(self.journal_lines))

    def line(self, line_id: str) -> LineItem | None:
        for item in self.lines:
            if item.line_id == line_id:
                return item
        return None

    def with_status(self, status: str) -> Document:
        return replace(self, status=status)

    def with_lines(self, lines: tuple[LineItem, ...]) -> Document:
        return replace(self, lines=tuple(lines))

    @property
    def has_lines(self) -> bool:
        return bool(self.lines) or bool(self.journal_lines)


class LinkKind(str, Enum):
    """What a conversion link consumed from its source."""

    INVOICING = "invoicing"  # Quotation -> Invoice
    RECEIPT = "receipt"  # Purchase Order -> GRN
    BILLING = "billing"  # GRN -> Bill
    DELIVERY = "delivery"  # Invoice -> Delivery Order
    SALES_RETURN = "sales_return"  # Invoice -> Sales Return
    PURCHASE_RETURN = "purchase_return"  # Bill -> Purchase Return
    PAYMENT = "payment"  # Payment -> Invoice / Bill
    DOWN_PAYMENT_APPLICATION = "down_payment_application"
    DOWN_PAYMENT_REFUND = "down_payment_refund"


# Source-line id used for balance-style (amount) consumption.
BALANCE_LINE_ID = "balance"


@dataclass(frozen=True)
class ConversionLink:
    """
    Record that ``target`` consumed part of ``source``.

    Guarantees:
        - exactly one of quantity / amount is set
        - the consumed measure is non-negative
    """

    kind: LinkKind
    source_document_id: str
    source_line_id: str
    target_document_id: str
    target_line_id: str | None = None
    quantity: Decimal | None = None
    amount: Money | None = None

    def __post_init__(self) -> None:
        if (self.quantity is None) == (self.amount is None):
            raise ValueError("ConversionLink consumes either a quantity or an amount")
        if self.quantity is not None:
            object.__setattr__(self, "quantity", as_decimal(self.quantity, "quantity"))
            if self.quantity < 0:
                raise ValueError("ConversionLink quantity cannot be negative")
        if self.amount is not None and self.amount.is_negative:
            raise ValueError("ConversionLink amount cannot be negative")
        if not isinstance(self.kind, LinkKind):
            object.__setattr__(self, "kind", LinkKind(self.kind))

    @property
    def consumed(self) -> Decimal:
        """The consumed measure as a bare Decimal (quantity or amount)."""
        if self.quantity is not None:
            return self.quantity
        assert self.amount is not None
        return self.amount.amount


@dataclass(frozen=True)
class Payment:
    """A recorded payment as seen by bank reconciliation and payment guards."""

    payment_id: str
    amount: Money
    payment_date: date
    direction: Direction
    reference: str = ""
