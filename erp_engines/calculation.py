"""
erp_engines.calculation -- Line-item and document totals engine.

Responsibility:
    Compute per-line gross, discount, net, tax and total, then document
    subtotal, document-level discount, tax, grand total and the parallel
    base-currency total.  The single source of truth for document totals;
    server-declared totals are only ever compared against this output.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import erp_kernel/domain and erp_kernel/exceptions.

Invariants enforced:
    - Decimal arithmetic throughout; no float intermediates.
    - ``net = round(gross - discount)``,
      ``line_total = round((gross - discount) * (1 + rate))``,
      ``tax = line_total - net`` (exclusive mode).  Rounding is applied at
      the currency minor unit with the policy's rounding mode (half-up by
      default).
    - ``grand_total == subtotal - discount_amount + tax_amount
      + rounding_adjustment`` exactly.
    - Totals depend only on the multiset of lines, never on their order.
    - A line carries a percent OR a fixed discount, selected by the
      document's ``line_discount_type``; never both.

Failure modes (RETURNED in CalculationResult.error, never raised):
    - InvalidLineItemError for negative quantity / price / tax rate /
      discount, or a percent discount above 100.
    - CurrencyMismatchError when a line is priced in another currency.

Usage:
    from erp_engines.calculation import DocumentAdjustments, calculate_document

    result = calculate_document(
        lines,
        DocumentAdjustments(currency=Currency("IDR")),
    )
    if result.is_success:
        result.totals.grand_total
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from erp_engines.tracer import traced_engine
from erp_kernel.domain.documents import DiscountType, Document, LineItem, TaxMode, Totals
from erp_kernel.domain.values import Currency, ExchangeRate, Money
from erp_kernel.exceptions import (
    CurrencyMismatchError,
    ErpKernelError,
    InvalidLineItemError,
)
from erp_kernel.logging_config import get_logger

logger = get_logger("engines.calculation")

_HUNDRED = Decimal("100")
_ONE = Decimal("1")


@dataclass(frozen=True)
class RoundingPolicy:
    """
    How amounts are rounded.

    ``rounding`` is a decimal rounding mode applied at the currency minor
    unit.  ``cash_increment`` (e.g. 100 for IDR cash sales) additionally
    rounds ONLY the grand total to that increment; the difference is
    reported as ``rounding_adjustment``.
    """

    rounding: str = ROUND_HALF_UP
    cash_increment: Decimal | None = None

    def __post_init__(self) -> None:
        if self.cash_increment is not None and self.cash_increment <= 0:
            raise ValueError("cash_increment must be positive")

    def apply(self, amount: Decimal, currency: Currency) -> Decimal:
        return amount.quantize(currency.minor_unit, rounding=self.rounding)

    def apply_cash(self, amount: Decimal, currency: Currency) -> Decimal:
        if self.cash_increment is None:
            return amount
        steps = (amount / self.cash_increment).quantize(_ONE, rounding=self.rounding)
        return self.apply(steps * self.cash_increment, currency)


DEFAULT_ROUNDING = RoundingPolicy()


@dataclass(frozen=True)
class DocumentAdjustments:
    """Document-level inputs to the calculation besides the lines."""

    currency: Currency
    line_discount_type: DiscountType = DiscountType.PERCENT
    discount_type: DiscountType = DiscountType.PERCENT
    discount_value: Decimal = Decimal("0")
    tax_mode: TaxMode = TaxMode.EXCLUSIVE
    exchange_rate: Decimal = Decimal("1")
    base_currency: Currency | None = None

    @classmethod
    def from_document(cls, document: Document) -> DocumentAdjustments:
        return cls(
            currency=document.currency,
            line_discount_type=document.line_discount_type,
            discount_type=document.discount_type,
            discount_value=document.discount_value,
            tax_mode=document.tax_mode,
            exchange_rate=document.exchange_rate,
            base_currency=document.base_currency,
        )


@dataclass(frozen=True)
class LineCalculation:
    """Per-line breakdown.  ``discount_clamped`` marks a discount cut down to gross."""

    line_id: str
    gross: Money
    discount: Money
    net: Money
    tax: Money
    total: Money
    tax_rate: Decimal
    discount_clamped: bool = False


@dataclass(frozen=True)
class CalculationResult:
    """Totals on success; ``error`` otherwise.  Never both."""

    totals: Totals | None = None
    lines: tuple[LineCalculation, ...] = ()
    warnings: tuple[str, ...] = ()
    error: ErpKernelError | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: ErpKernelError) -> CalculationResult:
        return cls(error=error)


def _validate_line(line: LineItem, line_discount_type: DiscountType, currency: Currency) -> None:
    if line.unit_price.currency != currency:
        raise CurrencyMismatchError(
            line.unit_price.currency.code, currency.code, "price a line in"
        )
    if line.quantity < 0:
        raise InvalidLineItemError(line.line_id, "quantity", "cannot be negative")
    if line.unit_price.is_negative:
        raise InvalidLineItemError(line.line_id, "unit_price", "cannot be negative")
    if line.tax_rate < 0:
        raise InvalidLineItemError(line.line_id, "tax_rate", "cannot be negative")
    if line.discount_value < 0:
        raise InvalidLineItemError(line.line_id, "discount", "cannot be negative")
    if line_discount_type == DiscountType.PERCENT and line.discount_value > _HUNDRED:
        raise InvalidLineItemError(line.line_id, "discount", "percent cannot exceed 100")


def calculate_line(
    line: LineItem,
    currency: Currency,
    line_discount_type: DiscountType = DiscountType.PERCENT,
    tax_mode: TaxMode = TaxMode.EXCLUSIVE,
    policy: RoundingPolicy = DEFAULT_ROUNDING,
) -> LineCalculation:
    """
    Compute one line.

    Raises:
        InvalidLineItemError, CurrencyMismatchError: on bad input.
        ``calculate_document`` turns these into a failed result.
    """
    _validate_line(line, line_discount_type, currency)

    gross = line.quantity * line.unit_price.amount
    if line_discount_type == DiscountType.PERCENT:
        discount = gross * line.discount_value / _HUNDRED
    else:
        discount = line.discount_value
    clamped = discount > gross
    if clamped:
        discount = gross

    rate = line.tax_rate / _HUNDRED
    discounted = gross - discount
    if tax_mode == TaxMode.INCLUSIVE:
        total = policy.apply(discounted, currency)
        net = policy.apply(discounted / (_ONE + rate), currency)
    else:
        net = policy.apply(discounted, currency)
        total = policy.apply(discounted * (_ONE + rate), currency)

    return LineCalculation(
        line_id=line.line_id,
        gross=Money(policy.apply(gross, currency), currency),
        discount=Money(policy.apply(discount, currency), currency),
        net=Money(net, currency),
        tax=Money(total - net, currency),
        total=Money(total, currency),
        tax_rate=line.tax_rate,
        discount_clamped=clamped,
    )


@traced_engine("calculation", "1.0", fingerprint_fields=("lines", "adjustments"))
def calculate_document(
    lines: Sequence[LineItem],
    adjustments: DocumentAdjustments,
    rounding_policy: RoundingPolicy = DEFAULT_ROUNDING,
) -> CalculationResult:
    """
    Compute document totals.

    Preconditions:
        None -- bad input is reported, not raised.

    Postconditions:
        - On success ``totals`` satisfies the grand-total identity and
          ``lines`` holds one LineCalculation per input line, in input order.
        - Subtotal is post line-discount and pre-tax; ``discount_amount`` is
          the document-level discount only.
        - ``base_currency_total`` is set when a base currency is given and
          differs from the document currency (or the rate is not 1).
    """
    currency = adjustments.currency
    policy = rounding_policy
    warnings: list[str] = []

    try:
        if adjustments.discount_value < 0:
            raise InvalidLineItemError("<document>", "discount", "cannot be negative")
        if (
            adjustments.discount_type == DiscountType.PERCENT
            and adjustments.discount_value > _HUNDRED
        ):
            raise InvalidLineItemError("<document>", "discount", "percent cannot exceed 100")
        computed = tuple(
            calculate_line(line, currency, adjustments.line_discount_type, adjustments.tax_mode, policy)
            for line in lines
        )
    except (InvalidLineItemError, CurrencyMismatchError) as exc:
        logger.info(
            "calculation_rejected",
            extra={"error_code": exc.code, "reason": str(exc)},
        )
        return CalculationResult.failure(exc)

    zero = Money.zero(currency)
    subtotal = zero
    tax = zero
    line_discount_total = zero
    tax_by_rate: dict[Decimal, Money] = {}
    for calc in computed:
        subtotal = subtotal + calc.net
        tax = tax + calc.tax
        line_discount_total = line_discount_total + calc.discount
        tax_by_rate[calc.tax_rate] = tax_by_rate.get(calc.tax_rate, zero) + calc.tax
        if calc.discount_clamped:
            warnings.append(f"line_discount_clamped:{calc.line_id}")

    if adjustments.discount_type == DiscountType.PERCENT:
        doc_discount = policy.apply(
            subtotal.amount * adjustments.discount_value / _HUNDRED, currency
        )
    else:
        doc_discount = policy.apply(adjustments.discount_value, currency)
    if doc_discount > subtotal.amount:
        doc_discount = subtotal.amount
        warnings.append("document_discount_clamped")
    discount_amount = Money(doc_discount, currency)

    pre_rounding = subtotal - discount_amount + tax
    cash_total = policy.apply_cash(pre_rounding.amount, currency)
    rounding_adjustment = Money(cash_total - pre_rounding.amount, currency)
    grand_total = pre_rounding + rounding_adjustment

    base_total: Money | None = None
    base = adjustments.base_currency
    if base is not None:
        rate = ExchangeRate(currency, base, adjustments.exchange_rate)
        if not rate.is_identity:
            converted = rate.convert(grand_total)
            base_total = Money(policy.apply(converted.amount, base), base)

    totals = Totals(
        subtotal=subtotal,
        discount_amount=discount_amount,
        tax_amount=tax,
        grand_total=grand_total,
        line_discount_total=line_discount_total,
        rounding_adjustment=rounding_adjustment,
        base_currency_total=base_total,
        tax_by_rate=dict(sorted(tax_by_rate.items())),
    )
    return CalculationResult(totals=totals, lines=computed, warnings=tuple(warnings))


def calculate_for(
    document: Document,
    rounding_policy: RoundingPolicy = DEFAULT_ROUNDING,
) -> CalculationResult:
    """Shorthand: calculate a document's own lines with its own adjustments."""
    return calculate_document(
        document.lines,
        DocumentAdjustments.from_document(document),
        rounding_policy,
    )
