"""
erp_services.conversion -- Document-to-document conversion orchestration.

Responsibility:
    Creates a new document from an existing one and records how much of
    the source it consumed.  Full conversions (Quotation -> Invoice) copy
    every line and recompute totals; partial conversions (PO -> GRN,
    GRN -> Bill, Invoice -> Delivery Order, Invoice -> Sales Return,
    Bill -> Purchase Return) copy the selected quantities.  Payment and
    down-payment application are degenerate conversions whose single
    "line" is the remaining balance.

Architecture position:
    Services -- orchestration over engines + modules + kernel.  Composes
    the calculation engine (totals are never copied) with the
    WorkflowExecutor (source and target progress transitions).

Invariants enforced:
    - For every source line: sum(existing consumed) + requested <= line
      quantity, checked for ALL selected lines before anything is built.
    - Remaining balances are DERIVED from ConversionLink records; nothing
      is stored on the source document.
    - Down payment: available = received - sum(applied) - sum(refunded).
    - Source progress (PO receive_partial / receive_full / release, down
      payment applied / refunded) is driven with SYSTEM origin.
    - Links of cancelled targets stop consuming once the caller excludes
      them; ``release`` recomputes the source state without them.

Failure modes (RETURNED in ConversionResult.error):
    - OverConsumptionError(source_line_id, requested, remaining).
    - TransitionError("IneligibleSourceState") when the source's state
      does not allow the conversion.
    - TransitionError("EmptySelection") when nothing was selected.
    - TransitionError("UnsupportedConversion") for an unknown route.
    - InvalidLineItemError / CurrencyMismatchError from the calculation
      engine or a malformed selection.

Audit relevance:
    Every conversion logs ``conversion_completed`` or
    ``conversion_rejected`` with source, target and consumed measures.
    The returned ConversionLinks are the durable record of consumption.
"""

from __future__ import annotations

from collections.abc import Callable, Collection, Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from uuid import uuid4

from erp_engines.calculation import (
    DEFAULT_ROUNDING,
    DocumentAdjustments,
    RoundingPolicy,
    calculate_document,
    calculate_for,
)
from erp_kernel.domain.documents import (
    BALANCE_LINE_ID,
    ConversionLink,
    DiscountType,
    Document,
    DocumentType,
    LineItem,
    LinkKind,
)
from erp_kernel.domain.values import Currency, Money, as_decimal
from erp_kernel.domain.workflow import TransitionContext, TransitionResult
from erp_kernel.exceptions import (
    CurrencyMismatchError,
    ErpKernelError,
    InvalidLineItemError,
    OverConsumptionError,
    TransitionError,
)
from erp_kernel.logging_config import get_logger
from erp_services.workflow_executor import WorkflowExecutor

logger = get_logger("services.conversion")

_ZERO = Decimal("0")


@dataclass(frozen=True)
class ConversionRoute:
    """How one source type converts into one target type."""

    kind: LinkKind
    eligible_states: tuple[str, ...]
    link_key: str
    carried_links: tuple[str, ...] = ()
    full: bool = False
    source_action: str | None = None
    tracks_progress: bool = False


ROUTES: dict[tuple[DocumentType, DocumentType], ConversionRoute] = {
    (DocumentType.QUOTATION, DocumentType.INVOICE): ConversionRoute(
        kind=LinkKind.INVOICING,
        eligible_states=("approved",),
        link_key="source_quotation_id",
        carried_links=("customer_id",),
        full=True,
        source_action="convert",
    ),
    (DocumentType.PURCHASE_ORDER, DocumentType.GOODS_RECEIPT_NOTE): ConversionRoute(
        kind=LinkKind.RECEIPT,
        eligible_states=("approved", "partial"),
        link_key="source_purchase_order_id",
        carried_links=("vendor_id",),
        tracks_progress=True,
    ),
    (DocumentType.GOODS_RECEIPT_NOTE, DocumentType.BILL): ConversionRoute(
        kind=LinkKind.BILLING,
        eligible_states=("completed",),
        link_key="source_goods_receipt_id",
        carried_links=("vendor_id", "source_purchase_order_id"),
    ),
    (DocumentType.INVOICE, DocumentType.DELIVERY_ORDER): ConversionRoute(
        kind=LinkKind.DELIVERY,
        eligible_states=("posted", "partial", "paid"),
        link_key="source_invoice_id",
        carried_links=("customer_id",),
    ),
    (DocumentType.INVOICE, DocumentType.SALES_RETURN): ConversionRoute(
        kind=LinkKind.SALES_RETURN,
        eligible_states=("posted", "partial", "paid"),
        link_key="source_invoice_id",
        carried_links=("customer_id",),
    ),
    (DocumentType.BILL, DocumentType.PURCHASE_RETURN): ConversionRoute(
        kind=LinkKind.PURCHASE_RETURN,
        eligible_states=("approved", "partial", "paid"),
        link_key="source_bill_id",
        carried_links=("vendor_id",),
    ),
}

# States in which a document accepts payment application.
PAYABLE_STATES: dict[DocumentType, tuple[str, ...]] = {
    DocumentType.INVOICE: ("posted", "partial"),
    DocumentType.BILL: ("approved", "partial"),
}

_PAYMENT_KINDS = frozenset({LinkKind.PAYMENT, LinkKind.DOWN_PAYMENT_APPLICATION})


@dataclass(frozen=True)
class ConversionResult:
    """
    Outcome of a conversion.

    On success ``document`` is the new (or updated) document and ``links``
    the ConversionLinks to persist.  ``source_transition`` /
    ``target_transition`` hold the progress transitions the orchestrator
    drove, if any.  On failure only ``error`` is set.
    """

    document: Document | None = None
    links: tuple[ConversionLink, ...] = ()
    source_transition: TransitionResult | None = None
    target_transition: TransitionResult | None = None
    warnings: tuple[str, ...] = ()
    error: ErpKernelError | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None


# ---------------------------------------------------------------------------
# Link arithmetic
# ---------------------------------------------------------------------------


def consumed_by_line(
    links: Iterable[ConversionLink],
    source_document_id: str,
    kind: LinkKind,
    exclude_target_ids: Collection[str] = (),
) -> dict[str, Decimal]:
    """
    Sum of consumed measure per source line for one link kind.

    Links whose target is in ``exclude_target_ids`` are ignored: the
    caller passes cancelled targets (and a receipt passes itself when
    checking its own completion).
    """
    consumed: dict[str, Decimal] = {}
    for link in links:
        if link.source_document_id != source_document_id or link.kind != kind:
            continue
        if link.target_document_id in exclude_target_ids:
            continue
        consumed[link.source_line_id] = consumed.get(link.source_line_id, _ZERO) + link.consumed
    return consumed


def _amount_total(links: Iterable[ConversionLink], currency: Currency | str) -> Money:
    total = Money.zero(currency)
    for link in links:
        if link.amount is not None:
            total = total + link.amount
    return total


def paid_amount(target: Document, links: Iterable[ConversionLink]) -> Money:
    """Payments and down-payment applications recorded against ``target``."""
    return _amount_total(
        (
            link for link in links
            if link.target_document_id == target.document_id and link.kind in _PAYMENT_KINDS
        ),
        target.currency,
    )


def down_payment_available(down_payment: Document, links: Iterable[ConversionLink]) -> Money:
    """``received - sum(applied) - sum(refunded)`` for a down payment."""
    if down_payment.amount is None:
        return Money.zero(down_payment.currency)
    own = [link for link in links if link.source_document_id == down_payment.document_id]
    applied = _amount_total(
        (link for link in own if link.kind == LinkKind.DOWN_PAYMENT_APPLICATION),
        down_payment.currency,
    )
    refunded = _amount_total(
        (link for link in own if link.kind == LinkKind.DOWN_PAYMENT_REFUND),
        down_payment.currency,
    )
    return down_payment.amount - applied - refunded


def _available_quantity(line: LineItem) -> Decimal:
    return line.quantity - line.rejected_quantity


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class ConversionOrchestrator:
    """
    Builds converted documents and the links recording their consumption.

    Contract:
        Pure with respect to I/O: callers supply the source document and its
        existing links, and persist the returned document and links.

    Non-goals:
        - Does NOT persist anything (see ConversionLinkRepository).
        - Does NOT execute side effects declared by progress transitions.
    """

    def __init__(
        self,
        executor: WorkflowExecutor | None = None,
        rounding_policy: RoundingPolicy = DEFAULT_ROUNDING,
        id_factory: Callable[[], str] | None = None,
    ):
        self.executor = executor or WorkflowExecutor()
        self.policy = rounding_policy
        self._new_id = id_factory or (lambda: str(uuid4()))

    # =========================================================================
    # Document conversion
    # =========================================================================

    def route_for(self, source_type: DocumentType, target_type: DocumentType) -> ConversionRoute | None:
        return ROUTES.get((source_type, target_type))

    def remaining(
        self,
        source: Document,
        target_type: DocumentType,
        existing_links: Iterable[ConversionLink] = (),
        exclude_target_ids: Collection[str] = (),
    ) -> dict[str, Decimal]:
        """Quantity left per source line for the given conversion route."""
        route = self._require_route(source.document_type, target_type)
        consumed = consumed_by_line(
            existing_links, source.document_id, route.kind, exclude_target_ids
        )
        return {
            line.line_id: _available_quantity(line) - consumed.get(line.line_id, _ZERO)
            for line in source.lines
        }

    def _require_route(self, source_type: DocumentType, target_type: DocumentType) -> ConversionRoute:
        route = self.route_for(source_type, target_type)
        if route is None:
            raise TransitionError(
                "UnsupportedConversion",
                f"No conversion from {source_type.value} to {target_type.value}",
                document_type=source_type.value,
            )
        return route

    def convert(
        self,
        source: Document,
        target_type: DocumentType,
        selection: Mapping[str, Decimal | int | str] | None = None,
        existing_links: Iterable[ConversionLink] = (),
        context: TransitionContext | None = None,
        exclude_target_ids: Collection[str] = (),
    ) -> ConversionResult:
        """
        Convert ``source`` into a new document of ``target_type``.

        Args:
            source: The document being converted.
            target_type: Type of the document to create.
            selection: line_id -> quantity for partial routes.  Ignored
                by full routes, which copy every line.
            existing_links: Links already recorded against ``source``.
            context: Supplies ``as_of`` (quotation validity) and
                ``expected_version`` for the source transition.
            exclude_target_ids: Documents whose links no longer consume,
                typically cancelled receipts still present in
                ``existing_links``.

        Returns:
            ConversionResult; the new document starts in its workflow's
            initial state.
        """
        ctx = context or TransitionContext()
        links = tuple(
            link for link in existing_links if link.target_document_id not in exclude_target_ids
        )
        try:
            route = self._require_route(source.document_type, target_type)
            if source.status not in route.eligible_states:
                raise TransitionError(
                    "IneligibleSourceState",
                    f"{source.document_type.value} in state '{source.status}' "
                    f"cannot be converted to {target_type.value}",
                    document_type=source.document_type.value,
                    state=source.status,
                    action=route.source_action or "convert",
                )
            if route.full:
                result = self._convert_full(source, target_type, route, ctx)
            else:
                result = self._convert_partial(source, target_type, route, selection, links)
        except (TransitionError, OverConsumptionError, InvalidLineItemError, CurrencyMismatchError) as exc:
            result = ConversionResult(error=exc)

        self._log(source, target_type, result)
        return result

    def _log(self, source: Document, target_type: DocumentType, result: ConversionResult) -> None:
        if result.is_success:
            assert result.document is not None
            logger.info(
                "conversion_completed",
                extra={
                    "source_document_id": source.document_id,
                    "source_type": source.document_type.value,
                    "target_document_id": result.document.document_id,
                    "target_type": target_type.value,
                    "link_count": len(result.links),
                    "source_transition": (
                        result.source_transition.next_state
                        if result.source_transition is not None
                        else None
                    ),
                },
            )
        else:
            assert result.error is not None
            logger.info(
                "conversion_rejected",
                extra={
                    "source_document_id": source.document_id,
                    "source_type": source.document_type.value,
                    "target_type": target_type.value,
                    "error_code": result.error.code,
                    "reason": str(result.error),
                },
            )

    def _target_links(self, source: Document, route: ConversionRoute) -> dict[str, str]:
        carried = {key: source.links[key] for key in route.carried_links if key in source.links}
        carried[route.link_key] = source.document_id
        return carried

    def _build_target(
        self,
        source: Document,
        target_type: DocumentType,
        route: ConversionRoute,
        lines: tuple[LineItem, ...],
        discount_value: Decimal,
        context: TransitionContext | None = None,
    ) -> tuple[Document, tuple[str, ...]]:
        """New target document with totals recomputed by the engine."""
        adjustments = DocumentAdjustments(
            currency=source.currency,
            line_discount_type=source.line_discount_type,
            discount_type=source.discount_type,
            discount_value=discount_value,
            tax_mode=source.tax_mode,
            exchange_rate=source.exchange_rate,
            base_currency=source.base_currency,
        )
        calc = calculate_document(lines, adjustments, self.policy)
        if not calc.is_success:
            assert calc.error is not None
            raise calc.error
        target = Document(
            document_id=self._new_id(),
            document_type=target_type,
            status=self.executor.initial_state(target_type),
            currency=source.currency,
            lines=lines,
            line_discount_type=source.line_discount_type,
            discount_type=source.discount_type,
            discount_value=discount_value,
            tax_mode=source.tax_mode,
            exchange_rate=source.exchange_rate,
            base_currency=source.base_currency,
            links=self._target_links(source, route),
            declared_totals=calc.totals,
            transaction_date=context.as_of if context is not None else None,
            reference=source.reference,
        )
        return target, calc.warnings

    def _convert_full(
        self,
        source: Document,
        target_type: DocumentType,
        route: ConversionRoute,
        context: TransitionContext,
    ) -> ConversionResult:
        if not source.lines:
            raise TransitionError(
                "EmptySelection",
                f"{source.document_type.value} {source.document_id} has no lines to convert",
                document_type=source.document_type.value,
                state=source.status,
                action=route.source_action or "convert",
            )

        source_transition: TransitionResult | None = None
        if route.source_action is not None:
            system_ctx = TransitionContext.system(
                as_of=context.as_of,
                expected_version=context.expected_version,
                attributes=context.attributes,
            )
            source_transition = self.executor.apply_transition(
                source, route.source_action, system_ctx
            )
            if not source_transition.success:
                assert source_transition.error is not None
                raise source_transition.error

        lines = tuple(
            LineItem(
                line_id=line.line_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount_value=line.discount_value,
                tax_rate=line.tax_rate,
                description=line.description,
                product_id=line.product_id,
                source_line_id=line.line_id,
                account_id=line.account_id,
            )
            for line in source.lines
        )
        target, warnings = self._build_target(
            source, target_type, route, lines, source.discount_value, context
        )
        links = tuple(
            ConversionLink(
                kind=route.kind,
                source_document_id=source.document_id,
                source_line_id=line.line_id,
                target_document_id=target.document_id,
                target_line_id=line.line_id,
                quantity=line.quantity,
            )
            for line in source.lines
        )
        return ConversionResult(
            document=target,
            links=links,
            source_transition=source_transition,
            warnings=warnings,
        )

    def _validate_selection(
        self,
        source: Document,
        route: ConversionRoute,
        selection: Mapping[str, Decimal | int | str] | None,
        links: tuple[ConversionLink, ...],
    ) -> tuple[dict[str, Decimal], dict[str, Decimal]]:
        """Requested quantity per line, plus consumption before this conversion."""
        requested: dict[str, Decimal] = {}
        for line_id, raw in (selection or {}).items():
            quantity = as_decimal(raw, "quantity")
            if source.line(line_id) is None:
                raise InvalidLineItemError(line_id, "selection", "is not a line of the source")
            if quantity < 0:
                raise InvalidLineItemError(line_id, "quantity", "cannot be negative")
            if quantity > 0:
                requested[line_id] = quantity
        if not requested:
            raise TransitionError(
                "EmptySelection",
                "Selection does not consume any quantity",
                document_type=source.document_type.value,
                state=source.status,
                action="convert",
            )

        consumed = consumed_by_line(links, source.document_id, route.kind)
        for line in source.lines:
            quantity = requested.get(line.line_id)
            if quantity is None:
                continue
            remaining = _available_quantity(line) - consumed.get(line.line_id, _ZERO)
            if quantity > remaining:
                raise OverConsumptionError(line.line_id, quantity, remaining)
        return requested, consumed

    def _prorated_line(self, line: LineItem, quantity: Decimal, source: Document) -> LineItem:
        discount = line.discount_value
        if source.line_discount_type == DiscountType.AMOUNT and line.quantity > 0:
            discount = self.policy.apply(
                line.discount_value * quantity / line.quantity, source.currency
            )
        return LineItem(
            line_id=line.line_id,
            quantity=quantity,
            unit_price=line.unit_price,
            discount_value=discount,
            tax_rate=line.tax_rate,
            description=line.description,
            product_id=line.product_id,
            source_line_id=line.line_id,
            account_id=line.account_id,
        )

    def _prorated_document_discount(self, source: Document, lines: tuple[LineItem, ...]) -> Decimal:
        """Fixed document discount scaled by the selected share of the subtotal."""
        if source.discount_type != DiscountType.AMOUNT or source.discount_value == 0:
            return source.discount_value
        source_calc = calculate_for(source, self.policy)
        if not source_calc.is_success:
            assert source_calc.error is not None
            raise source_calc.error
        assert source_calc.totals is not None
        source_subtotal = source_calc.totals.subtotal.amount
        if source_subtotal == 0:
            return _ZERO
        selected = calculate_document(
            lines,
            DocumentAdjustments(
                currency=source.currency,
                line_discount_type=source.line_discount_type,
                tax_mode=source.tax_mode,
            ),
            self.policy,
        )
        if not selected.is_success:
            assert selected.error is not None
            raise selected.error
        assert selected.totals is not None
        share = selected.totals.subtotal.amount / source_subtotal
        return self.policy.apply(source.discount_value * share, source.currency)

    def _convert_partial(
        self,
        source: Document,
        target_type: DocumentType,
        route: ConversionRoute,
        selection: Mapping[str, Decimal | int | str] | None,
        links: tuple[ConversionLink, ...],
    ) -> ConversionResult:
        requested, consumed = self._validate_selection(source, route, selection, links)

        lines = tuple(
            self._prorated_line(line, requested[line.line_id], source)
            for line in source.lines
            if line.line_id in requested
        )
        discount_value = self._prorated_document_discount(source, lines)
        target, warnings = self._build_target(source, target_type, route, lines, discount_value)
        new_links = tuple(
            ConversionLink(
                kind=route.kind,
                source_document_id=source.document_id,
                source_line_id=line.line_id,
                target_document_id=target.document_id,
                target_line_id=line.line_id,
                quantity=line.quantity,
            )
            for line in lines
        )

        source_transition = None
        if route.tracks_progress:
            after = dict(consumed)
            for line_id, quantity in requested.items():
                after[line_id] = after.get(line_id, _ZERO) + quantity
            source_transition = self._drive_progress(source, after)

        return ConversionResult(
            document=target,
            links=new_links,
            source_transition=source_transition,
            warnings=warnings,
        )

    def _drive_progress(self, source: Document, consumed: Mapping[str, Decimal]) -> TransitionResult:
        """Move the source to approved / partial / received according to total consumption."""
        complete = all(
            consumed.get(line.line_id, _ZERO) >= line.quantity for line in source.lines
        )
        if not any(quantity > 0 for quantity in consumed.values()):
            action = "release"
        elif complete:
            action = "receive_full"
        else:
            action = "receive_partial"
        return self.executor.apply_transition(
            source, action, TransitionContext.system(consumed=dict(consumed))
        )

    def release(
        self,
        source: Document,
        target_type: DocumentType,
        cancelled_target_ids: Collection[str],
        existing_links: Iterable[ConversionLink] = (),
    ) -> TransitionResult | None:
        """
        Recompute the source's progress after converted documents were cancelled.

        ``existing_links`` may still hold the cancelled documents' links;
        they no longer count.  A partial order with nothing left received
        goes back to ``approved``; one with receipts left stays ``partial``.
        A ``received`` order is terminal, so the result carries
        ``TerminalState``.

        Returns:
            The source transition, or None for routes that do not track
            progress on the source (the freed quantity is simply no longer
            consumed).

        Raises:
            TransitionError("UnsupportedConversion") for an unknown route.
        """
        route = self._require_route(source.document_type, target_type)
        if not route.tracks_progress:
            return None
        consumed = consumed_by_line(
            existing_links, source.document_id, route.kind, cancelled_target_ids
        )
        result = self._drive_progress(source, consumed)
        logger.info(
            "conversion_released",
            extra={
                "source_document_id": source.document_id,
                "source_type": source.document_type.value,
                "target_type": target_type.value,
                "cancelled_target_ids": sorted(cancelled_target_ids),
                "next_state": result.next_state,
                "error_code": result.error.code if result.error is not None else None,
            },
        )
        return result

    # =========================================================================
    # Payments and down payments
    # =========================================================================

    def apply_payment(
        self,
        target: Document,
        amount: Money,
        payment_id: str,
        existing_links: Iterable[ConversionLink] = (),
        kind: LinkKind = LinkKind.PAYMENT,
    ) -> ConversionResult:
        """
        Record a payment against an invoice or bill and drive it to
        ``partial`` or ``paid``.

        Over-application (more than the outstanding balance) is rejected
        with OverConsumptionError on the ``balance`` line.
        """
        links = tuple(existing_links)
        try:
            result = self._apply_payment(target, amount, payment_id, links, kind)
        except (TransitionError, OverConsumptionError, InvalidLineItemError, CurrencyMismatchError) as exc:
            result = ConversionResult(error=exc)

        if result.is_success:
            logger.info(
                "payment_applied",
                extra={
                    "target_document_id": target.document_id,
                    "payment_id": payment_id,
                    "amount": str(amount.amount),
                    "currency": amount.currency.code,
                    "next_state": (
                        result.target_transition.next_state
                        if result.target_transition is not None
                        else None
                    ),
                },
            )
        else:
            assert result.error is not None
            logger.info(
                "payment_application_rejected",
                extra={
                    "target_document_id": target.document_id,
                    "payment_id": payment_id,
                    "error_code": result.error.code,
                    "reason": str(result.error),
                },
            )
        return result

    def _apply_payment(
        self,
        target: Document,
        amount: Money,
        payment_id: str,
        links: tuple[ConversionLink, ...],
        kind: LinkKind,
    ) -> ConversionResult:
        payable = PAYABLE_STATES.get(target.document_type)
        if payable is None or target.status not in payable:
            raise TransitionError(
                "IneligibleTargetState",
                f"{target.document_type.value} in state '{target.status}' does not accept payments",
                document_type=target.document_type.value,
                state=target.status,
                action="apply_payment",
            )
        if amount.currency != target.currency:
            raise CurrencyMismatchError(amount.currency.code, target.currency.code, "apply")
        if not amount.is_positive:
            raise InvalidLineItemError(BALANCE_LINE_ID, "amount", "must be positive")

        calc = calculate_for(target, self.policy)
        if not calc.is_success:
            assert calc.error is not None
            raise calc.error
        assert calc.totals is not None
        total = calc.totals.grand_total
        paid_before = paid_amount(target, links)
        outstanding = total - paid_before
        if amount > outstanding:
            raise OverConsumptionError(BALANCE_LINE_ID, amount.amount, outstanding.amount)

        link = ConversionLink(
            kind=kind,
            source_document_id=payment_id,
            source_line_id=BALANCE_LINE_ID,
            target_document_id=target.document_id,
            amount=amount,
        )
        paid_after = paid_before + amount
        action = "settle" if paid_after >= total else "record_partial_payment"
        transition = self.executor.apply_transition(
            target, action, TransitionContext.system(paid_amount=paid_after)
        )
        if not transition.success:
            assert transition.error is not None
            raise transition.error
        return ConversionResult(
            document=transition.document,
            links=(link,),
            target_transition=transition,
        )

    def _check_down_payment(
        self, down_payment: Document, amount: Money, links: tuple[ConversionLink, ...], action: str
    ) -> Money:
        """Validate a draw on a down payment; returns what is left afterwards."""
        if down_payment.document_type != DocumentType.DOWN_PAYMENT or down_payment.status != "confirmed":
            raise TransitionError(
                "IneligibleSourceState",
                f"{down_payment.document_type.value} in state '{down_payment.status}' "
                f"cannot be drawn on",
                document_type=down_payment.document_type.value,
                state=down_payment.status,
                action=action,
            )
        if amount.currency != down_payment.currency:
            raise CurrencyMismatchError(amount.currency.code, down_payment.currency.code, action)
        if not amount.is_positive:
            raise InvalidLineItemError(BALANCE_LINE_ID, "amount", "must be positive")
        available = down_payment_available(down_payment, links)
        if amount > available:
            raise OverConsumptionError(BALANCE_LINE_ID, amount.amount, available.amount)
        return available - amount

    def _exhaust(self, down_payment: Document, action: str, left: Money) -> TransitionResult | None:
        if not left.is_zero:
            return None
        return self.executor.apply_transition(
            down_payment, action, TransitionContext.system(available_balance=left)
        )

    def apply_down_payment(
        self,
        down_payment: Document,
        target: Document,
        amount: Money,
        existing_links: Iterable[ConversionLink] = (),
    ) -> ConversionResult:
        """
        Apply part of a confirmed down payment to an invoice or bill.

        ``existing_links`` must include the down payment's earlier
        applications and refunds and the target's earlier payments.
        The down payment moves to ``applied`` once nothing is left.
        """
        links = tuple(existing_links)
        try:
            left = self._check_down_payment(down_payment, amount, links, "apply")
            applied = self._apply_payment(
                target, amount, down_payment.document_id, links,
                LinkKind.DOWN_PAYMENT_APPLICATION,
            )
            result = ConversionResult(
                document=applied.document,
                links=applied.links,
                source_transition=self._exhaust(down_payment, "apply", left),
                target_transition=applied.target_transition,
            )
        except (TransitionError, OverConsumptionError, InvalidLineItemError, CurrencyMismatchError) as exc:
            result = ConversionResult(error=exc)

        logger.info(
            "down_payment_applied" if result.is_success else "down_payment_rejected",
            extra={
                "down_payment_id": down_payment.document_id,
                "target_document_id": target.document_id,
                "amount": str(amount.amount),
                "error_code": result.error.code if result.error is not None else None,
            },
        )
        return result

    def refund_down_payment(
        self,
        down_payment: Document,
        amount: Money,
        existing_links: Iterable[ConversionLink] = (),
        refund_id: str | None = None,
    ) -> ConversionResult:
        """Refund part of a confirmed down payment; ``refunded`` once nothing is left."""
        links = tuple(existing_links)
        try:
            left = self._check_down_payment(down_payment, amount, links, "refund")
            link = ConversionLink(
                kind=LinkKind.DOWN_PAYMENT_REFUND,
                source_document_id=down_payment.document_id,
                source_line_id=BALANCE_LINE_ID,
                target_document_id=refund_id or self._new_id(),
                amount=amount,
            )
            transition = self._exhaust(down_payment, "refund", left)
            result = ConversionResult(
                document=transition.document if transition is not None else down_payment,
                links=(link,),
                source_transition=transition,
            )
        except (TransitionError, OverConsumptionError, InvalidLineItemError, CurrencyMismatchError) as exc:
            result = ConversionResult(error=exc)

        logger.info(
            "down_payment_refunded" if result.is_success else "down_payment_rejected",
            extra={
                "down_payment_id": down_payment.document_id,
                "amount": str(amount.amount),
                "error_code": result.error.code if result.error is not None else None,
            },
        )
        return result
