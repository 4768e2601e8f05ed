"""
Tests for ConversionLinkRepository and the append-only link table.

Remaining balances are derived from stored links, so the links must
round-trip exactly and may never be changed once written.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from erp_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from erp_kernel.domain.documents import DocumentType, LinkKind
from erp_kernel.exceptions import ImmutabilityViolationError
from erp_kernel.models.conversion_link import ConversionLinkModel
from erp_services.link_repository import ConversionLinkRepository
from tests.factories import document, line, money, quotation_lines


def _by_line(links):
    return sorted(links, key=lambda link: link.source_line_id)


@pytest.fixture
def repository(db_session):
    return ConversionLinkRepository(db_session)


@pytest.fixture
def purchase_order():
    return document(
        DocumentType.PURCHASE_ORDER,
        "approved",
        [line("L1", 100, "5000"), line("L2", 10, "200")],
        document_id="po-1",
    )


class TestPersistence:
    def test_receipts_round_trip(self, repository, orchestrator, purchase_order):
        result = orchestrator.convert(
            purchase_order, DocumentType.GOODS_RECEIPT_NOTE, {"L1": 60, "L2": 2}
        )
        repository.add(result.links)

        stored = repository.links_for_source("po-1", LinkKind.RECEIPT)
        assert _by_line(stored) == _by_line(result.links)
        assert _by_line(repository.links_for_target("doc-1")) == _by_line(stored)

    def test_amount_links_round_trip(self, repository, orchestrator):
        invoice = document(DocumentType.INVOICE, "posted", quotation_lines(), document_id="inv-1")
        result = orchestrator.apply_payment(invoice, money("100000.50"), "pay-1")
        repository.add(result.links)

        (stored,) = repository.links_for_target("inv-1")
        assert stored.kind == LinkKind.PAYMENT
        assert stored.amount == money("100000.50")
        assert stored.amount.currency.code == "IDR"
        assert stored.quantity is None

    def test_consumed_quantity(self, repository, orchestrator, purchase_order):
        first = orchestrator.convert(purchase_order, DocumentType.GOODS_RECEIPT_NOTE, {"L1": 60})
        second = orchestrator.convert(
            purchase_order, DocumentType.GOODS_RECEIPT_NOTE, {"L1": 15, "L2": 4}, first.links
        )
        repository.add(first.links)
        repository.add(second.links)

        assert repository.consumed_quantity("po-1", LinkKind.RECEIPT) == {
            "L1": Decimal("75"),
            "L2": Decimal("4"),
        }
        assert repository.consumed_quantity(
            "po-1", LinkKind.RECEIPT, exclude_target_ids={"doc-2"}
        ) == {"L1": Decimal("60")}
        assert repository.consumed_quantity("po-1", LinkKind.BILLING) == {}

    def test_stored_links_feed_the_orchestrator(self, repository, orchestrator, purchase_order):
        first = orchestrator.convert(purchase_order, DocumentType.GOODS_RECEIPT_NOTE, {"L1": 60})
        repository.add(first.links)

        existing = repository.links_for_source("po-1")
        result = orchestrator.convert(
            purchase_order, DocumentType.GOODS_RECEIPT_NOTE, {"L1": 41}, existing
        )
        assert result.error.remaining == Decimal("40")

    def test_add_logs(self, repository, orchestrator, purchase_order, captured_logs):
        result = orchestrator.convert(purchase_order, DocumentType.GOODS_RECEIPT_NOTE, {"L1": 1})
        repository.add(result.links)

        record = next(r for r in captured_logs() if r["message"] == "conversion_links_persisted")
        assert record["link_count"] == 1
        assert record["source_document_ids"] == ["po-1"]


class TestImmutability:
    @pytest.fixture
    def stored_row(self, db_session, repository, orchestrator, purchase_order):
        result = orchestrator.convert(purchase_order, DocumentType.GOODS_RECEIPT_NOTE, {"L1": 5})
        repository.add(result.links)
        return db_session.scalars(select(ConversionLinkModel)).one()

    def test_link_cannot_be_modified(self, db_session, stored_row):
        stored_row.quantity = Decimal("500")

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            db_session.flush()

        assert "ConversionLink" in str(exc_info.value)
        assert "Cannot modify" in str(exc_info.value)
        db_session.rollback()

    def test_link_cannot_be_deleted(self, db_session, stored_row):
        db_session.delete(stored_row)

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            db_session.flush()

        assert "cannot delete" in str(exc_info.value)
        db_session.rollback()


class TestSessionScope:
    @pytest.fixture
    def database(self):
        init_engine_from_url("sqlite://")
        create_tables()
        yield
        drop_tables()
        reset_engine()

    def test_commits_on_success(self, database, orchestrator, purchase_order):
        result = orchestrator.convert(purchase_order, DocumentType.GOODS_RECEIPT_NOTE, {"L1": 5})

        with session_scope() as session:
            ConversionLinkRepository(session).add(result.links)

        with session_scope() as session:
            consumed = ConversionLinkRepository(session).consumed_quantity("po-1", LinkKind.RECEIPT)
        assert consumed == {"L1": Decimal("5")}

    def test_rolls_back_on_error(self, database, orchestrator, purchase_order):
        result = orchestrator.convert(purchase_order, DocumentType.GOODS_RECEIPT_NOTE, {"L1": 5})

        with pytest.raises(RuntimeError):
            with session_scope() as session:
                ConversionLinkRepository(session).add(result.links)
                raise RuntimeError("abort")

        with session_scope() as session:
            assert ConversionLinkRepository(session).links_for_source("po-1") == []
