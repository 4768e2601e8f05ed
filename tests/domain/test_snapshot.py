"""
Tests for the snapshot boundary.

JSON numbers from the UI become Decimal through ``str``; totals leave as
integer minor units; a server snapshot replaces the local document.
"""

from datetime import date
from decimal import Decimal

import pytest

from erp_engines.calculation import calculate_for
from erp_kernel.domain.documents import DiscountType, Direction, DocumentType
from erp_kernel.domain.snapshot import (
    document_from_snapshot,
    money_from_payload,
    money_from_ui,
    money_to_payload,
    rehydrate,
    totals_from_payload,
    totals_to_payload,
    ui_decimal,
)
from erp_kernel.exceptions import InvalidCurrencyError
from tests.factories import document, money, quotation_lines


class TestUiNumbers:
    def test_float_noise_does_not_leak(self):
        assert money_from_ui(0.1 + 0.2, "IDR") == money("0.30")
        assert money_from_ui(0.1 + 0.2, "IDR").amount == Decimal("0.30")

    def test_rounds_half_up_to_minor_unit(self):
        assert money_from_ui("10.005", "USD").amount == Decimal("10.01")
        assert money_from_ui(1234.5, "JPY").amount == Decimal("1235")

    def test_ui_decimal_goes_through_str(self):
        assert ui_decimal(1.1) == Decimal("1.1")
        assert ui_decimal("7") == Decimal("7")

    @pytest.mark.parametrize("value", [None, True, "abc", ""])
    def test_ui_decimal_rejects(self, value):
        with pytest.raises(ValueError):
            ui_decimal(value)

    def test_unknown_currency(self):
        with pytest.raises(InvalidCurrencyError):
            money_from_ui("1", "ZZZ")


class TestMinorUnits:
    def test_money_payload(self):
        assert money_to_payload(money("255300")) == {"minor_units": 25530000, "currency": "IDR"}
        assert money_to_payload(money("1500", "JPY")) == {"minor_units": 1500, "currency": "JPY"}

    def test_money_from_payload(self):
        assert money_from_payload({"minor_units": 12345, "currency": "KWD"}, "IDR") == money(
            "12.345", "KWD"
        )
        assert money_from_payload("10.50", "USD") == money("10.50", "USD")

    def test_totals_payload(self):
        totals = calculate_for(document(DocumentType.INVOICE, lines=quotation_lines())).totals
        payload = totals_to_payload(totals)

        assert payload["grand_total"] == {"minor_units": 25530000, "currency": "IDR"}
        assert payload["tax_by_rate"] == {"11": {"minor_units": 2530000, "currency": "IDR"}}
        assert payload["base_currency_total"] is None
        assert totals_from_payload(payload, "IDR") == totals


class TestDocumentFromSnapshot:
    def test_aliases_and_defaults(self):
        doc = document_from_snapshot(
            {
                "id": "inv-7",
                "type": "invoice",
                "status": "draft",
                "currency": "idr",
                "lines": [
                    {"id": "L1", "quantity": 2, "unit_price": 100000, "discount": 10, "tax_rate": 11},
                    {"line_id": "L2", "quantity": "1", "unit_price": "50000", "tax_rate": 11},
                ],
                "links": {"customer_id": "cust-9", "source_quotation_id": None},
                "valid_until": "2024-01-31T00:00:00Z",
                "version": "4",
            }
        )

        assert doc.document_id == "inv-7"
        assert doc.document_type == DocumentType.INVOICE
        assert doc.currency.code == "IDR"
        assert doc.discount_type == DiscountType.PERCENT
        assert doc.lines == quotation_lines()
        assert doc.links == {"customer_id": "cust-9"}
        assert doc.valid_until == date(2024, 1, 31)
        assert doc.version == 4

    def test_cash_fields(self):
        doc = document_from_snapshot(
            {
                "document_id": "bank-1",
                "document_type": "bank_transaction",
                "status": "unmatched",
                "currency": "IDR",
                "amount": {"minor_units": 100000000, "currency": "IDR"},
                "direction": "incoming",
                "transaction_date": "2024-03-10",
            }
        )
        assert doc.amount == money("1000000")
        assert doc.direction == Direction.INCOMING
        assert doc.transaction_date == date(2024, 3, 10)

    def test_journal_lines(self):
        doc = document_from_snapshot(
            {
                "id": "je-1",
                "type": "journal_entry",
                "status": "draft",
                "currency": "IDR",
                "journal_lines": [
                    {"id": "J1", "account_id": 1100, "debit": 0.1 + 0.2},
                    {"id": "J2", "account_id": "4000", "credit": "0.3"},
                ],
            }
        )
        debit, credit = doc.journal_lines
        assert debit.account_id == "1100"
        assert debit.debit == credit.credit == money("0.30")
        assert debit.credit == money("0")

    def test_missing_status(self):
        with pytest.raises(KeyError):
            document_from_snapshot({"id": "x", "type": "invoice", "currency": "IDR"})

    def test_bad_date(self):
        with pytest.raises(ValueError):
            document_from_snapshot(
                {"id": "x", "type": "quotation", "status": "draft", "currency": "IDR",
                 "valid_until": "not-a-date"}
            )


class TestRehydrate:
    def test_server_snapshot_replaces_local(self):
        local = document(DocumentType.INVOICE, "draft", quotation_lines(), document_id="inv-1")
        fresh = rehydrate(local, {"status": "posted", "version": 2, "lines": []})

        assert fresh.status == "posted"
        assert fresh.version == 2
        assert fresh.lines == ()
        assert fresh.currency == local.currency
        assert local.status == "draft"

    def test_other_document_rejected(self):
        local = document(DocumentType.INVOICE, document_id="inv-1")
        with pytest.raises(ValueError):
            rehydrate(local, {"id": "inv-2", "status": "posted"})

    def test_other_type_rejected(self):
        local = document(DocumentType.INVOICE, document_id="inv-1")
        with pytest.raises(ValueError):
            rehydrate(local, {"document_type": "bill", "status": "draft"})
