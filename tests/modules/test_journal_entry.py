"""Journal entry posting and reversal through the workflow executor."""

import pytest

from erp_kernel.domain.documents import DocumentType
from erp_kernel.exceptions import UnbalancedEntryError
from tests.factories import document, journal_line


def _entry(*journal_lines, status="draft"):
    return document(
        DocumentType.JOURNAL_ENTRY,
        status,
        document_id="je-1",
        journal_lines=journal_lines,
    )


@pytest.fixture
def balanced():
    return _entry(
        journal_line("J1", "1100", debit="250000"),
        journal_line("J2", "4000", credit="225000"),
        journal_line("J3", "2100", credit="25000"),
    )


class TestJournalEntryPosting:
    def test_balanced_entry_posts(self, executor, balanced):
        result = executor.apply_transition(balanced, "post")

        assert result.success
        assert result.next_state == "posted"
        (effect,) = result.side_effects
        assert effect.kind == "post_journal"
        assert [row["account_id"] for row in effect.payload["lines"]] == ["1100", "4000", "2100"]

    def test_unbalanced_entry_names_both_sides(self, executor):
        entry = _entry(
            journal_line("J1", "1100", debit="100"),
            journal_line("J2", "4000", credit="90"),
        )
        result = executor.apply_transition(entry, "post")

        assert not result.success
        assert isinstance(result.error, UnbalancedEntryError)
        assert result.error.violated_guard == "UnbalancedEntry"
        assert result.error.expected == "100"
        assert result.error.actual == "90"
        assert result.error.action == "post"
        assert result.to_payload()["code"] == "UNBALANCED_ENTRY"

    def test_empty_entry_has_no_lines(self, executor):
        result = executor.apply_transition(_entry(), "post")
        assert result.error.violated_guard == "NoLineItems"

    def test_mixed_currency_lines_rejected(self, executor):
        entry = _entry(
            journal_line("J1", "1100", debit="100"),
            journal_line("J2", "4000", credit="100", currency="USD"),
        )
        result = executor.apply_transition(entry, "post")
        assert result.error.violated_guard == "CurrencyMismatch"


class TestJournalEntryReversal:
    def test_reversal_swaps_sides(self, executor, balanced):
        posted = executor.apply_transition(balanced, "post").document
        result = executor.apply_transition(posted, "reverse")

        assert result.next_state == "reversed"
        lines = result.side_effects[0].payload["lines"]
        assert lines[0]["debit"] == "0"
        assert lines[0]["credit"] == "250000"
        assert lines[1]["debit"] == "225000"

    def test_reversed_entry_is_terminal(self, executor, balanced):
        reversed_entry = balanced.with_status("reversed")
        result = executor.apply_transition(reversed_entry, "reverse")
        assert result.error.violated_guard == "TerminalState"

    def test_posted_entry_is_not_editable(self, executor, balanced):
        posted = balanced.with_status("posted")
        assert executor.permissions(posted) == {
            "can_edit": False,
            "can_delete": False,
            "can_post": False,
            "can_void": False,
            "can_reverse": True,
        }
