"""
Tests for the budget lifecycle and its monthly breakdown.

Scenario: a closed budget refuses edits; reopening an approved budget
returns it to draft and edits are allowed again.
"""

from decimal import Decimal

import pytest

from erp_config import BudgetSettings, ErpSettings
from erp_kernel.domain.documents import DocumentType
from erp_modules.budget import annual_amounts, monthly_breakdown
from erp_services.wiring import build_services
from tests.factories import document, line, money


def _budget(status="draft", lines=None):
    if lines is None:
        lines = (
            line("B1", 1, "1000000", account_id="5100"),
            line("B2", 2, "300000", account_id="5200"),
        )
    return document(DocumentType.BUDGET, status, lines, document_id="budget-2024")


class TestBudgetLifecycle:
    def test_closed_budget_is_not_editable(self, executor):
        result = executor.apply_transition(_budget("closed"), "edit")

        assert not result.success
        assert result.error.violated_guard == "NotEditable"
        assert result.error.state == "closed"
        assert result.document.status == "closed"

    def test_closed_budget_refuses_every_action(self, executor):
        closed = _budget("closed")
        assert executor.apply_transition(closed, "reopen").error.violated_guard == "TerminalState"
        assert executor.apply_transition(closed, "delete").error.violated_guard == "NotDeletable"
        assert executor.available_actions(closed) == ()

    def test_reopen_returns_to_draft_and_reenables_edit(self, executor):
        approved = _budget("approved")
        assert not executor.can_transition(approved, "edit")

        result = executor.apply_transition(approved, "reopen")

        assert result.success
        assert result.next_state == "draft"
        assert [e.kind for e in result.side_effects] == ["withdraw_budget"]
        assert executor.can_transition(result.document, "edit")
        assert executor.apply_transition(result.document, "edit").success

    def test_approve_requires_lines(self, executor):
        result = executor.apply_transition(_budget(lines=()), "approve")
        assert result.error.violated_guard == "NoLineItems"

    def test_approve_publishes_breakdown_per_account(self, executor):
        result = executor.apply_transition(_budget(), "approve")

        assert result.success
        effects = {e.target_id: e for e in result.side_effects}
        assert set(effects) == {"5100", "5200"}
        first = effects["5100"]
        assert first.kind == "publish_monthly_breakdown"
        assert first.payload["budget_id"] == "budget-2024"
        assert first.payload["annual"] == "1000000.00"
        assert first.payload["periods"]["jan"] == "83333.33"
        assert first.payload["periods"]["dec"] == "83333.37"
        assert effects["5200"].payload["periods"]["dec"] == "50000.00"


class TestBreakdown:
    def test_annual_amounts_summed_per_account(self):
        budget = _budget(
            lines=(
                line("B1", 1, "100.00", account_id="5100"),
                line("B2", 3, "0.005", account_id="5100"),
                line("B3", 1, "7", account_id="6100"),
            )
        )
        # 3 x 0.005 rounds half-up to 0.02
        assert annual_amounts(budget) == {"5100": money("100.02"), "6100": money("7")}

    def test_line_without_account_keyed_by_line(self):
        budget = _budget(lines=(line("B1", 1, "12"),))
        assert set(annual_amounts(budget)) == {"B1"}

    def test_custom_periods(self):
        breakdown = monthly_breakdown(_budget(), ("h1", "h2"))
        assert breakdown["5100"].amounts == (money("500000.00"), money("500000.00"))

    def test_breakdown_is_exact(self):
        budget = _budget(lines=(line("B1", 1, "1000.01", account_id="7000"),))
        result = monthly_breakdown(budget)["7000"]
        total = sum((m.amount for m in result.amounts), Decimal("0"))
        assert total == Decimal("1000.01")

    def test_configured_periods_reach_the_effect(self):
        settings = ErpSettings(budget=BudgetSettings(periods=("h1", "h2")))
        services = build_services(settings)

        result = services.executor.apply_transition(_budget(), "approve")

        periods = result.side_effects[0].payload["periods"]
        assert list(periods) == ["h1", "h2"]


@pytest.mark.parametrize("status", ["approved", "closed"])
def test_only_draft_budgets_can_be_deleted(executor, status):
    assert not executor.can_transition(_budget(status), "delete")
    assert executor.can_transition(_budget("draft"), "delete")
