"""Budget Workflows.

State machine for the annual budget lifecycle.
"""

from erp_kernel.domain.workflow import EffectSpec, Transition, Workflow
from erp_kernel.logging_config import get_logger
from erp_modules._guards import HAS_LINES

logger = get_logger("modules.budget.workflows")


PUBLISH_MONTHLY_BREAKDOWN = EffectSpec(
    "publish_monthly_breakdown", "Publish the per-account monthly split"
)
WITHDRAW_BUDGET = EffectSpec("withdraw_budget", "Withdraw the published budget for revision")


BUDGET_WORKFLOW = Workflow(
    name="budget",
    description="Annual budget lifecycle",
    initial_state="draft",
    states=("draft", "approved", "closed"),
    transitions=(
        Transition(
            "draft", "approved", action="approve",
            guards=(HAS_LINES,), effects=(PUBLISH_MONTHLY_BREAKDOWN,),
        ),
        Transition("approved", "draft", action="reopen", effects=(WITHDRAW_BUDGET,)),
        Transition("approved", "closed", action="close"),
    ),
)

logger.info("budget_workflow_registered", extra={
    "workflow_name": BUDGET_WORKFLOW.name,
    "state_count": len(BUDGET_WORKFLOW.states),
    "transition_count": len(BUDGET_WORKFLOW.transitions),
})
