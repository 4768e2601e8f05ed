"""General Ledger Workflows.

State machine for manual journal entries.
"""

from erp_kernel.domain.workflow import EffectSpec, Guard, Transition, Workflow
from erp_kernel.logging_config import get_logger
from erp_modules._guards import HAS_LINES

logger = get_logger("modules.gl.workflows")


ENTRY_BALANCED = Guard(
    name="entry_balanced",
    description="Total debits equal total credits",
    violation="UnbalancedEntry",
)

POST_JOURNAL = EffectSpec("post_journal", "Write the entry to the ledger")
CREATE_REVERSAL_ENTRY = EffectSpec("create_reversal_entry", "Write the mirror entry")


JOURNAL_ENTRY_WORKFLOW = Workflow(
    name="journal_entry",
    description="Manual journal entry lifecycle",
    initial_state="draft",
    states=("draft", "posted", "reversed", "void"),
    transitions=(
        Transition(
            "draft", "posted", action="post",
            guards=(HAS_LINES, ENTRY_BALANCED), effects=(POST_JOURNAL,),
        ),
        Transition("draft", "void", action="void"),
        Transition("posted", "reversed", action="reverse", effects=(CREATE_REVERSAL_ENTRY,)),
    ),
)

logger.info("journal_entry_workflow_registered", extra={
    "workflow_name": JOURNAL_ENTRY_WORKFLOW.name,
    "state_count": len(JOURNAL_ENTRY_WORKFLOW.states),
    "transition_count": len(JOURNAL_ENTRY_WORKFLOW.transitions),
})
