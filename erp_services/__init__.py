"""
erp_services -- Package init and public API.

Responsibility:
    Orchestration services that compose the pure engines (erp_engines/)
    and the workflow declarations (erp_modules/): the lifecycle executor,
    the conversion orchestrator, bank reconciliation, link persistence and
    server-rejection mapping.

Architecture position:
    Services -- orchestration over engines + modules + kernel.

    Dependency direction:
        erp_services/ -> erp_modules/, erp_engines/, erp_kernel/  (allowed)
        erp_modules/  -> erp_services/                           (FORBIDDEN)
        erp_engines/  -> erp_services/                           (FORBIDDEN)
        erp_kernel/   -> erp_services/                           (FORBIDDEN)

Invariants enforced:
    - Layer isolation: erp_kernel, erp_engines and erp_modules never import
      from this package.
    - Wiring is centralised in ``build_services``.
"""

from erp_kernel.logging_config import get_logger

logger = get_logger("services")

from erp_services.conversion import (  # noqa: E402
    ConversionOrchestrator,
    ConversionResult,
    down_payment_available,
    paid_amount,
)
from erp_services.link_repository import ConversionLinkRepository  # noqa: E402
from erp_services.reconciliation_service import BankReconciliationService  # noqa: E402
from erp_services.server_errors import error_from_server  # noqa: E402
from erp_services.wiring import ErpServices, build_services  # noqa: E402
from erp_services.workflow_executor import (  # noqa: E402
    EffectRegistry,
    GuardExecutor,
    WorkflowExecutor,
)

__all__ = [
    "BankReconciliationService",
    "ConversionLinkRepository",
    "ConversionOrchestrator",
    "ConversionResult",
    "EffectRegistry",
    "ErpServices",
    "GuardExecutor",
    "WorkflowExecutor",
    "build_services",
    "down_payment_available",
    "error_from_server",
    "paid_amount",
]
