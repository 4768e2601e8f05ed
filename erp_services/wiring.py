"""
erp_services.wiring -- Assemble the services from ErpSettings.

Responsibility:
    The single place where settings become collaborators: the rounding
    policy, the WorkflowExecutor with every module's guards and effects,
    the ConversionOrchestrator and the BankReconciliationService.  No
    service self-constructs its configuration.

Architecture position:
    Services -- composition root.  Imports erp_config, erp_engines,
    erp_modules (via the executor defaults) and erp_kernel.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from erp_config import ErpSettings, load_settings
from erp_engines.allocation import AllocationEngine
from erp_engines.calculation import RoundingPolicy
from erp_engines.matching import MatchTolerance, ReconciliationMatcher
from erp_kernel.domain.values import Money
from erp_kernel.logging_config import get_logger
from erp_services.conversion import ConversionOrchestrator
from erp_services.reconciliation_service import BankReconciliationService
from erp_services.workflow_executor import (
    WorkflowExecutor,
    default_effect_registry,
    default_guard_executor,
)

logger = get_logger("services.wiring")


def rounding_policy_from(settings: ErpSettings) -> RoundingPolicy:
    return RoundingPolicy(
        rounding=settings.rounding.mode,
        cash_increment=settings.rounding.cash_increment,
    )


@dataclass(frozen=True)
class ErpServices:
    """The wired service graph for one set of settings."""

    settings: ErpSettings
    rounding_policy: RoundingPolicy
    executor: WorkflowExecutor
    conversions: ConversionOrchestrator
    reconciliation: BankReconciliationService
    allocation: AllocationEngine

    def match_tolerance(self, currency: str) -> MatchTolerance:
        """The configured tolerance expressed in ``currency``."""
        return MatchTolerance(
            amount=Money.of(self.settings.matching.amount_tolerance, currency),
            date_window_days=self.settings.matching.date_window_days,
        )


def build_services(
    settings: ErpSettings | None = None,
    id_factory: Callable[[], str] | None = None,
) -> ErpServices:
    """Wire every service from ``settings`` (packaged defaults when None)."""
    settings = settings or load_settings()
    policy = rounding_policy_from(settings)
    executor = WorkflowExecutor(
        guard_executor=default_guard_executor(policy),
        effect_registry=default_effect_registry(policy, settings.budget.periods),
    )
    services = ErpServices(
        settings=settings,
        rounding_policy=policy,
        executor=executor,
        conversions=ConversionOrchestrator(executor, policy, id_factory),
        reconciliation=BankReconciliationService(
            executor,
            ReconciliationMatcher(),
            settings.matching.date_window_days,
        ),
        allocation=AllocationEngine(),
    )
    logger.info(
        "services_wired",
        extra={
            "base_currency": settings.base_currency,
            "rounding_mode": policy.rounding,
            "cash_increment": (
                str(policy.cash_increment) if policy.cash_increment is not None else None
            ),
            "budget_periods": len(settings.budget.periods),
        },
    )
    return services
