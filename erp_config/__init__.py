"""
erp_config -- settings for the ERP document core.

Responsibility:
    Provides ``load_settings()``, the way to obtain configuration.  Returns
    a frozen ``ErpSettings``; callers pass it explicitly to the services
    (``erp_services.wiring.build_services``).  Nothing reads configuration
    through globals.

Architecture position:
    Configuration -- YAML-driven.  Sits above ``erp_kernel`` and below
    ``erp_services``.  The kernel and engines MUST NEVER import from here.

Failure modes:
    - ``FileNotFoundError`` -- the given settings file does not exist.
    - ``ValueError`` / ``KeyError`` -- invalid settings.

Audit relevance:
    Every ``load_settings()`` call emits an ``ERP_CONFIG_TRACE`` log entry
    with the source path and checksum.
"""

from __future__ import annotations

from pathlib import Path

from erp_config.loader import (
    DEFAULTS_PATH,
    compute_checksum,
    load_yaml_file,
    parse_settings,
)
from erp_config.schema import (
    BudgetSettings,
    ErpSettings,
    MatchingSettings,
    RoundingSettings,
    TaxSettings,
)
from erp_kernel.logging_config import get_logger

_logger = get_logger("config")


def load_settings(path: str | Path | None = None) -> ErpSettings:
    """Load settings from ``path``, or the packaged ``defaults.yaml``."""
    source = Path(path) if path is not None else DEFAULTS_PATH
    settings = parse_settings(load_yaml_file(source))
    _logger.info(
        "ERP_CONFIG_TRACE",
        extra={
            "source": str(source),
            "checksum": compute_checksum(settings),
            "base_currency": settings.base_currency,
            "rounding_mode": settings.rounding.mode,
        },
    )
    return settings


__all__ = [
    "BudgetSettings",
    "ErpSettings",
    "MatchingSettings",
    "RoundingSettings",
    "TaxSettings",
    "compute_checksum",
    "load_settings",
]
