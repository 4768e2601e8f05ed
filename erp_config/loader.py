"""
Configuration Loader (``erp_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the typed
``erp_config.schema`` dataclasses.

Architecture position
---------------------
**Config layer** -- infrastructure tooling.  Depends on the kernel only
for currency validation; never on engines, modules or services.

Invariants enforced
-------------------
* All parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages.
* Amounts are read through ``Decimal(str(value))``; YAML floats never
  reach arithmetic.
* ``compute_checksum`` produces a deterministic SHA-256 hash for change
  detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown rounding mode, tax mode or currency  -> ``ValueError``.
"""

from __future__ import annotations

import decimal
import hashlib
import json
from dataclasses import asdict
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from erp_config.schema import (
    DEFAULT_PERIODS,
    BudgetSettings,
    ErpSettings,
    MatchingSettings,
    RoundingSettings,
    TaxSettings,
)
from erp_kernel.domain.currency import CurrencyRegistry

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_ROUNDING_MODES = frozenset(
    name for name in dir(decimal) if name.startswith("ROUND_")
)
_TAX_MODES = frozenset({"exclusive", "inclusive"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, what: str) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{what} is not a decimal: {value!r}") from exc


def parse_rounding(data: dict[str, Any]) -> RoundingSettings:
    mode = str(data.get("mode", "ROUND_HALF_UP")).upper()
    if mode not in _ROUNDING_MODES:
        raise ValueError(f"Unknown rounding mode: {mode}")
    increment = data.get("cash_increment")
    cash_increment = None
    if increment is not None:
        cash_increment = parse_decimal(increment, "rounding.cash_increment")
        if cash_increment <= 0:
            raise ValueError("rounding.cash_increment must be positive")
    return RoundingSettings(mode=mode, cash_increment=cash_increment)


def parse_tax(data: dict[str, Any]) -> TaxSettings:
    mode = str(data.get("mode", "exclusive")).lower()
    if mode not in _TAX_MODES:
        raise ValueError(f"Unknown tax mode: {mode}")
    rate = parse_decimal(data.get("default_rate", "0"), "tax.default_rate")
    if rate < 0:
        raise ValueError("tax.default_rate cannot be negative")
    return TaxSettings(default_rate=rate, mode=mode)


def parse_matching(data: dict[str, Any]) -> MatchingSettings:
    tolerance = parse_decimal(data.get("amount_tolerance", "0"), "matching.amount_tolerance")
    window = int(data.get("date_window_days", 7))
    if tolerance < 0:
        raise ValueError("matching.amount_tolerance cannot be negative")
    if window < 0:
        raise ValueError("matching.date_window_days cannot be negative")
    return MatchingSettings(amount_tolerance=tolerance, date_window_days=window)


def parse_budget(data: dict[str, Any]) -> BudgetSettings:
    periods = tuple(str(p) for p in data.get("periods", DEFAULT_PERIODS))
    if not periods:
        raise ValueError("budget.periods cannot be empty")
    if len(set(periods)) != len(periods):
        raise ValueError("budget.periods must be unique")
    return BudgetSettings(periods=periods)


def parse_settings(data: dict[str, Any]) -> ErpSettings:
    """
    Parse an ``ErpSettings`` from a dict.

    Missing sections take their schema defaults.
    """
    base_currency = str(data.get("base_currency", "IDR")).upper()
    if not CurrencyRegistry.is_valid(base_currency):
        raise ValueError(f"Unknown base currency: {base_currency}")
    return ErpSettings(
        base_currency=base_currency,
        rounding=parse_rounding(data.get("rounding") or {}),
        tax=parse_tax(data.get("tax") or {}),
        matching=parse_matching(data.get("matching") or {}),
        budget=parse_budget(data.get("budget") or {}),
    )


def compute_checksum(settings: ErpSettings) -> str:
    """
    Compute SHA-256 checksum of the canonical JSON serialization.

    Identical settings always produce identical checksums.
    """
    canonical = json.dumps(asdict(settings), sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
