"""
Import-boundary enforcement for the layered packages.

1. Kernel purity       - erp_kernel/** imports nothing above it; the domain
                         sub-package imports no ORM at all.
2. Engine purity       - erp_engines/** may not import DB, ORM, models,
                         modules, services or config.
3. Engine no-impure    - erp_engines/** may not read the wall clock or the
                         environment; callers pass ``as_of`` explicitly.
4. Config centralisation - only erp_config/ may import erp_config.loader
                         and erp_config.schema directly.
5. Dependency direction - validates the full dependency DAG.

All scanning is done via AST; these tests are read-only.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]

PACKAGES = ("erp_kernel", "erp_engines", "erp_modules", "erp_services", "erp_config")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    """Return all .py files under *package*, sorted for deterministic order."""
    return sorted((ROOT / package).rglob("*.py"))


def _display(filepath: Path) -> str:
    return filepath.relative_to(ROOT).as_posix()


def _parse(filepath: Path) -> ast.AST:
    return ast.parse(filepath.read_text(), filename=str(filepath))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every absolute import."""
    results: list[tuple[int, str]] = []
    for node in ast.walk(_parse(filepath)):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module and node.level == 0:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == prefix or module.startswith(f"{prefix}.") for prefix in prefixes)


def _extract_attribute_calls(filepath: Path) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute references."""
    results: list[tuple[int, str]] = []
    for node in ast.walk(_parse(filepath)):
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
            results.append((node.lineno, f"{node.value.id}.{node.attr}"))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found: list[str] = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            if _matches_any(module, forbidden):
                found.append(f"  {_display(filepath)}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# 1. TestKernelPurity
# ---------------------------------------------------------------------------

class TestKernelPurity:
    def test_packages_exist(self):
        for package in PACKAGES:
            assert _python_files(package), f"{package}/ has no Python files"

    def test_domain_has_no_orm(self):
        violations = _violations(
            "erp_kernel/domain",
            ("sqlalchemy", "erp_kernel.db", "erp_kernel.models", "erp_kernel.logging_config"),
        )
        assert not violations, (
            "Domain purity violation - erp_kernel/domain must stay free of "
            "persistence and logging:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 2. TestEnginePurity
# ---------------------------------------------------------------------------

class TestEnginePurity:
    """erp_engines/** may not import DB drivers, ORM, kernel models/db,
    modules, services or config."""

    FORBIDDEN_PREFIXES = (
        "sqlalchemy",
        "sqlite3",
        "yaml",
        "erp_kernel.models",
        "erp_kernel.db",
        "erp_modules",
        "erp_services",
        "erp_config",
    )

    def test_engine_files_have_no_forbidden_imports(self):
        violations = _violations("erp_engines", self.FORBIDDEN_PREFIXES)
        assert not violations, (
            "Engine purity violation - erp_engines/** must not import "
            "persistence, configuration or upper layers:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 3. TestEngineNoImpureFunctions
# ---------------------------------------------------------------------------

class TestEngineNoImpureFunctions:
    """erp_engines/** may not call wall-clock or environment functions.

    Allowed (observational-only):
        time.monotonic
    """

    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
    })

    def test_no_impure_calls_in_engines(self):
        violations: list[str] = []
        for package in ("erp_engines", "erp_modules"):
            for filepath in _python_files(package):
                for lineno, qualname in _extract_attribute_calls(filepath):
                    if qualname in self.FORBIDDEN_CALLS:
                        violations.append(f"  {_display(filepath)}:{lineno} calls '{qualname}'")

        assert not violations, (
            "Impurity violation - engines and guards must take the date as "
            "an explicit parameter:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# 4. TestConfigCentralization
# ---------------------------------------------------------------------------

class TestConfigCentralization:
    """Outside erp_config/, settings come from the package root only."""

    FORBIDDEN_INTERNAL_MODULES = (
        "erp_config.loader",
        "erp_config.schema",
    )

    def test_no_external_import_of_config_internals(self):
        violations: list[str] = []
        for package in PACKAGES:
            if package == "erp_config":
                continue
            violations.extend(_violations(package, self.FORBIDDEN_INTERNAL_MODULES))

        assert not violations, (
            "Config centralisation violation - import settings from "
            "erp_config:\n" + "\n".join(violations)
        )

    def test_only_services_read_config(self):
        violations: list[str] = []
        for package in ("erp_kernel", "erp_engines", "erp_modules"):
            violations.extend(_violations(package, ("erp_config", "yaml")))
        assert not violations, "\n".join(violations)


# ---------------------------------------------------------------------------
# 5. TestDependencyDirection
# ---------------------------------------------------------------------------

class TestDependencyDirection:
    """Verify the overall dependency DAG:

    Allowed edges (-> means "may import"):
        erp_services -> erp_kernel, erp_engines, erp_modules, erp_config
        erp_modules  -> erp_kernel.domain, erp_kernel.logging_config, erp_engines
        erp_engines  -> erp_kernel.domain, erp_kernel.logging_config
        erp_config   -> erp_kernel
        erp_kernel   -> (stdlib + sqlalchemy + internal)
    """

    # (source_root, forbidden_prefixes)
    RULES: list[tuple[str, tuple[str, ...]]] = [
        (
            "erp_kernel",
            ("erp_engines", "erp_modules", "erp_services", "erp_config"),
        ),
        (
            "erp_engines",
            ("erp_modules", "erp_services", "erp_config"),
        ),
        (
            "erp_modules",
            ("erp_services", "erp_config", "erp_kernel.db", "erp_kernel.models", "sqlalchemy"),
        ),
        (
            "erp_config",
            ("erp_engines", "erp_modules", "erp_services"),
        ),
    ]

    def test_dependency_dag(self):
        violations: list[str] = []
        for source_root, forbidden in self.RULES:
            violations.extend(
                f"  [{source_root}]{line}" for line in _violations(source_root, forbidden)
            )

        assert not violations, (
            "Dependency direction violation - the following imports break "
            "the layered architecture:\n" + "\n".join(violations)
        )
