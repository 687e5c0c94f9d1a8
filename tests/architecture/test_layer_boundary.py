"""
Layer boundary contract.

    ledger_kernel   may import nothing from the outer packages
    ledger_engines  may import ledger_kernel only
    ledger_config   may import ledger_engines and ledger_kernel
    ledger_services sits on top

Engines must also stay free of I/O: no SQLAlchemy sessions and no
imports of the kernel's service or database layers.

These tests read source code via AST -- they cannot break anything.
"""

import ast
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    return sorted((REPO_ROOT / package).rglob("*.py"))


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = ast.parse(filepath.read_text(), filename=str(filepath))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for filepath in _python_files(package):
        for lineno, module in _extract_imports(filepath):
            for prefix in forbidden:
                if module == prefix or module.startswith(f"{prefix}."):
                    rel = filepath.relative_to(REPO_ROOT)
                    found.append(f"  {rel}:{lineno} imports '{module}'")
    return found


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:

    def test_kernel_does_not_import_outer_packages(self):
        violations = _violations(
            "ledger_kernel", ("ledger_engines", "ledger_config", "ledger_services")
        )
        assert not violations, (
            "ledger_kernel must not depend upward:\n" + "\n".join(violations)
        )


class TestEnginesArePure:

    def test_engines_do_not_import_services_or_config(self):
        violations = _violations("ledger_engines", ("ledger_config", "ledger_services"))
        assert not violations, "\n".join(violations)

    def test_engines_do_not_touch_the_database(self):
        violations = _violations(
            "ledger_engines",
            (
                "sqlalchemy",
                "ledger_kernel.db",
                "ledger_kernel.services",
                "ledger_kernel.selectors",
            ),
        )
        assert not violations, "\n".join(violations)


class TestConfigBoundary:

    def test_config_does_not_import_services(self):
        violations = _violations("ledger_config", ("ledger_services",))
        assert not violations, "\n".join(violations)


class TestPackagesExist:
    """Guard against the scans above passing vacuously."""

    def test_every_layer_has_source_files(self):
        for package in ("ledger_kernel", "ledger_engines", "ledger_config", "ledger_services"):
            assert _python_files(package), f"{package} has no Python files"
