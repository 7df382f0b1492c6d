"""
Kernel Boundary & Invariants Contract.

Tests that enforce the kernel's architectural boundaries:

1. stock_kernel/** may NOT import stock_services or stock_config.
   The kernel never depends upward.

2. stock_kernel/domain/** is pure: no ORM, no database drivers.

3. Selectors are read-only: they never add, delete, flush or commit.

4. The kernel invariants declaration is complete and non-empty.

These tests read source code via AST; they cannot break anything.
"""

import ast
from pathlib import Path

from stock_kernel.invariants import (
    ALL_KERNEL_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    KernelInvariant,
)

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[Path]:
    """Return all .py files under a package directory of the repo."""
    return sorted((ROOT / package).rglob("*.py"))


def _relative(path: Path) -> str:
    return path.relative_to(ROOT).as_posix()


def _extract_imports(filepath: Path) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    try:
        tree = ast.parse(filepath.read_text(), filename=str(filepath))
    except (SyntaxError, UnicodeDecodeError):
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(f"{prefix}.")


# ---------------------------------------------------------------------------
# Test: Kernel has no upward dependencies
# ---------------------------------------------------------------------------

class TestKernelNoUpwardDependencies:
    """stock_kernel/** must not import stock_services or stock_config."""

    def test_kernel_files_exist(self):
        assert _python_files("stock_kernel"), "kernel package not found"

    def test_kernel_does_not_import_forbidden_packages(self):
        violations: list[str] = []

        for filepath in _python_files("stock_kernel"):
            for lineno, module in _extract_imports(filepath):
                for prefix in FORBIDDEN_KERNEL_IMPORTS:
                    if _matches(module, prefix):
                        violations.append(
                            f"  {_relative(filepath)}:{lineno} imports '{module}'"
                        )

        assert not violations, (
            "Kernel boundary violation: stock_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )

    def test_config_does_not_import_services(self):
        violations: list[str] = []

        for filepath in _python_files("stock_config"):
            for lineno, module in _extract_imports(filepath):
                if _matches(module, "stock_services"):
                    violations.append(
                        f"  {_relative(filepath)}:{lineno} imports '{module}'"
                    )

        assert not violations, "\n".join(violations)


# ---------------------------------------------------------------------------
# Test: Kernel domain purity
# ---------------------------------------------------------------------------

class TestKernelDomainPurity:
    """stock_kernel/domain/** must not import ORM or DB packages."""

    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "stock_kernel.db",
        "stock_kernel.models",
    )

    def test_domain_no_orm_imports(self):
        violations: list[str] = []

        for filepath in _python_files("stock_kernel/domain"):
            for lineno, module in _extract_imports(filepath):
                for forbidden in self.FORBIDDEN_MODULES:
                    if _matches(module, forbidden):
                        violations.append(
                            f"  {_relative(filepath)}:{lineno} imports '{module}'"
                        )

        assert not violations, (
            "Domain purity violation: stock_kernel/domain/** must not "
            "import ORM or database modules:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Selectors never write
# ---------------------------------------------------------------------------

class TestSelectorsReadOnly:
    WRITE_CALLS = {"add", "add_all", "delete", "flush", "commit", "begin_nested"}

    def test_selectors_do_not_write(self):
        violations: list[str] = []

        for filepath in _python_files("stock_kernel/selectors"):
            tree = ast.parse(filepath.read_text(), filename=str(filepath))
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr in self.WRITE_CALLS
                    and isinstance(node.func.value, ast.Attribute)
                    and node.func.value.attr == "session"
                ):
                    violations.append(
                        f"  {_relative(filepath)}:{node.lineno} calls session.{node.func.attr}()"
                    )

        assert not violations, "\n".join(violations)


# ---------------------------------------------------------------------------
# Test: Invariants declaration
# ---------------------------------------------------------------------------

class TestInvariantsDeclaration:
    def test_invariants_declared(self):
        assert len(ALL_KERNEL_INVARIANTS) == len(KernelInvariant) == 6

    def test_core_invariants_present(self):
        names = {inv.value for inv in KernelInvariant}
        assert {
            "non_negative_stock",
            "conservation",
            "batch_atomicity",
            "single_resolution",
        } <= names
