"""
Kernel boundary tests.

1. textile_kernel/** may NOT import textile_config. Configuration reaches
   the kernel only through textile_config.bridges.

2. textile_kernel/domain/** is pure: no ORM models, services, selectors
   or db imports, and no SQLAlchemy.

3. Selectors are read-only: they never import services.

These tests read source code via AST and never import the modules.
"""

import ast
from pathlib import Path

ROOT = Path(__file__).parents[2]


def _python_files(package: str) -> list[Path]:
    return sorted((ROOT / package).rglob("*.py"))


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
                    found.append(f"  {filepath.relative_to(ROOT)}:{lineno} imports '{module}'")
    return found


class TestKernelNoUpwardDependencies:

    def test_kernel_does_not_import_config(self):
        violations = _violations("textile_kernel", ("textile_config",))
        assert not violations, (
            "textile_kernel/** must not import textile_config:\n" + "\n".join(violations)
        )

    def test_kernel_files_found(self):
        # Guard against the scan silently passing on an empty tree
        assert len(_python_files("textile_kernel")) > 20


class TestDomainPurity:

    FORBIDDEN = (
        "sqlalchemy",
        "textile_kernel.db",
        "textile_kernel.models",
        "textile_kernel.services",
        "textile_kernel.selectors",
    )

    def test_domain_has_no_persistence_imports(self):
        violations = _violations("textile_kernel/domain", self.FORBIDDEN)
        assert not violations, (
            "textile_kernel/domain/** must stay free of persistence:\n" + "\n".join(violations)
        )


class TestSelectorsReadOnly:

    def test_selectors_do_not_import_services(self):
        violations = _violations("textile_kernel/selectors", ("textile_kernel.services",))
        assert not violations, (
            "Selectors must not import services:\n" + "\n".join(violations)
        )
