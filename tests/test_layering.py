"""
tests/test_layering.py
Enforce architectural layering:
  core       → may NOT import database, dashboard, reporting
  database   → may NOT import core, dashboard, reporting
  reporting  → may NOT import core, database, dashboard
  dashboard  → may NOT import core, database, reporting

Run: pytest tests/test_layering.py -v
"""

import sys, os, ast
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))


def get_imports(filepath: Path) -> list[str]:
    """Extract all imported module names from a Python file."""
    tree = ast.parse(filepath.read_text(encoding="utf-8"))
    imports = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                imports.append(alias.name)
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                imports.append(node.module)
    return imports


def all_py_files(pkg_dir: Path):
    return list(pkg_dir.rglob("*.py"))


FORBIDDEN = {
    "core":      {"database", "dashboard", "reporting"},
    "database":  {"core", "dashboard", "reporting"},
    "reporting": {"core", "database", "dashboard"},
    "dashboard": {"core", "database", "reporting"},
}


class TestLayering:
    def _check(self, package: str, forbidden: set[str]):
        pkg_dir = ROOT / package
        assert pkg_dir.exists(), f"missing package {package}"
        for pyfile in all_py_files(pkg_dir):
            imports = get_imports(pyfile)
            for imp in imports:
                top = imp.split(".")[0]
                assert top not in forbidden, (
                    f"LAYERING VIOLATION in {pyfile.relative_to(ROOT)}: "
                    f"'{package}' imports '{top}' — "
                    f"forbidden packages: {forbidden}"
                )

    def test_core_does_not_import_database(self):
        self._check("core", {"database"})

    def test_core_does_not_import_dashboard(self):
        self._check("core", {"dashboard"})

    def test_core_does_not_import_reporting(self):
        self._check("core", {"reporting"})

    def test_database_does_not_import_core(self):
        self._check("database", {"core"})

    def test_database_does_not_import_dashboard(self):
        self._check("database", {"dashboard"})

    def test_reporting_does_not_import_core_or_database(self):
        self._check("reporting", {"core", "database"})

    def test_dashboard_does_not_import_core(self):
        self._check("dashboard", {"core"})

    def test_dashboard_does_not_import_database(self):
        self._check("dashboard", {"database"})

    def test_full_matrix(self):
        for package, forbidden in FORBIDDEN.items():
            self._check(package, forbidden)

    def test_utils_imports_nothing_internal(self):
        self._check("utils", {"core", "database", "reporting", "dashboard"})


if __name__ == "__main__":
    import pytest
    pytest.main([__file__, "-v"])
