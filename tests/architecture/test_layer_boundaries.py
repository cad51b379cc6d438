"""
Import-boundary enforcement for the four packages.

1. Kernel isolation   -- bbs_kernel/** never imports bbs_engines,
                         bbs_services or bbs_config.
2. Domain purity      -- bbs_kernel/domain/** imports no ORM, DB, models,
                         services or logging.
3. Engine purity      -- bbs_engines/** imports only bbs_kernel.domain
                         (plus bbs_kernel.exceptions through it) and never
                         reads a clock or the environment.
4. Config entrypoint  -- outside bbs_config, only the package itself is
                         imported (never loader/validator/compiler).

All scanning is done via AST -- these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


def _python_files(package: str) -> list[str]:
    """Return all .py files under *package*, sorted for deterministic order."""
    return sorted(glob.glob(str(ROOT / package / "**" / "*.py"), recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _violations(package: str, forbidden: tuple[str, ...]) -> list[str]:
    found = []
    for path in _python_files(package):
        for lineno, module in _extract_imports(path):
            if _matches_any(module, forbidden):
                found.append(f"{Path(path).relative_to(ROOT)}:{lineno} imports {module}")
    return found


class TestKernelIsolation:

    def test_kernel_does_not_import_outer_layers(self):
        violations = _violations("bbs_kernel", ("bbs_engines", "bbs_services", "bbs_config"))
        assert violations == [], "\n".join(violations)


class TestDomainPurity:

    def test_domain_has_no_infrastructure_imports(self):
        violations = _violations(
            "bbs_kernel/domain",
            (
                "sqlalchemy",
                "logging",
                "bbs_kernel.db",
                "bbs_kernel.models",
                "bbs_kernel.services",
                "bbs_kernel.logging_config",
            ),
        )
        assert violations == [], "\n".join(violations)


class TestEnginePurity:

    ALLOWED_FIRST_PARTY = ("bbs_engines", "bbs_kernel.domain")

    def test_engines_import_only_domain(self):
        violations = []
        for path in _python_files("bbs_engines"):
            for lineno, module in _extract_imports(path):
                if module.startswith("bbs_") and not _matches_any(module, self.ALLOWED_FIRST_PARTY):
                    violations.append(f"{Path(path).name}:{lineno} imports {module}")
        assert violations == [], "\n".join(violations)

    def test_engines_have_no_infrastructure_imports(self):
        violations = _violations("bbs_engines", ("sqlalchemy", "logging", "os", "time", "yaml"))
        assert violations == [], "\n".join(violations)

    def test_engines_never_read_the_clock(self):
        forbidden = {"datetime.now", "datetime.utcnow", "date.today", "time.time"}
        violations = []
        for path in _python_files("bbs_engines"):
            tree = ast.parse(Path(path).read_text())
            for node in ast.walk(tree):
                if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name):
                    name = f"{node.value.id}.{node.attr}"
                    if name in forbidden:
                        violations.append(f"{Path(path).name}:{node.lineno} calls {name}")
        assert violations == [], "\n".join(violations)


class TestConfigEntrypoint:

    INTERNAL = ("bbs_config.loader", "bbs_config.validator", "bbs_config.compiler", "bbs_config.schema")

    def test_services_use_only_the_public_entrypoint(self):
        violations = _violations("bbs_services", self.INTERNAL)
        assert violations == [], "\n".join(violations)
