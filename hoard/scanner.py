"""Source scanner — discover the third-party packages a project imports."""

from __future__ import annotations

import ast
import logging
import sys
from pathlib import Path

from hoard.config import HOARD_DIR

logger = logging.getLogger(__name__)

# Directories to always skip
SKIP_DIRS = {
    ".git", "__pycache__", "node_modules", ".venv", "venv", ".env",
    "dist", "build", ".tox", ".mypy_cache", ".pytest_cache", ".ruff_cache",
    HOARD_DIR,
}

STDLIB_MODULES = frozenset(sys.stdlib_module_names) | {"__future__"}


def scan_project_files(project_dir: Path) -> list[Path]:
    """Recursively find the project's Python source files.

    Skips common non-source directories and the project's own hoard
    directory, so installed packages never count as project code.
    """
    files = []
    for item in sorted(project_dir.rglob("*.py")):
        rel_parts = item.relative_to(project_dir).parts
        if any(part in SKIP_DIRS for part in rel_parts[:-1]):
            continue
        if item.is_file():
            files.append(item)
    return files


def imported_names(source: str, filename: str = "<unknown>") -> set[str]:
    """Top-level module names imported by *source*; relative imports are skipped."""
    try:
        tree = ast.parse(source, filename=filename)
    except SyntaxError as e:
        logger.warning("Skipping %s: %s", filename, e)
        return set()

    names: set[str] = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            names.update(alias.name.split(".")[0] for alias in node.names)
        elif isinstance(node, ast.ImportFrom) and node.module and not node.level:
            names.add(node.module.split(".")[0])
    return names


def local_module_names(project_dir: Path) -> set[str]:
    """Names importable from the project itself (top-level modules and packages)."""
    names = set()
    for item in project_dir.iterdir():
        if item.suffix == ".py":
            names.add(item.stem)
        elif item.is_dir() and (item / "__init__.py").exists():
            names.add(item.name)
    src = project_dir / "src"
    if src.is_dir():
        names.update(local_module_names(src))
    return names


def scan_root_dependencies(
    project_dir: str | Path, ignore: set[str] | frozenset[str] = frozenset()
) -> set[str]:
    """Return the third-party names the project's source files import.

    Standard-library modules, the project's own modules and *ignore* are
    left out.
    """
    project_dir = Path(project_dir)
    found: set[str] = set()
    for path in scan_project_files(project_dir):
        source = path.read_text(errors="replace")
        found |= imported_names(source, filename=str(path))

    excluded = STDLIB_MODULES | local_module_names(project_dir) | set(ignore)
    return {name for name in found if name not in excluded}
