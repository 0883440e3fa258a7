"""Project configuration — where a project's hoard state lives, and its options.

Every operation receives a ProjectContext explicitly; nothing is read from
process-wide state. Options come from ``hoard.yaml`` at the project root:

    dependencies: [bread, toast]     # explicit roots, in addition to scanned ones
    ignore: [mypkg]                  # names never treated as roots
    scan: true                       # scan *.py files for imports
    repositories:
      - name: local
        kind: archive                # archive | source
        path: ../package-archive
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from hoard.errors import ConfigError

HOARD_DIR = "hoard"
OPTIONS_FILE = "hoard.yaml"
LOCK_FILE = "hoard.lock"

REPOSITORY_KINDS = ("archive", "source")


@dataclass(frozen=True)
class ProjectContext:
    """All filesystem locations for one project."""

    project_dir: Path

    @classmethod
    def for_project(cls, project_dir: str | Path) -> ProjectContext:
        return cls(project_dir=Path(project_dir).resolve())

    @property
    def hoard_dir(self) -> Path:
        return self.project_dir / HOARD_DIR

    @property
    def options_path(self) -> Path:
        return self.project_dir / OPTIONS_FILE

    @property
    def lock_path(self) -> Path:
        return self.hoard_dir / LOCK_FILE

    @property
    def library_dir(self) -> Path:
        """The active library."""
        return self.hoard_dir / "lib"

    @property
    def new_library_dir(self) -> Path:
        """Staging slot for the next library generation."""
        return self.hoard_dir / "lib.new"

    @property
    def old_library_dir(self) -> Path:
        """Holding slot for the previous generation during a swap."""
        return self.hoard_dir / "lib.old"

    @property
    def library_lock_path(self) -> Path:
        return self.hoard_dir / "lib.lock"

    @property
    def src_dir(self) -> Path:
        """Cache of fetched package archives."""
        return self.hoard_dir / "src"


@dataclass
class RepositoryConfig:
    """One configured package repository."""

    name: str
    kind: str = "archive"
    path: str = ""


@dataclass
class ProjectOptions:
    """Per-project options from ``hoard.yaml``."""

    dependencies: list[str] = field(default_factory=list)
    ignore: list[str] = field(default_factory=list)
    scan: bool = True
    repositories: list[RepositoryConfig] = field(default_factory=list)


def load_options(context: ProjectContext) -> ProjectOptions:
    """Load the project's options, or defaults when there is no options file.

    Raises:
        ConfigError: If the file is unreadable or malformed.
    """
    path = context.options_path
    if not path.exists():
        return ProjectOptions()

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")

    repositories = []
    for i, repo_data in enumerate(data.get("repositories") or []):
        if not isinstance(repo_data, dict) or not repo_data.get("name"):
            raise ConfigError(f"{path}: repository {i + 1} needs a 'name'")
        kind = repo_data.get("kind", "archive")
        if kind not in REPOSITORY_KINDS:
            raise ConfigError(
                f"{path}: repository '{repo_data['name']}' has invalid kind '{kind}'. "
                f"Must be one of: {', '.join(REPOSITORY_KINDS)}"
            )
        repo_path = Path(str(repo_data.get("path", "")))
        if not repo_path.is_absolute():
            repo_path = context.project_dir / repo_path
        repositories.append(
            RepositoryConfig(name=str(repo_data["name"]), kind=kind, path=str(repo_path))
        )

    dependencies = data.get("dependencies") or []
    ignore = data.get("ignore") or []
    if not isinstance(dependencies, list) or not isinstance(ignore, list):
        raise ConfigError(f"{path}: 'dependencies' and 'ignore' must be lists")

    return ProjectOptions(
        dependencies=[str(d) for d in dependencies],
        ignore=[str(i) for i in ignore],
        scan=bool(data.get("scan", True)),
        repositories=repositories,
    )


def save_options(context: ProjectContext, options: ProjectOptions) -> None:
    """Write *options* to the project's ``hoard.yaml``."""
    data = {
        "dependencies": options.dependencies,
        "ignore": options.ignore,
        "scan": options.scan,
        "repositories": [
            {"name": r.name, "kind": r.kind, "path": r.path} for r in options.repositories
        ],
    }
    with open(context.options_path, "w") as f:
        yaml.safe_dump(data, f, sort_keys=False)
