"""Shared fixtures: throwaway package repositories and projects."""

from pathlib import Path

import pytest
import yaml

from hoard.config import ProjectContext, ProjectOptions, RepositoryConfig, save_options
from hoard.repository.archive import ArchiveRepository


def write_package(
    root: Path,
    name: str,
    version: str,
    requires: tuple[str, ...] = (),
    files: dict[str, str] | None = None,
    **fields,
) -> Path:
    """Write an unpacked package directory under *root* and return it."""
    package_dir = root / name
    package_dir.mkdir(parents=True, exist_ok=True)
    metadata = {"name": name, "version": version, "requires": list(requires), **fields}
    (package_dir / "package.yaml").write_text(yaml.safe_dump(metadata, sort_keys=False))
    for rel, content in (files or {"__init__.py": f"VERSION = {version!r}\n"}).items():
        path = package_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return package_dir


@pytest.fixture
def repo(tmp_path):
    """An empty archive repository named 'local'."""
    root = tmp_path / "repo"
    root.mkdir()
    return ArchiveRepository("local", root)


@pytest.fixture
def publish(tmp_path, repo):
    """Publish a package version into ``repo``; returns its record."""
    counter = iter(range(1_000_000))

    def _publish(name, version, requires=(), files=None, **fields):
        build_root = tmp_path / "build" / str(next(counter))
        package_dir = write_package(build_root, name, version, requires, files, **fields)
        return repo.publish(package_dir)

    return _publish


@pytest.fixture
def project(tmp_path, repo):
    """A project whose options point at ``repo`` and never scan sources."""
    project_dir = tmp_path / "project"
    project_dir.mkdir()
    context = ProjectContext.for_project(project_dir)
    save_options(
        context,
        ProjectOptions(
            scan=False,
            repositories=[RepositoryConfig(name="local", kind="archive", path=str(repo.root))],
        ),
    )
    return context
