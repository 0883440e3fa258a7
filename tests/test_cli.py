"""Tests for the hoard command line."""

from click.testing import CliRunner

from conftest import write_package
from hoard.cli import EXIT_DECLINED, main
from hoard.config import load_options, save_options
from hoard.library.inspector import inspect_library


def _invoke(project, *args, input=None):
    return CliRunner().invoke(main, ["-p", str(project.project_dir), *args], input=input)


def _depend_on(project, *names):
    options = load_options(project)
    options.dependencies = list(names)
    save_options(project, options)


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "version" in result.output


def test_bootstrap_then_status(project, publish):
    publish("bread", "1.0")
    _depend_on(project, "bread")

    result = _invoke(project, "bootstrap", "--no-prompt")
    assert result.exit_code == 0, result.output
    assert "Locked 1 package(s)" in result.output

    result = _invoke(project, "status")
    assert result.exit_code == 0
    assert "up to date" in result.output


def test_bootstrap_failure_exits_1(project):
    _depend_on(project, "bread")
    result = _invoke(project, "bootstrap")
    assert result.exit_code == 1
    assert "bread" in result.output


def test_restore_without_lock_exits_1(project):
    result = _invoke(project, "restore")
    assert result.exit_code == 1
    assert "Error" in result.output


def test_clean_declined_exits_2(project, publish):
    publish("bread", "1.0")
    _depend_on(project, "bread")
    assert _invoke(project, "bootstrap").exit_code == 0
    _depend_on(project)

    result = _invoke(project, "clean", input="n\n")
    assert result.exit_code == EXIT_DECLINED
    assert "bread" in inspect_library(project.library_dir)


def test_clean_confirmed_removes_orphans(project, publish):
    publish("bread", "1.0")
    _depend_on(project, "bread")
    assert _invoke(project, "bootstrap").exit_code == 0
    _depend_on(project)

    result = _invoke(project, "clean", input="y\n")
    assert result.exit_code == 0, result.output
    assert inspect_library(project.library_dir) == {}


def test_snapshot_dry_run_lists_changes(project, publish):
    publish("bread", "1.0")
    _depend_on(project, "bread")
    assert _invoke(project, "bootstrap").exit_code == 0
    write_package(project.library_dir, "handmade", "0.1")
    _depend_on(project, "bread", "handmade")

    result = _invoke(project, "snapshot", "--dry-run")
    assert result.exit_code == 0
    assert "+ handmade 0.1" in result.output
    assert "handmade" not in project.lock_path.read_text()


def test_recover_on_stable_library(project):
    result = _invoke(project, "recover")
    assert result.exit_code == 0
    assert "nothing to recover" in result.output


def test_repository_publish_and_list(project, tmp_path):
    package_dir = write_package(tmp_path / "pkgsrc", "bread", "1.0")
    archive_root = tmp_path / "published"

    result = _invoke(project, "repository", "publish", str(package_dir), "--root", str(archive_root))
    assert result.exit_code == 0, result.output
    assert (archive_root / "bread" / "bread_1.0.tar.gz").is_file()

    result = _invoke(project, "repository", "publish", str(tmp_path), "--root", str(archive_root))
    assert result.exit_code == 1

    (package_dir / "package.yaml").write_text("name: bread\n")
    result = _invoke(project, "repository", "publish", str(package_dir), "--root", str(archive_root))
    assert result.exit_code == 1
    assert "Error" in result.output

    result = _invoke(project, "repository", "list")
    assert result.exit_code == 0
    assert "local" in result.output
