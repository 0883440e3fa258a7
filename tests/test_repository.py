"""Tests for the archive, source and chained repositories."""

import tempfile
from pathlib import Path

import pytest
from git import Repo

from conftest import write_package
from hoard.config import ProjectOptions, RepositoryConfig
from hoard.errors import ArchiveFetchFailed, LookupFailed, PublishFailed
from hoard.library.content import fingerprint_archive
from hoard.models.package import PackageRecord
from hoard.repository.archive import ArchiveRepository, archive_filename
from hoard.repository.chained import ChainedRepository, build_repository
from hoard.repository.source import SourceRepository, source_reference


# --- Archive repository ---


def test_publish_and_lookup(repo, publish):
    record = publish("bread", "1.0", requires=("flour",))
    assert record.source == "local"
    assert (repo.root / "bread" / archive_filename("bread", "1.0")).is_file()

    found = repo.lookup("bread")
    assert found == record
    assert [r.name for r in found.requirements] == ["flour"]
    assert fingerprint_archive(repo.fetch_archive(found)) == found.fingerprint


def test_lookup_latest_or_exact_version(repo, publish):
    publish("bread", "1.0")
    publish("bread", "2.0")
    assert repo.lookup("bread").version == "2.0"
    assert repo.lookup("bread", "1.0").version == "1.0"
    assert repo.lookup("bread", "3.0") is None
    assert repo.lookup("jam") is None
    assert sorted(repo.versions("bread")) == ["1.0", "2.0"]


def test_unreadable_archives_are_skipped(repo, publish):
    publish("bread", "1.0")
    (repo.root / "junk").mkdir()
    (repo.root / "junk" / "junk_1.0.tar.gz").write_bytes(b"not a tarball")
    fresh = ArchiveRepository("local", repo.root)
    assert fresh.lookup("bread").version == "1.0"
    assert fresh.lookup("junk") is None


def test_missing_archive_repository():
    with tempfile.TemporaryDirectory() as tmpdir:
        missing = ArchiveRepository("gone", Path(tmpdir) / "nope")
        with pytest.raises(LookupFailed):
            missing.lookup("bread")
        with pytest.raises(ArchiveFetchFailed):
            missing.fetch_archive(PackageRecord(name="bread", version="1.0"))


def test_publish_rejects_bad_package_metadata(repo, tmp_path):
    package_dir = write_package(tmp_path / "pkgsrc", "bread", "1.0")
    (package_dir / "package.yaml").write_text("name: bread\n")
    with pytest.raises(PublishFailed):
        repo.publish(package_dir)

    (package_dir / "package.yaml").write_text("version: [\n")
    with pytest.raises(PublishFailed):
        repo.publish(package_dir)
    assert not (repo.root / "bread").exists()


def test_fetch_unknown_version_fails(repo, publish):
    publish("bread", "1.0")
    with pytest.raises(ArchiveFetchFailed):
        repo.fetch_archive(PackageRecord(name="bread", version="9.9"))


# --- Source repository ---


def test_source_repository_outside_git_uses_path_source():
    with tempfile.TemporaryDirectory() as tmpdir:
        write_package(Path(tmpdir), "bread", "1.0")
        source = SourceRepository("src", tmpdir)

        record = source.lookup("bread")
        assert record.version == "1.0"
        assert record.source == f"path:{(Path(tmpdir) / 'bread').resolve()}"
        assert fingerprint_archive(source.fetch_archive(record)) == record.fingerprint
        assert source.lookup("bread", "2.0") is None
        assert source.lookup("jam") is None


def test_source_repository_in_git_checkout_records_commit():
    with tempfile.TemporaryDirectory() as tmpdir:
        git_repo = Repo.init(tmpdir)
        package_dir = write_package(Path(tmpdir), "bread", "1.0")
        git_repo.index.add([str(p) for p in package_dir.rglob("*") if p.is_file()])
        commit = git_repo.index.commit("Add bread")

        record = SourceRepository("src", tmpdir).lookup("bread")
        assert record.source == f"git:{commit.hexsha}"
        assert source_reference(package_dir) == record.source


def test_source_repository_ignores_mismatched_name():
    with tempfile.TemporaryDirectory() as tmpdir:
        package_dir = write_package(Path(tmpdir), "bread", "1.0")
        (package_dir / "package.yaml").write_text("name: toast\nversion: '1.0'\n")
        assert SourceRepository("src", tmpdir).lookup("bread") is None


def test_source_repository_bad_metadata_raises():
    with tempfile.TemporaryDirectory() as tmpdir:
        package_dir = write_package(Path(tmpdir), "bread", "1.0")
        (package_dir / "package.yaml").write_text("version: [\n")
        with pytest.raises(LookupFailed):
            SourceRepository("src", tmpdir).lookup("bread")


# --- Chained repository ---


def test_chain_returns_first_hit(tmp_path):
    first = ArchiveRepository("first", tmp_path / "first")
    second = ArchiveRepository("second", tmp_path / "second")
    first.root.mkdir()
    second.root.mkdir()
    second.publish(write_package(tmp_path / "b1", "bread", "1.0"))
    first.publish(write_package(tmp_path / "b2", "bread", "2.0"))
    second.publish(write_package(tmp_path / "j", "jam", "1.0"))

    chain = ChainedRepository([first, second])
    assert chain.names == ["first", "second"]
    assert chain.lookup("bread").source == "first"
    jam = chain.lookup("jam")
    assert jam.source == "second"
    assert fingerprint_archive(chain.fetch_archive(jam)) == jam.fingerprint
    assert chain.lookup("honey") is None


def test_chain_tolerates_one_unavailable_repository(tmp_path, repo, publish):
    publish("bread", "1.0")
    chain = ChainedRepository([ArchiveRepository("offline", tmp_path / "missing"), repo])
    assert chain.lookup("bread").version == "1.0"


def test_chain_fails_when_every_repository_is_unavailable(tmp_path):
    chain = ChainedRepository([ArchiveRepository("offline", tmp_path / "missing")])
    with pytest.raises(LookupFailed):
        chain.lookup("bread")


def test_empty_chain_cannot_fetch():
    chain = ChainedRepository([])
    assert chain.lookup("bread") is None
    with pytest.raises(ArchiveFetchFailed):
        chain.fetch_archive(PackageRecord(name="bread", version="1.0"))


def test_build_repository_from_options(tmp_path):
    options = ProjectOptions(
        repositories=[
            RepositoryConfig(name="archives", kind="archive", path=str(tmp_path / "a")),
            RepositoryConfig(name="sources", kind="source", path=str(tmp_path / "s")),
        ]
    )
    chain = build_repository(options)
    assert chain.names == ["archives", "sources"]
    assert isinstance(chain.repositories[0], ArchiveRepository)
    assert isinstance(chain.repositories[1], SourceRepository)
