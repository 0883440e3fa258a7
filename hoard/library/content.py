"""Package content — archives, safe extraction, and content fingerprints.

A package archive is a gzipped tarball whose members are the package's files,
either at the archive root or under one top-level directory. The content
fingerprint covers relative paths and file bytes only, so an archive and the
tree extracted from it hash identically.
"""

from __future__ import annotations

import hashlib
import io
import os
import tarfile
from pathlib import Path, PurePosixPath

from hoard.models.package import PACKAGE_METADATA_FILE

INSTALL_MARKER = ".hoard-install.yaml"

_CHUNK = 1024 * 1024


def _digest_entries(entries: list[tuple[str, str]]) -> str:
    h = hashlib.sha256()
    for rel_path, digest in sorted(entries):
        h.update(rel_path.encode("utf-8"))
        h.update(b"\0")
        h.update(digest.encode("ascii"))
        h.update(b"\n")
    return h.hexdigest()


def _sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def fingerprint_tree(root: str | Path) -> str:
    """Content fingerprint of an installed package directory.

    The install marker is not part of the package and is skipped.
    """
    root = Path(root)
    entries: list[tuple[str, str]] = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirnames.sort()
        base = Path(dirpath)
        for name in sorted(filenames):
            path = base / name
            rel = path.relative_to(root).as_posix()
            if rel == INSTALL_MARKER:
                continue
            if path.is_symlink():
                entries.append((rel, "link:" + os.readlink(path)))
            elif path.is_file():
                entries.append((rel, _sha256_file(path)))
        for name in dirnames:
            path = base / name
            if path.is_symlink():
                entries.append((path.relative_to(root).as_posix(), "link:" + os.readlink(path)))
    return _digest_entries(entries)


def fingerprint_archive(data: bytes) -> str:
    """Content fingerprint of a package archive, matching ``fingerprint_tree``."""
    entries: list[tuple[str, str]] = []
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tar:
        members = tar.getmembers()
        prefix = _common_prefix(members)
        for member in members:
            rel = _relative_name(member.name, prefix)
            if not rel or rel == INSTALL_MARKER:
                continue
            if member.issym():
                entries.append((rel, "link:" + member.linkname))
            elif member.isfile():
                f = tar.extractfile(member)
                entries.append((rel, hashlib.sha256(f.read()).hexdigest()))
    return _digest_entries(entries)


def read_archive_metadata(data: bytes) -> bytes:
    """Return the raw ``package.yaml`` bytes from an archive.

    Raises:
        KeyError: If the archive carries no package metadata file.
        tarfile.TarError: If the archive cannot be read.
    """
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tar:
        members = tar.getmembers()
        prefix = _common_prefix(members)
        for member in members:
            if member.isfile() and _relative_name(member.name, prefix) == PACKAGE_METADATA_FILE:
                return tar.extractfile(member).read()
    raise KeyError(PACKAGE_METADATA_FILE)


def extract_archive(data: bytes, dest: str | Path) -> None:
    """Extract a package archive into *dest*, which must not exist yet.

    Only regular files, directories and symlinks that stay inside *dest* are
    written.

    Raises:
        ValueError: If a member would escape *dest* or has an unsupported type.
        tarfile.TarError: If the archive is unreadable.
    """
    dest = Path(dest)
    dest.mkdir(parents=True)
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tar:
        members = tar.getmembers()
        prefix = _common_prefix(members)
        for member in members:
            rel = _relative_name(member.name, prefix)
            if not rel:
                continue
            _check_safe(rel, member)
            target = dest / rel
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
            elif member.issym():
                target.parent.mkdir(parents=True, exist_ok=True)
                os.symlink(member.linkname, target)
            elif member.isfile():
                target.parent.mkdir(parents=True, exist_ok=True)
                with tar.extractfile(member) as src, target.open("wb") as out:
                    for chunk in iter(lambda: src.read(_CHUNK), b""):
                        out.write(chunk)
                if member.mode & 0o111:
                    target.chmod(0o755)
            else:
                raise ValueError(f"Unsupported archive member type: {member.name}")


def pack_directory(root: str | Path) -> bytes:
    """Build a package archive from a directory, members at the archive root."""
    root = Path(root)
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for path in sorted(root.rglob("*")):
            rel = path.relative_to(root).as_posix()
            if rel == INSTALL_MARKER or rel.split("/")[0] == ".git":
                continue
            tar.add(path, arcname=rel, recursive=False)
    return buf.getvalue()


def _common_prefix(members: list[tarfile.TarInfo]) -> str:
    """Single top-level directory shared by every member, or empty."""
    tops = set()
    for member in members:
        parts = PurePosixPath(member.name).parts
        if parts and parts[0] == ".":
            parts = parts[1:]
        if not parts:
            continue
        if len(parts) == 1 and not member.isdir():
            return ""
        tops.add(parts[0])
    if len(tops) != 1:
        return ""
    return tops.pop()


def _relative_name(name: str, prefix: str) -> str:
    parts = PurePosixPath(name).parts
    if parts and parts[0] == ".":
        parts = parts[1:]
    if prefix and parts and parts[0] == prefix:
        parts = parts[1:]
    return "/".join(parts)


def _check_safe(rel: str, member: tarfile.TarInfo) -> None:
    path = PurePosixPath(rel)
    if path.is_absolute() or ".." in path.parts:
        raise ValueError(f"Archive member escapes package directory: {member.name}")
    if member.issym():
        link = PurePosixPath(member.linkname)
        resolved = (path.parent / link).parts
        if link.is_absolute() or resolved.count("..") > len(path.parent.parts):
            raise ValueError(f"Archive symlink escapes package directory: {member.name}")
