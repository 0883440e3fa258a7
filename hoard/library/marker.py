"""Install markers — per-package proof that hoard installed a package.

The applier writes a marker into every package directory it installs,
recording the content fingerprint at install time. The inspector treats a
package without a marker, or whose content no longer matches the marker,
as dirty.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import yaml

from hoard import __version__
from hoard.library.content import INSTALL_MARKER


@dataclass
class InstallMarker:
    """What hoard recorded when it installed a package."""

    fingerprint: str
    source: str = ""
    installer: str = f"hoard {__version__}"
    installed_at: str = ""  # ISO 8601


def write_marker(package_dir: str | Path, fingerprint: str, source: str = "") -> InstallMarker:
    """Write the install marker into *package_dir*."""
    marker = InstallMarker(
        fingerprint=fingerprint,
        source=source,
        installed_at=datetime.now(timezone.utc).isoformat(),
    )
    data = {
        "installer": marker.installer,
        "fingerprint": marker.fingerprint,
        "source": marker.source,
        "installed_at": marker.installed_at,
    }
    with open(Path(package_dir) / INSTALL_MARKER, "w") as f:
        yaml.safe_dump(data, f, sort_keys=False)
    return marker


def read_marker(package_dir: str | Path) -> InstallMarker | None:
    """Read the install marker, or None if absent or unreadable."""
    path = Path(package_dir) / INSTALL_MARKER
    if not path.is_file():
        return None
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError):
        return None
    if not isinstance(data, dict) or not data.get("fingerprint"):
        return None
    return InstallMarker(
        fingerprint=str(data["fingerprint"]),
        source=str(data.get("source", "")),
        installer=str(data.get("installer", "")),
        installed_at=str(data.get("installed_at", "")),
    )
