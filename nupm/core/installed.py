"""
Index of packages installed under the destination directory

Each installed package lives in its own directory (<id>.<version>, or <id>
when versions are excluded) holding the archive and/or its manifest.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import FrozenSet, List, Optional, Tuple

from .manifest import (MANIFEST_EXTENSION, PACKAGE_EXTENSION, InvalidManifest,
                       PackageManifest, parse_nuspec, read_package_file)
from .version import try_parse_version

logger = logging.getLogger(__name__)


@dataclass
class InstalledPackage:
    id: str
    version: str
    path: Path
    manifest: PackageManifest

    @property
    def key(self) -> Tuple[str, object]:
        return self.id.lower(), try_parse_version(self.version) or self.version


def package_key(package_id: str, version: str) -> Tuple[str, object]:
    return package_id.lower(), try_parse_version(version) or version


def enclosing_install_dir(package_file: Path) -> Optional[Path]:
    """Return the package's directory when a file sits in a folder of its own name.

    foo.1.0/foo.1.0.nupkg is treated as an installed package directory.
    """
    parent = package_file.parent
    if parent.name.lower() == package_file.stem.lower():
        return parent
    return None


def install_dir_name(package_id: str, version: str, exclude_version: bool = False) -> str:
    if exclude_version:
        return package_id
    return f"{package_id}.{version}"


class InstalledPackageIndex:
    """Scans the destination for installed packages."""

    def __init__(self, destination: Path, exclude_version: bool = False):
        self.destination = Path(destination)
        self.exclude_version = exclude_version

    def install_path(self, package_id: str, version: str) -> Path:
        return self.destination / install_dir_name(package_id, version, self.exclude_version)

    def _read(self, path: Path) -> Optional[PackageManifest]:
        try:
            if path.suffix.lower() == PACKAGE_EXTENSION:
                return read_package_file(path)
            return parse_nuspec(path.read_bytes())
        except (InvalidManifest, ValueError, OSError) as e:
            logger.debug(f"Ignoring {path}: {e}")
            return None

    def scan(self) -> List[InstalledPackage]:
        """List installed packages, one entry per id and version."""
        if not self.destination.is_dir():
            return []

        found = {}
        for path in sorted(self.destination.rglob('*')):
            suffix = path.suffix.lower()
            if suffix not in (PACKAGE_EXTENSION, MANIFEST_EXTENSION) or not path.is_file():
                continue
            manifest = self._read(path)
            if manifest is None:
                continue
            package = InstalledPackage(id=manifest.id, version=manifest.version,
                                       path=path.parent, manifest=manifest)
            found.setdefault(package.key, package)
        return list(found.values())

    def snapshot(self) -> FrozenSet[Tuple[str, object]]:
        """Keys of everything installed right now."""
        return frozenset(p.key for p in self.scan())

    def find(self, package_id: str, version: str) -> Optional[InstalledPackage]:
        wanted = package_key(package_id, version)
        for package in self.scan():
            if package.key == wanted:
                return package
        return None

    def is_installed(self, package_id: str, version: str) -> bool:
        return self.find(package_id, version) is not None

    def packages(self, name: Optional[str] = None) -> List[InstalledPackage]:
        """Installed packages, optionally filtered by name.

        An exact id match wins; otherwise the name is a case-insensitive
        substring filter.
        """
        packages = self.scan()
        if not name:
            return packages
        wanted = name.lower()
        exact = [p for p in packages if p.id.lower() == wanted]
        if exact:
            return exact
        return [p for p in packages if wanted in p.id.lower()]
