"""Shared fixtures: package archives on disk and in-memory repositories."""

import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from nupm.core.manifest import Dependency, DependencyGroup, PackageManifest
from nupm.core.repository import PackageRepository, RepositoryError

NUSPEC_TEMPLATE = """<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">
  <metadata>
    <id>{id}</id>
    <version>{version}</version>
    <authors>nupm tests</authors>
    <description>{description}</description>
    <tags>{tags}</tags>
    {dependencies}
  </metadata>
</package>
"""


def nuspec_xml(package_id: str, version: str, dependencies: Optional[Dict[str, str]] = None,
               description: str = "", tags: str = "") -> str:
    deps = ""
    if dependencies:
        entries = "".join(
            f'<dependency id="{dep_id}" version="{spec}" />' if spec else f'<dependency id="{dep_id}" />'
            for dep_id, spec in dependencies.items()
        )
        deps = f'<dependencies><group targetFramework="net6.0">{entries}</group></dependencies>'
    return NUSPEC_TEMPLATE.format(id=package_id, version=version,
                                  description=description or f"{package_id} package",
                                  tags=tags, dependencies=deps)


def write_nupkg(directory: Path, package_id: str, version: str,
                dependencies: Optional[Dict[str, str]] = None,
                description: str = "", tags: str = "",
                filename: Optional[str] = None) -> Path:
    """Write a minimal package archive and return its path."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / (filename or f"{package_id}.{version}.nupkg")
    with zipfile.ZipFile(path, 'w') as archive:
        archive.writestr(f"{package_id}.nuspec",
                         nuspec_xml(package_id, version, dependencies, description, tags))
        archive.writestr("lib/net6.0/readme.txt", f"{package_id} {version}")
    return path


def manifest(package_id: str, version: str, dependencies: Optional[Dict[str, str]] = None,
             listed: bool = True, description: str = "", tags: Optional[List[str]] = None
             ) -> PackageManifest:
    groups = []
    if dependencies:
        groups = [DependencyGroup('', [Dependency(d, s) for d, s in dependencies.items()])]
    return PackageManifest(id=package_id, version=version, listed=listed,
                           description=description or f"{package_id} package",
                           tags=list(tags or []), dependency_groups=groups)


class FakeRepository(PackageRepository):
    """In-memory repository recording the queries it receives."""

    def __init__(self, location: str, manifests: List[PackageManifest], fail: bool = False):
        super().__init__(location)
        self.manifests = list(manifests)
        self.fail = fail
        self.queries: List[str] = []

    def validate(self) -> bool:
        return not self.fail

    def find_by_id(self, package_id: str) -> List[PackageManifest]:
        self.queries.append(package_id)
        if self.fail:
            raise RepositoryError(self.location, "connection refused")
        return [m for m in self.manifests if m.id.lower() == package_id.lower()]

    def search(self, text: str, allow_prerelease: bool = False):
        self.queries.append(text)
        if self.fail:
            raise RepositoryError(self.location, "connection refused")
        # Superset on purpose: the locator filters client-side
        return [m for m in self.manifests if allow_prerelease or not m.is_prerelease]


@pytest.fixture
def repositories():
    """Location -> FakeRepository map, plus a factory reading from it."""
    repos: Dict[str, FakeRepository] = {}

    def factory(location: str) -> PackageRepository:
        if location not in repos:
            raise RepositoryError(location, "unknown test location")
        return repos[location]

    factory.repos = repos
    return factory
