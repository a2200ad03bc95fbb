"""
Package manifest parsing

A package archive (.nupkg) is a zip file carrying a <id>.nuspec XML manifest
at its root:

    <?xml version="1.0" encoding="utf-8"?>
    <package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">
      <metadata>
        <id>Foo</id>
        <version>1.2.0</version>
        <authors>someone</authors>
        <description>Does foo</description>
        <tags>foo bar</tags>
        <dependencies>
          <group targetFramework="net6.0">
            <dependency id="Bar" version="[1.0,2.0)" />
          </group>
        </dependencies>
      </metadata>
    </package>

Remote feeds describe the same metadata as JSON catalog entries; both end up
as a PackageManifest.
"""

import logging
import zipfile
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from .version import SemanticVersion, VersionSpec, parse_version

logger = logging.getLogger(__name__)

PACKAGE_EXTENSION = '.nupkg'
MANIFEST_EXTENSION = '.nuspec'


class InvalidManifest(ValueError):
    """A package archive or manifest could not be parsed."""


@dataclass
class Dependency:
    """One dependency entry: an id and an optional version range."""
    id: str
    version_spec: str = ''

    @property
    def spec(self) -> VersionSpec:
        """Parsed range (raises InvalidVersion on a malformed range)."""
        return VersionSpec.parse(self.version_spec)

    def __str__(self):
        if self.version_spec:
            return f"{self.id} {self.version_spec}"
        return self.id


@dataclass
class DependencyGroup:
    """Dependencies that apply to one target framework ('' for any)."""
    target_framework: str = ''
    dependencies: List[Dependency] = field(default_factory=list)


@dataclass
class PackageManifest:
    """Metadata describing one version of one package."""
    id: str
    version: str
    title: str = ''
    summary: str = ''
    description: str = ''
    authors: List[str] = field(default_factory=list)
    owners: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    project_url: str = ''
    license_url: str = ''
    icon_url: str = ''
    listed: bool = True
    dependency_groups: List[DependencyGroup] = field(default_factory=list)
    # Where the archive can be fetched from (remote feeds only)
    content_url: str = ''

    @property
    def semver(self) -> SemanticVersion:
        return parse_version(self.version)

    @property
    def full_name(self) -> str:
        return f"{self.id}.{self.version}"

    @property
    def is_prerelease(self) -> bool:
        return self.semver.is_prerelease

    @property
    def dependencies(self) -> List[Dependency]:
        """All dependency entries, across groups, in declaration order."""
        return [dep for group in self.dependency_groups for dep in group.dependencies]


def _local_name(tag: str) -> str:
    """Strip the XML namespace: nuspec files use several schema versions."""
    return tag.rsplit('}', 1)[-1]


def _split_list(value: Union[str, List[str], None], separators: str = ', ') -> List[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    items = [value]
    for sep in separators:
        items = [part for item in items for part in item.split(sep)]
    return [item.strip() for item in items if item.strip()]


def _parse_dependency(elem: ET.Element) -> Optional[Dependency]:
    dep_id = (elem.get('id') or '').strip()
    if not dep_id:
        return None
    return Dependency(id=dep_id, version_spec=(elem.get('version') or '').strip())


def parse_nuspec(data: Union[bytes, str]) -> PackageManifest:
    """Parse a .nuspec document.

    Args:
        data: XML content

    Returns:
        PackageManifest

    Raises:
        InvalidManifest: If the XML is malformed or lacks id/version
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise InvalidManifest(f"Malformed manifest: {e}") from e

    metadata = None
    for child in root:
        if _local_name(child.tag) == 'metadata':
            metadata = child
            break
    if metadata is None:
        raise InvalidManifest("Manifest has no <metadata> element")

    values: Dict[str, str] = {}
    groups: List[DependencyGroup] = []

    for elem in metadata:
        name = _local_name(elem.tag)
        if name == 'dependencies':
            loose = DependencyGroup()
            for child in elem:
                child_name = _local_name(child.tag)
                if child_name == 'group':
                    group = DependencyGroup(target_framework=child.get('targetFramework', ''))
                    for dep_elem in child:
                        if _local_name(dep_elem.tag) == 'dependency':
                            dep = _parse_dependency(dep_elem)
                            if dep:
                                group.dependencies.append(dep)
                    groups.append(group)
                elif child_name == 'dependency':
                    dep = _parse_dependency(child)
                    if dep:
                        loose.dependencies.append(dep)
            if loose.dependencies:
                groups.insert(0, loose)
        else:
            values[name] = (elem.text or '').strip()

    package_id = values.get('id', '')
    version = values.get('version', '')
    if not package_id or not version:
        raise InvalidManifest("Manifest is missing id or version")
    # Reject versions we cannot order
    try:
        parse_version(version)
    except ValueError as e:
        raise InvalidManifest(str(e)) from e

    return PackageManifest(
        id=package_id,
        version=version,
        title=values.get('title', ''),
        summary=values.get('summary', ''),
        description=values.get('description', ''),
        authors=_split_list(values.get('authors'), ','),
        owners=_split_list(values.get('owners'), ','),
        tags=_split_list(values.get('tags'), ' ,'),
        project_url=values.get('projectUrl', ''),
        license_url=values.get('licenseUrl', ''),
        icon_url=values.get('iconUrl', ''),
        listed=values.get('listed', 'true').lower() != 'false',
        dependency_groups=groups,
    )


def is_package_file(path: Union[str, Path]) -> bool:
    """Check whether a path looks like a package archive."""
    path = Path(path)
    return (path.suffix.lower() == PACKAGE_EXTENSION
            and path.is_file()
            and zipfile.is_zipfile(path))


def read_package_file(path: Union[str, Path]) -> PackageManifest:
    """Read the manifest embedded in a package archive.

    Raises:
        InvalidManifest: If the file is not a zip or has no root manifest
    """
    path = Path(path)
    try:
        with zipfile.ZipFile(path) as archive:
            names = [n for n in archive.namelist()
                     if '/' not in n and n.lower().endswith(MANIFEST_EXTENSION)]
            if not names:
                raise InvalidManifest(f"No manifest in {path.name}")
            return parse_nuspec(archive.read(names[0]))
    except (zipfile.BadZipFile, OSError) as e:
        raise InvalidManifest(f"Cannot read package {path}: {e}") from e


def from_catalog_entry(entry: dict, content_url: str = '') -> PackageManifest:
    """Build a manifest from a feed registration catalog entry.

    Raises:
        InvalidManifest: If the entry lacks id or version
    """
    package_id = entry.get('id') or ''
    version = entry.get('version') or ''
    if not package_id or not version:
        raise InvalidManifest("Catalog entry is missing id or version")

    groups = []
    for group in entry.get('dependencyGroups') or []:
        deps = []
        for dep in group.get('dependencies') or []:
            if dep.get('id'):
                deps.append(Dependency(id=dep['id'], version_spec=dep.get('range') or ''))
        groups.append(DependencyGroup(target_framework=group.get('targetFramework') or '',
                                      dependencies=deps))

    return PackageManifest(
        id=package_id,
        version=version,
        title=entry.get('title') or '',
        summary=entry.get('summary') or '',
        description=entry.get('description') or '',
        authors=_split_list(entry.get('authors'), ','),
        owners=_split_list(entry.get('owners'), ','),
        tags=_split_list(entry.get('tags'), ' ,'),
        project_url=entry.get('projectUrl') or '',
        license_url=entry.get('licenseUrl') or '',
        icon_url=entry.get('iconUrl') or '',
        listed=entry.get('listed', True) is not False,
        dependency_groups=groups,
        content_url=content_url or entry.get('packageContent') or '',
    )
