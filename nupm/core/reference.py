"""
Package references

A PackageReference is a located package: id, version and the source it was
found in. Its opaque form ("fast path") is a self-contained string

    $<base64 location>\\<base64 id>\\<base64 version>

that identifies the package again without a search.
"""

import base64
import binascii
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .manifest import DependencyGroup, PackageManifest
from .sources import PackageSource
from .version import SemanticVersion, parse_version, try_parse_version

logger = logging.getLogger(__name__)

SIGIL = '$'
DELIMITER = '\\'


@dataclass(frozen=True)
class DecodedReference:
    location: str
    id: str
    version: str


def _b64(text: str) -> str:
    return base64.b64encode(text.encode('utf-8')).decode('ascii')


def _unb64(text: str) -> str:
    return base64.b64decode(text.encode('ascii'), validate=True).decode('utf-8')


def encode(source: Union[PackageSource, str], package_id: str, version: str) -> str:
    """Encode a source location, id and version into an opaque reference."""
    location = source.location if isinstance(source, PackageSource) else source
    return SIGIL + DELIMITER.join([_b64(location), _b64(package_id), _b64(str(version))])


def decode(reference: str) -> Optional[DecodedReference]:
    """Decode an opaque reference.

    Returns:
        DecodedReference, or None if the string is not a well-formed reference
    """
    if not isinstance(reference, str) or not reference.startswith(SIGIL):
        return None
    fields = reference[len(SIGIL):].split(DELIMITER)
    if len(fields) != 3:
        return None
    try:
        location, package_id, version = (_unb64(f) for f in fields)
    except (binascii.Error, UnicodeError, ValueError):
        return None
    return DecodedReference(location=location, id=package_id, version=version)


def is_reference(text: str) -> bool:
    return isinstance(text, str) and text.startswith(SIGIL)


@dataclass
class PackageReference:
    """A package located in a source."""
    id: str
    version: str
    source: PackageSource
    manifest: Optional[PackageManifest] = field(default=None, repr=False, compare=False)
    is_local_file: bool = False
    install_path: Optional[Path] = None

    @classmethod
    def from_manifest(cls, manifest: PackageManifest, source: PackageSource,
                      **kwargs) -> 'PackageReference':
        return cls(id=manifest.id, version=manifest.version, source=source,
                   manifest=manifest, **kwargs)

    @property
    def reference(self) -> str:
        # Derived on access so it always decodes back to this package
        return encode(self.source, self.id, self.version)

    @property
    def semver(self) -> SemanticVersion:
        return parse_version(self.version)

    @property
    def key(self) -> Tuple[str, object]:
        """Identity used for deduplication: id ignoring case, version by value."""
        return self.id.lower(), try_parse_version(self.version) or self.version

    @property
    def full_name(self) -> str:
        return f"{self.id}.{self.version}"

    @property
    def canonical_id(self) -> str:
        return f"nupm:{self.id}/{self.version}#{self.source.location}"

    @property
    def dependency_groups(self) -> List[DependencyGroup]:
        if self.manifest is None:
            return []
        return list(self.manifest.dependency_groups)

    @property
    def summary(self) -> str:
        if self.manifest is None:
            return ''
        return self.manifest.summary or self.manifest.description

    @property
    def content_url(self) -> str:
        return self.manifest.content_url if self.manifest else ''

    def __str__(self):
        return f"{self.id} {self.version}"
