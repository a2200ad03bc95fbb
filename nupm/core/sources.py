"""
Package sources and source selection

A source is a named location holding packages: a remote feed URL, a local
directory or a file: URI. Registered sources come from the configuration;
ad-hoc sources are built from whatever the user typed and are never
persisted.
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, List, Optional, Sequence
from urllib.parse import urlparse, unquote

from . import diagnostics as diag
from .diagnostics import Diagnostics
from .errors import SchemeNotSupported, SourceNotFound

logger = logging.getLogger(__name__)

DEFAULT_SUPPORTED_SCHEMES = ('http', 'https', 'file')


@dataclass(frozen=True)
class PackageSource:
    """One package repository.

    Sources are values: re-registering a name replaces the source rather
    than mutating it.
    """
    name: str
    location: str
    trusted: bool = False
    registered: bool = False
    validated: bool = False

    @property
    def scheme(self) -> str:
        parsed = parse_uri(self.location)
        return parsed.scheme.lower() if parsed else ''

    @property
    def local_path(self) -> Optional[Path]:
        """Filesystem path for file: URIs and plain paths, None for remote feeds."""
        return location_to_path(self.location)

    @property
    def is_file(self) -> bool:
        path = self.local_path
        return path is not None and path.is_file()

    @property
    def is_directory(self) -> bool:
        path = self.local_path
        return path is not None and path.is_dir()

    @property
    def normalized_location(self) -> str:
        return normalize_location(self.location)

    def matches(self, token: str) -> bool:
        """Match a user token against the name or the location."""
        return (self.name.lower() == token.lower()
                or self.normalized_location == normalize_location(token))

    def __str__(self):
        if self.name == self.location:
            return self.location
        return f"{self.name} ({self.location})"


def normalize_location(location: str) -> str:
    """Lower-case a location and strip trailing path separators."""
    return location.strip().rstrip('/\\').lower()


def parse_uri(token: str):
    """Parse a token as an absolute URI.

    Returns the urlparse result, or None when the token is not an absolute
    URI. Single-letter schemes are Windows drive letters, not URIs.
    """
    try:
        parsed = urlparse(token.strip())
    except ValueError:
        return None
    if len(parsed.scheme) <= 1:
        return None
    if not parsed.netloc and not parsed.path:
        return None
    return parsed


def location_to_path(location: str) -> Optional[Path]:
    parsed = parse_uri(location)
    if parsed is None:
        return Path(location).expanduser() if location else None
    if parsed.scheme.lower() == 'file':
        return Path(unquote(parsed.path))
    return None


def default_validator(location: str) -> bool:
    """Check that a location is reachable.

    Local locations must exist; remote feeds must answer their service
    index.
    """
    path = location_to_path(location)
    if path is not None:
        return path.exists()

    from .repository import open_repository
    try:
        return open_repository(location).validate()
    except Exception as e:
        logger.debug(f"Validation of {location} failed: {e}")
        return False


class SourceSelector:
    """Resolves user-requested source tokens into PackageSource values.

    Problems are recorded in the shared Diagnostics rather than raised:
    an unusable token simply contributes no source.
    """

    def __init__(self, registered: Sequence[PackageSource],
                 supported_schemes: Sequence[str] = DEFAULT_SUPPORTED_SCHEMES,
                 diagnostics: Optional[Diagnostics] = None,
                 skip_validate: bool = False,
                 validator: Optional[Callable[[str], bool]] = None,
                 on_change: Optional[Callable[[List[PackageSource]], None]] = None):
        self._registered: List[PackageSource] = list(registered)
        self.supported_schemes = tuple(s.lower() for s in supported_schemes)
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self.skip_validate = skip_validate
        self.validator = validator or default_validator
        self.on_change = on_change

    @property
    def registered(self) -> List[PackageSource]:
        return list(self._registered)

    def is_supported_scheme(self, scheme: str) -> bool:
        return scheme.lower() in self.supported_schemes

    def _unsupported(self, location: str, scheme: str):
        problem = SchemeNotSupported(location, scheme)
        self.diagnostics.error(problem.code, str(problem), location)

    def _not_found(self, token: str, reason: str = "", error: bool = False):
        problem = SourceNotFound(token, reason)
        if error:
            self.diagnostics.error(problem.code, str(problem), token)
        else:
            self.diagnostics.warning(problem.code, str(problem), token)

    def find_registered_source(self, name: str) -> Optional[PackageSource]:
        """Find a registered source by name (case-insensitive)."""
        for source in self._registered:
            if source.name.lower() == name.lower():
                return source
        return None

    def _match_registered(self, token: str) -> List[PackageSource]:
        by_name = [s for s in self._registered if s.name.lower() == token.lower()]
        if by_name:
            return by_name
        wanted = normalize_location(token)
        return [s for s in self._registered if s.normalized_location == wanted]

    def validate_source_location(self, location: str) -> bool:
        """Check that a location is well-formed, supported and reachable."""
        parsed = parse_uri(location)
        if parsed is not None and not self.is_supported_scheme(parsed.scheme):
            return False
        return self.validator(location)

    def _uri_source(self, token: str) -> Optional[PackageSource]:
        """Build an ad-hoc source from a supported URI, recording problems."""
        source = PackageSource(name=token, location=token)
        if self.skip_validate:
            return source
        if self.validator(token):
            return replace(source, validated=True)
        self.diagnostics.warning(diag.SOURCE_LOCATION_NOT_VALID,
                                 f"Source location is not valid: {token}", token)
        self._not_found(token, "location did not validate")
        return None

    def selected_sources(self, requested: Optional[Sequence[str]] = None) -> List[PackageSource]:
        """Resolve requested names or locations into sources.

        Args:
            requested: Source names, URIs or directories. Empty means every
                registered source.

        Returns:
            Sources in request order; a token may contribute nothing
        """
        if not requested:
            return list(self._registered)

        selected: List[PackageSource] = []
        for token in requested:
            token = token.strip()
            if not token:
                continue

            matches = self._match_registered(token)
            if matches:
                selected.extend(matches)
                continue

            parsed = parse_uri(token)
            if parsed is not None:
                if not self.is_supported_scheme(parsed.scheme):
                    self._unsupported(token, parsed.scheme)
                    continue
                source = self._uri_source(token)
                if source is not None:
                    selected.append(source)
                continue

            path = Path(token).expanduser()
            if path.is_dir():
                selected.append(PackageSource(name=token, location=str(path),
                                              trusted=True, validated=True))
                continue

            self._not_found(token)

        return selected

    def resolve_package_source(self, name_or_location: str) -> Optional[PackageSource]:
        """Resolve a single name or location into a source.

        Unlike selected_sources, an existing package file is accepted too.
        """
        token = name_or_location.strip()
        matches = self._match_registered(token)
        if matches:
            return matches[0]

        parsed = parse_uri(token)
        path = location_to_path(token)
        if path is not None and path.exists() and (parsed is None or parsed.scheme.lower() == 'file'):
            return PackageSource(name=token, location=token, trusted=True, validated=True)

        if parsed is not None:
            if not self.is_supported_scheme(parsed.scheme):
                self._unsupported(token, parsed.scheme)
                return None
            return self._uri_source(token)

        self._not_found(token, error=True)
        return None

    def add_source(self, name: str, location: str, trusted: bool = False,
                   update: bool = False) -> Optional[PackageSource]:
        """Register (or re-register) a source.

        Args:
            name: Source name
            location: URI or directory
            trusted: Whether packages from it are trusted
            update: Replace an existing source with the same name

        Returns:
            The registered source, or None if registration was refused
        """
        if not name:
            self.diagnostics.error(diag.MISSING_PARAMETER, "A source name is required")
            return None
        if not location:
            self.diagnostics.error(diag.MISSING_PARAMETER, "A source location is required", name)
            return None

        existing = self.find_registered_source(name)
        if existing is not None and not update:
            self.diagnostics.error(diag.SOURCE_EXISTS,
                                   f"Package source '{name}' already exists", name)
            return None
        if existing is None and update:
            self._not_found(name, "cannot update an unregistered source", error=True)
            return None

        parsed = parse_uri(location)
        if parsed is not None and not self.is_supported_scheme(parsed.scheme):
            self._unsupported(location, parsed.scheme)
            return None

        validated = False
        if not self.skip_validate:
            if not self.validate_source_location(location):
                self.diagnostics.error(diag.SOURCE_LOCATION_NOT_VALID,
                                       f"Source location is not valid: {location}", name)
                return None
            validated = True

        source = PackageSource(name=name, location=location, trusted=trusted,
                               registered=True, validated=validated)
        if existing is not None:
            index = self._registered.index(existing)
            self._registered[index] = source
            logger.info(f"Updated package source {source}")
        else:
            self._registered.append(source)
            logger.info(f"Added package source {source}")

        self._changed()
        return source

    def remove_source(self, name: str) -> Optional[PackageSource]:
        """Unregister a source by name or location."""
        matches = self._match_registered(name)
        if not matches:
            self._not_found(name)
            return None
        removed = matches[0]
        self._registered.remove(removed)
        logger.info(f"Removed package source {removed}")
        self._changed()
        return removed

    def _changed(self):
        if self.on_change is not None:
            self.on_change([s for s in self._registered if s.registered])
