"""
Package lookup across sources

Every query fans out to the selected sources on a thread pool. Results are
merged through a queue as each source produces them, so a slow or large
source never holds back the others, and a failing source only costs its own
results.
"""

import fnmatch
import logging
import queue
import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from . import diagnostics as diag
from . import reference as codec
from .diagnostics import Diagnostics
from .installed import enclosing_install_dir
from .manifest import Dependency, InvalidManifest, PackageManifest, is_package_file, read_package_file
from .reference import PackageReference
from .repository import PackageRepository, RepositoryError, open_repository
from .sources import PackageSource, SourceSelector
from .version import InvalidVersion, VersionSpec, prefer_stable, try_parse_version

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4

WILDCARD_CHARS = re.compile(r'[*?\[]')
BRACKET_CLASS = re.compile(r'\[[^\]]*\]')


@dataclass
class LocatorOptions:
    all_versions: bool = False
    allow_prerelease: bool = False
    # Free text that must appear in the id or description
    contains: str = ''
    # At least one of these tags must be carried
    tags: List[str] = field(default_factory=list)


def is_wildcard(text: str) -> bool:
    return bool(text) and WILDCARD_CHARS.search(text) is not None


def normalize_wildcard(pattern: str) -> str:
    """Reduce a wildcard pattern to '*' only, which every source understands."""
    normalized = BRACKET_CLASS.sub('*', pattern).replace('?', '*')
    return re.sub(r'\*+', '*', normalized)


def select_versions(manifests: Iterable[PackageManifest], spec: VersionSpec,
                    latest_only: bool, allow_prerelease: bool) -> List[PackageManifest]:
    """Apply the version policy to the manifests of one id from one source.

    Prerelease versions only count when allowed, or when the source has no
    stable version at all. latest_only keeps just the newest match.

    Returns:
        Matching manifests, newest first
    """
    parsed = []
    for manifest in manifests:
        version = try_parse_version(manifest.version)
        if version is None:
            logger.debug(f"Ignoring {manifest.id} with unparsable version {manifest.version}")
            continue
        parsed.append((version, manifest))

    parsed = prefer_stable(parsed, allow_prerelease, key=lambda item: item[0])

    matching = [(v, m) for v, m in parsed if spec.satisfies(v)]
    matching.sort(key=lambda item: item[0], reverse=True)
    if latest_only:
        matching = matching[:1]
    return [m for _, m in matching]


class PackageLocator:
    """Finds packages in a set of sources."""

    def __init__(self, sources: Sequence[PackageSource],
                 selector: Optional[SourceSelector] = None,
                 options: Optional[LocatorOptions] = None,
                 diagnostics: Optional[Diagnostics] = None,
                 repository_factory: Callable[[str], PackageRepository] = open_repository,
                 max_workers: int = DEFAULT_MAX_WORKERS):
        self.sources = list(sources)
        self.selector = selector
        self.options = options or LocatorOptions()
        self.diagnostics = diagnostics if diagnostics is not None else (
            selector.diagnostics if selector is not None else Diagnostics())
        self.repository_factory = repository_factory
        self.max_workers = max(1, max_workers)
        self._repositories: Dict[str, PackageRepository] = {}
        self._lock = threading.Lock()

    def repository(self, source: PackageSource) -> PackageRepository:
        """Connection handle for a source, opened on first use."""
        with self._lock:
            repo = self._repositories.get(source.location)
            if repo is None:
                logger.debug(f"Opening repository {source.location}")
                repo = self.repository_factory(source.location)
                self._repositories[source.location] = repo
            return repo

    def _fan_out(self, query: Callable[[PackageRepository], Iterable[PackageManifest]],
                 sources: Optional[Sequence[PackageSource]] = None
                 ) -> Iterator[Tuple[PackageSource, PackageManifest]]:
        """Run a query against every source concurrently.

        Yields (source, manifest) pairs in arrival order.
        """
        sources = list(self.sources if sources is None else sources)
        if not sources:
            return

        results: queue.Queue = queue.Queue()
        finished = object()

        def worker(source: PackageSource):
            try:
                for manifest in query(self.repository(source)):
                    results.put((source, manifest))
            except Exception as e:
                # One broken source must not take the whole query down
                logger.debug(f"Query on {source.location} failed", exc_info=True)
                self.diagnostics.warning(diag.SOURCE_QUERY_FAILED,
                                         f"Query failed on {source}: {e}", source.location)
            finally:
                results.put(finished)

        executor = ThreadPoolExecutor(max_workers=min(len(sources), self.max_workers))
        try:
            for source in sources:
                executor.submit(worker, source)
            remaining = len(sources)
            while remaining:
                item = results.get()
                if item is finished:
                    remaining -= 1
                    continue
                yield item
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _spec(self, required: Optional[str], minimum: Optional[str],
              maximum: Optional[str]) -> Optional[VersionSpec]:
        try:
            return VersionSpec.from_bounds(required, minimum, maximum)
        except InvalidVersion as e:
            self.diagnostics.error(diag.INVALID_VERSION, str(e))
            return None

    def find_by_id(self, name: str, required: Optional[str] = None,
                   minimum: Optional[str] = None, maximum: Optional[str] = None,
                   allow_unlisted: bool = False) -> List[PackageReference]:
        """Find a package by exact id.

        Without bounds (and all_versions off) only the latest version from
        each source is returned.
        """
        spec = self._spec(required, minimum, maximum)
        if spec is None:
            return []
        latest_only = spec.is_unbounded and not self.options.all_versions
        allow_prerelease = self.options.allow_prerelease

        def query(repo: PackageRepository) -> List[PackageManifest]:
            manifests = [m for m in repo.find_by_id(name) if allow_unlisted or m.listed]
            return select_versions(manifests, spec, latest_only, allow_prerelease)

        return [PackageReference.from_manifest(m, source) for source, m in self._fan_out(query)]

    def find_by_version_spec(self, name: str, spec: Union[VersionSpec, str],
                             allow_unlisted: bool = False) -> List[PackageReference]:
        """Every version matching a range, newest first.

        Raises:
            InvalidVersion: If spec is a malformed range string
        """
        if not isinstance(spec, VersionSpec):
            spec = VersionSpec.parse(spec)
        allow_prerelease = self.options.allow_prerelease

        def query(repo: PackageRepository) -> List[PackageManifest]:
            manifests = repo.find_by_version_spec(name, spec, allow_prerelease=True,
                                                  allow_unlisted=allow_unlisted)
            return select_versions(manifests, spec, False, allow_prerelease)

        found = [PackageReference.from_manifest(m, source) for source, m in self._fan_out(query)]
        found.sort(key=lambda ref: ref.semver, reverse=True)
        return found

    def _matches_search(self, manifest: PackageManifest, text: str,
                        pattern: Optional[str]) -> bool:
        package_id = manifest.id.lower()
        if pattern is not None:
            if not fnmatch.fnmatchcase(package_id, pattern.lower()):
                return False
        elif text and text.lower() not in package_id:
            return False

        contains = self.options.contains.lower()
        if contains and contains not in package_id and contains not in manifest.description.lower():
            return False

        if self.options.tags:
            carried = {t.lower() for t in manifest.tags}
            if not any(t.lower() in carried for t in self.options.tags):
                return False
        return True

    def search(self, text: str = '', required: Optional[str] = None,
               minimum: Optional[str] = None,
               maximum: Optional[str] = None) -> List[PackageReference]:
        """Free-text search.

        Wildcards (*, ?, [...]) are reduced to '*' for the sources and then
        applied in full to the returned ids.
        """
        return list(self.iter_search(text, required, minimum, maximum))

    def iter_search(self, text: str = '', required: Optional[str] = None,
                    minimum: Optional[str] = None,
                    maximum: Optional[str] = None) -> Iterator[PackageReference]:
        """Streaming variant of search: references arrive as sources answer."""
        spec = self._spec(required, minimum, maximum)
        if spec is None:
            return
        text = (text or '').strip()
        pattern = text if is_wildcard(text) else None
        # Contains is the criteria sent to sources; the name is filtered here
        if self.options.contains:
            source_query = self.options.contains
        else:
            source_query = normalize_wildcard(text) if pattern else text
        latest_only = spec.is_unbounded and not self.options.all_versions
        allow_prerelease = self.options.allow_prerelease

        def query(repo: PackageRepository) -> List[PackageManifest]:
            by_id: Dict[str, List[PackageManifest]] = {}
            for manifest in repo.search(source_query, allow_prerelease=True):
                if manifest.listed and self._matches_search(manifest, text, pattern):
                    by_id.setdefault(manifest.id.lower(), []).append(manifest)
            selected = []
            for manifests in by_id.values():
                selected.extend(select_versions(manifests, spec, latest_only, allow_prerelease))
            return selected

        for source, manifest in self._fan_out(query):
            yield PackageReference.from_manifest(manifest, source)

    def find_package(self, name: str, required: Optional[str] = None,
                     minimum: Optional[str] = None,
                     maximum: Optional[str] = None) -> List[PackageReference]:
        """Exact id lookup, falling back to a search when nothing matches."""
        found = self.find_by_id(name, required, minimum, maximum)
        if found:
            return found
        return self.search(name, required, minimum, maximum)

    def find_by_file(self, path: Union[str, Path]) -> Optional[PackageReference]:
        """Build a reference for a package archive on disk."""
        path = Path(path)
        if not is_package_file(path):
            self.diagnostics.warning(diag.PACKAGE_NOT_FOUND,
                                     f"Not a package archive: {path}", str(path))
            return None
        try:
            manifest = read_package_file(path)
        except InvalidManifest as e:
            self.diagnostics.warning(diag.PACKAGE_NOT_FOUND, str(e), str(path))
            return None
        manifest.content_url = str(path)
        source = PackageSource(name=str(path), location=str(path), trusted=True, validated=True)
        return PackageReference.from_manifest(manifest, source, is_local_file=True,
                                              install_path=enclosing_install_dir(path))

    def find_by_reference(self, reference: str) -> Optional[PackageReference]:
        """Resolve an opaque reference back to a package."""
        decoded = codec.decode(reference)
        if decoded is None:
            self.diagnostics.warning(diag.PACKAGE_REFERENCE_INVALID,
                                     f"Malformed package reference: {reference!r}")
            return None

        if self.selector is not None:
            source = self.selector.resolve_package_source(decoded.location)
        else:
            source = PackageSource(name=decoded.location, location=decoded.location)
        if source is None:
            return None

        if source.is_file:
            found = self.find_by_file(source.local_path)
            if found is None or found.key != PackageReference(decoded.id, decoded.version, source).key:
                self.diagnostics.warning(diag.PACKAGE_NOT_FOUND,
                                         f"{decoded.id} {decoded.version} is not in {source.location}",
                                         decoded.id)
                return None
            return found

        try:
            manifest = self.repository(source).find_package(decoded.id, decoded.version)
        except RepositoryError as e:
            self.diagnostics.warning(diag.SOURCE_QUERY_FAILED, str(e), source.location)
            return None
        if manifest is None:
            self.diagnostics.warning(diag.PACKAGE_NOT_FOUND,
                                     f"{decoded.id} {decoded.version} not found in {source}",
                                     decoded.id)
            return None
        return PackageReference.from_manifest(manifest, source)

    def candidates(self, dependency: Dependency) -> List[PackageReference]:
        """Packages that can satisfy one dependency entry, best first.

        Raises:
            InvalidVersion: If the dependency carries a malformed range
        """
        if not dependency.version_spec:
            return self.find_by_id(dependency.id, allow_unlisted=True)
        return self.find_by_version_spec(dependency.id, dependency.spec, allow_unlisted=True)

    def dependencies_of(self, package: PackageReference) -> List[PackageReference]:
        """Every candidate for each direct dependency of a package."""
        found = []
        for group in package.dependency_groups:
            for dependency in group.dependencies:
                try:
                    candidates = self.candidates(dependency)
                except InvalidVersion as e:
                    self.diagnostics.error(diag.INVALID_VERSION, str(e), dependency.id)
                    continue
                if not candidates:
                    self.diagnostics.error(
                        diag.DEPENDENCY_RESOLUTION_ERROR,
                        f"Unable to resolve dependency '{dependency}' of {package}",
                        dependency.id)
                    continue
                found.extend(candidates)
        return found
