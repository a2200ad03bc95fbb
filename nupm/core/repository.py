"""
Repository connections

A repository answers metadata queries for one source location:
- LocalRepository: a directory tree of .nupkg archives (or a single archive)
- HttpRepository: a NuGet v3 feed, addressed by its service index URL

Connectivity and format problems raise RepositoryError; callers decide
whether that aborts anything.
"""

import json
import logging
import socket
import threading
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

from .. import __version__
from .compression import ACCEPT_ENCODING, decompress_bytes
from .manifest import (PACKAGE_EXTENSION, InvalidManifest, PackageManifest,
                       from_catalog_entry, read_package_file)
from .sources import location_to_path, parse_uri
from .version import VersionSpec, try_parse_version

logger = logging.getLogger(__name__)

USER_AGENT = f"nupm/{__version__}"
DEFAULT_TIMEOUT = 30
SEARCH_PAGE_SIZE = 100
SEARCH_MAX_RESULTS = 1000

# Service index resource types, most preferred first
REGISTRATION_TYPES = ('RegistrationsBaseUrl/3.6.0', 'RegistrationsBaseUrl/3.4.0',
                      'RegistrationsBaseUrl')
SEARCH_TYPES = ('SearchQueryService/3.5.0', 'SearchQueryService/3.0.0-rc',
                'SearchQueryService')
CONTENT_TYPES = ('PackageBaseAddress/3.0.0',)


class RepositoryError(Exception):
    """A repository could not be queried."""

    def __init__(self, location: str, reason: str):
        self.location = location
        self.reason = reason
        super().__init__(f"{location}: {reason}")


def _key(package_id: str, version: str) -> Tuple[str, object]:
    return package_id.lower(), try_parse_version(version) or version


class PackageRepository:
    """Query interface shared by all repository kinds."""

    def __init__(self, location: str):
        self.location = location

    def validate(self) -> bool:
        raise NotImplementedError

    def find_by_id(self, package_id: str) -> List[PackageManifest]:
        """Every version of a package, listed or not."""
        raise NotImplementedError

    def search(self, text: str, allow_prerelease: bool = False) -> Iterator[PackageManifest]:
        raise NotImplementedError

    def find_by_version_spec(self, package_id: str, spec: VersionSpec,
                             allow_prerelease: bool = False,
                             allow_unlisted: bool = False) -> List[PackageManifest]:
        """Versions of a package inside a range, newest first."""
        matches = []
        for manifest in self.find_by_id(package_id):
            version = try_parse_version(manifest.version)
            if version is None:
                continue
            if not allow_unlisted and not manifest.listed:
                continue
            if version.is_prerelease and not allow_prerelease:
                continue
            if spec.satisfies(version):
                matches.append(manifest)
        matches.sort(key=lambda m: m.semver, reverse=True)
        return matches

    def find_package(self, package_id: str, version: str) -> Optional[PackageManifest]:
        """Exact id and version lookup."""
        wanted = _key(package_id, version)
        for manifest in self.find_by_id(package_id):
            if _key(manifest.id, manifest.version) == wanted:
                return manifest
        return None

    def __repr__(self):
        return f"{self.__class__.__name__}({self.location!r})"


class LocalRepository(PackageRepository):
    """Directory of package archives, scanned recursively.

    Manifests are cached per archive path and re-read when the file's mtime
    changes.
    """

    def __init__(self, location: str):
        super().__init__(location)
        path = location_to_path(location)
        if path is None:
            raise RepositoryError(location, "not a local location")
        self.root = path
        self._cache: Dict[Path, Tuple[float, Optional[PackageManifest]]] = {}
        self._lock = threading.Lock()

    def validate(self) -> bool:
        return self.root.exists()

    def _archives(self) -> Iterator[Path]:
        if self.root.is_file():
            yield self.root
            return
        if not self.root.is_dir():
            raise RepositoryError(self.location, "directory does not exist")
        for path in sorted(self.root.rglob('*')):
            if path.suffix.lower() == PACKAGE_EXTENSION and path.is_file():
                yield path

    def _read(self, path: Path) -> Optional[PackageManifest]:
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return None
        with self._lock:
            cached = self._cache.get(path)
        if cached and cached[0] == mtime:
            return cached[1]

        try:
            manifest = read_package_file(path)
            manifest.content_url = str(path)
        except (InvalidManifest, ValueError) as e:
            logger.warning(f"Skipping unreadable package {path}: {e}")
            manifest = None
        with self._lock:
            self._cache[path] = (mtime, manifest)
        return manifest

    def manifests(self) -> Iterator[PackageManifest]:
        for path in self._archives():
            manifest = self._read(path)
            if manifest is not None:
                yield manifest

    def find_by_id(self, package_id: str) -> List[PackageManifest]:
        wanted = package_id.lower()
        return [m for m in self.manifests() if m.id.lower() == wanted]

    def search(self, text: str, allow_prerelease: bool = False) -> Iterator[PackageManifest]:
        needle = (text or '').strip().lower()
        parts = [p for p in needle.split('*') if p]
        for manifest in self.manifests():
            if manifest.is_prerelease and not allow_prerelease:
                continue
            if not manifest.listed:
                continue
            haystack = ' '.join([manifest.id, manifest.title, manifest.description,
                                 ' '.join(manifest.tags)]).lower()
            # Sources only understand '*'; fine-grained matching happens upstream
            if all(p in haystack for p in parts):
                yield manifest


class HttpRepository(PackageRepository):
    """NuGet v3 feed.

    The service index is fetched once, on first use, and names the
    registration, search and content endpoints.
    """

    def __init__(self, location: str, timeout: int = DEFAULT_TIMEOUT,
                 page_size: int = SEARCH_PAGE_SIZE, max_results: int = SEARCH_MAX_RESULTS):
        super().__init__(location)
        self.timeout = timeout
        self.page_size = page_size
        self.max_results = max_results
        self._resources: Optional[Dict[str, str]] = None
        self._lock = threading.Lock()

    def _get_json(self, url: str) -> Optional[dict]:
        """GET a JSON document. Returns None on 404."""
        req = urllib.request.Request(url)
        req.add_header('User-Agent', USER_AGENT)
        req.add_header('Accept', 'application/json')
        req.add_header('Accept-Encoding', ACCEPT_ENCODING)
        logger.debug(f"GET {url}")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                body = response.read()
                encoding = response.headers.get('Content-Encoding')
        except urllib.error.HTTPError as e:
            if e.code == 404:
                return None
            raise RepositoryError(self.location, f"HTTP {e.code}: {e.reason}") from e
        except urllib.error.URLError as e:
            raise RepositoryError(self.location, f"URL error: {e.reason}") from e
        except (socket.timeout, OSError) as e:
            raise RepositoryError(self.location, str(e)) from e

        try:
            return json.loads(decompress_bytes(body, encoding))
        except ValueError as e:
            raise RepositoryError(self.location, f"Invalid response from {url}: {e}") from e

    def _service_index(self) -> Dict[str, str]:
        with self._lock:
            if self._resources is not None:
                return self._resources

        index = self._get_json(self.location)
        if not isinstance(index, dict) or not isinstance(index.get('resources'), list):
            raise RepositoryError(self.location, "not a v3 service index")

        resources = {}
        for resource in index['resources']:
            rtype = resource.get('@type')
            rid = resource.get('@id')
            if isinstance(rtype, str) and isinstance(rid, str):
                resources.setdefault(rtype, rid)
        with self._lock:
            self._resources = resources
        return resources

    def _endpoint(self, types: Tuple[str, ...], required: bool = True) -> Optional[str]:
        resources = self._service_index()
        for wanted in types:
            for rtype, url in resources.items():
                if rtype == wanted or rtype.startswith(wanted + '/'):
                    return url.rstrip('/') + '/'
        if required:
            raise RepositoryError(self.location, f"feed has no {types[-1]} resource")
        return None

    def validate(self) -> bool:
        try:
            return self._endpoint(REGISTRATION_TYPES, required=False) is not None
        except RepositoryError as e:
            logger.debug(f"Feed validation failed: {e}")
            return False

    def content_url(self, package_id: str, version: str) -> str:
        base = self._endpoint(CONTENT_TYPES, required=False)
        if base is None:
            return ''
        parsed = try_parse_version(version)
        lower_id = package_id.lower()
        lower_version = (parsed.normalized if parsed else version).lower()
        return f"{base}{lower_id}/{lower_version}/{lower_id}.{lower_version}{PACKAGE_EXTENSION}"

    def _leaves(self, index: dict) -> Iterator[dict]:
        for page in index.get('items') or []:
            items = page.get('items')
            if items is None and page.get('@id'):
                # Large registrations keep pages out of line
                page_doc = self._get_json(page['@id']) or {}
                items = page_doc.get('items') or []
            for leaf in items or []:
                yield leaf

    def find_by_id(self, package_id: str) -> List[PackageManifest]:
        base = self._endpoint(REGISTRATION_TYPES)
        index = self._get_json(f"{base}{urllib.parse.quote(package_id.lower())}/index.json")
        if index is None:
            return []

        manifests = []
        for leaf in self._leaves(index):
            entry = leaf.get('catalogEntry')
            if isinstance(entry, str):
                entry = self._get_json(entry) or {}
            if not isinstance(entry, dict):
                continue
            try:
                manifest = from_catalog_entry(entry, leaf.get('packageContent') or '')
            except InvalidManifest as e:
                logger.debug(f"Skipping catalog entry: {e}")
                continue
            if not manifest.content_url:
                manifest.content_url = self.content_url(manifest.id, manifest.version)
            manifests.append(manifest)
        return manifests

    def search(self, text: str, allow_prerelease: bool = False) -> Iterator[PackageManifest]:
        base = self._endpoint(SEARCH_TYPES).rstrip('/')
        skip = 0
        while skip < self.max_results:
            query = urllib.parse.urlencode({
                'q': text or '',
                'skip': skip,
                'take': self.page_size,
                'prerelease': 'true' if allow_prerelease else 'false',
                'semVerLevel': '2.0.0',
            })
            page = self._get_json(f"{base}?{query}") or {}
            data = page.get('data') or []
            for item in data:
                yield from self._search_item(item)

            skip += len(data)
            total = page.get('totalHits')
            if len(data) < self.page_size or (isinstance(total, int) and skip >= total):
                break

    def _search_item(self, item: dict) -> Iterator[PackageManifest]:
        """One search hit carries metadata for the latest version plus the version list."""
        versions = [v.get('version') for v in item.get('versions') or [] if v.get('version')]
        if not versions and item.get('version'):
            versions = [item['version']]
        for version in versions:
            entry = dict(item)
            entry['version'] = version
            # Dependencies are not part of search hits
            entry.pop('dependencyGroups', None)
            try:
                manifest = from_catalog_entry(entry)
            except InvalidManifest:
                continue
            manifest.content_url = self.content_url(manifest.id, manifest.version)
            yield manifest


def open_repository(location: str, timeout: int = DEFAULT_TIMEOUT) -> PackageRepository:
    """Open a repository for a source location.

    Raises:
        RepositoryError: If the location is neither local nor http(s)
    """
    parsed = parse_uri(location)
    if parsed is None or parsed.scheme.lower() == 'file':
        return LocalRepository(location)
    if parsed.scheme.lower() in ('http', 'https'):
        return HttpRepository(location, timeout=timeout)
    raise RepositoryError(location, f"unsupported scheme '{parsed.scheme}'")
