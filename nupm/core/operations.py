"""
Core operations layer for nupm.

This module provides the transport-agnostic entry points used by the CLI
(or any other front end). Each call builds its own diagnostics collector,
wires the core components from the configuration and returns an
OperationResult: the value, what was recorded along the way, and whether
the operation succeeded. Nothing raised inside the core escapes from here.
"""

import functools
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

from . import diagnostics as diag
from .config import Config, save_config
from .diagnostics import Diagnostics
from .errors import AlreadyInstalled, NupmError
from .filesystem import FilesystemProvider
from .hooks import LifecycleHooks
from .installed import InstalledPackageIndex
from .installer import ExternalInstaller
from .locator import LocatorOptions, PackageLocator
from .manifest import is_package_file
from .orchestrator import InstallOptions, InstallOrchestrator, InstallReport, InstallState
from .progress import CancellationToken, ProgressReporter
from .reference import PackageReference, is_reference
from .repository import PackageRepository, RepositoryError, open_repository
from .resolver import DependencyResolver
from .sources import PackageSource, SourceSelector
from .version import InvalidVersion

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Value of an operation plus everything recorded while computing it."""
    value: Any = None
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    success: bool = True

    @property
    def errors(self) -> List[str]:
        return [str(d) for d in self.diagnostics.errors]

    @property
    def warnings(self) -> List[str]:
        return [str(d) for d in self.diagnostics.warnings]

    def __bool__(self) -> bool:
        return self.success


@dataclass
class QueryOptions:
    """Per-call options shared by query and install operations."""
    sources: List[str] = field(default_factory=list)
    all_versions: bool = False
    allow_prerelease: bool = False
    contains: str = ""
    tags: List[str] = field(default_factory=list)
    skip_validate: bool = False
    skip_dependencies: bool = False
    continue_on_failure: bool = False


def guarded(method: Callable) -> Callable:
    """Turn exceptions raised by an operation into recorded errors."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs) -> OperationResult:
        diagnostics = Diagnostics()
        try:
            return method(self, diagnostics, *args, **kwargs)
        except NupmError as e:
            diagnostics.error(e.code, str(e))
        except InvalidVersion as e:
            diagnostics.error(diag.INVALID_VERSION, str(e))
        except RepositoryError as e:
            diagnostics.error(diag.SOURCE_QUERY_FAILED, str(e), e.location)
        except OSError as e:
            diagnostics.error("IOError", str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in {method.__name__}")
            diagnostics.error("UnexpectedError", f"{type(e).__name__}: {e}")
        return OperationResult(diagnostics=diagnostics, success=False)

    return wrapper


class PackageOperations:
    """Package operations - transport agnostic.

    Provides search, install, uninstall and source management without any
    UI dependency. Front ends call these methods and render the results.
    """

    def __init__(self, config: Config,
                 reporter: Optional[ProgressReporter] = None,
                 token: Optional[CancellationToken] = None,
                 hooks: Optional[LifecycleHooks] = None,
                 filesystem: Optional[FilesystemProvider] = None,
                 repository_factory: Callable[[str], PackageRepository] = open_repository,
                 validator: Optional[Callable[[str], bool]] = None):
        """Initialize operations.

        Args:
            config: Resolved configuration
            reporter: Progress receiver (default: silent)
            token: Cancellation token shared with the caller
            hooks: Lifecycle hooks run around installs (default: none)
            filesystem: Filesystem provider
            repository_factory: Opens a repository for a source location
            validator: Checks source locations (default: check they are reachable)
        """
        self.config = config
        self.reporter = reporter or ProgressReporter()
        self.token = token or CancellationToken()
        self.hooks = hooks or LifecycleHooks()
        self.filesystem = filesystem or FilesystemProvider()
        self.repository_factory = repository_factory
        self.validator = validator

    # =========================================================================
    # Wiring
    # =========================================================================

    def _persist_sources(self, sources: List[PackageSource]):
        self.config.sources = list(sources)
        if self.config.path is None:
            logger.debug("No configuration file, source changes are not persisted")
            return
        save_config(self.config)

    def _selector(self, diagnostics: Diagnostics,
                  options: Optional[QueryOptions] = None) -> SourceSelector:
        options = options or QueryOptions()
        return SourceSelector(self.config.sources,
                              supported_schemes=self.config.supported_schemes,
                              diagnostics=diagnostics,
                              skip_validate=options.skip_validate,
                              validator=self.validator,
                              on_change=self._persist_sources)

    def _locator(self, diagnostics: Diagnostics,
                 options: Optional[QueryOptions] = None) -> PackageLocator:
        options = options or QueryOptions()
        selector = self._selector(diagnostics, options)
        sources = selector.selected_sources(options.sources)
        locator_options = LocatorOptions(all_versions=options.all_versions,
                                         allow_prerelease=options.allow_prerelease,
                                         contains=options.contains,
                                         tags=list(options.tags))
        return PackageLocator(sources, selector=selector, options=locator_options,
                              diagnostics=diagnostics,
                              repository_factory=self.repository_factory,
                              max_workers=self.config.max_workers)

    def _index(self) -> InstalledPackageIndex:
        return InstalledPackageIndex(self.config.destination,
                                     exclude_version=self.config.installer.exclude_version)

    def _orchestrator(self, diagnostics: Diagnostics, locator: PackageLocator,
                      options: Optional[QueryOptions] = None) -> InstallOrchestrator:
        options = options or QueryOptions()
        index = self._index()
        resolver = DependencyResolver(locator, installed=index, diagnostics=diagnostics)
        installer = ExternalInstaller(self.config.installer, self.config.destination,
                                      package_save_mode=self.config.package_save_mode)
        return InstallOrchestrator(
            resolver, installer, index,
            hooks=self.hooks,
            filesystem=self.filesystem,
            diagnostics=diagnostics,
            reporter=self.reporter,
            token=self.token,
            options=InstallOptions(skip_dependencies=options.skip_dependencies,
                                   continue_on_failure=options.continue_on_failure),
        )

    def _resolve(self, locator: PackageLocator, name: str,
                 version: Optional[str] = None) -> Optional[PackageReference]:
        """Resolve a name, an opaque reference or a package file to one package."""
        diagnostics = locator.diagnostics
        if is_reference(name):
            return locator.find_by_reference(name)
        if name.lower().endswith('.nupkg') and is_package_file(name):
            return locator.find_by_file(name)

        found = locator.find_by_id(name, required=version)
        if not found:
            target = f"{name} {version}" if version else name
            diagnostics.error(diag.PACKAGE_NOT_FOUND,
                              f"Unable to find package '{target}'", name)
            return None
        return max(found, key=lambda ref: ref.semver)

    # =========================================================================
    # Queries
    # =========================================================================

    @guarded
    def search(self, diagnostics: Diagnostics, text: str = "",
               required: Optional[str] = None, minimum: Optional[str] = None,
               maximum: Optional[str] = None,
               options: Optional[QueryOptions] = None) -> OperationResult:
        """Free-text search across the selected sources."""
        locator = self._locator(diagnostics, options)
        found = locator.search(text, required, minimum, maximum)
        return OperationResult(found, diagnostics, not diagnostics.has_errors())

    @guarded
    def find(self, diagnostics: Diagnostics, name: str,
             required: Optional[str] = None, minimum: Optional[str] = None,
             maximum: Optional[str] = None,
             options: Optional[QueryOptions] = None) -> OperationResult:
        """Find packages by id (or reference, or file), falling back to search."""
        locator = self._locator(diagnostics, options)
        if is_reference(name) or name.lower().endswith('.nupkg'):
            package = self._resolve(locator, name)
            found = [package] if package else []
        else:
            found = locator.find_package(name, required, minimum, maximum)
        return OperationResult(found, diagnostics, not diagnostics.has_errors())

    @guarded
    def dependencies(self, diagnostics: Diagnostics, name: str,
                     version: Optional[str] = None,
                     options: Optional[QueryOptions] = None) -> OperationResult:
        """Every candidate for each direct dependency of a package."""
        locator = self._locator(diagnostics, options)
        package = self._resolve(locator, name, version)
        if package is None:
            return OperationResult(None, diagnostics, False)
        found = locator.dependencies_of(package)
        return OperationResult(found, diagnostics, not diagnostics.has_errors())

    @guarded
    def list_installed(self, diagnostics: Diagnostics,
                       name: Optional[str] = None) -> OperationResult:
        """Packages present in the install root."""
        locator = PackageLocator([], diagnostics=diagnostics)
        orchestrator = self._orchestrator(diagnostics, locator)
        return OperationResult(orchestrator.installed_packages(name), diagnostics, True)

    # =========================================================================
    # Install / uninstall
    # =========================================================================

    @guarded
    def install(self, diagnostics: Diagnostics, name: str,
                version: Optional[str] = None,
                options: Optional[QueryOptions] = None) -> OperationResult:
        """Resolve a package and install it with its missing dependencies."""
        locator = self._locator(diagnostics, options)
        package = self._resolve(locator, name, version)
        if package is None:
            return OperationResult(None, diagnostics, False)

        if self._index().is_installed(package.id, package.version):
            notice = AlreadyInstalled(package.id, package.version)
            diagnostics.info(notice.code, str(notice), package.id)
            report = InstallReport(package=package, state=InstallState.SUCCEEDED)
            return OperationResult(report, diagnostics, True)

        orchestrator = self._orchestrator(diagnostics, locator, options)
        report = orchestrator.install_package(package)
        return OperationResult(report, diagnostics, report.success)

    @guarded
    def uninstall(self, diagnostics: Diagnostics, name: str,
                  version: Optional[str] = None) -> OperationResult:
        """Uninstall every installed version of a package (or just one)."""
        locator = PackageLocator([], diagnostics=diagnostics)
        orchestrator = self._orchestrator(diagnostics, locator)

        targets = [p for p in orchestrator.installed_packages(name)
                   if p.id.lower() == name.lower()]
        if version:
            targets = [p for p in targets if p.semver == version]
        if not targets:
            # Nothing to remove is not an error
            logger.info(f"{name} is not installed")
            return OperationResult([], diagnostics, True)

        reports = [orchestrator.uninstall_package(p) for p in targets]
        return OperationResult(reports, diagnostics, all(reports))

    @guarded
    def download(self, diagnostics: Diagnostics, name: str,
                 destination: Union[str, Path], version: Optional[str] = None,
                 options: Optional[QueryOptions] = None) -> OperationResult:
        """Download a package archive without installing it."""
        locator = self._locator(diagnostics, options)
        package = self._resolve(locator, name, version)
        if package is None:
            return OperationResult(None, diagnostics, False)
        orchestrator = self._orchestrator(diagnostics, locator, options)
        path = orchestrator.download_package(package, destination)
        return OperationResult(path, diagnostics, path is not None)

    # =========================================================================
    # Sources
    # =========================================================================

    @guarded
    def list_sources(self, diagnostics: Diagnostics,
                     requested: Optional[List[str]] = None) -> OperationResult:
        selector = self._selector(diagnostics, QueryOptions(skip_validate=True))
        sources = selector.selected_sources(requested)
        return OperationResult(sources, diagnostics, not diagnostics.has_errors())

    @guarded
    def add_source(self, diagnostics: Diagnostics, name: str, location: str,
                   trusted: bool = False, update: bool = False,
                   skip_validate: bool = False) -> OperationResult:
        selector = self._selector(diagnostics, QueryOptions(skip_validate=skip_validate))
        source = selector.add_source(name, location, trusted=trusted, update=update)
        return OperationResult(source, diagnostics, source is not None)

    @guarded
    def remove_source(self, diagnostics: Diagnostics, name: str) -> OperationResult:
        selector = self._selector(diagnostics)
        source = selector.remove_source(name)
        return OperationResult(source, diagnostics, source is not None)
