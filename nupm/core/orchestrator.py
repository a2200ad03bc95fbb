"""
Install and uninstall orchestration

install_package walks one root package through:

    REQUESTED -> DEPENDENCIES_RESOLVING -> DEPENDENCIES_INSTALLING
              -> ROOT_INSTALLING -> SUCCEEDED | FAILED | CANCELLED

Dependencies are installed innermost first. The first dependency that fails
stops the run; dependencies installed earlier in the same run stay
installed. A package whose post-install hook fails is uninstalled again.
"""

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

from . import diagnostics as diag
from .diagnostics import Diagnostics
from .errors import Cancelled, InstallFailed, ResolutionError
from .filesystem import FilesystemProvider
from .hooks import LifecycleHooks
from .installed import InstalledPackageIndex
from .installer import ExternalInstaller, InstallOutcome, OutcomeKind
from .progress import CancellationToken, ProgressReporter, ProgressTracker
from .reference import PackageReference
from .resolver import DependencyResolver
from .sources import PackageSource

logger = logging.getLogger(__name__)


class InstallState(Enum):
    REQUESTED = "requested"
    DEPENDENCIES_RESOLVING = "dependencies_resolving"
    DEPENDENCIES_INSTALLING = "dependencies_installing"
    ROOT_INSTALLING = "root_installing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class InstallOptions:
    """Options for install operations."""
    skip_dependencies: bool = False
    continue_on_failure: bool = False


@dataclass
class InstallReport:
    """What happened to one requested package. Truthy on success."""
    package: PackageReference
    state: InstallState = InstallState.REQUESTED
    closure: List[PackageReference] = field(default_factory=list)
    attempted: List[PackageReference] = field(default_factory=list)
    installed: List[InstallOutcome] = field(default_factory=list)
    already_present: List[InstallOutcome] = field(default_factory=list)
    failed: List[PackageReference] = field(default_factory=list)
    removed: List[Path] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state == InstallState.SUCCEEDED

    def __bool__(self) -> bool:
        return self.success

    def installed_ids(self) -> List[str]:
        return [o.id for o in self.installed]


class InstallOrchestrator:
    """Drives the external installer over a package and its closure."""

    def __init__(self, resolver: DependencyResolver, installer: ExternalInstaller,
                 installed: InstalledPackageIndex,
                 hooks: Optional[LifecycleHooks] = None,
                 filesystem: Optional[FilesystemProvider] = None,
                 diagnostics: Optional[Diagnostics] = None,
                 reporter: Optional[ProgressReporter] = None,
                 token: Optional[CancellationToken] = None,
                 options: Optional[InstallOptions] = None):
        self.resolver = resolver
        self.installer = installer
        self.installed = installed
        self.hooks = hooks or LifecycleHooks()
        self.filesystem = filesystem or FilesystemProvider()
        self.diagnostics = diagnostics if diagnostics is not None else resolver.diagnostics
        self.reporter = reporter or ProgressReporter()
        self.token = token or CancellationToken()
        self.options = options or InstallOptions()

    def _fail(self, report: InstallReport, code: str, message: str, target: str = ""):
        report.errors.append(message)
        self.diagnostics.error(code, message, target)

    # =========================================================================
    # Installation
    # =========================================================================

    def install_package(self, root: PackageReference) -> InstallReport:
        """Install a package after its missing dependencies.

        Args:
            root: Package to install

        Returns:
            InstallReport (truthy when the root ends up installed)
        """
        report = InstallReport(package=root)
        tracker = ProgressTracker(self.reporter, 1)
        tracker.start(f"Installing {root}")

        try:
            if self.options.skip_dependencies:
                closure = []
            else:
                report.state = InstallState.DEPENDENCIES_RESOLVING
                try:
                    closure = list(self.resolver.closure(root))
                except ResolutionError as e:
                    self._fail(report, diag.DEPENDENCY_RESOLUTION_ERROR, str(e), e.dependency_id)
                    report.state = InstallState.FAILED
                    return report

            report.closure = closure
            tracker.total_steps = len(closure) + 1
            logger.info(f"Installing {root} with {len(closure)} dependencies")

            report.state = InstallState.DEPENDENCIES_INSTALLING
            for done, dependency in enumerate(closure):
                self.token.raise_if_cancelled("install", str(dependency))
                tracker.step(done, f"Installing {dependency}")
                if not self.install_single_package(dependency, report):
                    self._fail(report, diag.DEPENDENT_PACKAGE_FAILED,
                               f"Dependent package {dependency} failed to install", dependency.id)
                    if not self.options.continue_on_failure:
                        report.state = InstallState.FAILED
                        return report
                tracker.step(done + 1)

            report.state = InstallState.ROOT_INSTALLING
            self.token.raise_if_cancelled("install", str(root))
            tracker.step(len(closure), f"Installing {root}")
            root_ok = self.install_single_package(root, report)

            if root_ok and not report.failed:
                report.state = InstallState.SUCCEEDED
            else:
                report.state = InstallState.FAILED

        except Cancelled as e:
            report.state = InstallState.CANCELLED
            self._fail(report, diag.CANCELLED, str(e), root.id)
        finally:
            tracker.complete(report.success)

        return report

    def install_single_package(self, package: PackageReference,
                               report: Optional[InstallReport] = None) -> bool:
        """Install one package with its hooks, without looking at dependencies.

        Raises:
            Cancelled: If cancelled during the installer run, or by the reporter
        """
        if report is None:
            report = InstallReport(package=package)
        report.attempted.append(package)

        if not self.hooks.pre_install(package):
            report.failed.append(package)
            self._fail(report, diag.PACKAGE_FAILED_INSTALL,
                       f"Pre-install hook failed for {package}", package.id)
            return False

        result = self.installer.install(package, self.token)
        status = result.status

        if status == OutcomeKind.SUCCESSFUL:
            for outcome in result.successful:
                item = self._reference_for(package, outcome)
                if not self.reporter.package_installed(item):
                    raise Cancelled("install", str(item))
                report.installed.append(outcome)

                if not self.hooks.post_install(item):
                    self._fail(report, diag.PACKAGE_FAILED_INSTALL,
                               f"Post-install hook failed for {item}", item.id)
                    if not self._remove(item, report):
                        self.diagnostics.warning(
                            diag.UNINSTALL_FAILED,
                            f"Unable to remove {item} after its post-install failure", item.id)
                    report.installed.remove(outcome)
                    report.failed.append(package)
                    return False
            return True

        if status == OutcomeKind.ALREADY_PRESENT:
            logger.info(f"{package} is already installed")
            report.already_present.extend(result.already_present)
            return True

        report.failed.append(package)
        reason = "; ".join(result.errors) or "installer reported no success"
        error = InstallFailed(package.id, package.version, package.source.location, reason)
        code = diag.PACKAGE_FAILED_INSTALL
        if result.successful:
            code = diag.MULTIPLE_PACKAGES_INSTALLED
        self._fail(report, code, str(error), package.id)
        return False

    def _reference_for(self, package: PackageReference,
                       outcome: InstallOutcome) -> PackageReference:
        """Reference for an item the installer reported as installed."""
        same = PackageReference(outcome.id, outcome.version, package.source).key == package.key
        return PackageReference(
            id=outcome.id,
            version=outcome.version,
            source=package.source,
            manifest=package.manifest if same else None,
            install_path=outcome.install_path,
        )

    # =========================================================================
    # Uninstall
    # =========================================================================

    def install_directory(self, package: PackageReference) -> Optional[Path]:
        """Where a package is installed, or None."""
        if package.install_path is not None and Path(package.install_path).is_dir():
            return Path(package.install_path)
        found = self.installed.find(package.id, package.version)
        if found is not None:
            return found.path
        return None

    def _remove(self, package: PackageReference, report: InstallReport) -> bool:
        """Run the uninstall steps for a package directory that exists."""
        path = self.install_directory(package)
        if path is None:
            return True
        item = replace(package, install_path=path)

        if not self.hooks.pre_uninstall(item):
            report.errors.append(f"Pre-uninstall hook failed for {item}")
            return False
        try:
            self.filesystem.delete_folder(path)
        except OSError as e:
            report.errors.append(f"Cannot delete {path}: {e}")
            return False
        report.removed.append(path)
        if not self.hooks.post_uninstall(item):
            report.errors.append(f"Post-uninstall hook failed for {item}")
            return False
        return True

    def uninstall_package(self, package: PackageReference) -> InstallReport:
        """Uninstall a package. Not being installed counts as success."""
        report = InstallReport(package=package)
        tracker = ProgressTracker(self.reporter, 1)
        tracker.start(f"Uninstalling {package}")

        if self.install_directory(package) is None:
            logger.info(f"{package} is not installed, nothing to remove")
            report.state = InstallState.SUCCEEDED
        elif self._remove(package, report):
            logger.info(f"Uninstalled {package}")
            report.state = InstallState.SUCCEEDED
        else:
            report.state = InstallState.FAILED
            self.diagnostics.error(diag.UNINSTALL_FAILED,
                                   f"Unable to uninstall {package}: {'; '.join(report.errors)}",
                                   package.id)

        tracker.complete(report.success)
        return report

    # =========================================================================
    # Queries on the install root
    # =========================================================================

    def installed_packages(self, name: Optional[str] = None) -> List[PackageReference]:
        """Packages present under the destination."""
        destination = str(self.installed.destination)
        source = PackageSource(name=destination, location=destination, trusted=True,
                               validated=True)
        return [
            PackageReference(id=p.id, version=p.version, source=source, manifest=p.manifest,
                             install_path=p.path)
            for p in self.installed.packages(name)
        ]

    def download_package(self, package: PackageReference,
                         destination: Union[str, Path]) -> Optional[Path]:
        """Save a package archive into a directory without installing it."""
        url = package.source.location if package.is_local_file else package.content_url
        if not url:
            self.diagnostics.error(diag.PACKAGE_NOT_FOUND,
                                   f"No download location for {package}", package.id)
            return None

        target = Path(destination) / f"{package.full_name}.nupkg"
        self.filesystem.create_folder(target.parent)
        result = self.filesystem.download_file(url, target)
        if not result.success:
            self.diagnostics.error(diag.PACKAGE_FAILED_INSTALL,
                                   f"Unable to download {package}: {result.error}", package.id)
            return None
        logger.info(f"Downloaded {package} to {target}")
        return result.path
