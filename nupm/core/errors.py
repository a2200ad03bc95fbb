"""Exception taxonomy for nupm operations.

Every exception carries enough identity (package id, version, source) for the
caller to act on it. They are raised inside the core and converted into
recorded diagnostics at the PackageOperations boundary.
"""

from typing import Optional


class NupmError(Exception):
    """Base class for all nupm errors."""

    code = "NupmError"


class SourceNotFound(NupmError):
    """A requested source name or location could not be resolved."""

    code = "SourceNotFound"

    def __init__(self, name_or_location: str, reason: str = ""):
        self.name_or_location = name_or_location
        self.reason = reason
        message = f"Unable to resolve package source '{name_or_location}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class SchemeNotSupported(NupmError):
    """A source URI uses a scheme outside the supported set."""

    code = "SchemeNotSupported"

    def __init__(self, location: str, scheme: str):
        self.location = location
        self.scheme = scheme
        super().__init__(f"URI scheme '{scheme}' is not supported: {location}")


class ResolutionError(NupmError):
    """A dependency could not be matched to any candidate package."""

    code = "DependencyResolutionError"

    def __init__(self, dependency_id: str, version_spec: Optional[str] = None,
                 required_by: Optional[str] = None, reason: str = ""):
        self.dependency_id = dependency_id
        self.version_spec = version_spec
        self.required_by = required_by
        self.reason = reason
        target = dependency_id
        if version_spec:
            target += f" {version_spec}"
        message = f"Unable to resolve dependency '{target}'"
        if required_by:
            message += f" (required by {required_by})"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class InstallFailed(NupmError):
    """The external installer did not install a package."""

    code = "UnableToInstallPackage"

    def __init__(self, package_id: str, version: str, source: str = "",
                 reason: str = ""):
        self.package_id = package_id
        self.version = version
        self.source = source
        self.reason = reason
        message = f"Unable to install package '{package_id} {version}'"
        if source:
            message += f" from {source}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class AlreadyInstalled(NupmError):
    """Informational: the package is already present in the install root."""

    code = "AlreadyInstalled"

    def __init__(self, package_id: str, version: str):
        self.package_id = package_id
        self.version = version
        super().__init__(f"Package '{package_id} {version}' is already installed")


class Cancelled(NupmError):
    """The operation was cancelled by the caller."""

    code = "Cancelled"

    def __init__(self, operation: str = "", package: str = ""):
        self.operation = operation
        self.package = package
        message = "Operation cancelled"
        if operation:
            message = f"{operation} cancelled"
        if package:
            message += f" ({package})"
        super().__init__(message)
