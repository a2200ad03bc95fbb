"""Recorded diagnostics for a single nupm operation.

Source lookups and installs degrade instead of aborting: problems are
recorded here (and logged) so the caller gets a structured account of what
went wrong alongside whatever result could still be produced.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

logger = logging.getLogger(__name__)

# Message codes
SOURCE_LOCATION_NOT_VALID = "SourceLocationNotValid"
SOURCE_NOT_FOUND = "SourceNotFound"
SCHEME_NOT_SUPPORTED = "SchemeNotSupported"
SOURCE_QUERY_FAILED = "SourceQueryFailed"
SOURCE_EXISTS = "PackageSourceExists"
MISSING_PARAMETER = "MissingRequiredParameter"
PACKAGE_REFERENCE_INVALID = "PackageReferenceInvalid"
PACKAGE_NOT_FOUND = "UnableToResolvePackage"
DEPENDENCY_RESOLUTION_ERROR = "DependencyResolutionError"
DEPENDENCY_CYCLE = "DependencyCycle"
DEPENDENT_PACKAGE_FAILED = "DependentPackageFailedInstall"
PACKAGE_FAILED_INSTALL = "UnableToInstallPackage"
MULTIPLE_PACKAGES_INSTALLED = "MultiplePackagesInstalledExpectedOne"
UNINSTALL_FAILED = "UnableToUninstallPackage"
INVALID_VERSION = "InvalidVersion"
CANCELLED = "Cancelled"


class Severity(str, Enum):
    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"


_LOG_LEVELS = {
    Severity.ERROR: logging.ERROR,
    Severity.WARN: logging.WARNING,
    Severity.INFO: logging.INFO,
    Severity.DEBUG: logging.DEBUG,
}


@dataclass(frozen=True)
class Diagnostic:
    """One recorded problem or notice."""
    code: str
    severity: Severity
    message: str
    target: str = ""

    def __str__(self) -> str:
        if self.target:
            return f"{self.code} [{self.target}]: {self.message}"
        return f"{self.code}: {self.message}"


class Diagnostics:
    """Thread-safe collector of diagnostics.

    Source queries run on worker threads and record warnings concurrently,
    so appends are serialized.
    """

    def __init__(self):
        self._items: List[Diagnostic] = []
        self._lock = threading.Lock()

    def record(self, severity: Severity, code: str, message: str,
               target: str = "") -> Diagnostic:
        diagnostic = Diagnostic(code=code, severity=severity, message=message,
                                target=target)
        with self._lock:
            self._items.append(diagnostic)
        logger.log(_LOG_LEVELS[severity], str(diagnostic))
        return diagnostic

    def error(self, code: str, message: str, target: str = "") -> Diagnostic:
        return self.record(Severity.ERROR, code, message, target)

    def warning(self, code: str, message: str, target: str = "") -> Diagnostic:
        return self.record(Severity.WARN, code, message, target)

    def info(self, code: str, message: str, target: str = "") -> Diagnostic:
        return self.record(Severity.INFO, code, message, target)

    def debug(self, code: str, message: str, target: str = "") -> Diagnostic:
        return self.record(Severity.DEBUG, code, message, target)

    @property
    def items(self) -> List[Diagnostic]:
        with self._lock:
            return list(self._items)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.items if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.items if d.severity == Severity.WARN]

    def has_errors(self) -> bool:
        return bool(self.errors)

    def find(self, code: str) -> Optional[Diagnostic]:
        """Return the first diagnostic with the given code, if any."""
        for diagnostic in self.items:
            if diagnostic.code == code:
                return diagnostic
        return None

    def codes(self) -> List[str]:
        return [d.code for d in self.items]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
