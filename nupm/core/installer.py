"""
External installer adapter

Packages are placed on disk by an external tool (the nuget command line by
default). Its standard output is line-oriented text; lines carrying one of
the markers below classify the outcome for a package named in quotes:

    Successfully installed 'Foo 1.2.0' to /dest
    Package "Foo.1.2.0" is already installed.     (also: 'Foo 1.2.0' already installed)
    'Foo 1.2.0' was not installed

The markers are matched case-sensitively. Lines on standard error are
logged as warnings.
"""

import logging
import queue
import re
import subprocess
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .config import InstallerConfig
from .errors import Cancelled
from .installed import install_dir_name
from .progress import CancellationToken
from .reference import PackageReference

logger = logging.getLogger(__name__)

SUCCESS_MARKER = "Successfully installed"
ALREADY_MARKER = "already installed"
FAILURE_MARKER = "not installed"

# 'Foo 1.2.0'
PACKAGE_PATTERN = re.compile(r"'(\S*)\s(.*?)'")

# Grace period between terminate() and kill()
TERMINATE_GRACE = 5.0


class OutcomeKind(Enum):
    SUCCESSFUL = "successful"
    ALREADY_PRESENT = "already_present"
    FAILED = "failed"


@dataclass
class InstallOutcome:
    """One package the installer reported on."""
    kind: OutcomeKind
    id: str
    version: str
    install_path: Optional[Path] = None
    message: str = ""

    def __str__(self):
        return f"{self.id} {self.version}"


@dataclass
class InstallResult:
    """Outcomes of one installer run, grouped by kind."""
    outcomes: Dict[OutcomeKind, List[InstallOutcome]] = field(default_factory=dict)
    exit_code: Optional[int] = None
    errors: List[str] = field(default_factory=list)

    def __post_init__(self):
        for kind in OutcomeKind:
            self.outcomes.setdefault(kind, [])

    def add(self, outcome: InstallOutcome):
        self.outcomes[outcome.kind].append(outcome)

    @property
    def successful(self) -> List[InstallOutcome]:
        return self.outcomes[OutcomeKind.SUCCESSFUL]

    @property
    def already_present(self) -> List[InstallOutcome]:
        return self.outcomes[OutcomeKind.ALREADY_PRESENT]

    @property
    def failed(self) -> List[InstallOutcome]:
        return self.outcomes[OutcomeKind.FAILED]

    @property
    def status(self) -> OutcomeKind:
        if self.failed:
            return OutcomeKind.FAILED
        if self.successful:
            return OutcomeKind.SUCCESSFUL
        return OutcomeKind.ALREADY_PRESENT


def classify_line(line: str) -> Optional[Tuple[OutcomeKind, str, str]]:
    """Classify one line of installer output.

    Returns:
        (kind, id, version) or None for lines without a marker. id and
        version are empty when the line names no package in quotes.
    """
    if SUCCESS_MARKER in line:
        kind = OutcomeKind.SUCCESSFUL
    elif ALREADY_MARKER in line:
        kind = OutcomeKind.ALREADY_PRESENT
    elif FAILURE_MARKER in line:
        kind = OutcomeKind.FAILED
    else:
        return None

    match = PACKAGE_PATTERN.search(line)
    if match:
        return kind, match.group(1), match.group(2)
    return kind, "", ""


class ExternalInstaller:
    """Runs the installer command for one package at a time."""

    def __init__(self, config: InstallerConfig, destination: Path,
                 package_save_mode: Optional[str] = None):
        self.config = config
        self.destination = Path(destination)
        self.package_save_mode = package_save_mode

    def install_path(self, package_id: str, version: str) -> Path:
        return self.destination / install_dir_name(package_id, version,
                                                   self.config.exclude_version)

    def build_command(self, package: PackageReference) -> List[str]:
        source = package.source.location
        if package.is_local_file:
            # The installer expects a feed, not an archive
            source = str(Path(package.source.location).parent)
        values = {
            'id': package.id,
            'version': package.version,
            'source': source,
            'destination': str(self.destination),
            'save_mode': self.package_save_mode or '',
        }
        command = [arg.format(**values) for arg in self.config.command]
        if not command or Path(command[0]).stem.lower() != 'nuget':
            return command
        if self.package_save_mode and '-PackageSaveMode' not in command:
            command.extend(['-PackageSaveMode', self.package_save_mode])
        if self.config.exclude_version and '-ExcludeVersion' not in command:
            command.append('-ExcludeVersion')
        return command

    def install(self, package: PackageReference,
                token: Optional[CancellationToken] = None) -> InstallResult:
        """Run the installer for a package and classify what it reports.

        Raises:
            Cancelled: If the token is cancelled while the installer runs
        """
        command = self.build_command(package)
        result = InstallResult()
        logger.debug(f"Running installer: {' '.join(command)}")

        try:
            proc = subprocess.Popen(command, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                                    stdin=subprocess.DEVNULL, text=True, bufsize=1)
        except OSError as e:
            reason = f"cannot run installer {command[0] if command else ''}: {e}"
            result.errors.append(reason)
            result.add(InstallOutcome(OutcomeKind.FAILED, package.id, package.version,
                                      message=reason))
            return result

        lines: queue.Queue = queue.Queue()
        readers = [
            threading.Thread(target=self._pump, args=(proc.stdout, 'out', lines), daemon=True),
            threading.Thread(target=self._pump, args=(proc.stderr, 'err', lines), daemon=True),
        ]
        for reader in readers:
            reader.start()

        started = time.monotonic()
        open_streams = len(readers)
        timed_out = False

        try:
            while open_streams or proc.poll() is None:
                if token is not None and token.cancelled:
                    self._stop(proc)
                    raise Cancelled("install", str(package))
                if (self.config.timeout is not None
                        and time.monotonic() - started > self.config.timeout):
                    self._stop(proc)
                    timed_out = True
                    break

                try:
                    stream, line = lines.get(timeout=self.config.poll_interval)
                except queue.Empty:
                    continue
                if line is None:
                    open_streams -= 1
                    continue
                self._handle_line(stream, line.rstrip('\r\n'), package, result)

            # Drain lines that arrived before the streams closed
            while True:
                try:
                    stream, line = lines.get_nowait()
                except queue.Empty:
                    break
                if line is not None:
                    self._handle_line(stream, line.rstrip('\r\n'), package, result)

            result.exit_code = proc.wait()
        finally:
            # The child never outlives this call
            self._stop(proc)
            for reader in readers:
                reader.join(timeout=TERMINATE_GRACE)

        if timed_out:
            reason = f"installer timed out after {self.config.timeout}s"
            result.errors.append(reason)
            result.add(InstallOutcome(OutcomeKind.FAILED, package.id, package.version,
                                      message=reason))
        elif result.exit_code != 0 and not result.failed:
            reason = f"installer exited with code {result.exit_code}"
            result.errors.append(reason)
            result.add(InstallOutcome(OutcomeKind.FAILED, package.id, package.version,
                                      message=reason))

        logger.debug(f"Installer finished for {package}: {result.status.value} "
                     f"(exit {result.exit_code})")
        return result

    @staticmethod
    def _pump(stream, name: str, lines: queue.Queue):
        try:
            for line in stream:
                lines.put((name, line))
        finally:
            stream.close()
            lines.put((name, None))

    def _handle_line(self, stream: str, line: str, package: PackageReference,
                     result: InstallResult):
        if not line.strip():
            return
        if stream == 'err':
            logger.warning(f"installer: {line}")
            return

        logger.debug(f"installer: {line}")
        classified = classify_line(line)
        if classified is None:
            return
        kind, package_id, version = classified
        package_id = package_id or package.id
        version = version or package.version
        outcome = InstallOutcome(kind, package_id, version, message=line)
        if kind == OutcomeKind.SUCCESSFUL:
            outcome.install_path = self.install_path(package_id, version)
        elif kind == OutcomeKind.FAILED:
            result.errors.append(line)
        result.add(outcome)

    @staticmethod
    def _stop(proc: subprocess.Popen):
        """Terminate the child, killing it if it does not exit in time."""
        if proc.poll() is not None:
            return
        proc.terminate()
        try:
            proc.wait(timeout=TERMINATE_GRACE)
        except subprocess.TimeoutExpired:
            logger.warning(f"Installer (pid {proc.pid}) ignored terminate, killing it")
            proc.kill()
            proc.wait()
