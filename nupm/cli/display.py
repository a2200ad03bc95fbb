"""Display utilities for nupm CLI.

Package lists are printed either as aligned columns (default) or as JSON
for scripts. Progress and diagnostics go to stderr so stdout stays
parsable.
"""

import json
import sys
from typing import List, Optional

from ..core.operations import OperationResult
from ..core.progress import ProgressReporter
from . import colors

_json_mode = False


def init(json_mode: bool = False):
    global _json_mode
    _json_mode = json_mode


def json_mode() -> bool:
    return _json_mode


def package_to_dict(pkg) -> dict:
    data = {
        'id': pkg.id,
        'version': str(pkg.version),
        'source': pkg.source.name,
        'reference': pkg.reference,
    }
    if getattr(pkg, 'install_path', None):
        data['install_path'] = str(pkg.install_path)
    manifest = getattr(pkg, 'manifest', None)
    if manifest is not None:
        data['summary'] = manifest.summary or manifest.description
        data['tags'] = list(manifest.tags)
    return data


def print_packages(packages: List, show_source: bool = True, show_summary: bool = True):
    """Print a package list in the current mode."""
    if _json_mode:
        print(json.dumps([package_to_dict(p) for p in packages], indent=2))
        return
    if not packages:
        return

    id_width = max(len(p.id) for p in packages)
    version_width = max(len(str(p.version)) for p in packages)
    for pkg in packages:
        line = f"{colors.bold(pkg.id.ljust(id_width))}  {colors.info(str(pkg.version).ljust(version_width))}"
        if show_source:
            line += f"  {colors.dim(pkg.source.name)}"
        summary = getattr(pkg, 'summary', '')
        if show_summary and summary:
            line += f"  {summary.splitlines()[0][:80]}"
        print(line.rstrip())


def print_diagnostics(result: OperationResult, verbose: bool = False):
    """Print recorded errors and warnings to stderr."""
    for item in result.diagnostics.items:
        severity = item.severity.value
        if severity == 'error':
            print(colors.error(f"error: {item.message}"), file=sys.stderr)
        elif severity == 'warn':
            print(colors.warning(f"warning: {item.message}"), file=sys.stderr)
        elif verbose:
            print(colors.dim(f"{severity}: {item.message}"), file=sys.stderr)


class ProgressDisplay(ProgressReporter):
    """Prints operation progress to stderr."""

    def __init__(self, stream=None, quiet: bool = False):
        self.stream = stream or sys.stderr
        self.quiet = quiet

    def _print(self, text: str):
        if not self.quiet:
            print(text, file=self.stream, flush=True)

    def start(self, activity: str):
        self._print(colors.bold(activity))

    def progress(self, percent: int, message: str = ""):
        if message:
            self._print(f"  [{percent:3d}%] {message}")

    def package_installed(self, package) -> bool:
        self._print(f"  {colors.success('installed')} {colors.package(package)}")
        return True

    def complete(self, success: bool):
        self._print(colors.success("Done") if success else colors.error("Failed"))

    def message(self, text: str):
        self._print(text)


def print_install_report(report, verbose: bool = False):
    """Summarize an InstallReport."""
    if report is None:
        return
    if _json_mode:
        print(json.dumps({
            'package': str(report.package),
            'state': report.state.value,
            'installed': [str(o) for o in report.installed],
            'already_present': [str(o) for o in report.already_present],
            'failed': [str(p) for p in report.failed],
            'errors': list(report.errors),
        }, indent=2))
        return
    for outcome in report.already_present:
        print(f"{colors.dim('already installed')} {outcome}")
    if verbose:
        for path in report.removed:
            print(f"{colors.dim('removed')} {path}")


def summary_line(count: int, noun: str, plural: Optional[str] = None) -> str:
    word = noun if count == 1 else (plural or noun + 's')
    return f"{colors.bold(str(count))} {word}"
