"""Tests for install and uninstall orchestration"""

from typing import Dict, List

import pytest

from conftest import manifest, write_nupkg
from nupm.core import diagnostics as diag
from nupm.core.diagnostics import Diagnostics
from nupm.core.errors import ResolutionError
from nupm.core.filesystem import FilesystemProvider
from nupm.core.hooks import LifecycleHooks
from nupm.core.installed import InstalledPackageIndex
from nupm.core.installer import InstallOutcome, InstallResult, OutcomeKind
from nupm.core.orchestrator import (InstallOptions, InstallOrchestrator, InstallReport,
                                    InstallState)
from nupm.core.progress import CancellationToken, ProgressReporter
from nupm.core.reference import PackageReference
from nupm.core.sources import PackageSource

SOURCE = PackageSource(name="feed", location="https://feed.example/v3/index.json")


def ref(package_id, version="1.0.0"):
    return PackageReference.from_manifest(manifest(package_id, version), SOURCE)


class FakeResolver:
    def __init__(self, closure=None, error=None):
        self._closure = closure or []
        self.error = error
        self.diagnostics = Diagnostics()

    def closure(self, root):
        if self.error is not None:
            raise self.error
        return list(self._closure)


class FakeInstaller:
    """Reports a fixed outcome per id and creates directories for successes."""

    def __init__(self, destination, outcomes: Dict[str, OutcomeKind] = None, on_install=None):
        self.destination = destination
        self.outcomes = outcomes or {}
        self.on_install = on_install
        self.calls: List[str] = []

    def install(self, package, token=None):
        self.calls.append(package.id)
        if self.on_install is not None:
            self.on_install(package)
        kind = self.outcomes.get(package.id, OutcomeKind.SUCCESSFUL)
        result = InstallResult(exit_code=0 if kind != OutcomeKind.FAILED else 1)
        outcome = InstallOutcome(kind, package.id, package.version)
        if kind == OutcomeKind.SUCCESSFUL:
            outcome.install_path = self.destination / package.full_name
            write_nupkg(outcome.install_path, package.id, package.version)
        elif kind == OutcomeKind.FAILED:
            result.errors.append(f"'{package}' was not installed")
        result.add(outcome)
        return result


class RecordingReporter(ProgressReporter):
    def __init__(self, accept=True):
        self.percents: List[int] = []
        self.completed = []
        self.placed = []
        self.accept = accept

    def progress(self, percent, message=""):
        self.percents.append(percent)

    def complete(self, success):
        self.completed.append(success)

    def package_installed(self, package):
        self.placed.append(package.id)
        return self.accept


class RecordingFilesystem(FilesystemProvider):
    def __init__(self):
        super().__init__()
        self.deleted = []

    def delete_folder(self, path):
        self.deleted.append(path)
        return super().delete_folder(path)


class FailingHooks(LifecycleHooks):
    def __init__(self, post_install_fails=()):
        self.post_install_fails = set(post_install_fails)
        self.calls = []

    def post_install(self, package):
        self.calls.append(("post_install", package.id))
        return package.id not in self.post_install_fails

    def pre_uninstall(self, package):
        self.calls.append(("pre_uninstall", package.id))
        return True

    def post_uninstall(self, package):
        self.calls.append(("post_uninstall", package.id))
        return True


@pytest.fixture
def destination(tmp_path):
    return tmp_path / "packages"


@pytest.fixture
def diagnostics():
    return Diagnostics()


def make(destination, diagnostics, closure=(), outcomes=None, **kwargs):
    installer = kwargs.pop('installer', None) or FakeInstaller(destination, outcomes)
    orchestrator = InstallOrchestrator(
        FakeResolver(list(closure), kwargs.pop('error', None)),
        installer,
        InstalledPackageIndex(destination),
        diagnostics=diagnostics,
        **kwargs,
    )
    return orchestrator, installer


class TestInstallPackage:
    """Tests for InstallOrchestrator.install_package."""

    def test_installs_closure_then_root(self, destination, diagnostics):
        reporter = RecordingReporter()
        orchestrator, installer = make(destination, diagnostics,
                                       [ref("D"), ref("B"), ref("C")], reporter=reporter)
        report = orchestrator.install_package(ref("A"))
        assert report
        assert report.state == InstallState.SUCCEEDED
        assert installer.calls == ["D", "B", "C", "A"]
        assert report.installed_ids() == ["D", "B", "C", "A"]
        assert reporter.placed == ["D", "B", "C", "A"]
        assert reporter.completed == [True]

    def test_progress_monotonic(self, destination, diagnostics):
        reporter = RecordingReporter()
        orchestrator, _ = make(destination, diagnostics, [ref("D"), ref("B"), ref("C")],
                               reporter=reporter)
        orchestrator.install_package(ref("A"))
        assert reporter.percents == sorted(reporter.percents)
        assert reporter.percents[0] == 0
        assert reporter.percents[-1] == 100

    def test_dependency_failure_stops_run(self, destination, diagnostics):
        reporter = RecordingReporter()
        orchestrator, installer = make(destination, diagnostics,
                                       [ref("D"), ref("B"), ref("C")],
                                       {"B": OutcomeKind.FAILED}, reporter=reporter)
        report = orchestrator.install_package(ref("A"))
        assert not report
        assert report.state == InstallState.FAILED
        assert installer.calls == ["D", "B"]
        assert report.installed_ids() == ["D"]
        assert [p.id for p in report.failed] == ["B"]
        assert diagnostics.find(diag.DEPENDENT_PACKAGE_FAILED).target == "B"
        assert diag.PACKAGE_FAILED_INSTALL in diagnostics.codes()
        # Earlier dependencies stay installed
        assert (destination / "D.1.0.0").is_dir()
        assert reporter.completed == [False]

    def test_continue_on_failure(self, destination, diagnostics):
        orchestrator, installer = make(destination, diagnostics,
                                       [ref("D"), ref("B"), ref("C")],
                                       {"B": OutcomeKind.FAILED},
                                       options=InstallOptions(continue_on_failure=True))
        report = orchestrator.install_package(ref("A"))
        assert installer.calls == ["D", "B", "C", "A"]
        assert report.state == InstallState.FAILED

    def test_skip_dependencies(self, destination, diagnostics):
        orchestrator, installer = make(destination, diagnostics, [ref("D")],
                                       options=InstallOptions(skip_dependencies=True))
        assert orchestrator.install_package(ref("A"))
        assert installer.calls == ["A"]

    def test_already_present(self, destination, diagnostics):
        orchestrator, _ = make(destination, diagnostics, [], {"A": OutcomeKind.ALREADY_PRESENT})
        report = orchestrator.install_package(ref("A"))
        assert report
        assert [o.id for o in report.already_present] == ["A"]

    def test_resolution_error(self, destination, diagnostics):
        orchestrator, installer = make(destination, diagnostics,
                                       error=ResolutionError("Ghost", "[1.0,)", "A 1.0.0"))
        report = orchestrator.install_package(ref("A"))
        assert report.state == InstallState.FAILED
        assert installer.calls == []
        assert diagnostics.find(diag.DEPENDENCY_RESOLUTION_ERROR).target == "Ghost"

    def test_root_failure(self, destination, diagnostics):
        orchestrator, _ = make(destination, diagnostics, [ref("D")], {"A": OutcomeKind.FAILED})
        report = orchestrator.install_package(ref("A"))
        assert report.state == InstallState.FAILED
        assert report.installed_ids() == ["D"]

    def test_post_install_failure_removes_package(self, destination, diagnostics):
        filesystem = RecordingFilesystem()
        hooks = FailingHooks(post_install_fails={"B"})
        orchestrator, _ = make(destination, diagnostics, [ref("D"), ref("B")],
                               hooks=hooks, filesystem=filesystem)
        report = orchestrator.install_package(ref("A"))
        assert report.state == InstallState.FAILED
        assert report.installed_ids() == ["D"]
        assert filesystem.deleted == [destination / "B.1.0.0"]
        assert not (destination / "B.1.0.0").exists()
        assert ("pre_uninstall", "B") in hooks.calls

    def test_reporter_can_cancel(self, destination, diagnostics):
        orchestrator, installer = make(destination, diagnostics, [ref("D"), ref("B")],
                                       reporter=RecordingReporter(accept=False))
        report = orchestrator.install_package(ref("A"))
        assert report.state == InstallState.CANCELLED
        assert installer.calls == ["D"]
        assert diagnostics.find(diag.CANCELLED) is not None

    def test_token_cancel_between_packages(self, destination, diagnostics):
        token = CancellationToken()
        installer = FakeInstaller(destination, on_install=lambda package: token.cancel())
        orchestrator, _ = make(destination, diagnostics, [ref("D"), ref("B")],
                               installer=installer, token=token)
        report = orchestrator.install_package(ref("A"))
        assert report.state == InstallState.CANCELLED
        assert installer.calls == ["D"]

    def test_install_single_package(self, destination, diagnostics):
        orchestrator, installer = make(destination, diagnostics, [ref("D")])
        assert orchestrator.install_single_package(ref("A"))
        assert installer.calls == ["A"]

    def test_mixed_outcomes(self, destination, diagnostics):
        class MixedInstaller(FakeInstaller):
            def install(self, package, token=None):
                result = InstallResult(exit_code=1)
                result.add(InstallOutcome(OutcomeKind.SUCCESSFUL, "Dep", "1.0"))
                result.add(InstallOutcome(OutcomeKind.FAILED, package.id, package.version))
                return result

        orchestrator, _ = make(destination, diagnostics,
                               installer=MixedInstaller(destination))
        assert not orchestrator.install_package(ref("A"))
        assert diag.MULTIPLE_PACKAGES_INSTALLED in diagnostics.codes()


class TestUninstall:
    """Tests for uninstall_package."""

    def test_not_installed_is_success(self, destination, diagnostics):
        filesystem = RecordingFilesystem()
        orchestrator, _ = make(destination, diagnostics, filesystem=filesystem)
        report = orchestrator.uninstall_package(ref("A"))
        assert report
        assert filesystem.deleted == []

    def test_idempotent(self, destination, diagnostics):
        write_nupkg(destination / "A.1.0.0", "A", "1.0.0")
        filesystem = RecordingFilesystem()
        hooks = FailingHooks()
        orchestrator, _ = make(destination, diagnostics, filesystem=filesystem, hooks=hooks)
        assert orchestrator.uninstall_package(ref("A"))
        assert not (destination / "A.1.0.0").exists()
        assert orchestrator.uninstall_package(ref("A"))
        assert filesystem.deleted == [destination / "A.1.0.0"]
        assert hooks.calls == [("pre_uninstall", "A"), ("post_uninstall", "A")]

    def test_pre_uninstall_failure(self, destination, diagnostics):
        write_nupkg(destination / "A.1.0.0", "A", "1.0.0")

        class Refusing(LifecycleHooks):
            def pre_uninstall(self, package):
                return False

        orchestrator, _ = make(destination, diagnostics, hooks=Refusing())
        report = orchestrator.uninstall_package(ref("A"))
        assert report.state == InstallState.FAILED
        assert (destination / "A.1.0.0").is_dir()
        assert diagnostics.find(diag.UNINSTALL_FAILED) is not None


class TestQueries:
    """Tests for installed_packages and download_package."""

    def test_installed_packages(self, destination, diagnostics):
        write_nupkg(destination / "Foo.1.0.0", "Foo", "1.0.0")
        write_nupkg(destination / "FooBar.2.0.0", "FooBar", "2.0.0")
        orchestrator, _ = make(destination, diagnostics)
        assert sorted(p.id for p in orchestrator.installed_packages()) == ["Foo", "FooBar"]
        [foo] = orchestrator.installed_packages("foo")
        assert foo.install_path == destination / "Foo.1.0.0"
        assert [p.id for p in orchestrator.installed_packages("bar")] == ["FooBar"]

    def test_download_local_package(self, tmp_path, destination, diagnostics):
        archive = write_nupkg(tmp_path / "feed", "Foo", "1.0.0")
        package = PackageReference.from_manifest(
            manifest("Foo", "1.0.0"), PackageSource(name="feed", location=str(tmp_path / "feed")))
        package.manifest.content_url = str(archive)
        orchestrator, _ = make(destination, diagnostics)
        saved = orchestrator.download_package(package, tmp_path / "out")
        assert saved == tmp_path / "out" / "Foo.1.0.0.nupkg"
        assert saved.is_file()

    def test_download_without_location(self, tmp_path, destination, diagnostics):
        orchestrator, _ = make(destination, diagnostics)
        assert orchestrator.download_package(ref("Foo"), tmp_path / "out") is None
        assert diagnostics.find(diag.PACKAGE_NOT_FOUND) is not None


def test_report_truthiness():
    report = InstallReport(package=ref("A"))
    assert not report
    report.state = InstallState.SUCCEEDED
    assert report
