"""Tests for source selection and registration"""

import pytest

from nupm.core import diagnostics as diag
from nupm.core.diagnostics import Diagnostics, Severity
from nupm.core.sources import PackageSource, SourceSelector, parse_uri


@pytest.fixture
def registered():
    return [
        PackageSource(name="nuget.org", location="https://api.nuget.org/v3/index.json",
                      trusted=True, registered=True),
        PackageSource(name="local", location="/srv/feed", registered=True),
    ]


@pytest.fixture
def diagnostics():
    return Diagnostics()


def make_selector(registered, diagnostics, valid=True, **kwargs):
    calls = []

    def validator(location):
        calls.append(location)
        return valid

    selector = SourceSelector(registered, diagnostics=diagnostics, validator=validator, **kwargs)
    selector.validator_calls = calls
    return selector


class TestParseUri:
    """Tests for URI detection."""

    def test_absolute_uri(self):
        assert parse_uri("https://feed.example/index.json").scheme == "https"
        assert parse_uri("ftp://bad-scheme-example").scheme == "ftp"

    def test_paths_are_not_uris(self):
        assert parse_uri("/srv/feed") is None
        assert parse_uri("relative/dir") is None
        assert parse_uri("C:\\packages") is None


class TestSelectedSources:
    """Tests for SourceSelector.selected_sources."""

    def test_empty_request_returns_all_registered(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        assert selector.selected_sources() == registered
        assert selector.selected_sources([]) == registered

    def test_name_match_is_case_insensitive(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        assert selector.selected_sources(["NuGet.ORG"]) == [registered[0]]

    def test_location_match(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        assert selector.selected_sources(["/srv/feed/"]) == [registered[1]]
        assert selector.validator_calls == []

    def test_request_order_kept(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        assert selector.selected_sources(["local", "nuget.org"]) == [registered[1], registered[0]]

    def test_unsupported_scheme(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        assert selector.selected_sources(["ftp://bad-scheme-example"]) == []
        found = diagnostics.find(diag.SCHEME_NOT_SUPPORTED)
        assert found.severity == Severity.ERROR
        assert found.target == "ftp://bad-scheme-example"
        assert len(diagnostics) == 1
        assert selector.validator_calls == []

    def test_adhoc_uri_validated(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        [source] = selector.selected_sources(["https://feed.example/index.json"])
        assert source.location == "https://feed.example/index.json"
        assert source.validated
        assert not source.registered
        assert selector.validator_calls == ["https://feed.example/index.json"]

    def test_adhoc_uri_invalid(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics, valid=False)
        assert selector.selected_sources(["https://down.example/index.json"]) == []
        assert diag.SOURCE_LOCATION_NOT_VALID in diagnostics.codes()
        assert diag.SOURCE_NOT_FOUND in diagnostics.codes()
        assert not diagnostics.has_errors()

    def test_skip_validate(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics, valid=False, skip_validate=True)
        [source] = selector.selected_sources(["https://down.example/index.json"])
        assert not source.validated
        assert selector.validator_calls == []

    def test_existing_directory(self, registered, diagnostics, tmp_path):
        selector = make_selector(registered, diagnostics)
        [source] = selector.selected_sources([str(tmp_path)])
        assert source.trusted
        assert source.validated
        assert source.is_directory

    def test_unknown_token(self, registered, diagnostics, tmp_path):
        selector = make_selector(registered, diagnostics)
        assert selector.selected_sources([str(tmp_path / "missing")]) == []
        assert diagnostics.codes() == [diag.SOURCE_NOT_FOUND]

    def test_mixed_tokens(self, registered, diagnostics, tmp_path):
        selector = make_selector(registered, diagnostics)
        sources = selector.selected_sources(["ftp://x.example", "local", "nope-nope"])
        assert sources == [registered[1]]
        assert diagnostics.has_errors()


class TestResolvePackageSource:
    """Tests for single-token resolution."""

    def test_package_file_accepted(self, registered, diagnostics, tmp_path):
        package = tmp_path / "Foo.1.0.0.nupkg"
        package.write_bytes(b"")
        selector = make_selector(registered, diagnostics)
        source = selector.resolve_package_source(str(package))
        assert source.is_file

    def test_registered_name(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        assert selector.resolve_package_source("local") is registered[1]

    def test_missing(self, registered, diagnostics, tmp_path):
        selector = make_selector(registered, diagnostics)
        assert selector.resolve_package_source(str(tmp_path / "gone")) is None
        assert diagnostics.has_errors()


class TestAddRemoveSource:
    """Tests for source registration."""

    def test_add(self, registered, diagnostics, tmp_path):
        changes = []
        selector = make_selector(registered, diagnostics, on_change=changes.append)
        source = selector.add_source("extra", str(tmp_path), trusted=True)
        assert source.registered
        assert source.validated
        assert selector.find_registered_source("EXTRA") == source
        assert changes[-1][-1] == source

    def test_refuses_clobber(self, registered, diagnostics):
        changes = []
        selector = make_selector(registered, diagnostics, on_change=changes.append)
        assert selector.add_source("local", "/elsewhere") is None
        assert diagnostics.codes() == [diag.SOURCE_EXISTS]
        assert selector.find_registered_source("local").location == "/srv/feed"
        assert changes == []

    def test_update_replaces_in_place(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        source = selector.add_source("local", "/srv/other", update=True)
        assert selector.registered[1] == source
        assert len(selector.registered) == 2

    def test_update_unknown(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        assert selector.add_source("ghost", "/srv/ghost", update=True) is None
        assert diag.SOURCE_NOT_FOUND in diagnostics.codes()

    def test_add_unsupported_scheme(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        assert selector.add_source("ftp", "ftp://files.example") is None
        assert diagnostics.codes() == [diag.SCHEME_NOT_SUPPORTED]

    def test_add_invalid_location(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics, valid=False)
        assert selector.add_source("down", "https://down.example/index.json") is None
        assert diagnostics.codes() == [diag.SOURCE_LOCATION_NOT_VALID]

    def test_validate_source_location(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        assert selector.validate_source_location("https://feed.example/index.json")
        assert not selector.validate_source_location("ftp://feed.example")
        assert selector.validator_calls == ["https://feed.example/index.json"]

    def test_add_missing_parameters(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        assert selector.add_source("", "/srv/x") is None
        assert selector.add_source("x", "") is None
        assert diagnostics.codes() == [diag.MISSING_PARAMETER, diag.MISSING_PARAMETER]

    def test_remove(self, registered, diagnostics):
        changes = []
        selector = make_selector(registered, diagnostics, on_change=changes.append)
        removed = selector.remove_source("local")
        assert removed == registered[1]
        assert changes == [[registered[0]]]

    def test_remove_unknown(self, registered, diagnostics):
        selector = make_selector(registered, diagnostics)
        assert selector.remove_source("ghost") is None
        assert diagnostics.warnings
