"""Tests for local and remote repositories"""

import json

import pytest

from conftest import write_nupkg
from nupm.core.repository import (HttpRepository, LocalRepository, RepositoryError,
                                  open_repository)
from nupm.core.version import VersionSpec


class TestLocalRepository:
    """Tests for directory repositories."""

    @pytest.fixture
    def feed(self, tmp_path):
        root = tmp_path / "feed"
        write_nupkg(root, "Foo", "1.0.0", tags="json")
        write_nupkg(root, "Foo", "1.1.0")
        write_nupkg(root, "Foo", "2.0.0-beta")
        write_nupkg(root / "nested", "Bar", "3.0.0", description="Bar does json things")
        (root / "broken.nupkg").write_text("garbage")
        return root

    def test_find_by_id_case_insensitive(self, feed):
        repo = LocalRepository(str(feed))
        versions = sorted(m.version for m in repo.find_by_id("foo"))
        assert versions == ["1.0.0", "1.1.0", "2.0.0-beta"]

    def test_content_url_is_archive_path(self, feed):
        repo = LocalRepository(str(feed))
        [bar] = repo.find_by_id("Bar")
        assert bar.content_url == str(feed / "nested" / "Bar.3.0.0.nupkg")

    def test_find_by_version_spec(self, feed):
        repo = LocalRepository(str(feed))
        found = repo.find_by_version_spec("Foo", VersionSpec.parse("1.0"))
        assert [m.version for m in found] == ["1.1.0", "1.0.0"]
        found = repo.find_by_version_spec("Foo", VersionSpec.parse("1.0"), allow_prerelease=True)
        assert [m.version for m in found] == ["2.0.0-beta", "1.1.0", "1.0.0"]

    def test_find_package(self, feed):
        repo = LocalRepository(str(feed))
        assert repo.find_package("FOO", "1.1").version == "1.1.0"
        assert repo.find_package("Foo", "9.9") is None

    def test_search(self, feed):
        repo = LocalRepository(str(feed))
        assert sorted(m.id for m in repo.search("json")) == ["Bar", "Foo"]
        assert [m.id for m in repo.search("b*r")] == ["Bar"]
        assert "2.0.0-beta" not in [m.version for m in repo.search("")]
        assert "2.0.0-beta" in [m.version for m in repo.search("", allow_prerelease=True)]

    def test_single_file(self, feed):
        repo = LocalRepository(str(feed / "nested" / "Bar.3.0.0.nupkg"))
        assert [m.id for m in repo.find_by_id("Bar")] == ["Bar"]

    def test_missing_directory(self, tmp_path):
        repo = LocalRepository(str(tmp_path / "missing"))
        assert not repo.validate()
        with pytest.raises(RepositoryError):
            repo.find_by_id("Foo")

    def test_picks_up_new_archives(self, feed):
        repo = LocalRepository(str(feed))
        assert repo.find_by_id("Baz") == []
        write_nupkg(feed, "Baz", "1.0.0")
        assert [m.version for m in repo.find_by_id("Baz")] == ["1.0.0"]


class FakeFeed(HttpRepository):
    """HttpRepository answering from a URL -> document map."""

    def __init__(self, documents, **kwargs):
        super().__init__("https://feed.example/v3/index.json", **kwargs)
        self.documents = documents
        self.requests = []

    def _get_json(self, url):
        self.requests.append(url)
        doc = self.documents.get(url.split('?')[0])
        if callable(doc):
            return doc(url)
        # Round-trip through JSON like a real response body
        return json.loads(json.dumps(doc)) if doc is not None else None


@pytest.fixture
def service_index():
    return {
        "version": "3.0.0",
        "resources": [
            {"@id": "https://feed.example/v3/registration/", "@type": "RegistrationsBaseUrl/3.6.0"},
            {"@id": "https://feed.example/v3/query", "@type": "SearchQueryService/3.5.0"},
            {"@id": "https://feed.example/v3/flat/", "@type": "PackageBaseAddress/3.0.0"},
        ],
    }


class TestHttpRepository:
    """Tests for v3 feed queries against canned documents."""

    def test_validate(self, service_index):
        feed = FakeFeed({"https://feed.example/v3/index.json": service_index})
        assert feed.validate()
        assert not FakeFeed({}).validate()

    def test_find_by_id(self, service_index):
        registration = {
            "items": [
                {"items": [
                    {"catalogEntry": {"id": "Foo", "version": "1.0.0",
                                      "dependencyGroups": [{"dependencies": [{"id": "Bar", "range": "[1.0, )"}]}]},
                     "packageContent": "https://cdn.example/foo.1.0.0.nupkg"},
                ]},
                {"@id": "https://feed.example/v3/registration/foo/page2.json"},
            ]
        }
        page2 = {"items": [{"catalogEntry": {"id": "Foo", "version": "2.0.0"}}]}
        feed = FakeFeed({
            "https://feed.example/v3/index.json": service_index,
            "https://feed.example/v3/registration/foo/index.json": registration,
            "https://feed.example/v3/registration/foo/page2.json": page2,
        })
        manifests = feed.find_by_id("Foo")
        assert [m.version for m in manifests] == ["1.0.0", "2.0.0"]
        assert manifests[0].content_url == "https://cdn.example/foo.1.0.0.nupkg"
        assert manifests[0].dependencies[0].id == "Bar"
        assert manifests[1].content_url == "https://feed.example/v3/flat/foo/2.0.0/foo.2.0.0.nupkg"

    def test_find_by_id_unknown(self, service_index):
        feed = FakeFeed({"https://feed.example/v3/index.json": service_index})
        assert feed.find_by_id("Nothing") == []

    def test_service_index_cached(self, service_index):
        feed = FakeFeed({"https://feed.example/v3/index.json": service_index})
        feed.find_by_id("A")
        feed.find_by_id("B")
        assert feed.requests.count("https://feed.example/v3/index.json") == 1

    def test_search_pages(self, service_index):
        def query(url):
            skip = int(url.split("skip=")[1].split("&")[0])
            data = [{"id": f"Pkg{i}", "version": "1.0.0",
                     "versions": [{"version": "0.9.0"}, {"version": "1.0.0"}]}
                    for i in range(skip, min(skip + 2, 3))]
            return {"totalHits": 3, "data": data}

        feed = FakeFeed({"https://feed.example/v3/index.json": service_index,
                         "https://feed.example/v3/query": query}, page_size=2)
        results = list(feed.search("pkg"))
        assert [m.full_name for m in results] == [
            "Pkg0.0.9.0", "Pkg0.1.0.0", "Pkg1.0.9.0", "Pkg1.1.0.0", "Pkg2.0.9.0", "Pkg2.1.0.0",
        ]
        assert sum(1 for r in feed.requests if "query" in r) == 2

    def test_not_a_feed(self):
        feed = FakeFeed({"https://feed.example/v3/index.json": {"hello": "world"}})
        with pytest.raises(RepositoryError):
            feed.find_by_id("Foo")


class TestOpenRepository:
    """Tests for repository dispatch."""

    def test_local(self, tmp_path):
        assert isinstance(open_repository(str(tmp_path)), LocalRepository)
        assert isinstance(open_repository(tmp_path.as_uri()), LocalRepository)

    def test_http(self):
        assert isinstance(open_repository("https://feed.example/index.json"), HttpRepository)

    def test_unsupported(self):
        with pytest.raises(RepositoryError):
            open_repository("ftp://feed.example")
