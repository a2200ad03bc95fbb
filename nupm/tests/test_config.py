"""Tests for configuration loading and saving"""

from pathlib import Path

import yaml

from nupm.core.config import (DEFAULT_INSTALLER_COMMAND, DEFAULT_SOURCE_LOCATION, Config,
                              load_config, save_config)
from nupm.core.sources import PackageSource


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file_gives_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml", destination=tmp_path / "dest")
        assert config.destination == tmp_path / "dest"
        assert [s.location for s in config.sources] == [DEFAULT_SOURCE_LOCATION]
        assert config.installer.command == DEFAULT_INSTALLER_COMMAND
        assert config.path == tmp_path / "missing.yaml"

    def test_no_path(self):
        config = load_config()
        assert config.path is None
        assert config.supported_schemes == ["http", "https", "file"]

    def test_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            'destination': str(tmp_path / "pkgs"),
            'sources': [
                {'name': 'corp', 'location': 'https://corp.example/v3/index.json', 'trusted': 'yes'},
                {'location': '/srv/feed'},
                {'name': 'no-location'},
            ],
            'supported_schemes': ['HTTPS'],
            'installer': {'command': 'mono nuget.exe install {id}', 'timeout': 60,
                          'exclude_version': True},
            'max_workers': 0,
            'package_save_mode': 'nuspec',
        }))
        config = load_config(path)
        assert config.destination == tmp_path / "pkgs"
        assert [(s.name, s.trusted) for s in config.sources] == [("corp", True), ("/srv/feed", False)]
        assert all(s.registered for s in config.sources)
        assert config.supported_schemes == ["https"]
        assert config.installer.command == ["mono", "nuget.exe", "install", "{id}"]
        assert config.installer.timeout == 60.0
        assert config.installer.exclude_version
        assert config.max_workers == 1
        assert config.package_save_mode == "nuspec"

    def test_empty_sources(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("sources: []\n")
        assert load_config(path).sources == []

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("sources: [unclosed\n")
        config = load_config(path)
        assert [s.location for s in config.sources] == [DEFAULT_SOURCE_LOCATION]

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        assert load_config(path).max_workers == 4

    def test_invalid_values_ignored(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            'installer': {'timeout': 'soon'},
            'max_workers': 'many',
            'package_save_mode': 'zip',
        }))
        config = load_config(path)
        assert config.installer.timeout is None
        assert config.max_workers == 4
        assert config.package_save_mode == "nupkg"


class TestSaveConfig:
    """Tests for save_config."""

    def test_round_trip(self, tmp_path):
        config = Config(destination=tmp_path / "pkgs", path=tmp_path / "nupm" / "config.yaml")
        config.sources.append(PackageSource(name="local", location="/srv/feed",
                                            trusted=True, registered=True))
        config.installer.timeout = 120.0
        save_config(config)

        loaded = load_config(config.path)
        assert loaded.destination == config.destination
        assert [s.name for s in loaded.sources] == ["nuget.org", "local"]
        assert loaded.sources[1].trusted
        assert loaded.installer.timeout == 120.0

    def test_adhoc_sources_not_written(self, tmp_path):
        config = Config(sources=[PackageSource(name="tmp", location="/tmp/feed")])
        path = save_config(config, tmp_path / "config.yaml")
        assert yaml.safe_load(Path(path).read_text())['sources'] == []
