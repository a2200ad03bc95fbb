"""
Configuration for nupm.

The configuration is read once at process start and passed explicitly to
the core; nothing below looks at the environment. The file is YAML:

    destination: /home/user/.local/share/nupm/packages
    sources:
      - name: nuget.org
        location: https://api.nuget.org/v3/index.json
        trusted: false
    supported_schemes: [http, https, file]
    installer:
      command: [nuget, install, '{id}', -Version, '{version}', ...]
      exclude_version: false
      timeout: 600
      poll_interval: 0.1
    max_workers: 4
    package_save_mode: nupkg

Missing keys take their defaults; a missing or unreadable file yields the
default configuration.
"""

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

import yaml

from .sources import DEFAULT_SUPPORTED_SCHEMES, PackageSource

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_NAME = "nuget.org"
DEFAULT_SOURCE_LOCATION = "https://api.nuget.org/v3/index.json"
DEFAULT_DESTINATION = Path("packages")
DEFAULT_MAX_WORKERS = 4
DEFAULT_POLL_INTERVAL = 0.1
PACKAGE_SAVE_MODES = ("nupkg", "nuspec", "nupkg;nuspec")

# Placeholders: {id} {version} {source} {destination} {save_mode}
DEFAULT_INSTALLER_COMMAND = [
    "nuget", "install", "{id}",
    "-Version", "{version}",
    "-Source", "{source}",
    "-OutputDirectory", "{destination}",
    "-NonInteractive",
]


@dataclass
class InstallerConfig:
    command: List[str] = field(default_factory=lambda: list(DEFAULT_INSTALLER_COMMAND))
    exclude_version: bool = False
    timeout: Optional[float] = None
    poll_interval: float = DEFAULT_POLL_INTERVAL


@dataclass
class Config:
    """Resolved configuration values."""
    destination: Path = DEFAULT_DESTINATION
    sources: List[PackageSource] = field(default_factory=lambda: [default_source()])
    supported_schemes: List[str] = field(default_factory=lambda: list(DEFAULT_SUPPORTED_SCHEMES))
    installer: InstallerConfig = field(default_factory=InstallerConfig)
    max_workers: int = DEFAULT_MAX_WORKERS
    package_save_mode: str = "nupkg"
    # Where the configuration was loaded from, and is saved to
    path: Optional[Path] = None


def default_source() -> PackageSource:
    return PackageSource(name=DEFAULT_SOURCE_NAME, location=DEFAULT_SOURCE_LOCATION,
                         registered=True, validated=True)


def _as_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes', 'on')
    return bool(value)


def _parse_sources(data) -> List[PackageSource]:
    sources = []
    if not isinstance(data, list):
        logger.warning("Ignoring malformed 'sources' entry in configuration")
        return sources
    for entry in data:
        if not isinstance(entry, dict) or not entry.get('location'):
            logger.warning(f"Ignoring malformed source entry: {entry!r}")
            continue
        location = str(entry['location'])
        sources.append(PackageSource(
            name=str(entry.get('name') or location),
            location=location,
            trusted=_as_bool(entry.get('trusted')),
            registered=True,
            validated=_as_bool(entry.get('validated'), True),
        ))
    return sources


def _parse_installer(data) -> InstallerConfig:
    installer = InstallerConfig()
    if not isinstance(data, dict):
        return installer

    command = data.get('command')
    if isinstance(command, str):
        installer.command = shlex.split(command)
    elif isinstance(command, list) and command:
        installer.command = [str(c) for c in command]

    installer.exclude_version = _as_bool(data.get('exclude_version'))
    if data.get('timeout') is not None:
        try:
            installer.timeout = float(data['timeout'])
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid installer timeout: {data['timeout']!r}")
    if data.get('poll_interval') is not None:
        try:
            installer.poll_interval = max(0.01, float(data['poll_interval']))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid poll interval: {data['poll_interval']!r}")
    return installer


def config_from_dict(data: dict, destination: Optional[Path] = None) -> Config:
    """Build a Config from parsed YAML, falling back to defaults per key."""
    config = Config()
    if destination is not None:
        config.destination = Path(destination)

    if data.get('destination'):
        config.destination = Path(str(data['destination'])).expanduser()
    if 'sources' in data:
        config.sources = _parse_sources(data['sources'] or [])
    if isinstance(data.get('supported_schemes'), list):
        config.supported_schemes = [str(s).lower() for s in data['supported_schemes']]
    config.installer = _parse_installer(data.get('installer'))

    if data.get('max_workers') is not None:
        try:
            config.max_workers = max(1, int(data['max_workers']))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid max_workers: {data['max_workers']!r}")

    mode = data.get('package_save_mode')
    if mode:
        if mode in PACKAGE_SAVE_MODES:
            config.package_save_mode = mode
        else:
            logger.warning(f"Ignoring unknown package_save_mode: {mode!r}")
    return config


def load_config(path: Optional[Union[str, Path]] = None,
                destination: Optional[Path] = None) -> Config:
    """Load configuration from a YAML file.

    Args:
        path: Configuration file (None for defaults only)
        destination: Install root used when the file does not set one

    Returns:
        Config (defaults when the file is missing or malformed)
    """
    config_path = Path(path) if path else None
    data = {}
    if config_path is not None and config_path.exists():
        try:
            with open(config_path, 'r') as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                logger.warning(f"Configuration {config_path} is not a mapping, using defaults")
                data = {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Failed to load configuration {config_path}: {e}")
            data = {}

    config = config_from_dict(data, destination)
    config.path = config_path
    logger.debug(f"Configuration: destination={config.destination}, "
                 f"{len(config.sources)} source(s)")
    return config


def config_to_dict(config: Config) -> dict:
    installer = {
        'command': list(config.installer.command),
        'exclude_version': config.installer.exclude_version,
        'poll_interval': config.installer.poll_interval,
    }
    if config.installer.timeout is not None:
        installer['timeout'] = config.installer.timeout

    return {
        'destination': str(config.destination),
        # Ad-hoc sources never reach the file
        'sources': [
            {
                'name': s.name,
                'location': s.location,
                'trusted': s.trusted,
                'validated': s.validated,
            }
            for s in config.sources if s.registered
        ],
        'supported_schemes': list(config.supported_schemes),
        'installer': installer,
        'max_workers': config.max_workers,
        'package_save_mode': config.package_save_mode,
    }


def save_config(config: Config, path: Optional[Union[str, Path]] = None) -> Path:
    """Write configuration as YAML.

    Raises:
        ValueError: If neither path nor config.path is set
        OSError: If the file cannot be written
    """
    target = Path(path) if path else config.path
    if target is None:
        raise ValueError("No configuration path to save to")
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, 'w') as f:
        yaml.safe_dump(config_to_dict(config), f, default_flow_style=False, sort_keys=False)
    logger.debug(f"Saved configuration to {target}")
    return target
