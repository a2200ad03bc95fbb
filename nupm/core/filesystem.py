"""
Filesystem provider

The only place the core touches the disk for package directories. Every
operation is idempotent: creating an existing folder or deleting a missing
path succeeds.
"""

import logging
import shutil
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from .. import __version__
from .sources import location_to_path

logger = logging.getLogger(__name__)

USER_AGENT = f"nupm/{__version__}"
CHUNK_SIZE = 8192

PathLike = Union[str, Path]


@dataclass
class DownloadResult:
    """Result of a download operation."""
    success: bool
    path: Optional[Path] = None
    size: int = 0
    error: Optional[str] = None


class FilesystemProvider:
    """Creates, copies, downloads and removes package files."""

    def __init__(self, timeout: int = 30):
        self.timeout = timeout

    def create_folder(self, path: PathLike) -> Path:
        path = Path(path)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def delete(self, path: PathLike) -> bool:
        """Delete a file (or a folder). True if something was removed."""
        path = Path(path)
        if path.is_dir() and not path.is_symlink():
            return self.delete_folder(path)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Deleted {path}")
        return True

    def delete_folder(self, path: PathLike) -> bool:
        """Recursively delete a folder. True if something was removed."""
        path = Path(path)
        if not path.exists():
            return False
        shutil.rmtree(path)
        logger.debug(f"Deleted folder {path}")
        return True

    def copy_file(self, source: PathLike, destination: PathLike) -> Path:
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, destination)
        logger.debug(f"Copied {source} -> {destination}")
        return destination

    def download_file(self, uri: str, destination: PathLike,
                      progress_callback: Optional[Callable[[int, int], None]] = None
                      ) -> DownloadResult:
        """Fetch a URI (or copy a local path) to destination.

        Args:
            uri: http(s) URL, file: URI or plain path
            destination: Target file path
            progress_callback: Optional callback(downloaded_bytes, total_bytes)

        Returns:
            DownloadResult with success status
        """
        destination = Path(destination)
        local = location_to_path(uri)
        if local is not None:
            if not local.is_file():
                return DownloadResult(success=False, error=f"No such file: {local}")
            try:
                self.copy_file(local, destination)
            except OSError as e:
                return DownloadResult(success=False, error=str(e))
            return DownloadResult(success=True, path=destination,
                                  size=destination.stat().st_size)

        partial = destination.with_name(destination.name + '.part')
        try:
            req = urllib.request.Request(uri)
            req.add_header('User-Agent', USER_AGENT)

            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                total_size = int(response.headers.get('Content-Length', 0))
                downloaded = 0
                destination.parent.mkdir(parents=True, exist_ok=True)

                with open(partial, 'wb') as f:
                    while True:
                        chunk = response.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        f.write(chunk)
                        downloaded += len(chunk)
                        if progress_callback:
                            progress_callback(downloaded, total_size)

            partial.replace(destination)
            logger.debug(f"Downloaded {uri} -> {destination} ({downloaded} bytes)")
            return DownloadResult(success=True, path=destination, size=downloaded)

        except urllib.error.HTTPError as e:
            error = f"HTTP {e.code}: {e.reason}"
        except urllib.error.URLError as e:
            error = f"URL error: {e.reason}"
        except OSError as e:
            error = str(e)

        self.delete(partial)
        return DownloadResult(success=False, error=error)
