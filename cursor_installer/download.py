"""
Download manager.

Fetches a remote resource into a scratch directory, retrying with a linear
backoff, and moves the result into place only once it is known to be
non-empty.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import subprocess
import tempfile
import time
import urllib.request
from pathlib import Path
from typing import Callable, Iterator, Optional, Protocol

from .config import BACKOFF_STEP, CONNECT_TIMEOUT, MAX_RETRIES
from .errors import DownloadError, NetworkError
from .progress import ProgressBar

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]
ProgressFactory = Callable[[str], ProgressBar]

USER_AGENT = "Mozilla/5.0 (X11; Linux x86_64) cursor-installer"
CHUNK_SIZE = 8192


class NetworkClientProtocol(Protocol):
    connect_timeout: int

    def download(
        self,
        url: str,
        output_path: Path,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None: ...


class NetworkClient:
    """Concrete transfer implementation using urllib with a curl fallback."""

    def __init__(self, connect_timeout: int = CONNECT_TIMEOUT) -> None:
        self.connect_timeout = connect_timeout

    def download(
        self,
        url: str,
        output_path: Path,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Download ``url`` to ``output_path``.

        Raises:
            NetworkError: If neither urllib nor curl could complete the transfer
        """
        try:
            self._download_with_urllib(url, output_path, on_progress)
        except NetworkError as e:
            logger.warning(f"Direct download failed: {e}, falling back to curl")
            self._download_with_curl(url, output_path)

    def _download_with_urllib(
        self,
        url: str,
        output_path: Path,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        try:
            with urllib.request.urlopen(req, timeout=self.connect_timeout) as response:
                total_size = int(response.headers.get("Content-Length", 0) or 0)
                downloaded = 0
                last_percent = -1
                with open(output_path, "wb") as f:
                    while True:
                        chunk = response.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        f.write(chunk)
                        downloaded += len(chunk)
                        if on_progress is not None and total_size > 0:
                            percent = min(downloaded * 100 // total_size, 100)
                            if percent != last_percent:
                                last_percent = percent
                                on_progress(percent)
        except Exception as e:
            raise NetworkError(f"Failed to download {url}: {e}") from e

        if total_size > 0 and downloaded != total_size:
            raise NetworkError(
                f"Incomplete download of {url}: received {downloaded} of {total_size} bytes"
            )

    def _download_with_curl(self, url: str, output_path: Path) -> None:
        cmd = [
            "curl",
            "-L",  # Follow redirects
            "-s",  # Silent mode
            "-S",  # Show errors
            "-f",  # Fail on HTTP error
            "--connect-timeout",
            str(self.connect_timeout),
            "-A",
            USER_AGENT,
            "-o",
            str(output_path),
            url,
        ]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise NetworkError(f"curl could not be started: {e}") from e
        if result.returncode != 0:
            raise NetworkError(
                f"curl exited with status {result.returncode}: {result.stderr.strip()}"
            )


@contextlib.contextmanager
def scratch_directory(path: Path) -> Iterator[Path]:
    """Provide the scratch directory and remove it on exit, however the block ends."""
    try:
        yield path
    finally:
        logger.debug(f"Cleaning up temporary files in {path}")
        shutil.rmtree(path, ignore_errors=True)


class DownloadManager:
    """Fetches resources with bounded retries and atomic placement."""

    def __init__(
        self,
        network_client: NetworkClientProtocol,
        scratch_dir: Path,
        max_retries: int = MAX_RETRIES,
        backoff_step: int = BACKOFF_STEP,
        sleep: Callable[[float], None] = time.sleep,
        progress_factory: Optional[ProgressFactory] = None,
    ) -> None:
        self.network_client = network_client
        self.scratch_dir = scratch_dir
        self.max_retries = max_retries
        self.backoff_step = backoff_step
        self.sleep = sleep
        self.progress_factory = progress_factory

    def fetch(self, url: str, destination: Path, description: str) -> Path:
        """
        Download ``url`` and place it at ``destination``.

        Args:
            url: Remote resource
            destination: Final location; any existing file is replaced
            description: Human readable name used in log messages

        Returns:
            The destination path

        Raises:
            DownloadError: If every attempt failed or the result could not be placed
        """
        try:
            self.scratch_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadError(
                f"Cannot create temporary directory {self.scratch_dir}: {e}"
            ) from e

        for attempt in range(1, self.max_retries + 1):
            logger.info(
                f"Downloading {description} (attempt {attempt}/{self.max_retries})..."
            )
            temp_file = self._attempt(url, destination.name, description)
            if temp_file is not None:
                self._move_into_place(temp_file, destination)
                logger.info("Download completed successfully!")
                return destination

            if attempt < self.max_retries:
                wait_time = attempt * self.backoff_step
                logger.warning(f"Download failed. Retrying in {wait_time} seconds...")
                self.sleep(wait_time)

        raise DownloadError(
            f"Failed to download {description} after {self.max_retries} attempts."
        )

    def _attempt(self, url: str, name: str, description: str) -> Optional[Path]:
        """Run one transfer; return the temp file when it holds data."""
        fd, temp_name = tempfile.mkstemp(prefix=f"{name}.", dir=self.scratch_dir)
        os.close(fd)
        temp_file = Path(temp_name)

        progress = self._open_progress(description)
        try:
            self.network_client.download(
                url, temp_file, lambda percent: self._report(progress, percent)
            )
        except Exception as e:
            logger.error(f"Download attempt failed: {e}")
            temp_file.unlink(missing_ok=True)
            return None
        finally:
            if progress is not None:
                progress.close()

        if not temp_file.exists() or temp_file.stat().st_size == 0:
            logger.error("Downloaded file is empty or corrupted.")
            temp_file.unlink(missing_ok=True)
            return None
        return temp_file

    def _open_progress(self, description: str) -> Optional[ProgressBar]:
        if self.progress_factory is None:
            return None
        try:
            return self.progress_factory(description)
        except Exception as e:  # progress is advisory only
            logger.debug(f"Progress display unavailable: {e}")
            return None

    @staticmethod
    def _report(progress: Optional[ProgressBar], percent: int) -> None:
        if progress is None:
            return
        try:
            progress(percent)
        except Exception as e:  # progress is advisory only
            logger.debug(f"Dropped progress update: {e}")

    @staticmethod
    def _move_into_place(temp_file: Path, destination: Path) -> None:
        """Stage next to ``destination`` then rename over it."""
        staged = destination.with_name(f".{destination.name}.partial")
        try:
            shutil.move(str(temp_file), str(staged))
            os.replace(staged, destination)
        except OSError as e:
            staged.unlink(missing_ok=True)
            raise DownloadError(f"Could not move download into {destination}: {e}") from e
